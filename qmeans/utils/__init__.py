"""Utilities for QMeans."""

from qmeans.utils.config import QMeansConfig, RewardWeights

__all__ = ["QMeansConfig", "RewardWeights"]
