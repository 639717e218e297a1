"""Core components for QMeans: features, reduction, clustering, abstraction and values."""

from qmeans.core.abstractor import ProjectionCache, StateAbstractor
from qmeans.core.clustering import KMeansClusterer, Prototype, nearest_index
from qmeans.core.errors import (
    AlreadyTrainedError,
    CapacityError,
    EmptyClusterError,
    InsufficientDataError,
    LoadError,
    NotTrainedError,
    QMeansError,
)
from qmeans.core.features import ExtractorState, FeatureExtractor, Observation
from qmeans.core.pca import Basis, PrincipalComponentAnalysis
from qmeans.core.state import PlatformerState, State
from qmeans.core.value_table import ValueTable

__all__ = [
    "StateAbstractor",
    "ProjectionCache",
    "KMeansClusterer",
    "Prototype",
    "nearest_index",
    "PrincipalComponentAnalysis",
    "Basis",
    "FeatureExtractor",
    "ExtractorState",
    "Observation",
    "State",
    "PlatformerState",
    "ValueTable",
    "QMeansError",
    "InsufficientDataError",
    "NotTrainedError",
    "AlreadyTrainedError",
    "EmptyClusterError",
    "CapacityError",
    "LoadError",
]
