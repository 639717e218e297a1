"""Reference environments for QMeans."""

import gymnasium as gym

from qmeans.envs.toy_level import ToyLevelEnv

gym.register(id="qmeans/ToyLevel-v0", entry_point="qmeans.envs.toy_level:ToyLevelEnv")

__all__ = ["ToyLevelEnv"]
