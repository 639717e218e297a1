"""
QMeans - Q-learning over PCA-means state abstraction
====================================================

A reinforcement learning agent for platformer games that compresses a local
view of the level with PCA, clusters the projections into prototypes with
k-means, and learns Q-values over the resulting discrete states.

Quick Start
-----------
>>> from qmeans import QLearnAgent, QMeansConfig, run_episode
>>> from qmeans.envs import ToyLevelEnv
>>>
>>> env = ToyLevelEnv(seed=0)
>>> agent = QLearnAgent(QMeansConfig(batch_size=300, num_clusters=16, seed=0))
>>>
>>> for episode in range(50):
...     reward = run_episode(env, agent)

Main Components
---------------
- QLearnAgent: Per-step controller gluing extraction, abstraction and learning
- QLearner: Epsilon-greedy Q-learning over abstract state ids
- StateAbstractor: PCA projection + nearest-prototype lookup with a cache
- FeatureExtractor: Observation window sampling and reward shaping
- QMeansConfig: Configuration dataclass for agent parameters
"""

__version__ = "0.1.0"

from qmeans.agents.mario_agent import QLearnAgent, run_episode
from qmeans.agents.q_learner import QLearner
from qmeans.core.abstractor import ProjectionCache, StateAbstractor
from qmeans.core.clustering import KMeansClusterer, Prototype
from qmeans.core.features import ExtractorState, FeatureExtractor, Observation
from qmeans.core.pca import Basis, PrincipalComponentAnalysis
from qmeans.core.value_table import ValueTable
from qmeans.utils.config import QMeansConfig, RewardWeights

__all__ = [
    "QLearnAgent",
    "QLearner",
    "QMeansConfig",
    "RewardWeights",
    "StateAbstractor",
    "ProjectionCache",
    "KMeansClusterer",
    "Prototype",
    "PrincipalComponentAnalysis",
    "Basis",
    "FeatureExtractor",
    "ExtractorState",
    "Observation",
    "ValueTable",
    "run_episode",
]
