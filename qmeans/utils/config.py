"""
Configuration management for QMeans agents.

This module provides dataclasses for configuring the feature window,
the reward shaping, the state abstraction and the Q-learning parameters.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional


@dataclass
class RewardWeights:
    """
    Weights of the per-step reward.

    ``reward = dx * distance + stomp_kills * stomp + fire_kills * fire
    + shell_kills * shell + collided * collision - living_cost``

    A fall below ``fall_threshold`` overrides the reward with ``fall``.
    """

    distance: float = 1.0
    stomp: float = 0.0
    fire: float = 1.0
    shell: float = 1.0
    collision: float = -50.0
    living_cost: float = 0.5
    fall: float = -1000.0
    fall_threshold: float = 225.0


@dataclass
class QMeansConfig:
    """
    Configuration for a QMeans agent.

    All values are read once at construction. Trained structures (basis,
    codebook) are never reconfigured afterwards; the learning rates on the
    learner may still be changed directly during a run.

    Attributes
    ----------
    half_width : int
        Half-width of the square window sampled around the agent. The
        window covers ``2 * half_width`` cells per side. Default: 3

    num_components : int
        Number of principal components kept by the reducer. Default: 8

    num_clusters : int
        Number of prototypes in the codebook. A negative value skips
        clustering and keeps every distinct projection. Default: 64

    cluster_iterations : int
        Iteration cap for k-means. Default: 100

    seed : Optional[int]
        Seed for k-means initialisation and exploration. Default: None

    cache_capacity : Optional[int]
        Maximum projection-cache entries, or None for unbounded.

    batch_size : int
        Feature vectors collected before the abstraction is trained
        automatically. Default: 2000

    epsilon : float
        Probability of exploring a non-greedy action. Default: 0.1

    alpha : float
        Learning rate. Default: 0.3

    gamma : float
        Discount factor. Default: 0.9

    initial_value : float
        Optimistic value of unseen state-action pairs. Default: 20.0

    greedy_floor : Optional[float]
        Starting value of the best-action search. None searches from
        negative infinity; 0.0 reproduces the legacy zero floor.

    Examples
    --------
    >>> config = QMeansConfig(num_clusters=32, epsilon=0.05)
    >>> agent = QLearnAgent(config)

    >>> QMeansConfig().initial_value
    20.0
    """

    # Feature window
    half_width: int = 3
    reward: RewardWeights = field(default_factory=RewardWeights)

    # State abstraction
    num_components: int = 8
    num_clusters: int = 64
    cluster_iterations: int = 100
    seed: Optional[int] = None
    cache_capacity: Optional[int] = None
    batch_size: int = 2000

    # Q-learning
    epsilon: float = 0.1
    alpha: float = 0.3
    gamma: float = 0.9
    initial_value: float = 20.0
    greedy_floor: Optional[float] = None

    def __post_init__(self):
        """Validate configuration parameters."""
        if isinstance(self.reward, dict):
            self.reward = RewardWeights(**self.reward)
        if self.half_width < 1:
            raise ValueError("half_width must be at least 1")
        if self.num_components < 1:
            raise ValueError("num_components must be at least 1")
        if self.num_clusters == 0:
            raise ValueError("num_clusters must be positive, or negative for exact mode")
        if self.cluster_iterations < 1:
            raise ValueError("cluster_iterations must be at least 1")
        if self.cache_capacity is not None and self.cache_capacity < 1:
            raise ValueError("cache_capacity must be positive or None")
        if self.batch_size <= self.num_components:
            raise ValueError("batch_size must exceed num_components")
        if not 0 <= self.epsilon <= 1:
            raise ValueError("epsilon must be between 0 and 1")
        if not 0 <= self.alpha <= 1:
            raise ValueError("alpha must be between 0 and 1")
        if not 0 <= self.gamma <= 1:
            raise ValueError("gamma must be between 0 and 1")

    @property
    def feature_dim(self) -> int:
        """Length of the feature vector produced for this window size."""
        side = 2 * self.half_width
        return 2 * side * side + 4

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QMeansConfig":
        return cls(**data)
