"""
QLearnAgent implementation.

This module provides the QLearnAgent class, which glues together feature
extraction, state abstraction and Q-learning into a per-step controller
for a platformer character.
"""

from __future__ import annotations

import logging
import pickle
import random
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from qmeans.agents.q_learner import QLearner
from qmeans.core.abstractor import StateAbstractor
from qmeans.core.actions import NUM_ACTIONS, action_to_buttons
from qmeans.core.errors import LoadError, NotTrainedError
from qmeans.core.features import FeatureExtractor, Observation
from qmeans.core.state import PlatformerState
from qmeans.utils.config import QMeansConfig

logger = logging.getLogger(__name__)


class QLearnAgent:
    """
    Q-learning agent over a PCA + k-means abstraction of the local view.

    The agent runs in two phases:

    1. **Collection**: until the abstractor is trained, each step's feature
       vector is stored and a uniformly random action is returned.
    2. **Learning**: each step resolves the abstract state, updates the value
       of the previous transition and picks the next action epsilon-greedily.

    Parameters
    ----------
    config : Optional[QMeansConfig]
        Configuration object. If None, uses default settings.
    abstractor : Optional[StateAbstractor]
        A trained abstractor to reuse. Skips the collection phase.
    auto_train : bool
        Train the abstractor as soon as ``config.batch_size`` vectors are
        collected.

    Examples
    --------
    >>> from qmeans import QLearnAgent, QMeansConfig
    >>> from qmeans.envs import ToyLevelEnv
    >>>
    >>> env = ToyLevelEnv(seed=0)
    >>> agent = QLearnAgent(QMeansConfig(batch_size=200, num_clusters=16))
    >>> for episode in range(20):
    ...     total = run_episode(env, agent)
    """

    def __init__(
        self,
        config: Optional[QMeansConfig] = None,
        abstractor: Optional[StateAbstractor] = None,
        auto_train: bool = True
    ):
        """Initialize the agent."""
        self.config = config or QMeansConfig()
        self.auto_train = auto_train

        self.extractor = FeatureExtractor(self.config.half_width, self.config.reward)
        self.state = PlatformerState(self.extractor)
        self.abstractor = abstractor or StateAbstractor(
            components=self.config.num_components,
            clusters=self.config.num_clusters,
            iterations=self.config.cluster_iterations,
            seed=self.config.seed,
            cache_capacity=self.config.cache_capacity,
        )
        self.learner = QLearner(
            self.config,
            num_states=self.abstractor.codebook_size if self.abstractor.is_trained else None,
        )
        self._rng = random.Random(self.config.seed)

        # Collection buffer
        self.batch: List[np.ndarray] = []

        # Previous step, consumed by the next update
        self._prev_state_id: Optional[int] = None
        self._prev_action: Optional[int] = None

        # Statistics
        self.total_episodes = 0
        self.total_steps = 0
        self.best_reward = float('-inf')

    @property
    def is_learning(self) -> bool:
        return self.abstractor.is_trained

    def train_abstraction(self, batch: Optional[List[np.ndarray]] = None) -> None:
        """
        Train the abstractor on ``batch`` or on the collected vectors.

        The value table is bound to the resulting state space.
        """
        batch = self.batch if batch is None else batch
        logger.info("Training state abstraction on %d feature vectors", len(batch))
        self.abstractor.train(batch)
        self.learner.table.num_states = self.abstractor.codebook_size
        self.batch = []
        self._prev_state_id = None
        self._prev_action = None

    def get_action(self, observation: Observation, training: bool = True) -> np.ndarray:
        """
        Process one observation and return the button vector to press.

        Parameters
        ----------
        observation : Observation
            Current observation.
        training : bool
            If True, updates values and explores. If False, acts greedily
            without learning.

        Returns
        -------
        np.ndarray
            Boolean button vector.
        """
        self.state.observe(observation)
        self.total_steps += 1
        features = self.state.representation()

        if not self.is_learning:
            if not training:
                raise NotTrainedError("state abstraction is not trained yet")
            self.batch.append(features)
            if self.auto_train and len(self.batch) >= self.config.batch_size:
                self.train_abstraction()
            return action_to_buttons(self._rng.randrange(NUM_ACTIONS))

        state_id = self.abstractor.resolve(features)
        if training and self._prev_state_id is not None:
            self.learner.update(
                self._prev_state_id,
                self._prev_action,
                self.state.reward(),
                state_id,
                terminal=self.state.terminal,
            )

        action = self.learner.select_action(state_id, training=training)
        self._prev_state_id = state_id
        self._prev_action = action
        return action_to_buttons(action)

    def end_episode(self) -> None:
        """Record the finished episode's statistics."""
        self.total_episodes += 1
        _, reward = self.total_reward()
        if reward > self.best_reward:
            self.best_reward = reward
        logger.debug(
            "Episode %d finished: x=%.1f reward=%.1f",
            self.total_episodes, self.state.x, reward
        )

    def reset(self, start_x: Optional[float] = None, mode: Optional[int] = None) -> None:
        """
        Start a new episode.

        Keeps learned values and the trained abstraction.
        """
        self.state.reset(start_x=start_x, mode=mode)
        self._prev_state_id = None
        self._prev_action = None

    def total_reward(self) -> Tuple[float, float]:
        """(x position, reward accumulated this episode)."""
        return self.state.x, self.state.tracker.reward_so_far

    def get_stats(self) -> Dict[str, Any]:
        """
        Get agent statistics.

        Returns
        -------
        Dict[str, Any]
            Phase, codebook and cache info, table size and episode counters.
        """
        stats: Dict[str, Any] = {
            'phase': 'learning' if self.is_learning else 'collecting',
            'collected': len(self.batch),
            'codebook_size': self.abstractor.codebook_size,
            'q_entries': len(self.learner.table),
            'epsilon': self.learner.epsilon,
            'total_updates': self.learner.total_updates,
            'total_episodes': self.total_episodes,
            'total_steps': self.total_steps,
            'best_reward': self.best_reward,
        }
        if self.is_learning:
            stats['cache'] = self.abstractor.cache_info()
        return stats

    def save(self, path: Union[str, Path]) -> None:
        """
        Save the whole agent to file.

        Parameters
        ----------
        path : str
            File path for saving (pickle format).
        """
        state = {
            'config': self.config,
            'abstractor': self.abstractor,
            'q_values': self.learner.export(),
            'epsilon': self.learner.epsilon,
            'batch': self.batch,
            'total_episodes': self.total_episodes,
            'total_steps': self.total_steps,
            'best_reward': self.best_reward,
        }
        with open(path, 'wb') as f:
            pickle.dump(state, f)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "QLearnAgent":
        """
        Load an agent saved with ``save``.

        Raises
        ------
        LoadError
            If the file cannot be read or is not an agent checkpoint.
        """
        try:
            with open(path, 'rb') as f:
                state = pickle.load(f)
            config = state['config']
            abstractor = state['abstractor']
            q_values = state['q_values']
            epsilon = state['epsilon']
            batch = state['batch']
            counters = (state['total_episodes'], state['total_steps'], state['best_reward'])
        except (OSError, EOFError, pickle.UnpicklingError, KeyError, TypeError,
                AttributeError, ImportError) as e:
            raise LoadError(f"cannot load agent from {path}: {e}") from e

        if not isinstance(config, QMeansConfig):
            raise LoadError(f"{path} holds no agent configuration")
        if not isinstance(abstractor, StateAbstractor):
            raise LoadError(f"{path} holds no state abstractor")

        agent = cls(config=config, abstractor=abstractor)
        agent.learner.import_values(q_values)
        agent.learner.epsilon = epsilon
        agent.batch = list(batch)
        agent.total_episodes, agent.total_steps, agent.best_reward = counters
        return agent

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"QLearnAgent(phase={'learning' if self.is_learning else 'collecting'}, "
            f"states={self.abstractor.codebook_size}, "
            f"episodes={self.total_episodes})"
        )


def run_episode(env, agent: QLearnAgent, max_steps: int = 1000, training: bool = True) -> float:
    """
    Play one episode of a gymnasium environment with dict observations.

    Returns the reward accumulated by the agent's own reward function.
    """
    obs, info = env.reset()
    agent.reset(start_x=float(obs["position"][0]), mode=int(obs["mode"]))
    for _ in range(max_steps):
        buttons = agent.get_action(Observation.from_dict(obs), training=training)
        if agent.state.terminal:
            break
        obs, _, terminated, truncated, info = env.step(buttons.astype(np.int8))
        if terminated or truncated:
            # Let the agent see the final observation so the last transition is learned
            agent.get_action(Observation.from_dict(obs), training=training)
            break
    agent.end_episode()
    return agent.total_reward()[1]
