"""
The state capability used by agents.

Agents depend only on the ``State`` protocol. ``PlatformerState`` is the
implementation for the platformer observation format.
"""

from __future__ import annotations

from typing import Optional, Protocol

import numpy as np

from qmeans.core.features import ExtractorState, FeatureExtractor, Observation


class State(Protocol):
    """Capability set every game state offers to an agent."""

    def representation(self) -> np.ndarray:
        ...

    def reward(self) -> float:
        ...

    def reset(self) -> None:
        ...

    def clone(self) -> "State":
        ...


class PlatformerState:
    """
    Latest feature vector and reward of one agent in a platformer level.

    Parameters
    ----------
    extractor : FeatureExtractor
        Shared, stateless feature extractor.
    tracker : Optional[ExtractorState]
        Values carried between steps. A fresh one is created if None.

    Examples
    --------
    >>> state = PlatformerState(FeatureExtractor())
    >>> state.observe(observation)
    >>> state.representation().shape
    (76,)
    """

    def __init__(self, extractor: FeatureExtractor, tracker: Optional[ExtractorState] = None):
        self.extractor = extractor
        self.tracker = tracker if tracker is not None else ExtractorState()
        self._features = np.zeros(extractor.feature_dim)
        self._reward = 0.0
        self.terminal = False

    def observe(self, observation: Observation) -> None:
        """Advance to a new observation."""
        self._features, self._reward, self.terminal = self.extractor.extract(
            observation, self.tracker
        )

    def representation(self) -> np.ndarray:
        return self._features

    def reward(self) -> float:
        return self._reward

    def reset(self, start_x: Optional[float] = None, mode: Optional[int] = None) -> None:
        """Clear the representation and start a new episode."""
        self._features = np.zeros(self.extractor.feature_dim)
        self._reward = 0.0
        self.terminal = False
        kwargs = {}
        if start_x is not None:
            kwargs['start_x'] = start_x
        if mode is not None:
            kwargs['mode'] = mode
        self.tracker.reset_episode(**kwargs)

    def clone(self) -> "PlatformerState":
        other = PlatformerState(self.extractor, self.tracker.copy())
        other._features = self._features
        other._reward = self._reward
        other.terminal = self.terminal
        return other

    @property
    def x(self) -> float:
        return self.tracker.x

    def __eq__(self, other) -> bool:
        if not isinstance(other, PlatformerState):
            return NotImplemented
        return np.array_equal(self._features, other._features)

    __hash__ = None

    def __repr__(self) -> str:
        return f"PlatformerState(x={self.x:.1f}, reward={self._reward:.2f})"
