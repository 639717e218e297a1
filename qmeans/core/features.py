"""
Feature extraction for the platformer observation format.

Turns one environment observation into a fixed-length feature vector,
a scalar reward and a terminal flag. Everything carried between steps
(last position, last power mode, kill totals) lives in an
``ExtractorState`` owned by the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

import numpy as np

from qmeans.utils.config import RewardWeights

logger = logging.getLogger(__name__)

NUM_STATUS_FLAGS = 4
START_X = 32.0
START_MODE = 2


@dataclass
class Observation:
    """
    One step of the environment boundary.

    Both grids are centred on the agent: the agent occupies cell
    ``(rows // 2, cols // 2)``.
    """

    level_scene: np.ndarray
    enemies: np.ndarray
    mode: int
    may_jump: bool
    on_ground: bool
    can_shoot: bool
    position: Tuple[float, float]
    kills_by_stomp: int = 0
    kills_by_fire: int = 0
    kills_by_shell: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Observation":
        """Build an observation from the dict form produced by gymnasium envs."""
        return cls(
            level_scene=np.asarray(data["level_scene"]),
            enemies=np.asarray(data["enemies"]),
            mode=int(np.asarray(data["mode"]).item()),
            may_jump=bool(np.asarray(data["may_jump"]).item()),
            on_ground=bool(np.asarray(data["on_ground"]).item()),
            can_shoot=bool(np.asarray(data["can_shoot"]).item()),
            position=tuple(float(p) for p in np.asarray(data["position"])),
            kills_by_stomp=int(np.asarray(data.get("kills_by_stomp", 0)).item()),
            kills_by_fire=int(np.asarray(data.get("kills_by_fire", 0)).item()),
            kills_by_shell=int(np.asarray(data.get("kills_by_shell", 0)).item()),
        )


class ExtractorState:
    """
    Values the extractor carries from one step to the next.

    One instance per agent; call ``reset_episode`` at every episode start.
    """

    __slots__ = [
        'x', 'last_x', 'last_mode', 'total_stomp', 'total_fire',
        'total_shell', 'reward_so_far', 'steps',
    ]

    def __init__(self, start_x: float = START_X, mode: int = START_MODE):
        self.reset_episode(start_x, mode)

    def reset_episode(self, start_x: float = START_X, mode: int = START_MODE) -> None:
        """Forget everything from the previous episode."""
        self.x = float(start_x)
        self.last_x = float(start_x)
        self.last_mode = int(mode)
        self.total_stomp = 0
        self.total_fire = 0
        self.total_shell = 0
        self.reward_so_far = 0.0
        self.steps = 0

    def copy(self) -> "ExtractorState":
        other = ExtractorState.__new__(ExtractorState)
        for name in self.__slots__:
            setattr(other, name, getattr(self, name))
        return other

    def __repr__(self) -> str:
        return (
            f"ExtractorState(x={self.x:.1f}, mode={self.last_mode}, "
            f"steps={self.steps}, reward_so_far={self.reward_so_far:.2f})"
        )


class FeatureExtractor:
    """
    Samples a square window of the terrain and enemy layers around the agent.

    Parameters
    ----------
    half_width : int
        The window spans offsets ``-half_width .. half_width - 1`` on both
        axes, i.e. ``2 * half_width`` cells per side.
    weights : Optional[RewardWeights]
        Reward shaping weights. If None, uses defaults.

    Examples
    --------
    >>> extractor = FeatureExtractor(half_width=3)
    >>> state = ExtractorState()
    >>> features, reward, terminal = extractor.extract(observation, state)
    >>> features.shape
    (76,)
    """

    def __init__(self, half_width: int = 3, weights: Optional[RewardWeights] = None):
        if half_width < 1:
            raise ValueError("half_width must be at least 1")
        self.half_width = half_width
        self.weights = weights or RewardWeights()

    @property
    def side(self) -> int:
        return 2 * self.half_width

    @property
    def feature_dim(self) -> int:
        return 2 * self.side * self.side + NUM_STATUS_FLAGS

    def _window(self, grid: np.ndarray) -> np.ndarray:
        """Binary occupancy of the window around the grid centre."""
        grid = np.asarray(grid)
        if grid.ndim != 2:
            raise ValueError(f"observation grids must be 2-D, got shape {grid.shape}")
        rows, cols = grid.shape
        center_r, center_c = rows // 2, cols // 2
        out = np.zeros((self.side, self.side), dtype=np.float64)
        for i, dr in enumerate(range(-self.half_width, self.half_width)):
            r = center_r + dr
            if not 0 <= r < rows:
                continue
            for j, dc in enumerate(range(-self.half_width, self.half_width)):
                c = center_c + dc
                if 0 <= c < cols and grid[r, c] != 0:
                    out[i, j] = 1.0
        return out

    def representation(self, observation: Observation) -> np.ndarray:
        """Feature vector of an observation, without touching any state."""
        features = np.concatenate([
            self._window(observation.level_scene).ravel(),
            self._window(observation.enemies).ravel(),
            np.array([
                float(observation.mode),
                1.0 if observation.may_jump else 0.0,
                1.0 if observation.on_ground else 0.0,
                1.0 if observation.can_shoot else 0.0,
            ]),
        ])
        features.flags.writeable = False
        return features

    def extract(
        self,
        observation: Observation,
        state: ExtractorState
    ) -> Tuple[np.ndarray, float, bool]:
        """
        Extract features and reward, advancing ``state`` by one step.

        Parameters
        ----------
        observation : Observation
            Current observation.
        state : ExtractorState
            Per-agent carried values; updated in place.

        Returns
        -------
        Tuple[np.ndarray, float, bool]
            (features, reward, terminal).
        """
        features = self.representation(observation)
        w = self.weights

        x, y = observation.position
        state.last_x = state.x
        state.x = float(x)

        stomp = max(0, observation.kills_by_stomp - state.total_stomp)
        fire = max(0, observation.kills_by_fire - state.total_fire)
        shell = max(0, observation.kills_by_shell - state.total_shell)
        state.total_stomp = int(observation.kills_by_stomp)
        state.total_fire = int(observation.kills_by_fire)
        state.total_shell = int(observation.kills_by_shell)

        collided = 1 if observation.mode < state.last_mode else 0
        state.last_mode = int(observation.mode)
        state.steps += 1

        if y > w.fall_threshold:
            logger.debug("Agent falling at y=%.1f, step %d", y, state.steps)
            reward = float(w.fall)
            terminal = True
        else:
            reward = float(
                (state.x - state.last_x) * w.distance
                + stomp * w.stomp
                + fire * w.fire
                + shell * w.shell
                + collided * w.collision
                - w.living_cost
            )
            terminal = False

        state.reward_so_far += reward
        return features, reward, terminal

    def describe(self, features: np.ndarray) -> str:
        """Render a feature vector as text grids for debug output."""
        features = np.asarray(features)
        if features.shape != (self.feature_dim,):
            raise ValueError(
                f"expected a vector of length {self.feature_dim}, got shape {features.shape}"
            )
        cells = self.side * self.side
        blocks = []
        for layer in (features[:cells], features[cells:2 * cells]):
            grid = layer.reshape(self.side, self.side)
            blocks.append("\n".join(
                " ".join(f"{v:.1f}" for v in row) for row in grid
            ))
        status = " ".join(f"{v:.1f}" for v in features[2 * cells:])
        return "\n\n".join(blocks) + "\n\n" + status

    def __repr__(self) -> str:
        return f"FeatureExtractor(half_width={self.half_width}, dim={self.feature_dim})"
