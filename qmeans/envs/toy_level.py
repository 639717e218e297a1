"""
A tiny side-scrolling level with the platformer observation format.

The level is a strip of ground with pits and walking enemies. Observations
are agent-centred occupancy grids plus status values, and actions are
boolean button vectors, so the agent can be exercised without a real game
engine.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import gymnasium as gym
import numpy as np
from gymnasium import spaces

from qmeans.core.actions import NUM_BUTTONS, Button

TILE = 16
GROUND_Y = 192.0            # feet of a standing agent
GROUND_ROWS = (13, 14)      # solid tile rows
OUT_OF_LEVEL_Y = 256.0
START_X = 32.0


class ToyLevelEnv(gym.Env):
    """
    Side-scrolling toy level.

    Parameters
    ----------
    length : int
        Level length in tiles. Reaching the end terminates with success.
    num_pits : int
        Number of one-tile pits placed at random.
    num_enemies : int
        Number of enemies walking left.
    view : int
        Side of the square observation grids (odd sizes centre exactly).
    max_steps : int
        Truncation limit.
    seed : Optional[int]
        Seed for the level layout.
    """

    metadata = {"render_modes": []}

    def __init__(
        self,
        length: int = 120,
        num_pits: int = 6,
        num_enemies: int = 5,
        view: int = 22,
        max_steps: int = 400,
        seed: Optional[int] = None
    ):
        super().__init__()
        self.length = length
        self.num_pits = num_pits
        self.num_enemies = num_enemies
        self.view = view
        self.max_steps = max_steps
        self._layout_seed = seed

        grid = spaces.Box(low=0, high=1, shape=(view, view), dtype=np.int8)
        self.observation_space = spaces.Dict({
            "level_scene": grid,
            "enemies": grid,
            "mode": spaces.Discrete(3),
            "may_jump": spaces.Discrete(2),
            "on_ground": spaces.Discrete(2),
            "can_shoot": spaces.Discrete(2),
            "position": spaces.Box(low=-np.inf, high=np.inf, shape=(2,), dtype=np.float32),
            "kills_by_stomp": spaces.Discrete(1000),
            "kills_by_fire": spaces.Discrete(1000),
            "kills_by_shell": spaces.Discrete(1000),
        })
        self.action_space = spaces.MultiBinary(NUM_BUTTONS)

        self.pits: set = set()
        self.enemies: List[float] = []
        self._layout_rng = np.random.default_rng(seed)
        self._build_layout()
        self._reset_agent()

    def _build_layout(self) -> None:
        candidates = np.arange(6, self.length - 2)
        self.pits = set(int(c) for c in self._layout_rng.choice(
            candidates, size=min(self.num_pits, len(candidates)), replace=False
        ))
        self._enemy_starts = sorted(float(c * TILE) for c in self._layout_rng.choice(
            candidates, size=min(self.num_enemies, len(candidates)), replace=False
        ))

    def _reset_agent(self) -> None:
        self.x = START_X
        self.y = GROUND_Y
        self.vy = 0.0
        self.mode = 2
        self.on_ground = True
        self.kills = {"stomp": 0, "fire": 0, "shell": 0}
        self.enemies = list(self._enemy_starts)
        self.steps = 0
        self._invulnerable = 0

    def _solid(self, col: int, row: int) -> bool:
        if col < 0 or col >= self.length:
            return row in GROUND_ROWS or col < 0
        return row in GROUND_ROWS and col not in self.pits

    def _observation(self) -> Dict[str, Any]:
        half = self.view // 2
        ax, ay = int(self.x // TILE), int(self.y // TILE)
        scene = np.zeros((self.view, self.view), dtype=np.int8)
        enemies = np.zeros((self.view, self.view), dtype=np.int8)
        enemy_cols = {int(e // TILE) for e in self.enemies}
        for r in range(self.view):
            row = ay + r - half
            for c in range(self.view):
                col = ax + c - half
                if self._solid(col, row):
                    scene[r, c] = 1
                if row == int(GROUND_Y // TILE) and col in enemy_cols:
                    enemies[r, c] = 1
        return {
            "level_scene": scene,
            "enemies": enemies,
            "mode": self.mode,
            "may_jump": int(self.on_ground),
            "on_ground": int(self.on_ground),
            "can_shoot": int(self.mode == 2),
            "position": np.array([self.x, self.y], dtype=np.float32),
            "kills_by_stomp": self.kills["stomp"],
            "kills_by_fire": self.kills["fire"],
            "kills_by_shell": self.kills["shell"],
        }

    def reset(self, seed: Optional[int] = None, options: Optional[dict] = None):
        super().reset(seed=seed)
        if seed is not None:
            self._layout_rng = np.random.default_rng(seed)
            self._build_layout()
        self._reset_agent()
        return self._observation(), {}

    def _move_enemies(self) -> None:
        self.enemies = [e - TILE / 2 for e in self.enemies if e > 0]

    def _interact(self, buttons: np.ndarray, descending: bool) -> None:
        agent_col = int(self.x // TILE)
        survivors = []
        for e in self.enemies:
            col = int(e // TILE)
            if buttons[Button.SPEED] and self.mode == 2 and 0 < col - agent_col <= 3:
                self.kills["fire"] += 1
            elif abs(col - agent_col) <= 0:
                if descending and not self.on_ground:
                    self.kills["stomp"] += 1
                else:
                    if self._invulnerable == 0:
                        self.mode -= 1
                        self._invulnerable = 8
                    survivors.append(e)
            else:
                survivors.append(e)
        self.enemies = survivors

    def step(self, action) -> Tuple[Dict[str, Any], float, bool, bool, Dict[str, Any]]:
        buttons = np.asarray(action, dtype=bool)
        old_x = self.x
        self.steps += 1
        self._invulnerable = max(0, self._invulnerable - 1)

        speed = 2.0 if buttons[Button.SPEED] else 1.0
        dx = (float(buttons[Button.RIGHT]) - float(buttons[Button.LEFT])) * 8.0 * speed
        self.x = max(0.0, self.x + dx)

        if buttons[Button.JUMP] and self.on_ground:
            self.vy = -14.0
            self.on_ground = False
        self.vy += 3.0
        new_y = self.y + self.vy
        col = int(self.x // TILE)
        if new_y >= GROUND_Y and self.y <= GROUND_Y and col not in self.pits:
            self.y, self.vy, self.on_ground = GROUND_Y, 0.0, True
        else:
            self.y = new_y
            self.on_ground = False

        self._move_enemies()
        self._interact(buttons, descending=self.vy > 0)

        fell = self.y > OUT_OF_LEVEL_Y
        dead = self.mode < 0
        won = self.x >= self.length * TILE
        if dead:
            self.mode = 0
        terminated = fell or dead or won
        truncated = not terminated and self.steps >= self.max_steps

        reward = (self.x - old_x) / TILE - (10.0 if fell or dead else 0.0)
        info = {"won": won, "fell": fell, "dead": dead}
        return self._observation(), float(reward), terminated, truncated, info
