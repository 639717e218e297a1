"""
Button layout and the canonical action set.

The controller accepts a boolean vector with one entry per button. The agent
only ever presses one of twelve fixed combinations, addressed by their index
in ``ACTIONS``.
"""

from __future__ import annotations

from enum import IntEnum
from typing import List, Tuple

import numpy as np


class Button(IntEnum):
    """Index of each button in the controller vector."""
    LEFT = 0
    RIGHT = 1
    DOWN = 2
    JUMP = 3
    SPEED = 4


NUM_BUTTONS = len(Button)


def _combo(*buttons: Button) -> Tuple[bool, ...]:
    pressed = [False] * NUM_BUTTONS
    for button in buttons:
        pressed[button] = True
    return tuple(pressed)


# Iteration order matters: greedy ties resolve to the earliest entry.
ACTIONS: Tuple[Tuple[bool, ...], ...] = (
    _combo(),                                          # stay
    _combo(Button.JUMP),
    _combo(Button.SPEED),
    _combo(Button.LEFT),
    _combo(Button.LEFT, Button.SPEED),
    _combo(Button.LEFT, Button.JUMP),
    _combo(Button.LEFT, Button.JUMP, Button.SPEED),
    _combo(Button.JUMP, Button.SPEED),
    _combo(Button.RIGHT),
    _combo(Button.RIGHT, Button.SPEED),
    _combo(Button.RIGHT, Button.JUMP),
    _combo(Button.RIGHT, Button.JUMP, Button.SPEED),
)

ACTION_NAMES: Tuple[str, ...] = (
    "stay", "jump", "speed",
    "left", "left_speed", "left_jump", "left_jump_speed",
    "jump_speed",
    "right", "right_speed", "right_jump", "right_jump_speed",
)

NUM_ACTIONS = len(ACTIONS)


def action_to_buttons(action_id: int) -> np.ndarray:
    """Return a fresh boolean button vector for an action id."""
    if not 0 <= action_id < NUM_ACTIONS:
        raise ValueError(f"action id must be in [0, {NUM_ACTIONS}), got {action_id}")
    return np.array(ACTIONS[action_id], dtype=bool)


def buttons_to_action(buttons) -> int:
    """Map a button vector back to its action id."""
    key = tuple(bool(b) for b in buttons)
    try:
        return ACTIONS.index(key)
    except ValueError:
        raise ValueError(f"button vector {key} is not in the action set") from None


def all_action_ids() -> List[int]:
    return list(range(NUM_ACTIONS))
