"""
Q-learning over abstract states.

This module provides the QLearner class: epsilon-greedy action selection
and the one-step Q-learning update on a ValueTable.
"""

from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import Optional, Union

from qmeans.core.actions import NUM_ACTIONS
from qmeans.core.errors import LoadError
from qmeans.core.value_table import ValueTable
from qmeans.utils.config import QMeansConfig

logger = logging.getLogger(__name__)


class QLearner:
    """
    Tabular Q-learning with "explore among non-greedy" epsilon-greedy.

    With probability ``epsilon`` a uniformly random action other than the
    greedy one is chosen; otherwise the greedy action. Unseen pairs read
    ``initial_value``, which is optimistic by default so that unvisited
    actions are tried early.

    Parameters
    ----------
    config : Optional[QMeansConfig]
        Source of epsilon, alpha, gamma, initial value and greedy floor.
    num_states : Optional[int]
        Size of the abstract state space, used to validate state ids.
    seed : Optional[int]
        Seed for exploration. Defaults to ``config.seed``.

    Attributes
    ----------
    epsilon, alpha, gamma : float
        May be changed at any time during a run.
    table : ValueTable
        The learned values.

    Examples
    --------
    >>> learner = QLearner(QMeansConfig(epsilon=0.0))
    >>> a = learner.select_action(0)
    >>> learner.update(0, a, reward=1.0, next_state=1)
    19.7
    """

    def __init__(
        self,
        config: Optional[QMeansConfig] = None,
        num_states: Optional[int] = None,
        seed: Optional[int] = None
    ):
        self.config = config or QMeansConfig()
        self.epsilon = self.config.epsilon
        self.alpha = self.config.alpha
        self.gamma = self.config.gamma
        self.greedy_floor = self.config.greedy_floor
        self.table = ValueTable(self.config.initial_value, num_states=num_states)
        self.rng = random.Random(self.config.seed if seed is None else seed)

        self.total_updates = 0
        self.explorations = 0

    @property
    def initial_value(self) -> float:
        return self.table.initial_value

    @initial_value.setter
    def initial_value(self, value: float) -> None:
        self.table.initial_value = float(value)

    def value(self, state_id: int, action_id: int) -> float:
        return self.table.get(state_id, action_id)

    def _best(self, state_id: int):
        """(best action, best value) with ties to action-set order."""
        if self.greedy_floor is None:
            best_action, best_value = 0, self.table.get(state_id, 0)
            candidates = range(1, NUM_ACTIONS)
        else:
            # Legacy search: actions must beat the floor to be picked
            best_action, best_value = 0, self.greedy_floor
            candidates = range(NUM_ACTIONS)
        for action_id in candidates:
            q = self.table.get(state_id, action_id)
            if q > best_value:
                best_action, best_value = action_id, q
        return best_action, best_value

    def greedy_action(self, state_id: int) -> int:
        return self._best(state_id)[0]

    def best_value(self, state_id: int) -> float:
        return self._best(state_id)[1]

    def select_action(self, state_id: int, training: bool = True) -> int:
        """
        Select an action for an abstract state.

        Parameters
        ----------
        state_id : int
            Abstract state id.
        training : bool
            If False, always returns the greedy action.

        Returns
        -------
        int
            Action id.
        """
        greedy = self.greedy_action(state_id)
        if training and self.rng.random() < self.epsilon:
            self.explorations += 1
            others = [a for a in range(NUM_ACTIONS) if a != greedy]
            return self.rng.choice(others)
        return greedy

    def update(
        self,
        prev_state: int,
        action: int,
        reward: float,
        next_state: int,
        terminal: bool = False
    ) -> float:
        """
        Apply one Q-learning update and return the new value.

        ``Q(s, a) += alpha * (reward + gamma * max_a' Q(s', a') - Q(s, a))``.
        With ``terminal`` the bootstrap term is dropped.
        """
        self.table.validate_key(prev_state, action)
        if self.table.num_states is not None and not 0 <= next_state < self.table.num_states:
            raise ValueError(f"next state id {next_state} outside the abstract state space")

        old = self.table.get(prev_state, action)
        best_next = 0.0 if terminal else self.best_value(next_state)
        new = old + self.alpha * (reward + self.gamma * best_next - old)
        self.table.set(prev_state, action, new)
        self.total_updates += 1
        return new

    def export(self) -> bytes:
        return self.table.export()

    def import_values(self, blob: bytes) -> None:
        """
        Replace the table with a serialized one.

        The current table is kept if the blob fails to load.

        Raises
        ------
        LoadError
            If the blob is corrupt or incompatible.
        """
        self.table = ValueTable.from_blob(
            blob,
            num_states=self.table.num_states,
            initial_value=self.table.initial_value,
        )
        logger.info("Imported %d q-values", len(self.table))

    def save(self, path: Union[str, Path]) -> None:
        self.table.save(path)

    def load(self, path: Union[str, Path]) -> None:
        try:
            blob = Path(path).read_bytes()
        except OSError as e:
            raise LoadError(f"cannot read value table from {path}: {e}") from e
        self.import_values(blob)

    def __repr__(self) -> str:
        return (
            f"QLearner(epsilon={self.epsilon}, alpha={self.alpha}, gamma={self.gamma}, "
            f"entries={len(self.table)})"
        )
