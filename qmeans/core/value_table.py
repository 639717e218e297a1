"""
Tabular action-value store keyed by (abstract state id, action id).
"""

from __future__ import annotations

import io
import logging
import zipfile
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple, Union

import numpy as np

from qmeans.core.actions import NUM_ACTIONS
from qmeans.core.errors import LoadError

logger = logging.getLogger(__name__)

TABLE_FORMAT_VERSION = 1

RECORD_DTYPE = np.dtype([
    ('state', np.int64),
    ('action', np.int64),
    ('value', np.float64),
])

StateActionKey = Tuple[int, int]


class ValueTable:
    """
    Q-values for visited state-action pairs.

    Unseen pairs read as ``initial_value``. Only explicitly written pairs are
    stored and persisted.

    Parameters
    ----------
    initial_value : float
        Value reported for pairs that were never written.
    num_states : Optional[int]
        Size of the abstract state space, when known. Used to validate keys.

    Examples
    --------
    >>> table = ValueTable(initial_value=20.0)
    >>> table.get(3, 1)
    20.0
    >>> table.set(3, 1, 12.5)
    >>> ValueTable.from_blob(table.export()) == table
    True
    """

    def __init__(self, initial_value: float = 20.0, num_states: Optional[int] = None):
        self.initial_value = float(initial_value)
        self.num_states = num_states
        self._values: Dict[StateActionKey, float] = {}

    def validate_key(self, state_id: int, action_id: int) -> None:
        if not 0 <= action_id < NUM_ACTIONS:
            raise ValueError(f"action id must be in [0, {NUM_ACTIONS}), got {action_id}")
        if state_id < 0 or (self.num_states is not None and state_id >= self.num_states):
            raise ValueError(
                f"state id {state_id} outside the abstract state space "
                f"of size {self.num_states}"
            )

    def get(self, state_id: int, action_id: int) -> float:
        return self._values.get((state_id, action_id), self.initial_value)

    def set(self, state_id: int, action_id: int, value: float) -> None:
        self.validate_key(state_id, action_id)
        self._values[(int(state_id), int(action_id))] = float(value)

    def row(self, state_id: int) -> np.ndarray:
        """Values of every action in one state, in action-set order."""
        return np.array([self.get(state_id, a) for a in range(NUM_ACTIONS)])

    def items(self) -> Iterator[Tuple[StateActionKey, float]]:
        return iter(self._values.items())

    def __contains__(self, key: StateActionKey) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ValueTable):
            return NotImplemented
        if self._values.keys() != other._values.keys():
            return False
        # Bit-level comparison so NaN and signed zeros round-trip exactly
        return all(
            np.float64(v).tobytes() == np.float64(other._values[k]).tobytes()
            for k, v in self._values.items()
        )

    __hash__ = None

    def to_records(self) -> np.ndarray:
        records = np.empty(len(self._values), dtype=RECORD_DTYPE)
        for i, ((state_id, action_id), value) in enumerate(sorted(self._values.items())):
            records[i] = (state_id, action_id, value)
        return records

    def export(self) -> bytes:
        """Serialize the table to an ``.npz`` blob."""
        buf = io.BytesIO()
        np.savez(
            buf,
            version=np.array(TABLE_FORMAT_VERSION),
            initial_value=np.array(self.initial_value),
            records=self.to_records(),
        )
        return buf.getvalue()

    @classmethod
    def from_blob(
        cls,
        blob: bytes,
        num_states: Optional[int] = None,
        initial_value: Optional[float] = None
    ) -> "ValueTable":
        """
        Deserialize a table produced by ``export``.

        The stored initial value is used unless ``initial_value`` is given.

        Raises
        ------
        LoadError
            If the blob is corrupt, of another format version, or holds keys
            outside the action set or the state space.
        """
        try:
            with np.load(io.BytesIO(blob), allow_pickle=False) as data:
                version = int(data['version'])
                if version != TABLE_FORMAT_VERSION:
                    raise LoadError(f"unsupported value table format version {version}")
                stored_initial = float(data['initial_value'])
                records = data['records']
        except LoadError:
            raise
        except (OSError, EOFError, KeyError, ValueError, TypeError, AttributeError,
                zipfile.BadZipFile) as e:
            raise LoadError(f"corrupt value table: {e}") from e

        if records.dtype != RECORD_DTYPE:
            raise LoadError(f"unexpected record layout {records.dtype}")
        if records.ndim != 1:
            raise LoadError(f"records must be one-dimensional, got shape {records.shape}")

        table = cls(
            initial_value=stored_initial if initial_value is None else initial_value,
            num_states=num_states,
        )
        values: Dict[StateActionKey, float] = {}
        for state_id, action_id, value in records.tolist():
            try:
                table.validate_key(state_id, action_id)
            except ValueError as e:
                raise LoadError(str(e)) from e
            if (state_id, action_id) in values:
                raise LoadError(f"duplicate entry for state {state_id}, action {action_id}")
            values[(state_id, action_id)] = value
        table._values = values
        return table

    def save(self, path: Union[str, Path]) -> None:
        with open(path, 'wb') as f:
            f.write(self.export())
        logger.info("Saved %d q-values to %s", len(self), path)

    @classmethod
    def load(cls, path: Union[str, Path], num_states: Optional[int] = None) -> "ValueTable":
        try:
            with open(path, 'rb') as f:
                blob = f.read()
        except OSError as e:
            raise LoadError(f"cannot read value table from {path}: {e}") from e
        table = cls.from_blob(blob, num_states=num_states)
        logger.info("Loaded %d q-values from %s", len(table), path)
        return table

    def __repr__(self) -> str:
        return f"ValueTable(entries={len(self)}, initial_value={self.initial_value})"
