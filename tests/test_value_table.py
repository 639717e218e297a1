"""Tests for ValueTable."""

import io

import numpy as np
import pytest
from qmeans.core.errors import LoadError
from qmeans.core.value_table import RECORD_DTYPE, ValueTable


def blob_with(records, version=1, initial_value=20.0):
    buf = io.BytesIO()
    np.savez(
        buf,
        version=np.array(version),
        initial_value=np.array(initial_value),
        records=np.array(records, dtype=RECORD_DTYPE),
    )
    return buf.getvalue()


class TestValueTable:
    """Test suite for ValueTable."""

    def test_unseen_reads_initial_value(self):
        """Test the default for pairs never written."""
        table = ValueTable(initial_value=20.0)
        assert table.get(5, 3) == 20.0
        assert len(table) == 0
        assert (5, 3) not in table

    def test_set_and_get(self):
        """Test writing a value."""
        table = ValueTable()
        table.set(2, 11, -3.25)
        assert table.get(2, 11) == -3.25
        assert (2, 11) in table

    def test_row(self):
        """Test the per-state value row."""
        table = ValueTable(initial_value=1.0)
        table.set(0, 4, 9.0)
        row = table.row(0)
        assert row.shape == (12,)
        assert row[4] == 9.0
        assert row.sum() == 11 * 1.0 + 9.0

    def test_invalid_action(self):
        """Test that action ids outside the action set are rejected."""
        table = ValueTable()
        with pytest.raises(ValueError):
            table.set(0, 12, 1.0)
        with pytest.raises(ValueError):
            table.set(0, -1, 1.0)

    def test_invalid_state(self):
        """Test state id validation against the state space size."""
        table = ValueTable(num_states=4)
        table.set(3, 0, 1.0)
        with pytest.raises(ValueError):
            table.set(4, 0, 1.0)
        with pytest.raises(ValueError):
            ValueTable().set(-1, 0, 1.0)

    def test_round_trip_is_bitwise(self):
        """Test that export and from_blob preserve every value bit for bit."""
        table = ValueTable(initial_value=20.0)
        table.set(0, 0, 0.1 + 0.2)
        table.set(7, 11, -0.0)
        table.set(3, 5, float('nan'))
        table.set(2, 1, 1e-300)

        restored = ValueTable.from_blob(table.export())
        assert restored == table
        assert np.signbit(restored.get(7, 11))
        assert restored.get(0, 0) == 0.1 + 0.2

    def test_equality_sees_signed_zero(self):
        """Test that -0.0 and 0.0 are different stored values."""
        a, b = ValueTable(), ValueTable()
        a.set(0, 0, 0.0)
        b.set(0, 0, -0.0)
        assert a != b

    def test_empty_round_trip(self):
        """Test exporting an empty table."""
        restored = ValueTable.from_blob(ValueTable(initial_value=3.0).export())
        assert len(restored) == 0
        assert restored.initial_value == 3.0

    def test_initial_value_override(self):
        """Test that from_blob can override the stored initial value."""
        blob = ValueTable(initial_value=3.0).export()
        assert ValueTable.from_blob(blob, initial_value=7.0).initial_value == 7.0

    def test_corrupt_blob(self):
        """Test loading garbage bytes."""
        with pytest.raises(LoadError):
            ValueTable.from_blob(b"definitely not a table")

    def test_wrong_version(self):
        """Test loading a blob of another format version."""
        with pytest.raises(LoadError):
            ValueTable.from_blob(blob_with([], version=2))

    def test_missing_field(self):
        """Test loading a blob without records."""
        buf = io.BytesIO()
        np.savez(buf, version=np.array(1), initial_value=np.array(20.0))
        with pytest.raises(LoadError):
            ValueTable.from_blob(buf.getvalue())

    def test_wrong_record_layout(self):
        """Test loading records of the wrong dtype."""
        buf = io.BytesIO()
        np.savez(buf, version=np.array(1), initial_value=np.array(20.0),
                 records=np.zeros((2, 3)))
        with pytest.raises(LoadError):
            ValueTable.from_blob(buf.getvalue())

    def test_wrong_record_shape(self):
        """Test loading records of the right dtype but the wrong shape."""
        for records in (np.zeros((2, 2), dtype=RECORD_DTYPE), np.zeros((), dtype=RECORD_DTYPE)):
            buf = io.BytesIO()
            np.savez(buf, version=np.array(1), initial_value=np.array(20.0), records=records)
            with pytest.raises(LoadError):
                ValueTable.from_blob(buf.getvalue())

    def test_invalid_entry(self):
        """Test loading a blob with an out-of-range action."""
        with pytest.raises(LoadError):
            ValueTable.from_blob(blob_with([(0, 12, 1.0)]))

    def test_state_outside_space(self):
        """Test loading a blob against a smaller state space."""
        blob = blob_with([(9, 0, 1.0)])
        assert len(ValueTable.from_blob(blob)) == 1
        with pytest.raises(LoadError):
            ValueTable.from_blob(blob, num_states=5)

    def test_duplicate_entry(self):
        """Test loading a blob with the same pair twice."""
        with pytest.raises(LoadError):
            ValueTable.from_blob(blob_with([(0, 1, 1.0), (0, 1, 2.0)]))

    def test_save_load(self, tmp_path):
        """Test persisting to a file."""
        table = ValueTable()
        table.set(1, 2, 3.5)
        path = tmp_path / "q.npz"
        table.save(path)
        assert ValueTable.load(path) == table

    def test_load_missing_file(self, tmp_path):
        """Test loading a file that does not exist."""
        with pytest.raises(LoadError):
            ValueTable.load(tmp_path / "missing.npz")

    def test_repr(self):
        """Test string representation."""
        assert "entries=0" in repr(ValueTable())
