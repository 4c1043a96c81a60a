"""
Unit tests for the cell table.

These tests verify that:
1. Column validation rejects missing grid columns and ragged columns
2. Row selection keeps metadata and checks the mask length
3. An osyris-like dataset is converted to integer grid coordinates in code units

"""

import numpy as np
import pytest

import chhaya.dataset as dataset
from chhaya.dataset import CellTable, list_mesh_fields, open_snapshot, read_cell_table
from chhaya.exceptions import ConfigurationError

# ──────────────────────────────────────────────────────────────
# Fake osyris objects
# ──────────────────────────────────────────────────────────────


class FakeArray:
    def __init__(self, values, scale=1.0):
        self.values = np.asarray(values, dtype=float)
        self.scale = scale

    def to(self, unit):
        return FakeArray(self.values * self.scale)


class FakeVector:
    def __init__(self, x, y, z, scale=1.0):
        self.x = FakeArray(x, scale)
        self.y = FakeArray(y, scale)
        self.z = FakeArray(z, scale)
        self.values = np.column_stack([x, y, z])


class FakeDataset(dict):
    def __init__(self, mesh, meta):
        super().__init__(mesh=mesh)
        self.meta = meta


def fake_dataset():
    # two level-1 cells and one level-2 cell in a box of 4 cm
    mesh = {
        "level": FakeArray([1, 1, 2]),
        "dx": FakeArray([2.0, 2.0, 1.0]),
        "position": FakeVector([1.0, 3.0, 0.5], [1.0, 1.0, 2.5], [3.0, 1.0, 0.5]),
        "density": FakeArray([8.0, 16.0, 24.0]),
        "velocity": FakeVector([2.0, 0.0, 0.0], [0.0, 4.0, 0.0], [0.0, 0.0, 6.0]),
        "metallicity": FakeArray([0.1, 0.2, 0.3]),
        "B_field": FakeVector([1.0, 1.0, 1.0], [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]),
    }
    meta = {"boxlen": 1.0, "unit_l": 4.0, "unit_d": 8.0, "unit_t": 2.0, "levelmin": 1, "levelmax": 3}
    return FakeDataset(mesh, meta)


# ──────────────────────────────────────────────────────────────
# CellTable
# ──────────────────────────────────────────────────────────────

def test_missing_grid_column():
    with pytest.raises(ConfigurationError, match="level"):
        CellTable({"cx": [1], "cy": [1], "cz": [1]})


def test_ragged_columns():
    with pytest.raises(ConfigurationError, match="rho"):
        CellTable({"cx": [1, 2], "cy": [1, 1], "cz": [1, 1], "level": [1, 1], "rho": [1.0]})


def test_levels_and_defaults():
    t = CellTable({"cx": [1, 1, 3], "cy": [1, 1, 1], "cz": [1, 1, 1], "level": [2, 1, 2]})
    assert len(t) == 3
    assert t.levels() == [1, 2]
    assert (t.lmin, t.lmax) == (1, 2)
    assert t.column("cx").dtype == np.int64
    with pytest.raises(ConfigurationError, match="rho"):
        t.column("rho")


def test_select_keeps_metadata():
    t = CellTable({"cx": [1, 2], "cy": [1, 1], "cz": [1, 1], "level": [1, 1], "rho": [1.0, 2.0]}, boxlen=3.0)
    sub = t.select(np.array([False, True]))
    assert len(sub) == 1
    assert sub.column("rho").tolist() == [2.0]
    assert sub.boxlen == 3.0
    with pytest.raises(ConfigurationError, match="Mask length"):
        t.select(np.array([True]))


# ──────────────────────────────────────────────────────────────
# osyris conversion
# ──────────────────────────────────────────────────────────────

def test_from_osyris_grid_coordinates():
    t = CellTable.from_osyris(fake_dataset())
    assert t.column("cx").tolist() == [1, 2, 1]
    assert t.column("cy").tolist() == [1, 1, 3]
    assert t.column("cz").tolist() == [2, 1, 1]
    assert t.column("level").tolist() == [1, 1, 2]
    assert (t.lmin, t.lmax) == (1, 3)


def test_from_osyris_code_units():
    t = CellTable.from_osyris(fake_dataset())
    # unit_d = 8, unit_v = 4 / 2 = 2
    assert np.allclose(t.column("rho"), [1.0, 2.0, 3.0])
    assert np.allclose(t.column("vx"), [1.0, 0.0, 0.0])
    assert np.allclose(t.column("vz"), [0.0, 0.0, 3.0])
    assert t.scales.unit_l == 4.0


def test_from_osyris_extra_scalars_only():
    t = CellTable.from_osyris(fake_dataset())
    assert "metallicity" in t
    assert "B_field" not in t


def test_from_osyris_needs_mesh():
    with pytest.raises(ConfigurationError):
        CellTable.from_osyris({})


def test_list_mesh_fields():
    assert list_mesh_fields(fake_dataset())[:3] == ["level", "dx", "position"]
    assert list_mesh_fields(None) == []


# ──────────────────────────────────────────────────────────────
# Snapshot loading
# ──────────────────────────────────────────────────────────────

class FakeRamsesDataset:
    calls = []

    def __init__(self, nout, path):
        FakeRamsesDataset.calls.append((nout, path))

    def load(self):
        return fake_dataset()


def test_open_snapshot_uses_ramses_dataset(monkeypatch):
    FakeRamsesDataset.calls = []
    monkeypatch.setattr(dataset.osyris, "RamsesDataset", FakeRamsesDataset)

    ds = open_snapshot(12, "/data/run")
    assert FakeRamsesDataset.calls == [(12, "/data/run")]
    assert "mesh" in ds

    table = read_cell_table(12, "/data/run")
    assert len(table) == 3
