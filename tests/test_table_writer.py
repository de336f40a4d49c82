import json

import h5py
import pytest

from event_track_qa.skim.table_writer import (
    COLLISION_COLUMNS,
    NON_RECO_PARTICLE_COLUMNS,
    RECO_PARTICLE_COLUMNS,
    TRACK_COLUMNS,
    DerivedTables,
    TableWriter,
)


def test_append_returns_row_index():
    table = TableWriter("collisions", COLLISION_COLUMNS)
    assert table.last_index == -1
    assert table.append(1.0, True, 520000) == 0
    assert table.append(-2.0, False, 520001) == 1
    assert table.last_index == 1
    assert table.row(1) == {"pos_z": -2.0, "sel": False, "run_number": 520001}


def test_append_wrong_number_of_fields():
    table = TableWriter("collisions", COLLISION_COLUMNS)
    with pytest.raises(ValueError):
        table.append(1.0, True)
    assert len(table) == 0


def test_column_lists():
    assert [c for c, _ in COLLISION_COLUMNS] == ["pos_z", "sel", "run_number"]
    assert len(TRACK_COLUMNS) == 28
    assert [c for c, _ in RECO_PARTICLE_COLUMNS][-1] == "production"
    assert [c for c, _ in NON_RECO_PARTICLE_COLUMNS][-3:] == ["vx", "vy", "vz"]


def test_to_numpy_and_dataframe():
    table = TableWriter("reco_particles", RECO_PARTICLE_COLUMNS)
    table.append(0, 1.0, 0.1, 0.2, 211, 0)
    table.append(0, 2.0, -0.1, 3.0, 0, -1)

    arrays = table.to_numpy()
    assert arrays["pdg_code"].dtype.name == "int32"
    assert arrays["production"].tolist() == [0, -1]

    frame = table.to_dataframe()
    assert list(frame.columns) == [c for c, _ in RECO_PARTICLE_COLUMNS]
    assert frame["pt"].tolist() == pytest.approx([1.0, 2.0])


def test_derived_tables_hdf5_round_trip(tmp_path):
    tables = DerivedTables()
    row = tables.collisions.append(0.5, True, 520000)
    tables.reco_particles.append(row, 1.0, 0.1, 0.2, 211, 0)

    path = tables.save(tmp_path / "out" / "derived.h5", metadata={"name": "test"})

    with h5py.File(path, "r") as f:
        assert set(f.keys()) == {
            "collisions",
            "tracks",
            "reco_particles",
            "non_reco_particles",
        }
        assert f["collisions"]["run_number"][()].tolist() == [520000]
        assert f["tracks"].attrs["num_rows"] == 0
        assert json.loads(f.attrs["metadata"]) == {"name": "test"}

    loaded = DerivedTables.load(path)
    assert loaded.sizes() == tables.sizes()
    assert loaded.reco_particles.row(0)["pdg_code"] == 211
    assert loaded.collisions.row(0)["sel"] is True


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        DerivedTables.load(tmp_path / "missing.h5")
