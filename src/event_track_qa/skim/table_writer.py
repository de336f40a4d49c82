"""
Column-oriented writers for the derived (skimmed) tables.

Each writer accepts fixed-shape rows and hands back the index of the row it
stored, so that later rows can refer to it. Tables are kept in memory and
written to one HDF5 file with a group per table.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

import h5py
import numpy as np
import pandas as pd

from event_track_qa.config.logging_config import get_logger

# (column name, numpy dtype) per table
COLLISION_COLUMNS: list[tuple[str, str]] = [
    ("pos_z", "float32"),
    ("sel", "bool"),
    ("run_number", "int32"),
]

TRACK_COLUMNS: list[tuple[str, str]] = [
    ("collision_index", "int64"),
    ("pt", "float32"),
    ("eta", "float32"),
    ("phi", "float32"),
    ("pt_resolution", "float32"),
    ("flags", "uint32"),
    ("sign", "int8"),
    ("dca_xy", "float32"),
    ("dca_z", "float32"),
    ("length", "float32"),
    ("its_cluster_map", "uint8"),
    ("its_chi2_ncl", "float32"),
    ("tpc_chi2_ncl", "float32"),
    ("trd_chi2", "float32"),
    ("tof_chi2", "float32"),
    ("has_its", "bool"),
    ("has_tpc", "bool"),
    ("has_trd", "bool"),
    ("has_tof", "bool"),
    ("tpc_ncls_found", "int16"),
    ("tpc_ncls_crossed_rows", "int16"),
    ("tpc_crossed_rows_over_findable_cls", "float32"),
    ("tpc_found_over_findable_cls", "float32"),
    ("tpc_fraction_shared_cls", "float32"),
    ("its_ncls", "uint8"),
    ("its_ncls_inner_barrel", "uint8"),
    ("tpc_signal", "float32"),
    ("tof_minus_event_time", "float32"),
]

RECO_PARTICLE_COLUMNS: list[tuple[str, str]] = [
    ("collision_index", "int64"),
    ("pt", "float32"),
    ("eta", "float32"),
    ("phi", "float32"),
    ("pdg_code", "int32"),
    ("production", "int8"),
]

NON_RECO_PARTICLE_COLUMNS: list[tuple[str, str]] = [
    ("collision_index", "int64"),
    ("pt", "float32"),
    ("eta", "float32"),
    ("phi", "float32"),
    ("pdg_code", "int32"),
    ("production", "int8"),
    ("vx", "float32"),
    ("vy", "float32"),
    ("vz", "float32"),
]


class TableWriter:
    """Append-only in-memory table with a fixed list of typed columns."""

    def __init__(self, name: str, columns: list[tuple[str, str]]):
        self.name = name
        self.columns = list(columns)
        self.column_names = [column for column, _ in self.columns]
        self._rows: list[tuple] = []

    def __len__(self) -> int:
        return len(self._rows)

    def append(self, *fields: Any) -> int:
        """
        Store one row.

        Args:
            *fields: One value per column, in column order

        Returns:
            Index of the stored row
        """
        if len(fields) != len(self.columns):
            raise ValueError(
                f"Table '{self.name}' expects {len(self.columns)} fields, got {len(fields)}"
            )
        self._rows.append(tuple(fields))
        return len(self._rows) - 1

    @property
    def last_index(self) -> int:
        """Index of the most recently appended row, -1 for an empty table."""
        return len(self._rows) - 1

    def row(self, index: int) -> dict[str, Any]:
        return dict(zip(self.column_names, self._rows[index]))

    def rows(self) -> list[dict[str, Any]]:
        return [dict(zip(self.column_names, r)) for r in self._rows]

    def to_numpy(self) -> dict[str, np.ndarray]:
        """Column name -> typed array."""
        arrays = {}
        for i, (column, dtype) in enumerate(self.columns):
            arrays[column] = np.array([r[i] for r in self._rows], dtype=dtype)
        return arrays

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.to_numpy(), columns=self.column_names)

    def save(self, group: h5py.Group, compression: Optional[str] = "gzip") -> None:
        """Write one dataset per column into ``group``."""
        for column, array in self.to_numpy().items():
            group.create_dataset(
                column,
                data=array,
                compression=compression if array.size else None,
            )
        group.attrs["num_rows"] = len(self._rows)

    @classmethod
    def load(cls, name: str, group: h5py.Group, columns: list[tuple[str, str]]) -> "TableWriter":
        """Rebuild a table from a group written by :meth:`save`."""
        table = cls(name, columns)
        arrays = [group[column][()] for column, _ in columns]
        for values in zip(*arrays):
            table.append(*(v.item() for v in values))
        return table


class DerivedTables:
    """The four derived tables written by one skimming job."""

    TABLE_COLUMNS = {
        "collisions": COLLISION_COLUMNS,
        "tracks": TRACK_COLUMNS,
        "reco_particles": RECO_PARTICLE_COLUMNS,
        "non_reco_particles": NON_RECO_PARTICLE_COLUMNS,
    }

    def __init__(self):
        self.logger = get_logger(__name__)
        self.collisions = TableWriter("collisions", COLLISION_COLUMNS)
        self.tracks = TableWriter("tracks", TRACK_COLUMNS)
        self.reco_particles = TableWriter("reco_particles", RECO_PARTICLE_COLUMNS)
        self.non_reco_particles = TableWriter(
            "non_reco_particles", NON_RECO_PARTICLE_COLUMNS
        )

    def tables(self) -> dict[str, TableWriter]:
        return {name: getattr(self, name) for name in self.TABLE_COLUMNS}

    def sizes(self) -> dict[str, int]:
        return {name: len(table) for name, table in self.tables().items()}

    def save(
        self,
        file_path: Union[str, Path],
        metadata: Optional[dict] = None,
        compression: bool = True,
    ) -> Path:
        """
        Save all tables to an HDF5 file.

        Args:
            file_path: Output path of the HDF5 file
            metadata: Optional dictionary stored as a JSON attribute
            compression: Whether to gzip-compress the column datasets

        Returns:
            Path of the written file
        """
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with h5py.File(file_path, "w") as f:
            for name, table in self.tables().items():
                table.save(f.create_group(name), "gzip" if compression else None)
            f.attrs["creation_date"] = datetime.now().isoformat()
            if metadata:
                f.attrs["metadata"] = json.dumps(metadata)

        self.logger.info(f"Saved derived tables {self.sizes()} to {file_path}")
        return file_path

    @classmethod
    def load(cls, file_path: Union[str, Path]) -> "DerivedTables":
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"Derived table file not found: {file_path}")

        derived = cls()
        with h5py.File(file_path, "r") as f:
            for name, columns in cls.TABLE_COLUMNS.items():
                setattr(derived, name, TableWriter.load(name, f[name], columns))
        return derived
