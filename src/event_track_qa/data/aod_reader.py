"""
HDF5 input for the QA task.

The input file holds one group per table (``collisions``, ``tracks`` and the
optional ``tracks_iu``, ``mc_collisions`` and ``mc_particles``) with one
dataset per column. Links between tables are row indices, ``-1`` meaning no
link. Detector times and multiplicities use NaN for a missing measurement,
quality flags use ``-1`` for an unknown state. A ``tracks_iu`` row that is NaN
in every column marks a track without an IU snapshot.
"""

from dataclasses import fields
from pathlib import Path
from typing import Iterator, Optional, Sequence, Union

import h5py
import numpy as np

from event_track_qa.config.logging_config import get_logger
from event_track_qa.data.event_data import (
    Collision,
    CollisionEvent,
    DetectorQualityFlags,
    DetectorTimes,
    MultiplicityInputs,
    Track,
    TrackParametrization,
    TruthCollision,
    TruthParticle,
)

TIME_PREFIX = "time_"
MULTIPLICITY_PREFIX = "mult_"
QUALITY_PREFIX = "quality_"

COLLISION_COLUMNS = [
    f.name
    for f in fields(Collision)
    if f.name not in ("global_index", "times", "multiplicities", "quality", "mc_collision")
]
TRACK_COLUMNS = [
    f.name
    for f in fields(Track)
    if f.name not in ("global_index", "iu", "mc_particle")
]
IU_COLUMNS = [f.name for f in fields(TrackParametrization)]
MC_COLLISION_COLUMNS = ["pos_x", "pos_y", "pos_z"]
MC_PARTICLE_COLUMNS = [
    f.name for f in fields(TruthParticle) if f.name != "global_index"
]


def _read_columns(group: h5py.Group, columns: Sequence[str]) -> dict[str, np.ndarray]:
    return {column: group[column][()] for column in columns if column in group}


def _scalar(array: np.ndarray, row: int):
    return array[row].item()


def _optional_float(array: Optional[np.ndarray], row: int) -> Optional[float]:
    if array is None:
        return None
    value = float(array[row])
    return None if np.isnan(value) else value


def _optional_bool(array: Optional[np.ndarray], row: int) -> Optional[bool]:
    if array is None:
        return None
    value = int(array[row])
    return None if value < 0 else bool(value)


class AODReader:
    """Reads collisions and their tracks from an HDF5 input file."""

    def __init__(self, file_path: Union[str, Path]):
        self.logger = get_logger(__name__)
        self.file_path = Path(file_path)
        if not self.file_path.exists():
            raise FileNotFoundError(f"Input file not found: {self.file_path}")

    def num_collisions(self) -> int:
        with h5py.File(self.file_path, "r") as f:
            return int(f["collisions"]["pos_z"].shape[0])

    def has_iu(self) -> bool:
        with h5py.File(self.file_path, "r") as f:
            return "tracks_iu" in f

    def has_mc(self) -> bool:
        with h5py.File(self.file_path, "r") as f:
            return "mc_particles" in f

    def _load_mc_collisions(self, f: h5py.File) -> list[TruthCollision]:
        if "mc_collisions" not in f:
            return []
        data = _read_columns(f["mc_collisions"], MC_COLLISION_COLUMNS)
        n_rows = len(data["pos_z"])
        return [
            TruthCollision(
                global_index=row,
                **{column: _scalar(data[column], row) for column in data},
            )
            for row in range(n_rows)
        ]

    def _load_mc_particles(self, f: h5py.File) -> list[TruthParticle]:
        if "mc_particles" not in f:
            return []
        data = _read_columns(f["mc_particles"], MC_PARTICLE_COLUMNS)
        n_rows = len(data["pt"])
        particles = []
        for row in range(n_rows):
            values = {column: _scalar(data[column], row) for column in data}
            values["is_physical_primary"] = bool(values.get("is_physical_primary", False))
            particles.append(TruthParticle(global_index=row, **values))
        return particles

    def _load_collisions(
        self, f: h5py.File, mc_collisions: list[TruthCollision]
    ) -> list[Collision]:
        group = f["collisions"]
        data = _read_columns(group, COLLISION_COLUMNS)
        times = {
            column.name: group.get(TIME_PREFIX + column.name)
            for column in fields(DetectorTimes)
        }
        multiplicities = {
            column.name: group.get(MULTIPLICITY_PREFIX + column.name)
            for column in fields(MultiplicityInputs)
        }
        quality = {
            column.name: group.get(QUALITY_PREFIX + column.name)
            for column in fields(DetectorQualityFlags)
        }
        times = {k: (v[()] if v is not None else None) for k, v in times.items()}
        multiplicities = {
            k: (v[()] if v is not None else None) for k, v in multiplicities.items()
        }
        quality = {k: (v[()] if v is not None else None) for k, v in quality.items()}
        mc_links = group["mc_collision_index"][()] if "mc_collision_index" in group else None

        collisions = []
        for row in range(len(data["pos_z"])):
            mc_collision = None
            if mc_links is not None and 0 <= mc_links[row] < len(mc_collisions):
                mc_collision = mc_collisions[int(mc_links[row])]
            collisions.append(
                Collision(
                    global_index=row,
                    **{column: _scalar(data[column], row) for column in data},
                    times=DetectorTimes(
                        **{k: _optional_float(v, row) for k, v in times.items()}
                    ),
                    multiplicities=MultiplicityInputs(
                        **{k: _optional_float(v, row) for k, v in multiplicities.items()}
                    ),
                    quality=DetectorQualityFlags(
                        **{k: _optional_bool(v, row) for k, v in quality.items()}
                    ),
                    mc_collision=mc_collision,
                )
            )
        return collisions

    def _load_tracks(
        self, f: h5py.File, mc_particles: list[TruthParticle]
    ) -> list[Track]:
        group = f["tracks"]
        data = _read_columns(group, TRACK_COLUMNS)
        iu = _read_columns(f["tracks_iu"], IU_COLUMNS) if "tracks_iu" in f else None
        mc_links = group["mc_particle_index"][()] if "mc_particle_index" in group else None

        tracks = []
        for row in range(len(data["pt"])):
            values = {column: _scalar(data[column], row) for column in data}
            for flag in ("has_its", "has_tpc", "has_trd", "has_tof",
                         "is_global_track", "is_in_acceptance"):
                if flag in values:
                    values[flag] = bool(values[flag])
            track_iu = None
            if iu is not None:
                iu_values = {column: _scalar(iu[column], row) for column in iu}
                if not all(np.isnan(value) for value in iu_values.values()):
                    track_iu = TrackParametrization(**iu_values)
            mc_particle = None
            if mc_links is not None and 0 <= mc_links[row] < len(mc_particles):
                mc_particle = mc_particles[int(mc_links[row])]
            tracks.append(
                Track(global_index=row, iu=track_iu, mc_particle=mc_particle, **values)
            )
        return tracks

    def iter_events(self, max_events: Optional[int] = None) -> Iterator[CollisionEvent]:
        """
        Yield one CollisionEvent per reconstructed collision.

        Args:
            max_events: Stop after this many collisions

        Yields:
            CollisionEvent with the collision's tracks and, for simulated
            input, the generated particles of its truth collision
        """
        with h5py.File(self.file_path, "r") as f:
            mc_collisions = self._load_mc_collisions(f)
            mc_particles = self._load_mc_particles(f)
            collisions = self._load_collisions(f, mc_collisions)
            tracks = self._load_tracks(f, mc_particles)

        self.logger.info(
            f"Loaded {len(collisions)} collisions, {len(tracks)} tracks and "
            f"{len(mc_particles)} generated particles from {self.file_path}"
        )

        tracks_by_collision: dict[int, list[Track]] = {}
        for track in tracks:
            tracks_by_collision.setdefault(track.collision_index, []).append(track)
        particles_by_mc_collision: dict[int, list[TruthParticle]] = {}
        for particle in mc_particles:
            particles_by_mc_collision.setdefault(
                particle.mc_collision_index, []
            ).append(particle)

        for n_events, collision in enumerate(collisions):
            if max_events is not None and n_events >= max_events:
                break
            particles = []
            if collision.mc_collision is not None:
                particles = particles_by_mc_collision.get(
                    collision.mc_collision.global_index, []
                )
            yield CollisionEvent(
                collision=collision,
                tracks=tracks_by_collision.get(collision.global_index, []),
                mc_particles=particles,
            )


def write_aod(
    file_path: Union[str, Path],
    collisions: Sequence[Collision],
    tracks: Sequence[Track],
    mc_collisions: Sequence[TruthCollision] = (),
    mc_particles: Sequence[TruthParticle] = (),
    write_iu: bool = False,
) -> Path:
    """
    Write objects to the HDF5 layout read by :class:`AODReader`.

    Links are written as row indices, so ``global_index`` of every object
    must equal its position in its sequence.

    Returns:
        Path of the written file
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    def _nan(value):
        return np.nan if value is None else value

    def _flag(value):
        return -1 if value is None else int(value)

    with h5py.File(file_path, "w") as f:
        group = f.create_group("collisions")
        for column in COLLISION_COLUMNS:
            group.create_dataset(column, data=np.array([getattr(c, column) for c in collisions]))
        for field_ in fields(DetectorTimes):
            group.create_dataset(
                TIME_PREFIX + field_.name,
                data=np.array([_nan(getattr(c.times, field_.name)) for c in collisions], dtype=float),
            )
        for field_ in fields(MultiplicityInputs):
            group.create_dataset(
                MULTIPLICITY_PREFIX + field_.name,
                data=np.array(
                    [_nan(getattr(c.multiplicities, field_.name)) for c in collisions],
                    dtype=float,
                ),
            )
        for field_ in fields(DetectorQualityFlags):
            group.create_dataset(
                QUALITY_PREFIX + field_.name,
                data=np.array(
                    [_flag(getattr(c.quality, field_.name)) for c in collisions],
                    dtype=np.int8,
                ),
            )
        group.create_dataset(
            "mc_collision_index",
            data=np.array(
                [c.mc_collision.global_index if c.mc_collision else -1 for c in collisions],
                dtype=np.int64,
            ),
        )

        group = f.create_group("tracks")
        for column in TRACK_COLUMNS:
            group.create_dataset(column, data=np.array([getattr(t, column) for t in tracks]))
        group.create_dataset(
            "mc_particle_index",
            data=np.array(
                [t.mc_particle.global_index if t.mc_particle else -1 for t in tracks],
                dtype=np.int64,
            ),
        )

        if write_iu:
            group = f.create_group("tracks_iu")
            for column in IU_COLUMNS:
                group.create_dataset(
                    column,
                    data=np.array(
                        [np.nan if t.iu is None else getattr(t.iu, column) for t in tracks],
                        dtype=float,
                    ),
                )

        if mc_collisions:
            group = f.create_group("mc_collisions")
            for column in MC_COLLISION_COLUMNS:
                group.create_dataset(
                    column, data=np.array([getattr(c, column) for c in mc_collisions])
                )
        if mc_particles:
            group = f.create_group("mc_particles")
            for column in MC_PARTICLE_COLUMNS:
                group.create_dataset(
                    column, data=np.array([getattr(p, column) for p in mc_particles])
                )

    return file_path
