"""
Reduced collision, track and particle records for downstream correlation studies.

A collision is emitted only after passing every collision-level gate. Once it
is, each accepted track produces a track record and, when truth information
is processed, a matched-particle record. Generated particles of the linked
truth collision that no emitted track points to become unmatched-particle
records.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, Sequence

import numpy as np

from event_track_qa.config.logging_config import get_logger
from event_track_qa.data.event_data import Collision, Track, TruthParticle
from event_track_qa.selection.aggregator import EventSelectionResult
from event_track_qa.selection.parameters import RunType
from event_track_qa.selection.track_filter import accept_track
from event_track_qa.skim.table_writer import DerivedTables

# Production process code of particles created in a decay
DECAY_PROCESS_CODE = 4


class ProductionCategory(IntEnum):
    """How a generated particle was produced."""

    UNMATCHED = -1
    PRIMARY = 0
    SECONDARY_FROM_DECAY = 1
    SECONDARY_OTHER = 2


def production_category(particle: TruthParticle) -> ProductionCategory:
    if particle.is_physical_primary:
        return ProductionCategory.PRIMARY
    if particle.process == DECAY_PROCESS_CODE:
        return ProductionCategory.SECONDARY_FROM_DECAY
    return ProductionCategory.SECONDARY_OTHER


@dataclass
class EmissionSummary:
    """Outcome of one call to :meth:`DerivedRecordEmitter.emit`."""

    accepted: bool
    reason: str = ""
    collision_index: int = -1
    num_tracks: int = 0
    num_reco_particles: int = 0
    num_non_reco_particles: int = 0
    rejected_tracks: int = 0
    track_indices: list[int] = field(default_factory=list)


class DerivedRecordEmitter:
    """Applies the collision gates and writes the derived tables."""

    def __init__(
        self,
        config,
        tables: Optional[DerivedTables] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Args:
            config: QAConfig providing the gates and the track selection
            tables: Destination tables, a fresh set if omitted
            rng: Source of the sampling draw, unseeded if omitted
        """
        self.logger = get_logger(__name__)
        self.config = config
        self.tables = tables if tables is not None else DerivedTables()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.run_type = RunType.from_is_run3(config.is_run3)
        self.num_emitted_collisions = 0

    def collision_gate(
        self, collision: Collision, selection: EventSelectionResult
    ) -> Optional[str]:
        """Reason the collision is rejected, or None if every gate passes."""
        if self.config.select_good_events and not selection.selected(self.run_type):
            return "event selection"
        if abs(collision.pos_z) > self.config.select_max_vtx_z:
            return "vertex z"
        fraction = self.config.fraction_of_sampled_events
        if fraction < 1.0 and not self.rng.uniform(0.0, 1.0) < fraction:
            return "sampling"
        if self.num_emitted_collisions >= self.config.target_number_of_events:
            return "target reached"
        return None

    def track_record(self, collision_row: int, track: Track) -> tuple:
        return (
            collision_row,
            track.pt,
            track.eta,
            track.phi,
            track.pt_resolution,
            track.flags,
            track.sign,
            track.dca_xy,
            track.dca_z,
            track.length,
            track.its_cluster_map,
            track.its_chi2_ncl,
            track.tpc_chi2_ncl,
            track.trd_chi2,
            track.tof_chi2,
            track.has_its,
            track.has_tpc,
            track.has_trd,
            track.has_tof,
            track.tpc_ncls_found,
            track.tpc_ncls_crossed_rows,
            track.tpc_crossed_rows_over_findable_cls,
            track.tpc_found_over_findable_cls,
            track.tpc_fraction_shared_cls,
            track.its_ncls,
            track.its_ncls_inner_barrel,
            track.tpc_signal,
            track.tof_minus_event_time,
        )

    def reco_particle_record(self, collision_row: int, track: Track) -> tuple:
        particle = track.mc_particle
        if particle is None:
            return (
                collision_row,
                track.pt,
                track.eta,
                track.phi,
                0,
                int(ProductionCategory.UNMATCHED),
            )
        return (
            collision_row,
            particle.pt,
            particle.eta,
            particle.phi,
            particle.pdg_code,
            int(production_category(particle)),
        )

    def non_reco_particle_record(
        self, collision_row: int, particle: TruthParticle
    ) -> tuple:
        return (
            collision_row,
            particle.pt,
            particle.eta,
            particle.phi,
            particle.pdg_code,
            int(production_category(particle)),
            particle.vx,
            particle.vy,
            particle.vz,
        )

    def emit(
        self,
        collision: Collision,
        tracks: Sequence[Track],
        truth_particles: Optional[Sequence[TruthParticle]],
        selection: EventSelectionResult,
    ) -> EmissionSummary:
        """
        Emit the derived records of one collision.

        Args:
            collision: Reconstructed collision
            tracks: Tracks assigned to the collision, before track selection
            truth_particles: Generated particles, or None for real data
            selection: Evaluated event selection of the collision

        Returns:
            EmissionSummary with the number of rows written per table
        """
        reason = self.collision_gate(collision, selection)
        if reason is not None:
            self.logger.debug(
                f"Collision {collision.global_index} not emitted: {reason}"
            )
            return EmissionSummary(accepted=False, reason=reason)

        is_mc = truth_particles is not None
        collision_record = (
            collision.pos_z,
            selection.selected(self.run_type),
            collision.run_number,
        )
        collision_row = self.tables.collisions.append(*collision_record)
        self.num_emitted_collisions += 1
        summary = EmissionSummary(accepted=True, collision_index=collision_row)

        matched_particles = set()
        for track in tracks:
            if not accept_track(track, self.config.track_selection, is_mc):
                summary.rejected_tracks += 1
                continue
            row = self.tables.tracks.append(*self.track_record(collision_row, track))
            summary.track_indices.append(row)
            summary.num_tracks += 1
            if not is_mc:
                continue
            self.tables.reco_particles.append(
                *self.reco_particle_record(collision_row, track)
            )
            summary.num_reco_particles += 1
            if track.mc_particle is not None:
                matched_particles.add(track.mc_particle.global_index)

        if is_mc and collision.has_mc_collision:
            mc_collision_index = collision.mc_collision.global_index
            for particle in truth_particles:
                if particle.mc_collision_index != mc_collision_index:
                    continue
                if particle.global_index in matched_particles:
                    continue
                self.tables.non_reco_particles.append(
                    *self.non_reco_particle_record(collision_row, particle)
                )
                summary.num_non_reco_particles += 1

        return summary
