"""
Event data structures consumed by the selection and QA code.

These are read-only views of already reconstructed quantities. Nothing here
is recomputed from detector hits; derived properties only combine fields that
are stored on the same object.
"""

import math
from dataclasses import dataclass, field
from typing import Optional

# Number of ITS layers and how many of them form the inner barrel
ITS_NUM_LAYERS = 7
ITS_INNER_BARREL_LAYERS = 3


@dataclass(frozen=True)
class DetectorTimes:
    """Per-collision arrival times in ns. ``None`` means no measurement."""

    v0a: Optional[float] = None
    v0c: Optional[float] = None
    fda: Optional[float] = None
    fdc: Optional[float] = None
    zna: Optional[float] = None
    znc: Optional[float] = None
    t0a: Optional[float] = None
    t0c: Optional[float] = None


@dataclass(frozen=True)
class MultiplicityInputs:
    """Multiplicity-like measurements used by the correlation cuts."""

    v0m_online: Optional[float] = None
    v0m_offline: Optional[float] = None
    spd_online: Optional[float] = None
    spd_offline: Optional[float] = None
    v0c3: Optional[float] = None
    v0c012: Optional[float] = None
    spd_clusters: Optional[float] = None
    spd_tracklets: Optional[float] = None


@dataclass(frozen=True)
class DetectorQualityFlags:
    """Run-condition and DAQ flags copied into the selection flag set."""

    good_time_range: Optional[bool] = None
    complete_daq: Optional[bool] = None
    no_tpc_laser_warm_up: Optional[bool] = None
    no_tpc_hv_dip: Optional[bool] = None
    no_pileup_from_spd: Optional[bool] = None
    no_v0_past_future_pileup: Optional[bool] = None


@dataclass(frozen=True)
class TruthCollision:
    """Generated collision a reconstructed one is linked to."""

    global_index: int
    pos_x: float = 0.0
    pos_y: float = 0.0
    pos_z: float = 0.0


@dataclass(frozen=True)
class Collision:
    """Reconstructed primary vertex and the per-collision selection inputs."""

    global_index: int
    pos_x: float
    pos_y: float
    pos_z: float
    cov_xx: float = 0.0
    cov_xy: float = 0.0
    cov_xz: float = 0.0
    cov_yy: float = 0.0
    cov_yz: float = 0.0
    cov_zz: float = 0.0
    num_contrib: int = 0
    chi2: float = 0.0
    run_number: int = 0
    bc_id: int = 0
    times: DetectorTimes = field(default_factory=DetectorTimes)
    multiplicities: MultiplicityInputs = field(default_factory=MultiplicityInputs)
    quality: DetectorQualityFlags = field(default_factory=DetectorQualityFlags)
    mc_collision: Optional[TruthCollision] = None

    @property
    def has_mc_collision(self) -> bool:
        return self.mc_collision is not None


@dataclass(frozen=True)
class TruthParticle:
    """Generated particle."""

    global_index: int
    mc_collision_index: int
    pt: float
    eta: float
    phi: float
    pdg_code: int
    vx: float = 0.0
    vy: float = 0.0
    vz: float = 0.0
    is_physical_primary: bool = False
    process: int = 0


@dataclass(frozen=True)
class TrackParametrization:
    """Track parameters at a given reference point (used for the IU snapshot)."""

    pt: float
    eta: float
    phi: float
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    alpha: float = 0.0
    signed1_pt: float = 0.0
    snp: float = 0.0
    tgl: float = 0.0


@dataclass(frozen=True)
class Track:
    """Reconstructed track propagated to the primary vertex."""

    global_index: int
    collision_index: int
    pt: float
    eta: float
    phi: float
    sign: int
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    alpha: float = 0.0
    signed1_pt: float = 0.0
    snp: float = 0.0
    tgl: float = 0.0
    flags: int = 0
    its_cluster_map: int = 0
    its_chi2_ncl: float = 0.0
    tpc_ncls_findable: int = 0
    tpc_ncls_found: int = 0
    tpc_ncls_shared: int = 0
    tpc_ncls_crossed_rows: int = 0
    tpc_chi2_ncl: float = 0.0
    tpc_signal: float = 0.0
    trd_chi2: float = 0.0
    tof_chi2: float = 0.0
    tof_signal: float = 0.0
    tof_event_time: float = 0.0
    c1pt21pt2: float = 0.0
    dca_xy: float = 0.0
    dca_z: float = 0.0
    length: float = 0.0
    has_its: bool = False
    has_tpc: bool = False
    has_trd: bool = False
    has_tof: bool = False
    is_global_track: bool = False
    is_in_acceptance: bool = False
    iu: Optional[TrackParametrization] = None
    mc_particle: Optional[TruthParticle] = None

    @property
    def has_mc_particle(self) -> bool:
        return self.mc_particle is not None

    @property
    def its_ncls(self) -> int:
        return bin(self.its_cluster_map & ((1 << ITS_NUM_LAYERS) - 1)).count("1")

    @property
    def its_ncls_inner_barrel(self) -> int:
        return bin(self.its_cluster_map & ((1 << ITS_INNER_BARREL_LAYERS) - 1)).count(
            "1"
        )

    def its_layers_hit(self) -> list[int]:
        """Indices of the ITS layers with an attached cluster."""
        return [i for i in range(ITS_NUM_LAYERS) if self.its_cluster_map & (1 << i)]

    @property
    def tpc_crossed_rows_over_findable_cls(self) -> float:
        if self.tpc_ncls_findable <= 0:
            return 0.0
        return self.tpc_ncls_crossed_rows / self.tpc_ncls_findable

    @property
    def tpc_found_over_findable_cls(self) -> float:
        if self.tpc_ncls_findable <= 0:
            return 0.0
        return self.tpc_ncls_found / self.tpc_ncls_findable

    @property
    def tpc_fraction_shared_cls(self) -> float:
        if self.tpc_ncls_found <= 0:
            return 0.0
        return self.tpc_ncls_shared / self.tpc_ncls_found

    @property
    def pt_resolution(self) -> float:
        """Relative pt resolution, ``pt * sigma(q/pt)``, NaN for a negative variance."""
        if self.c1pt21pt2 < 0:
            return math.nan
        return self.pt * math.sqrt(self.c1pt21pt2)

    @property
    def tof_minus_event_time(self) -> float:
        return self.tof_signal - self.tof_event_time


@dataclass
class CollisionEvent:
    """One collision together with everything needed to process it."""

    collision: Collision
    tracks: list[Track] = field(default_factory=list)
    mc_particles: list[TruthParticle] = field(default_factory=list)

    @property
    def num_tracks(self) -> int:
        return len(self.tracks)
