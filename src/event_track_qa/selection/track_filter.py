"""
Configurable per-track acceptance.

All predicates are optional and combined with a logical AND. Truth-level
predicates (primary, secondary, species) are only evaluated when running on
simulation.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional, Union

from event_track_qa.data.event_data import Track, TrackParametrization

# Bounds of the manual acceptance shortcuts
MANUAL_ACCEPTANCE_PT_MIN = 0.1
MANUAL_ACCEPTANCE_PT_MAX = 1e10
MANUAL_ACCEPTANCE_ETA_MAX = 0.8


class AcceptanceMode(Enum):
    """Predefined kinematic acceptance filters."""

    NONE = "none"
    TRACK_SELECTION = "track_selection"  # use the track's in-acceptance flag
    MANUAL_PT_MIN = "manual_pt_min"
    MANUAL_PT_MIN_MAX = "manual_pt_min_max"


@dataclass
class TrackSelectionConfig:
    """Configuration for track selections"""

    select_global_tracks: bool = True
    acceptance_mode: AcceptanceMode = AcceptanceMode.NONE
    pt_min: Optional[float] = None
    pt_max: Optional[float] = None
    eta_max: Optional[float] = None
    select_charge: int = 0  # +1 or -1, 0 means no selection
    select_primaries: bool = False
    select_secondaries: bool = False
    select_pid: int = 0  # absolute PDG code, 0 means no selection

    def __post_init__(self):
        if isinstance(self.acceptance_mode, str):
            self.acceptance_mode = AcceptanceMode(self.acceptance_mode)

    def validate(self) -> None:
        """Validate track selection parameters"""
        if self.select_charge not in (-1, 0, 1):
            raise ValueError("select_charge must be -1, 0 or +1")
        if self.select_pid < 0:
            raise ValueError("select_pid must be an absolute PDG code or 0")
        if self.eta_max is not None and self.eta_max <= 0:
            raise ValueError("eta_max must be positive when specified")
        if (
            self.pt_min is not None
            and self.pt_max is not None
            and self.pt_min >= self.pt_max
        ):
            raise ValueError("pt_min must be below pt_max")

    @property
    def requires_truth(self) -> bool:
        return self.select_primaries or self.select_secondaries or self.select_pid != 0

    def to_dict(self) -> dict:
        result = asdict(self)
        result["acceptance_mode"] = self.acceptance_mode.value
        return result

    @classmethod
    def from_dict(cls, config_dict: dict) -> "TrackSelectionConfig":
        return cls(**config_dict)


def in_kinematic_window(
    track: Union[Track, TrackParametrization],
    pt_min: Optional[float],
    pt_max: Optional[float],
    eta_max: Optional[float],
) -> bool:
    if pt_min is not None and not track.pt > pt_min:
        return False
    if pt_max is not None and not track.pt < pt_max:
        return False
    if eta_max is not None and not abs(track.eta) < eta_max:
        return False
    return True


def passes_track_prefilter(track: Track, config: TrackSelectionConfig) -> bool:
    """
    Reconstruction-level filters applied before any per-track bookkeeping.

    Covers the global-track requirement, the acceptance shortcut and the
    explicit kinematic bounds.
    """
    if config.select_global_tracks and not track.is_global_track:
        return False

    mode = config.acceptance_mode
    if mode is AcceptanceMode.TRACK_SELECTION and not track.is_in_acceptance:
        return False
    if mode is AcceptanceMode.MANUAL_PT_MIN and not in_kinematic_window(
        track, MANUAL_ACCEPTANCE_PT_MIN, None, MANUAL_ACCEPTANCE_ETA_MAX
    ):
        return False
    if mode is AcceptanceMode.MANUAL_PT_MIN_MAX and not in_kinematic_window(
        track, MANUAL_ACCEPTANCE_PT_MIN, MANUAL_ACCEPTANCE_PT_MAX, MANUAL_ACCEPTANCE_ETA_MAX
    ):
        return False

    return in_kinematic_window(track, config.pt_min, config.pt_max, config.eta_max)


def passes_iu_prefilter(iu: TrackParametrization, config: TrackSelectionConfig) -> bool:
    """
    Acceptance of a track snapshot at the innermost update point.

    Only the manual acceptance shortcuts can be evaluated on IU parameters,
    every other mode lets the snapshot through.
    """
    mode = config.acceptance_mode
    if mode is AcceptanceMode.MANUAL_PT_MIN:
        return in_kinematic_window(
            iu, MANUAL_ACCEPTANCE_PT_MIN, None, MANUAL_ACCEPTANCE_ETA_MAX
        )
    if mode is AcceptanceMode.MANUAL_PT_MIN_MAX:
        return in_kinematic_window(
            iu, MANUAL_ACCEPTANCE_PT_MIN, MANUAL_ACCEPTANCE_PT_MAX, MANUAL_ACCEPTANCE_ETA_MAX
        )
    return True


def is_selected_track(track: Track, config: TrackSelectionConfig, is_mc: bool) -> bool:
    """
    Charge and truth-level selection of one track.

    Args:
        track: Reconstructed track, possibly linked to a generated particle
        config: Track selection configuration
        is_mc: Whether truth information is available for this run

    Returns:
        True if the track passes every configured predicate
    """
    if config.select_charge and config.select_charge != track.sign:
        return False

    if not is_mc:
        return True

    particle = track.mc_particle
    if particle is None:
        # Truth-level filters cannot be evaluated without a link
        return not config.requires_truth

    is_primary = particle.is_physical_primary
    if config.select_primaries and not is_primary:
        return False
    # Requesting primaries and secondaries together rejects every track
    if config.select_secondaries and is_primary:
        return False
    if config.select_pid and config.select_pid != abs(particle.pdg_code):
        return False
    return True


def accept_track(track: Track, config: TrackSelectionConfig, is_mc: bool) -> bool:
    """Full track acceptance: reconstruction prefilter and per-track selection."""
    return passes_track_prefilter(track, config) and is_selected_track(
        track, config, is_mc
    )
