"""
Static event-selection parameters.

This module holds everything the event selection needs that does not change
from one collision to the next:

- The enumerated list of per-collision selection flags (index is identity)
- Fixed-size flag sets used both as decision masks and as evaluated results
- Beam-beam and beam-gas timing windows for every timing detector
- Affine coefficients of the multiplicity-correlation cuts

Default windows follow the flight distance of each detector from the nominal
interaction point, converted to a time of flight, with empirically tuned
margins on each side.
"""

from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional, Union

import numpy as np

SPEED_OF_LIGHT_CM_PER_S = 2.99792458e10


def flight_time_ns(distance_cm: float) -> float:
    """Time of flight in ns for a straight path of ``distance_cm``."""
    return distance_cm / SPEED_OF_LIGHT_CM_PER_S * 1e9


class EventSelectionFlag(IntEnum):
    """Per-collision selection flags. The integer value is the slot index."""

    IS_BB_V0A = 0  # V0A time in beam-beam window
    IS_BB_V0C = 1  # V0C time in beam-beam window
    IS_BB_FDA = 2  # FDA (AD-A) time in beam-beam window
    IS_BB_FDC = 3  # FDC (AD-C) time in beam-beam window
    NO_BG_V0A = 4  # V0A time outside beam-gas window
    NO_BG_V0C = 5
    NO_BG_FDA = 6
    NO_BG_FDC = 7
    IS_BB_T0A = 8
    IS_BB_T0C = 9
    IS_BB_ZNA = 10  # common ZNA channel in beam-beam window
    IS_BB_ZNC = 11
    IS_BB_ZAC = 12  # ZNA and ZNC difference/sum window
    NO_BG_ZNA = 13
    NO_BG_ZNC = 14
    NO_V0M_ON_VS_OF_PILEUP = 15  # online-vs-offline V0M correlation
    NO_SPD_ON_VS_OF_PILEUP = 16  # online-vs-offline SPD correlation
    NO_V0C_ASYMMETRY = 17  # V0C3 vs V0C012 correlation
    IS_GOOD_TIME_RANGE = 18
    NO_INCOMPLETE_DAQ = 19
    NO_TPC_LASER_WARM_UP = 20
    NO_TPC_HV_DIP = 21
    NO_PILEUP_FROM_SPD = 22
    NO_V0_PF_PILEUP = 23  # V0 past-future protection
    NO_SPD_CLS_VS_TKL_BG = 24
    NO_V0C012_VS_TKL_BG = 25


NUM_SELECTION_FLAGS = len(EventSelectionFlag)

SELECTION_LABELS: dict[EventSelectionFlag, str] = {
    EventSelectionFlag.IS_BB_V0A: "kIsBBV0A",
    EventSelectionFlag.IS_BB_V0C: "kIsBBV0C",
    EventSelectionFlag.IS_BB_FDA: "kIsBBFDA",
    EventSelectionFlag.IS_BB_FDC: "kIsBBFDC",
    EventSelectionFlag.NO_BG_V0A: "kNoBGV0A",
    EventSelectionFlag.NO_BG_V0C: "kNoBGV0C",
    EventSelectionFlag.NO_BG_FDA: "kNoBGFDA",
    EventSelectionFlag.NO_BG_FDC: "kNoBGFDC",
    EventSelectionFlag.IS_BB_T0A: "kIsBBT0A",
    EventSelectionFlag.IS_BB_T0C: "kIsBBT0C",
    EventSelectionFlag.IS_BB_ZNA: "kIsBBZNA",
    EventSelectionFlag.IS_BB_ZNC: "kIsBBZNC",
    EventSelectionFlag.IS_BB_ZAC: "kIsBBZAC",
    EventSelectionFlag.NO_BG_ZNA: "kNoBGZNA",
    EventSelectionFlag.NO_BG_ZNC: "kNoBGZNC",
    EventSelectionFlag.NO_V0M_ON_VS_OF_PILEUP: "kNoV0MOnVsOfPileup",
    EventSelectionFlag.NO_SPD_ON_VS_OF_PILEUP: "kNoSPDOnVsOfPileup",
    EventSelectionFlag.NO_V0C_ASYMMETRY: "kNoV0Casymmetry",
    EventSelectionFlag.IS_GOOD_TIME_RANGE: "kIsGoodTimeRange",
    EventSelectionFlag.NO_INCOMPLETE_DAQ: "kNoIncompleteDAQ",
    EventSelectionFlag.NO_TPC_LASER_WARM_UP: "kNoTPCLaserWarmUp",
    EventSelectionFlag.NO_TPC_HV_DIP: "kNoTPCHVdip",
    EventSelectionFlag.NO_PILEUP_FROM_SPD: "kNoPileupFromSPD",
    EventSelectionFlag.NO_V0_PF_PILEUP: "kNoV0PFPileup",
    EventSelectionFlag.NO_SPD_CLS_VS_TKL_BG: "kNoSPDClsVsTklBG",
    EventSelectionFlag.NO_V0C012_VS_TKL_BG: "kNoV0C012vsTklBG",
}

# Flags that protect against activity from a neighbouring bunch crossing
OUT_OF_BUNCH_PILEUP_FLAGS: tuple[EventSelectionFlag, ...] = (
    EventSelectionFlag.NO_V0M_ON_VS_OF_PILEUP,
    EventSelectionFlag.NO_SPD_ON_VS_OF_PILEUP,
    EventSelectionFlag.NO_V0_PF_PILEUP,
)


class SelectionPolicy(Enum):
    """Which of the three flag-set masks a decision is taken against."""

    BARREL = "barrel"
    MUON_WITH_PILEUP_CUTS = "muon_with_pileup_cuts"
    MUON_WITHOUT_PILEUP_CUTS = "muon_without_pileup_cuts"


class RunType(Enum):
    """Detector configuration of the data being processed."""

    LEGACY = "legacy"  # Run 2, decision is sel7
    CURRENT = "current"  # Run 3, decision is sel8

    @classmethod
    def from_is_run3(cls, is_run3: bool) -> "RunType":
        return cls.CURRENT if is_run3 else cls.LEGACY

    @property
    def policy(self) -> SelectionPolicy:
        """Mask used by the collision-level decision of this run type."""
        if self is RunType.CURRENT:
            return SelectionPolicy.MUON_WITHOUT_PILEUP_CUTS
        return SelectionPolicy.BARREL


class SelectionFlagSet:
    """
    Fixed-size ordered collection of boolean selection flags.

    The backing array is read-only; every modification returns a new set.
    """

    def __init__(self, values: Optional[Iterable[bool]] = None):
        if values is None:
            array = np.ones(NUM_SELECTION_FLAGS, dtype=bool)
        else:
            array = np.array(list(values), dtype=bool)
        if array.shape != (NUM_SELECTION_FLAGS,):
            raise ValueError(
                f"A selection flag set needs exactly {NUM_SELECTION_FLAGS} entries, "
                f"got {array.size}"
            )
        array.setflags(write=False)
        self._values = array

    @classmethod
    def from_mapping(
        cls, flags: dict[EventSelectionFlag, bool], default: bool = False
    ) -> "SelectionFlagSet":
        """Build a set from a flag -> value mapping, filling gaps with ``default``."""
        values = [bool(flags.get(flag, default)) for flag in EventSelectionFlag]
        return cls(values)

    def __getitem__(self, flag: Union[EventSelectionFlag, int]) -> bool:
        return bool(self._values[int(flag)])

    def __len__(self) -> int:
        return NUM_SELECTION_FLAGS

    def __iter__(self) -> Iterator[bool]:
        return (bool(v) for v in self._values)

    def __eq__(self, other) -> bool:
        if not isinstance(other, SelectionFlagSet):
            return NotImplemented
        return bool(np.array_equal(self._values, other._values))

    def __hash__(self) -> int:
        return hash(self._values.tobytes())

    def __repr__(self) -> str:
        disabled = [SELECTION_LABELS[f] for f in self.false_flags()]
        return f"SelectionFlagSet(false={disabled})"

    def with_values(
        self, updates: dict[EventSelectionFlag, bool]
    ) -> "SelectionFlagSet":
        """Return a copy with the given slots replaced."""
        values = self._values.copy()
        for flag, value in updates.items():
            values[int(flag)] = bool(value)
        return SelectionFlagSet(values)

    def all(self) -> bool:
        return bool(self._values.all())

    def true_flags(self) -> list[EventSelectionFlag]:
        return [EventSelectionFlag(i) for i in np.flatnonzero(self._values)]

    def false_flags(self) -> list[EventSelectionFlag]:
        return [EventSelectionFlag(i) for i in np.flatnonzero(~self._values)]

    def to_array(self) -> np.ndarray:
        return self._values.copy()

    def to_dict(self) -> dict[str, bool]:
        return {SELECTION_LABELS[flag]: self[flag] for flag in EventSelectionFlag}


class DetectorChannel(Enum):
    """Timing detectors with a per-collision time measurement."""

    V0A = "v0a"
    V0C = "v0c"
    FDA = "fda"
    FDC = "fdc"
    ZNA = "zna"
    ZNC = "znc"
    T0A = "t0a"
    T0C = "t0c"


@dataclass(frozen=True)
class TimingWindow:
    """Closed time interval [lower, upper] in ns."""

    lower: float
    upper: float

    def __post_init__(self):
        if not self.lower < self.upper:
            raise ValueError(
                f"Timing window lower bound {self.lower} must be below upper bound {self.upper}"
            )


@dataclass(frozen=True)
class ChannelWindows:
    """Beam-beam window and, where the detector has one, beam-gas window."""

    beam_beam: TimingWindow
    beam_gas: Optional[TimingWindow] = None


@dataclass(frozen=True)
class AffineCut:
    """Threshold ``intercept + slope * b`` on a pair of correlated measurements."""

    intercept: float
    slope: float
    enabled: bool = True


def _arrival_windows(
    distance_cm: float, bb_margins: tuple[float, float], bg_margins: tuple[float, float]
) -> ChannelWindows:
    # Beam-beam signals arrive at +t, beam-gas from the opposite side at -t
    t = flight_time_ns(distance_cm)
    return ChannelWindows(
        beam_beam=TimingWindow(t - bb_margins[0], t + bb_margins[1]),
        beam_gas=TimingWindow(-t - bg_margins[0], -t + bg_margins[1]),
    )


V0A_DISTANCE_CM = 329.00
V0C_DISTANCE_CM = 87.15
FDA_DISTANCE_CM = (1695.30 + 1698.04) / 2.0
FDC_DISTANCE_CM = (1952.90 + 1955.90) / 2.0


def _default_flag_sets() -> dict[SelectionPolicy, SelectionFlagSet]:
    all_enabled = SelectionFlagSet()
    return {
        SelectionPolicy.BARREL: all_enabled,
        SelectionPolicy.MUON_WITH_PILEUP_CUTS: all_enabled,
        SelectionPolicy.MUON_WITHOUT_PILEUP_CUTS: all_enabled.with_values(
            {flag: False for flag in OUT_OF_BUNCH_PILEUP_FLAGS}
        ),
    }


@dataclass(frozen=True)
class SelectionParameters:
    """Immutable thresholds for the event selection of one run configuration."""

    system: int = 0

    v0a: ChannelWindows = field(
        default_factory=lambda: _arrival_windows(V0A_DISTANCE_CM, (9.5, 22.5), (2.5, 5.0))
    )
    v0c: ChannelWindows = field(
        default_factory=lambda: _arrival_windows(V0C_DISTANCE_CM, (2.5, 22.5), (2.5, 2.5))
    )
    fda: ChannelWindows = field(
        default_factory=lambda: _arrival_windows(FDA_DISTANCE_CM, (2.5, 2.5), (4.0, 4.0))
    )
    fdc: ChannelWindows = field(
        default_factory=lambda: _arrival_windows(FDC_DISTANCE_CM, (1.5, 1.5), (2.0, 2.0))
    )
    zna: ChannelWindows = field(
        default_factory=lambda: ChannelWindows(
            TimingWindow(-2.0, 2.0), TimingWindow(5.0, 100.0)
        )
    )
    znc: ChannelWindows = field(
        default_factory=lambda: ChannelWindows(
            TimingWindow(-2.0, 2.0), TimingWindow(5.0, 100.0)
        )
    )
    # TODO: T0 windows are rough and need tuning on Run 3 data
    t0a: ChannelWindows = field(
        default_factory=lambda: ChannelWindows(TimingWindow(-2.0, 2.0))
    )
    t0c: ChannelWindows = field(
        default_factory=lambda: ChannelWindows(TimingWindow(-2.0, 2.0))
    )

    # ZNA/ZNC difference and sum windows, ns
    zn_dif_mean: float = 0.0
    zn_sum_mean: float = 0.0
    zn_dif_sigma: float = 2.0
    zn_sum_sigma: float = 2.0

    # Multiplicity correlations
    spd_cls_vs_tkl: AffineCut = field(default_factory=lambda: AffineCut(65.0, 4.0))
    v0c012_vs_tkl: AffineCut = field(default_factory=lambda: AffineCut(150.0, 20.0))
    v0m_on_vs_of: AffineCut = field(default_factory=lambda: AffineCut(-59.56, 5.22))
    spd_on_vs_of: AffineCut = field(default_factory=lambda: AffineCut(-5.62, 0.85))
    v0c_asymmetry: AffineCut = field(default_factory=lambda: AffineCut(-25.0, 0.15))

    flag_sets: Mapping[SelectionPolicy, SelectionFlagSet] = field(
        default_factory=_default_flag_sets, hash=False
    )

    def __post_init__(self):
        if self.zn_dif_sigma <= 0 or self.zn_sum_sigma <= 0:
            raise ValueError("ZN difference and sum windows must be positive")
        missing = set(SelectionPolicy) - set(self.flag_sets)
        if missing:
            raise ValueError(
                f"Missing selection flag sets for policies: {sorted(p.value for p in missing)}"
            )
        object.__setattr__(self, "flag_sets", MappingProxyType(dict(self.flag_sets)))

    def channel_windows(self, channel: DetectorChannel) -> ChannelWindows:
        return getattr(self, channel.value)

    def get_selection(self, policy: SelectionPolicy) -> SelectionFlagSet:
        """Mask of the flags a decision under ``policy`` requires."""
        return self.flag_sets[policy]

    @property
    def selection_barrel(self) -> SelectionFlagSet:
        return self.flag_sets[SelectionPolicy.BARREL]

    @property
    def selection_muon_with_pileup_cuts(self) -> SelectionFlagSet:
        return self.flag_sets[SelectionPolicy.MUON_WITH_PILEUP_CUTS]

    @property
    def selection_muon_without_pileup_cuts(self) -> SelectionFlagSet:
        return self.flag_sets[SelectionPolicy.MUON_WITHOUT_PILEUP_CUTS]

    def disable_flags(
        self,
        flags: Iterable[EventSelectionFlag],
        policies: Optional[Iterable[SelectionPolicy]] = None,
    ) -> "SelectionParameters":
        """Return parameters whose masks no longer require ``flags``."""
        updates = {flag: False for flag in flags}
        targets = set(policies) if policies is not None else set(SelectionPolicy)
        flag_sets = {
            policy: (mask.with_values(updates) if policy in targets else mask)
            for policy, mask in self.flag_sets.items()
        }
        return replace(self, flag_sets=flag_sets)

    def disable_out_of_bunch_pileup_cuts(self) -> "SelectionParameters":
        """Drop the out-of-bunch pileup flags from all three masks."""
        return self.disable_flags(OUT_OF_BUNCH_PILEUP_FLAGS)

    def with_on_vs_of_params(
        self, v0m_a: float, v0m_b: float, spd_a: float, spd_b: float
    ) -> "SelectionParameters":
        """Override the online-vs-offline V0M and SPD correlation coefficients."""
        return replace(
            self,
            v0m_on_vs_of=replace(self.v0m_on_vs_of, intercept=v0m_a, slope=v0m_b),
            spd_on_vs_of=replace(self.spd_on_vs_of, intercept=spd_a, slope=spd_b),
        )

    def to_dict(self) -> dict:
        """Convert parameters to a dictionary for logging and output metadata"""
        windows = {}
        for channel in DetectorChannel:
            channel_windows = self.channel_windows(channel)
            windows[channel.value] = {
                "beam_beam": [
                    channel_windows.beam_beam.lower,
                    channel_windows.beam_beam.upper,
                ],
                "beam_gas": (
                    [channel_windows.beam_gas.lower, channel_windows.beam_gas.upper]
                    if channel_windows.beam_gas
                    else None
                ),
            }
        cuts = {
            name: {"intercept": cut.intercept, "slope": cut.slope, "enabled": cut.enabled}
            for name, cut in (
                ("spd_cls_vs_tkl", self.spd_cls_vs_tkl),
                ("v0c012_vs_tkl", self.v0c012_vs_tkl),
                ("v0m_on_vs_of", self.v0m_on_vs_of),
                ("spd_on_vs_of", self.spd_on_vs_of),
                ("v0c_asymmetry", self.v0c_asymmetry),
            )
        }
        return {
            "system": self.system,
            "windows": windows,
            "zn": {
                "dif_mean": self.zn_dif_mean,
                "sum_mean": self.zn_sum_mean,
                "dif_sigma": self.zn_dif_sigma,
                "sum_sigma": self.zn_sum_sigma,
            },
            "correlation_cuts": cuts,
            "flag_sets": {
                policy.value: [SELECTION_LABELS[f] for f in mask.false_flags()]
                for policy, mask in self.flag_sets.items()
            },
        }
