"""
Aggregation of per-detector flags into the per-collision selection flag set.

Every flag is computed independently and written to its own slot. Decisions
(``sel7`` for legacy runs, ``sel8`` for current runs) require all flags that
the chosen mask enables.
"""

from dataclasses import dataclass

from event_track_qa.data.event_data import (
    Collision,
    DetectorQualityFlags,
    DetectorTimes,
    MultiplicityInputs,
)
from event_track_qa.selection.parameters import (
    EventSelectionFlag,
    RunType,
    SelectionFlagSet,
    SelectionParameters,
    SelectionPolicy,
)
from event_track_qa.selection.pileup import classify_correlations
from event_track_qa.selection.timing import classify_timing

QUALITY_FLAGS: dict[EventSelectionFlag, str] = {
    EventSelectionFlag.IS_GOOD_TIME_RANGE: "good_time_range",
    EventSelectionFlag.NO_INCOMPLETE_DAQ: "complete_daq",
    EventSelectionFlag.NO_TPC_LASER_WARM_UP: "no_tpc_laser_warm_up",
    EventSelectionFlag.NO_TPC_HV_DIP: "no_tpc_hv_dip",
    EventSelectionFlag.NO_PILEUP_FROM_SPD: "no_pileup_from_spd",
    EventSelectionFlag.NO_V0_PF_PILEUP: "no_v0_past_future_pileup",
}


def classify_quality(quality: DetectorQualityFlags) -> dict[EventSelectionFlag, bool]:
    """Copy run-condition flags into their slots. Unknown conditions fail."""
    return {
        flag: bool(getattr(quality, attribute))
        if getattr(quality, attribute) is not None
        else False
        for flag, attribute in QUALITY_FLAGS.items()
    }


@dataclass(frozen=True)
class EventSelectionResult:
    """Evaluated flags of one collision and the decisions derived from them."""

    flags: SelectionFlagSet
    params: SelectionParameters

    def decision(self, policy: SelectionPolicy) -> bool:
        """True if every flag required by the ``policy`` mask is set."""
        mask = self.params.get_selection(policy)
        return all(self.flags[flag] for flag in mask.true_flags())

    def failed_flags(self, policy: SelectionPolicy) -> list[EventSelectionFlag]:
        mask = self.params.get_selection(policy)
        return [flag for flag in mask.true_flags() if not self.flags[flag]]

    @property
    def barrel(self) -> bool:
        return self.decision(SelectionPolicy.BARREL)

    @property
    def sel7(self) -> bool:
        return self.decision(SelectionPolicy.BARREL)

    @property
    def sel8(self) -> bool:
        return self.decision(SelectionPolicy.MUON_WITHOUT_PILEUP_CUTS)

    def selected(self, run_type: RunType) -> bool:
        """Collision-level decision for the given run type."""
        return self.decision(run_type.policy)


def evaluate(
    params: SelectionParameters,
    times: DetectorTimes,
    multiplicities: MultiplicityInputs,
    quality: DetectorQualityFlags,
) -> EventSelectionResult:
    """
    Evaluate the full selection flag set of one collision.

    Args:
        params: Windows, cut coefficients and decision masks
        times: Per-detector arrival times
        multiplicities: Inputs of the correlation cuts
        quality: Run-condition and DAQ flags

    Returns:
        EventSelectionResult with every slot filled
    """
    flags = {}
    flags.update(classify_timing(times, params))
    flags.update(classify_correlations(multiplicities, params))
    flags.update(classify_quality(quality))
    return EventSelectionResult(
        flags=SelectionFlagSet.from_mapping(flags, default=False), params=params
    )


def evaluate_collision(
    collision: Collision, params: SelectionParameters
) -> EventSelectionResult:
    """Convenience wrapper reading the selection inputs from a collision."""
    return evaluate(
        params, collision.times, collision.multiplicities, collision.quality
    )
