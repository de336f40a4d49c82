"""
Pileup and beam-background rejection from multiplicity correlations.

Each cut compares one measurement against an affine prediction from a
second one, ``predicted = intercept + slope * b``, and accepts the collision
when ``a`` is strictly below the prediction.
"""

from typing import Optional

from event_track_qa.data.event_data import MultiplicityInputs
from event_track_qa.selection.parameters import (
    AffineCut,
    EventSelectionFlag,
    SelectionParameters,
)
from event_track_qa.selection.timing import is_available

# flag -> (parameter attribute, measured input, reference input)
CORRELATION_CUTS: dict[EventSelectionFlag, tuple[str, str, str]] = {
    EventSelectionFlag.NO_V0M_ON_VS_OF_PILEUP: (
        "v0m_on_vs_of",
        "v0m_online",
        "v0m_offline",
    ),
    EventSelectionFlag.NO_SPD_ON_VS_OF_PILEUP: (
        "spd_on_vs_of",
        "spd_online",
        "spd_offline",
    ),
    EventSelectionFlag.NO_V0C_ASYMMETRY: ("v0c_asymmetry", "v0c3", "v0c012"),
    EventSelectionFlag.NO_SPD_CLS_VS_TKL_BG: (
        "spd_cls_vs_tkl",
        "spd_clusters",
        "spd_tracklets",
    ),
    EventSelectionFlag.NO_V0C012_VS_TKL_BG: (
        "v0c012_vs_tkl",
        "v0c012",
        "spd_tracklets",
    ),
}


def predicted_threshold(cut: AffineCut, b: float) -> float:
    return cut.slope * b + cut.intercept


def passes_cut(cut: AffineCut, a: Optional[float], b: Optional[float]) -> bool:
    """
    Evaluate one affine correlation cut.

    A disabled cut always passes. An enabled cut with a missing input fails.
    """
    if not cut.enabled:
        return True
    if not (is_available(a) and is_available(b)):
        return False
    return a < predicted_threshold(cut, b)


def classify_correlations(
    inputs: MultiplicityInputs, params: SelectionParameters
) -> dict[EventSelectionFlag, bool]:
    """Evaluate all multiplicity-correlation flags of one collision."""
    flags = {}
    for flag, (cut_name, measured, reference) in CORRELATION_CUTS.items():
        cut = getattr(params, cut_name)
        flags[flag] = passes_cut(
            cut, getattr(inputs, measured), getattr(inputs, reference)
        )
    return flags
