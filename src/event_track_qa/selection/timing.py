"""
Timing-window classification of the forward and zero-degree detectors.

Every detector gives one beam-beam flag (time inside the window expected for
a genuine collision) and, where a beam-gas window is defined, one no-beam-gas
flag (time outside the window expected for background from the opposite
side). A missing measurement always fails the corresponding flags.
"""

import math
from typing import Optional

from event_track_qa.data.event_data import DetectorTimes
from event_track_qa.selection.parameters import (
    ChannelWindows,
    DetectorChannel,
    EventSelectionFlag,
    SelectionParameters,
    TimingWindow,
)

# (channel, beam-beam flag, no-beam-gas flag)
CHANNEL_FLAGS: tuple[
    tuple[DetectorChannel, EventSelectionFlag, Optional[EventSelectionFlag]], ...
] = (
    (DetectorChannel.V0A, EventSelectionFlag.IS_BB_V0A, EventSelectionFlag.NO_BG_V0A),
    (DetectorChannel.V0C, EventSelectionFlag.IS_BB_V0C, EventSelectionFlag.NO_BG_V0C),
    (DetectorChannel.FDA, EventSelectionFlag.IS_BB_FDA, EventSelectionFlag.NO_BG_FDA),
    (DetectorChannel.FDC, EventSelectionFlag.IS_BB_FDC, EventSelectionFlag.NO_BG_FDC),
    (DetectorChannel.ZNA, EventSelectionFlag.IS_BB_ZNA, EventSelectionFlag.NO_BG_ZNA),
    (DetectorChannel.ZNC, EventSelectionFlag.IS_BB_ZNC, EventSelectionFlag.NO_BG_ZNC),
    (DetectorChannel.T0A, EventSelectionFlag.IS_BB_T0A, None),
    (DetectorChannel.T0C, EventSelectionFlag.IS_BB_T0C, None),
)


def is_available(value: Optional[float]) -> bool:
    """True for a real, finite measurement."""
    return value is not None and not math.isnan(value)


def in_window(t: Optional[float], window: TimingWindow) -> bool:
    """Inclusive window test. Missing times are never inside."""
    if not is_available(t):
        return False
    return window.lower <= t <= window.upper


def classify_channel(
    t: Optional[float], windows: ChannelWindows
) -> tuple[bool, bool]:
    """
    Classify one detector time.

    Args:
        t: Arrival time in ns, or None when the detector has no measurement
        windows: Beam-beam and optional beam-gas window of the detector

    Returns:
        Tuple of (is_beam_beam, no_beam_gas). Both are False for a missing
        time; no_beam_gas is False when the detector has no beam-gas window.
    """
    if not is_available(t):
        return False, False
    is_bb = in_window(t, windows.beam_beam)
    if windows.beam_gas is None:
        return is_bb, False
    return is_bb, not in_window(t, windows.beam_gas)


def is_bb_zac(
    t_zna: Optional[float], t_znc: Optional[float], params: SelectionParameters
) -> bool:
    """
    Combined ZNA/ZNC beam-beam flag.

    Historically called a circular cut, but the difference and the sum are
    bounded independently, i.e. this is a rectangle in the (diff, sum) plane.
    """
    if not (is_available(t_zna) and is_available(t_znc)):
        return False
    diff = t_zna - t_znc
    total = t_zna + t_znc
    return (
        abs(diff - params.zn_dif_mean) <= params.zn_dif_sigma
        and abs(total - params.zn_sum_mean) <= params.zn_sum_sigma
    )


def classify_timing(
    times: DetectorTimes, params: SelectionParameters
) -> dict[EventSelectionFlag, bool]:
    """
    Evaluate all timing flags of one collision.

    Args:
        times: Per-detector arrival times
        params: Selection parameters holding the windows

    Returns:
        Dictionary mapping each timing flag to its value
    """
    flags = {}
    for channel, bb_flag, bg_flag in CHANNEL_FLAGS:
        t = getattr(times, channel.value)
        is_bb, no_bg = classify_channel(t, params.channel_windows(channel))
        flags[bb_flag] = is_bb
        if bg_flag is not None:
            flags[bg_flag] = no_bg

    flags[EventSelectionFlag.IS_BB_ZAC] = is_bb_zac(times.zna, times.znc, params)
    return flags
