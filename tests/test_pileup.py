from dataclasses import replace

import pytest

from event_track_qa.data.event_data import MultiplicityInputs
from event_track_qa.selection.parameters import AffineCut, EventSelectionFlag
from event_track_qa.selection.pileup import (
    classify_correlations,
    passes_cut,
    predicted_threshold,
)


@pytest.fixture
def cut():
    return AffineCut(intercept=10.0, slope=2.0)


def test_predicted_threshold(cut):
    assert predicted_threshold(cut, 5.0) == pytest.approx(20.0)


def test_cut_is_strictly_below_prediction(cut):
    assert passes_cut(cut, 19.9, 5.0)
    assert not passes_cut(cut, 20.0, 5.0)
    assert not passes_cut(cut, 25.0, 5.0)


def test_missing_input_fails(cut):
    assert not passes_cut(cut, None, 5.0)
    assert not passes_cut(cut, 1.0, None)
    assert not passes_cut(cut, float("nan"), 5.0)


def test_disabled_cut_always_passes(cut):
    disabled = replace(cut, enabled=False)
    assert passes_cut(disabled, 1e9, 0.0)
    assert passes_cut(disabled, None, None)


def test_default_v0m_online_vs_offline(params):
    # -59.56 + 5.22 * 100 = 462.44
    assert passes_cut(params.v0m_on_vs_of, 462.0, 100.0)
    assert not passes_cut(params.v0m_on_vs_of, 463.0, 100.0)


def test_classify_correlations_good_inputs(params, make_collision):
    flags = classify_correlations(make_collision().multiplicities, params)
    assert set(flags) == {
        EventSelectionFlag.NO_V0M_ON_VS_OF_PILEUP,
        EventSelectionFlag.NO_SPD_ON_VS_OF_PILEUP,
        EventSelectionFlag.NO_V0C_ASYMMETRY,
        EventSelectionFlag.NO_SPD_CLS_VS_TKL_BG,
        EventSelectionFlag.NO_V0C012_VS_TKL_BG,
    }
    assert all(flags.values())


def test_classify_correlations_flags_pileup(params, make_collision):
    inputs = replace(make_collision().multiplicities, spd_online=1000.0)
    flags = classify_correlations(inputs, params)
    assert not flags[EventSelectionFlag.NO_SPD_ON_VS_OF_PILEUP]
    assert flags[EventSelectionFlag.NO_V0M_ON_VS_OF_PILEUP]


def test_classify_correlations_missing_inputs(params):
    flags = classify_correlations(MultiplicityInputs(), params)
    assert not any(flags.values())


def test_on_vs_of_override(params):
    params = params.with_on_vs_of_params(0.0, 1.0, 0.0, 2.0)
    assert params.v0m_on_vs_of == AffineCut(0.0, 1.0)
    assert params.spd_on_vs_of == AffineCut(0.0, 2.0)
    inputs = MultiplicityInputs(v0m_online=9.0, v0m_offline=10.0)
    flags = classify_correlations(inputs, params)
    assert flags[EventSelectionFlag.NO_V0M_ON_VS_OF_PILEUP]
