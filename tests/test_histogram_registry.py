import json

import numpy as np
import pytest

from event_track_qa.data.event_data import TrackParametrization
from event_track_qa.qa.event_track_histograms import EventTrackHistograms
from event_track_qa.qa.histogram_registry import Axis, HistogramRegistry


@pytest.fixture
def registry():
    registry = HistogramRegistry()
    registry.add("Events/posZ", Axis(4, -2.0, 2.0, "Z [cm]"))
    registry.add("Events/posXY", [Axis(2, 0.0, 2.0), Axis(2, 0.0, 2.0)])
    registry.add("Tracks/reso", Axis(2, 0.0, 2.0), kind="profile")
    return registry


def test_axis_find_bin():
    axis = Axis(4, -2.0, 2.0)
    assert axis.find_bin(-2.5) == -1
    assert axis.find_bin(-2.0) == 0
    assert axis.find_bin(0.0) == 2
    assert axis.find_bin(1.99) == 3
    assert axis.find_bin(2.0) == 4


def test_variable_axis():
    axis = Axis.variable([0.0, 0.1, 1.0, 10.0])
    assert axis.nbins == 3
    assert axis.find_bin(0.5) == 1
    with pytest.raises(ValueError):
        Axis.variable([0.0, 0.0, 1.0])


def test_fill_is_additive(registry):
    registry.fill("Events/posZ", 0.5)
    registry.record("Events/posZ", 0.5, weight=2.0)
    registry.fill("Events/posZ", 5.0)
    registry.fill("Events/posZ", -5.0)
    hist = registry.get("Events/posZ")
    assert hist.counts.tolist() == [0.0, 0.0, 3.0, 0.0]
    assert hist.overflow == 1.0
    assert hist.underflow == 1.0
    assert hist.entries == 4


def test_fill_2d(registry):
    registry.fill("Events/posXY", 0.5, 1.5)
    assert registry.get("Events/posXY").counts[0, 1] == 1.0
    with pytest.raises(ValueError):
        registry.fill("Events/posXY", 0.5)


def test_profile_means(registry):
    registry.fill("Tracks/reso", 0.5, 1.0)
    registry.fill("Tracks/reso", 0.5, 3.0)
    assert registry.get("Tracks/reso").means().tolist() == [2.0, 0.0]


def test_profile_keeps_nan_out_of_the_means(registry):
    registry.fill("Tracks/reso", 0.5, 2.0)
    registry.fill("Tracks/reso", 0.5, float("nan"))
    profile = registry.get("Tracks/reso")
    assert profile.means().tolist() == [2.0, 0.0]
    assert profile.overflow == 1.0
    assert profile.entries == 2


def test_undeclared_path_raises(registry):
    with pytest.raises(KeyError):
        registry.fill("Events/unknown", 1.0)


def test_duplicate_declaration_raises(registry):
    with pytest.raises(ValueError):
        registry.add("Events/posZ", Axis(1, 0.0, 1.0))


def test_merge_is_commutative(registry):
    other = HistogramRegistry()
    other.add("Events/posZ", Axis(4, -2.0, 2.0))
    other.fill("Events/posZ", -1.5)
    registry.fill("Events/posZ", 1.5)

    left = HistogramRegistry()
    left.add("Events/posZ", Axis(4, -2.0, 2.0))
    left.merge(registry)
    left.merge(other)
    right = HistogramRegistry()
    right.add("Events/posZ", Axis(4, -2.0, 2.0))
    right.merge(other)
    right.merge(registry)

    assert np.array_equal(left.get("Events/posZ").counts, right.get("Events/posZ").counts)
    assert left.get("Events/posZ").integral() == 2.0


def test_save_and_load(registry, tmp_path):
    registry.fill("Events/posZ", 0.5)
    registry.fill("Tracks/reso", 1.5, 4.0)
    path = tmp_path / "hists" / "qa.json"
    registry.save(path, metadata={"run": 1})

    with open(path) as f:
        data = json.load(f)
    assert data["Events/posZ"]["counts"] == [0.0, 0.0, 1.0, 0.0]
    assert data["Events/posZ"]["bin_edges"] == [[-2.0, -1.0, 0.0, 1.0, 2.0]]
    assert data["_metadata"] == {"run": 1}

    loaded, metadata = HistogramRegistry.load(path)
    assert metadata == {"run": 1}
    assert loaded.paths() == registry.paths()
    assert loaded.get("Tracks/reso").means().tolist() == [0.0, 4.0]


def test_profile_sums_survive_save_and_load(registry, tmp_path):
    registry.fill("Tracks/reso", 0.5, 2.0)
    registry.fill("Tracks/reso", 0.5, 4.0)
    path = tmp_path / "qa.json"
    registry.save(path)

    loaded, _ = HistogramRegistry.load(path)
    profile = loaded.get("Tracks/reso")
    assert profile.sum_y.tolist() == [6.0, 0.0]
    assert profile.sum_y2.tolist() == [20.0, 0.0]

    # merging after a reload keeps the second moment additive
    loaded.merge(registry)
    assert loaded.get("Tracks/reso").sum_y2.tolist() == [40.0, 0.0]


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        HistogramRegistry.load(tmp_path / "missing.json")


def test_event_track_histograms_declaration():
    registry = HistogramRegistry()
    EventTrackHistograms(registry, is_mc=True, with_iu=True)
    for path in (
        "Events/recoEff",
        "Events/posZ",
        "Events/resoZ",
        "Tracks/recoEff",
        "Tracks/Kine/pt",
        "Tracks/Kine/resoPt",
        "Tracks/ITS/itsHits",
        "Tracks/TPC/tpcNClsFound",
        "Tracks/IU/Pt",
        "Tracks/IUdeltaDCA/Pt",
        "Tracks/IUvsDCA/Pt",
    ):
        assert path in registry


def test_event_track_histograms_fill(make_collision, make_track, mc_collision, make_particle):
    registry = HistogramRegistry()
    histograms = EventTrackHistograms(registry, is_mc=True)
    collision = make_collision(pos_z=0.1, mc_collision=mc_collision)
    selected = make_track(mc_particle=make_particle())
    rejected = make_track(is_global_track=False, its_cluster_map=0)

    histograms.fill_reco(collision, [selected, rejected], [selected], [selected])

    assert registry.get("Events/posZ").integral() == 1.0
    assert registry.get("Events/nTracks").integral() == 1.0
    assert registry.get("Tracks/recoEff").counts.tolist() == [2.0, 1.0]
    assert registry.get("Tracks/Kine/pt").integral() == 1.0
    assert registry.get("Events/resoZ").integral() == 1.0
    # seven ITS layers of the selected track plus the empty entry of the other one
    assert registry.get("Tracks/ITS/itsHitsUnfiltered").integral() == 8.0
    assert registry.get("Tracks/ITS/itsHits").integral() == 7.0


def test_iu_comparison_without_snapshot(make_track):
    registry = HistogramRegistry()
    histograms = EventTrackHistograms(registry, with_reco=False, with_iu=True)
    assert histograms.fill_iu_comparison(make_track()) is False


def test_iu_filtered_declaration_and_fill(make_track):
    registry = HistogramRegistry()
    histograms = EventTrackHistograms(registry, with_reco=False, with_iu_filtered=True)
    assert "Tracks/IU/Pt" not in registry
    for name in ("Pt", "Eta", "Phi", "x", "y", "z", "alpha", "signed1Pt", "snp", "tgl"):
        assert f"Tracks/IUFiltered/{name}" in registry

    track = make_track(iu=TrackParametrization(pt=1.2, eta=-0.3, phi=2.0, tgl=-0.3))
    assert histograms.fill_iu_filtered(track) is True
    assert histograms.fill_iu_filtered(make_track()) is False
    assert registry.get("Tracks/IUFiltered/Pt").integral() == 1.0
    assert registry.get("Tracks/IUFiltered/tgl").integral() == 1.0
