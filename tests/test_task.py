import json
import logging

import h5py
import numpy as np
import pytest

from event_track_qa.config.qa_config import QAConfig
from event_track_qa.data.event_data import (
    CollisionEvent,
    DetectorTimes,
    TrackParametrization,
)
from event_track_qa.selection.track_filter import AcceptanceMode
from event_track_qa.task import EventTrackQATask


@pytest.fixture
def good_event(make_collision, make_track):
    return CollisionEvent(
        collision=make_collision(),
        tracks=[make_track(global_index=0), make_track(global_index=1, is_global_track=False)],
    )


@pytest.fixture
def bad_event(make_collision, make_track):
    return CollisionEvent(
        collision=make_collision(global_index=1, times=DetectorTimes()),
        tracks=[make_track(global_index=2, collision_index=1)],
    )


def test_init_rejects_both_table_modes(caplog):
    task = EventTrackQATask(QAConfig(process_table_data=True, process_table_mc=True))
    with caplog.at_level(logging.ERROR):
        with pytest.raises(ValueError):
            task.init()
    assert "Invalid QA configuration" in caplog.text


def test_default_config_declares_only_iu_histograms(caplog):
    task = EventTrackQATask(QAConfig())
    with caplog.at_level(logging.INFO):
        task.init()
    assert "No enabled QA, all histograms are disabled" in caplog.text
    assert "Tracks/IU/Pt" in task.registry
    assert "Tracks/IUFiltered/tgl" in task.registry
    assert "Events/recoEff" not in task.registry
    assert task.emitter is None


def test_reco_efficiency_counts(good_event, bad_event):
    task = EventTrackQATask(QAConfig(process_data=True, process_data_iu=False))
    task.init()

    good = task.process(good_event)
    bad = task.process(bad_event)

    assert good.selected
    assert good.num_selected_tracks == 1
    assert not bad.selected
    assert bad.num_selected_tracks == 0
    assert task.registry.get("Events/recoEff").counts.tolist() == [2.0, 1.0]
    # only the selected collision fills the collision distributions
    assert task.registry.get("Events/posZ").integral() == 1.0
    assert task.registry.get("Tracks/recoEff").counts.tolist() == [2.0, 1.0]


def test_disabled_event_selection_accepts_everything(bad_event):
    task = EventTrackQATask(
        QAConfig(process_data=True, process_data_iu=False, select_good_events=False)
    )
    result = task.process(bad_event)
    assert result.selected
    assert not result.selection.sel8
    assert task.registry.get("Events/recoEff").counts.tolist() == [1.0, 1.0]


def test_iu_comparison(make_collision, make_track):
    with_iu = make_track(iu=TrackParametrization(pt=1.1, eta=0.25, phi=1.05))
    without_iu = make_track(global_index=1)
    rejected = make_track(
        global_index=2, sign=-1, iu=TrackParametrization(pt=2.0, eta=0.0, phi=0.0)
    )
    config = QAConfig()
    config.track_selection.select_charge = 1
    task = EventTrackQATask(config)

    result = task.process(
        CollisionEvent(make_collision(), tracks=[with_iu, without_iu, rejected])
    )

    assert result.num_iu_tracks == 1
    assert task.registry.get("Tracks/IU/Pt").integral() == 1.0
    assert task.registry.get("Tracks/IUvsDCA/Pt").integral() == 1.0


def test_iu_comparison_skips_rejected_collisions(make_collision, make_track):
    task = EventTrackQATask(QAConfig())
    track = make_track(iu=TrackParametrization(pt=1.0, eta=0.2, phi=1.0))
    result = task.process(
        CollisionEvent(make_collision(times=DetectorTimes()), tracks=[track])
    )
    assert result.num_iu_tracks == 0
    assert task.registry.get("Tracks/IU/Pt").integral() == 0.0


def test_iu_filtered_parameters(make_collision, make_track):
    accepted = make_track(
        iu=TrackParametrization(pt=1.1, eta=0.25, phi=1.05, alpha=0.5, signed1_pt=0.9)
    )
    soft = make_track(global_index=1, iu=TrackParametrization(pt=0.05, eta=0.1, phi=1.0))
    forward = make_track(global_index=2, iu=TrackParametrization(pt=2.0, eta=1.2, phi=1.0))
    without_iu = make_track(global_index=3)
    config = QAConfig(process_data_iu=False)
    config.track_selection.acceptance_mode = AcceptanceMode.MANUAL_PT_MIN
    task = EventTrackQATask(config)

    result = task.process(
        CollisionEvent(make_collision(), tracks=[accepted, soft, forward, without_iu])
    )

    assert result.num_iu_filtered_tracks == 1
    assert result.num_iu_tracks == 0
    assert "Tracks/IU/Pt" not in task.registry
    assert task.registry.get("Tracks/IUFiltered/Pt").integral() == 1.0
    assert task.registry.get("Tracks/IUFiltered/alpha").integral() == 1.0
    assert task.registry.get("Tracks/IUFiltered/signed1Pt").integral() == 1.0
    assert task.summary.num_iu_filtered_tracks == 1


def test_iu_filtered_without_acceptance_mode_keeps_every_snapshot(
    make_collision, make_track
):
    tracks = [
        make_track(iu=TrackParametrization(pt=0.05, eta=1.2, phi=1.0)),
        make_track(
            global_index=1, sign=-1, iu=TrackParametrization(pt=1.0, eta=0.0, phi=0.0)
        ),
    ]
    config = QAConfig(process_data_iu=False)
    config.track_selection.select_charge = 1
    task = EventTrackQATask(config)

    result = task.process(CollisionEvent(make_collision(), tracks=tracks))

    # the charge selection still applies
    assert result.num_iu_filtered_tracks == 1


def test_iu_filtered_skips_rejected_collisions(make_collision, make_track):
    task = EventTrackQATask(QAConfig(process_data_iu=False))
    track = make_track(iu=TrackParametrization(pt=1.0, eta=0.2, phi=1.0))
    result = task.process(
        CollisionEvent(make_collision(times=DetectorTimes()), tracks=[track])
    )
    assert result.num_iu_filtered_tracks == 0
    assert task.registry.get("Tracks/IUFiltered/Pt").integral() == 0.0


def test_iu_filtered_switch_off(make_collision, make_track):
    task = EventTrackQATask(QAConfig(process_data_iu_filtered=False))
    track = make_track(iu=TrackParametrization(pt=1.0, eta=0.2, phi=1.0))
    result = task.process(CollisionEvent(make_collision(), tracks=[track]))
    assert result.num_iu_tracks == 1
    assert result.num_iu_filtered_tracks == 0
    assert "Tracks/IUFiltered/Pt" not in task.registry


def test_table_skim_with_truth(make_collision, make_track, make_particle, mc_collision):
    matched = make_particle(global_index=0)
    lost = make_particle(global_index=1, is_physical_primary=False, process=4)
    event = CollisionEvent(
        collision=make_collision(mc_collision=mc_collision),
        tracks=[make_track(mc_particle=matched)],
        mc_particles=[matched, lost],
    )
    task = EventTrackQATask(
        QAConfig(
            process_data_iu=False, process_data_iu_filtered=False, process_table_mc=True
        ),
        rng=np.random.default_rng(0),
    )

    result = task.process(event)

    assert result.emission.accepted
    assert task.tables.sizes() == {
        "collisions": 1,
        "tracks": 1,
        "reco_particles": 1,
        "non_reco_particles": 1,
    }
    # no QA switch is on, so no histograms are declared
    assert len(task.registry) == 0


def test_table_skim_without_truth_ignores_particles(make_collision, make_track, make_particle):
    particle = make_particle()
    event = CollisionEvent(
        collision=make_collision(),
        tracks=[make_track(mc_particle=particle)],
        mc_particles=[particle],
    )
    task = EventTrackQATask(QAConfig(process_data_iu=False, process_table_data=True))
    task.process(event)
    sizes = task.tables.sizes()
    assert sizes["tracks"] == 1
    assert sizes["reco_particles"] == 0
    assert sizes["non_reco_particles"] == 0


def test_run_summary(good_event, bad_event, make_collision):
    far = CollisionEvent(collision=make_collision(global_index=2, pos_z=50.0))
    task = EventTrackQATask(
        QAConfig(process_data=True, process_table_data=True, select_max_vtx_z=10.0)
    )

    summary = task.run([good_event, bad_event, far], total=3, show_progress=False)

    assert summary.num_collisions == 3
    assert summary.num_selected_collisions == 2
    assert summary.num_selected_tracks == 1
    assert summary.num_emitted_collisions == 1
    assert summary.skim_rejections == {"event selection": 1, "vertex z": 1}
    assert summary.table_sizes["collisions"] == 1
    assert summary.to_dict()["skim_rejections"] == {"event selection": 1, "vertex z": 1}


def test_save_outputs(tmp_path, good_event):
    task = EventTrackQATask(QAConfig(process_data=True, process_table_data=True))
    task.run([good_event], show_progress=False)

    hist_path = tmp_path / "hists.json"
    table_path = tmp_path / "tables.h5"
    task.save(hist_path, table_path, metadata={"name": "unit"})

    with open(hist_path) as f:
        data = json.load(f)
    assert data["_metadata"]["name"] == "unit"
    assert data["_metadata"]["summary"]["num_collisions"] == 1
    assert data["_metadata"]["config"]["process_data"] is True
    assert "Events/recoEff" in data

    with h5py.File(table_path, "r") as f:
        assert f["collisions"].attrs["num_rows"] == 1
        assert f["tracks"].attrs["num_rows"] == 1


def test_save_without_skim_writes_no_tables(tmp_path, good_event):
    task = EventTrackQATask(QAConfig(process_data=True))
    task.run([good_event], show_progress=False)
    task.save(tmp_path / "hists.json", tmp_path / "tables.h5")
    assert (tmp_path / "hists.json").exists()
    assert not (tmp_path / "tables.h5").exists()
