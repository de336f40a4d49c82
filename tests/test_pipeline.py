import json
import logging
from pathlib import Path

import h5py
import pytest

from event_track_qa.data.aod_reader import AODReader, write_aod
from event_track_qa.data.event_data import (
    DetectorTimes,
    TrackParametrization,
    TruthCollision,
)
from event_track_qa.pipeline import run_event_track_qa
from event_track_qa.skim.derived_records import ProductionCategory
from event_track_qa.skim.table_writer import DerivedTables

TEST_CONFIG_PATH = Path(__file__).parent / "_test_qa_config.yaml"

# Expected file structure of one QA run (output_dir/)
EXPECTED_OUTPUT_STRUCTURE = {
    "qa_histograms.json": {
        "type": "file",
        "required": True,
        "description": "QA histograms with run metadata",
    },
    "derived_tables.h5": {
        "type": "file",
        "required": True,
        "description": "Derived collision, track and particle tables",
    },
    "plots": {
        "type": "directory",
        "required": True,
        "description": "Summary plots",
        "contents": {
            "Events*.png": {
                "type": "pattern",
                "required": True,
                "description": "Collision-level histograms",
            },
            "Tracks*.png": {
                "type": "pattern",
                "required": True,
                "min_count": 4,
                "description": "Track-level histogram groups",
            },
        },
    },
}

# Expected groups of the derived table file
EXPECTED_TABLE_STRUCTURE = {
    "collisions": ["pos_z", "sel", "run_number"],
    "tracks": ["collision_index", "pt", "eta", "phi", "its_ncls", "tof_minus_event_time"],
    "reco_particles": ["collision_index", "pdg_code", "production"],
    "non_reco_particles": ["collision_index", "pdg_code", "production", "vz"],
}


def validate_output_structure(
    output_dir: Path, expected_structure: dict, path_context: str = ""
) -> tuple[list[str], list[str]]:
    """
    Validate that an output directory contains all expected files.

    Args:
        output_dir: Directory to validate
        expected_structure: Dictionary defining the expected structure
        path_context: Current path context for error reporting

    Returns:
        Tuple of (missing_items, unexpected_items)
    """
    missing_items = []
    unexpected_items = []
    expected_paths = set()

    for name, entry in expected_structure.items():
        current_path = f"{path_context}/{name}" if path_context else name

        if entry["type"] == "file":
            expected_paths.add(name)
            if entry["required"] and not (output_dir / name).is_file():
                missing_items.append(
                    f"Required file missing: {current_path} - {entry['description']}"
                )

        elif entry["type"] == "directory":
            expected_paths.add(name)
            dir_path = output_dir / name
            if entry["required"] and not dir_path.is_dir():
                missing_items.append(
                    f"Required directory missing: {current_path} - {entry['description']}"
                )
            elif dir_path.exists() and "contents" in entry:
                sub_missing, sub_unexpected = validate_output_structure(
                    dir_path, entry["contents"], current_path
                )
                missing_items.extend(sub_missing)
                unexpected_items.extend(sub_unexpected)

        elif entry["type"] == "pattern":
            matching_files = list(output_dir.glob(name))
            min_count = entry.get("min_count", 1)
            if entry["required"] and len(matching_files) < min_count:
                missing_items.append(
                    f"Required pattern missing: {current_path} - expected at least "
                    f"{min_count}, found {len(matching_files)} - {entry['description']}"
                )
            for matched_file in matching_files:
                expected_paths.add(matched_file.name)

    if output_dir.exists():
        for item in output_dir.iterdir():
            if item.name not in expected_paths:
                current_path = (
                    f"{path_context}/{item.name}" if path_context else item.name
                )
                unexpected_items.append(f"Unexpected item: {current_path}")

    return missing_items, unexpected_items


def assert_output_structure(output_dir: Path, logger: logging.Logger) -> None:
    """Fail on missing outputs, warn on unexpected ones."""
    missing, unexpected = validate_output_structure(output_dir, EXPECTED_OUTPUT_STRUCTURE)

    with h5py.File(output_dir / "derived_tables.h5", "r") as f:
        for group, columns in EXPECTED_TABLE_STRUCTURE.items():
            if group not in f:
                missing.append(f"Missing table group: {group}")
                continue
            missing.extend(
                f"Missing column: {group}/{column}"
                for column in columns
                if column not in f[group]
            )

    if missing:
        missing_report = "\n".join(f"  - {item}" for item in missing)
        raise AssertionError(f"Missing required QA outputs:\n{missing_report}")

    if unexpected:
        logger.warning(
            "New files detected in QA output, add them to EXPECTED_OUTPUT_STRUCTURE "
            f"in tests/test_pipeline.py if intentional: {unexpected}"
        )


@pytest.fixture
def aod_file(tmp_path, make_collision, make_track, make_particle):
    """
    Three collisions: one passing everything, one failing the event selection
    and one with its vertex outside the derived-data window.
    """
    mc_collisions = [
        TruthCollision(global_index=0, pos_z=0.05),
        TruthCollision(global_index=1, pos_z=2.0),
    ]
    mc_particles = [
        make_particle(global_index=0, mc_collision_index=0, pdg_code=211),
        make_particle(
            global_index=1,
            mc_collision_index=0,
            pdg_code=22,
            is_physical_primary=False,
            process=4,
            vz=12.5,
        ),
        make_particle(global_index=2, mc_collision_index=1, pdg_code=-321),
    ]
    collisions = [
        make_collision(global_index=0, pos_z=0.0, mc_collision=mc_collisions[0]),
        make_collision(
            global_index=1, pos_z=1.0, times=DetectorTimes(), mc_collision=mc_collisions[1]
        ),
        make_collision(global_index=2, pos_z=50.0),
    ]
    tracks = [
        make_track(
            global_index=0,
            collision_index=0,
            mc_particle=mc_particles[0],
            iu=TrackParametrization(pt=1.02, eta=0.21, phi=1.01),
        ),
        make_track(global_index=1, collision_index=0, is_global_track=False, sign=-1),
        make_track(global_index=2, collision_index=1, mc_particle=mc_particles[2]),
        make_track(global_index=3, collision_index=2, pt=0.5),
    ]
    return write_aod(
        tmp_path / "AO2D.h5",
        collisions,
        tracks,
        mc_collisions=mc_collisions,
        mc_particles=mc_particles,
        write_iu=True,
    )


def test_reader_round_trip(aod_file):
    reader = AODReader(aod_file)
    assert reader.num_collisions() == 3
    assert reader.has_iu()
    assert reader.has_mc()

    events = list(reader.iter_events())
    assert [len(event.tracks) for event in events] == [2, 1, 1]
    first = events[0]
    assert first.collision.mc_collision.pos_z == pytest.approx(0.05)
    assert first.collision.quality.complete_daq is True
    assert [p.global_index for p in first.mc_particles] == [0, 1]
    assert first.tracks[0].mc_particle.pdg_code == 211
    assert first.tracks[0].iu.pt == pytest.approx(1.02)
    assert first.tracks[0].iu.x == 0.0
    # tracks written without a snapshot come back without one
    assert first.tracks[1].iu is None
    assert events[2].tracks[0].iu is None
    assert first.tracks[1].mc_particle is None
    assert events[1].collision.times.v0a is None
    assert events[2].mc_particles == []

    assert len(list(reader.iter_events(max_events=2))) == 2


def test_reader_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        AODReader(tmp_path / "missing.h5")


def test_run_event_track_qa(aod_file, tmp_path):
    """Test the full QA run (read → select → histograms → skim → plots)"""
    logger = logging.getLogger(__name__)
    output_dir = tmp_path / "qa_output"

    summary = run_event_track_qa(TEST_CONFIG_PATH, aod_file, output_dir, seed=1)

    assert summary.num_collisions == 3
    assert summary.num_selected_collisions == 2
    assert summary.num_emitted_collisions == 1
    assert summary.num_iu_tracks == 1
    assert summary.num_iu_filtered_tracks == 1
    assert summary.skim_rejections == {"event selection": 1, "vertex z": 1}

    assert_output_structure(output_dir, logger)

    with open(output_dir / "qa_histograms.json") as f:
        histograms = json.load(f)
    assert histograms["Events/recoEff"]["counts"] == [3.0, 2.0]
    assert histograms["_metadata"]["name"] == "test_qa"
    assert histograms["_metadata"]["input_file"] == str(aod_file)

    tables = DerivedTables.load(output_dir / "derived_tables.h5")
    assert tables.sizes() == {
        "collisions": 1,
        "tracks": 1,
        "reco_particles": 1,
        "non_reco_particles": 1,
    }
    assert tables.reco_particles.row(0)["production"] == ProductionCategory.PRIMARY
    non_reco = tables.non_reco_particles.row(0)
    assert non_reco["pdg_code"] == 22
    assert non_reco["production"] == ProductionCategory.SECONDARY_FROM_DECAY
    assert non_reco["vz"] == pytest.approx(12.5)

    logger.info(f"QA run test completed successfully. Results in: {output_dir}")


def test_max_events(aod_file, tmp_path):
    summary = run_event_track_qa(
        TEST_CONFIG_PATH, aod_file, tmp_path / "out", max_events=1, seed=1
    )
    assert summary.num_collisions == 1
    assert summary.table_sizes["collisions"] == 1
