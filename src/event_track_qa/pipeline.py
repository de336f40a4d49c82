"""
End-to-end QA run: configuration file and HDF5 input in, output files out.
"""

from pathlib import Path
from typing import Optional, Union

import numpy as np

from event_track_qa.config.config_loader import load_qa_config
from event_track_qa.config.logging_config import get_logger
from event_track_qa.data.aod_reader import AODReader
from event_track_qa.plots.qa_plots import create_qa_plots
from event_track_qa.task import EventTrackQATask, TaskSummary


def run_event_track_qa(
    config_path: Union[str, Path],
    input_path: Union[str, Path],
    output_dir: Union[str, Path],
    max_events: Optional[int] = None,
    seed: Optional[int] = None,
    make_plots: bool = False,
) -> TaskSummary:
    """
    Process one input file with one configuration and write all outputs.

    Args:
        config_path: YAML configuration file
        input_path: HDF5 input file
        output_dir: Directory receiving histograms, tables and plots
        max_events: Stop after this many collisions
        seed: Seed of the derived-table sampling, unseeded if None
        make_plots: Write summary plots even if the config names no plot directory

    Returns:
        TaskSummary of the run
    """
    logger = get_logger(__name__)
    output_dir = Path(output_dir)

    loaded = load_qa_config(config_path)
    qa_config = loaded["qa_config"]
    output_settings = loaded["output_settings"]

    reader = AODReader(input_path)
    if qa_config.is_mc and not reader.has_mc():
        logger.warning(
            f"MC processing enabled but {input_path} holds no generated particles"
        )

    task = EventTrackQATask(
        qa_config,
        params=loaded["selection_parameters"],
        rng=np.random.default_rng(seed),
    )
    task.init()

    total = reader.num_collisions()
    if max_events is not None:
        total = min(total, max_events)
    summary = task.run(reader.iter_events(max_events=max_events), total=total)

    task.save(
        histogram_path=output_dir / output_settings["histograms"],
        table_path=output_dir / output_settings["tables"],
        metadata={
            **loaded["metadata"],
            "input_file": str(input_path),
            "source_config_file": loaded["_source_config_file"],
        },
    )

    plots_dir = output_settings.get("plots_dir")
    if (make_plots or plots_dir) and len(task.registry):
        create_qa_plots(task.registry, output_dir / (plots_dir or "plots"))

    return summary
