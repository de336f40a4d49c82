"""
Event and track QA task.

Runs the event selection once per collision and dispatches the collision to
every enabled process switch: the reconstruction QA histograms (data or
simulation), the IU vs DCA comparison, the accepted IU track parameters and
the derived-table skim.
"""

import sys
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union

import numpy as np
from tqdm import tqdm

from event_track_qa.config.logging_config import get_logger
from event_track_qa.config.qa_config import QAConfig
from event_track_qa.data.event_data import CollisionEvent
from event_track_qa.qa.event_track_histograms import EventTrackHistograms
from event_track_qa.qa.histogram_registry import HistogramRegistry
from event_track_qa.selection.aggregator import (
    EventSelectionResult,
    evaluate_collision,
)
from event_track_qa.selection.parameters import SelectionParameters
from event_track_qa.selection.track_filter import (
    is_selected_track,
    passes_iu_prefilter,
    passes_track_prefilter,
)
from event_track_qa.skim.derived_records import DerivedRecordEmitter, EmissionSummary
from event_track_qa.skim.table_writer import DerivedTables


@dataclass
class ProcessResult:
    """What happened to one collision."""

    selection: EventSelectionResult
    selected: bool
    num_selected_tracks: int = 0
    num_iu_tracks: int = 0
    num_iu_filtered_tracks: int = 0
    emission: Optional[EmissionSummary] = None


@dataclass
class TaskSummary:
    """Counters of one task run."""

    num_collisions: int = 0
    num_selected_collisions: int = 0
    num_selected_tracks: int = 0
    num_iu_tracks: int = 0
    num_iu_filtered_tracks: int = 0
    num_emitted_collisions: int = 0
    table_sizes: dict[str, int] = field(default_factory=dict)
    skim_rejections: Counter = field(default_factory=Counter)

    def to_dict(self) -> dict:
        return {
            "num_collisions": self.num_collisions,
            "num_selected_collisions": self.num_selected_collisions,
            "num_selected_tracks": self.num_selected_tracks,
            "num_iu_tracks": self.num_iu_tracks,
            "num_iu_filtered_tracks": self.num_iu_filtered_tracks,
            "num_emitted_collisions": self.num_emitted_collisions,
            "table_sizes": dict(self.table_sizes),
            "skim_rejections": dict(self.skim_rejections),
        }


class EventTrackQATask:
    """Collision-by-collision driver of the event and track QA."""

    def __init__(
        self,
        config: QAConfig,
        params: Optional[SelectionParameters] = None,
        tables: Optional[DerivedTables] = None,
        registry: Optional[HistogramRegistry] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Args:
            config: Task configuration
            params: Event selection parameters, built from ``config`` if omitted
            tables: Destination of the derived records
            registry: Destination of the QA histograms
            rng: Random source of the skim sampling
        """
        self.logger = get_logger(__name__)
        self.config = config
        self.params = params if params is not None else config.build_selection_parameters()
        self.tables = tables if tables is not None else DerivedTables()
        self.registry = registry if registry is not None else HistogramRegistry()
        self.rng = rng
        self.run_type = config.run_type

        self.histograms: Optional[EventTrackHistograms] = None
        self.emitter: Optional[DerivedRecordEmitter] = None
        self.summary = TaskSummary()
        self._initialized = False

    @property
    def qa_enabled(self) -> bool:
        return self.config.process_data or self.config.process_mc

    @property
    def iu_enabled(self) -> bool:
        return self.config.process_data_iu or self.config.process_data_iu_filtered

    def init(self) -> None:
        """Validate the configuration and set up the enabled outputs."""
        try:
            self.config.validate()
        except ValueError as e:
            self.logger.error(f"Invalid QA configuration: {e}")
            raise

        if not self.qa_enabled:
            self.logger.info("No enabled QA, all histograms are disabled")
        if self.qa_enabled or self.iu_enabled:
            self.histograms = EventTrackHistograms(
                self.registry,
                is_mc=self.config.process_mc,
                with_reco=self.qa_enabled,
                with_iu=self.config.process_data_iu,
                with_iu_filtered=self.config.process_data_iu_filtered,
            )

        if self.config.process_tables:
            self.emitter = DerivedRecordEmitter(self.config, self.tables, rng=self.rng)

        self.logger.info(
            f"Initialized event/track QA for {self.run_type.value} runs with "
            f"decision on the {self.run_type.policy.value} mask"
        )
        self._initialized = True

    def is_selected_collision(self, selection: EventSelectionResult) -> bool:
        if not self.config.select_good_events:
            return True
        return selection.selected(self.run_type)

    def _process_reco(self, event: CollisionEvent, selected: bool) -> int:
        self.registry.fill("Events/recoEff", 1)
        if not selected:
            return 0
        self.registry.fill("Events/recoEff", 2)

        track_selection = self.config.track_selection
        prefiltered = [
            track for track in event.tracks if passes_track_prefilter(track, track_selection)
        ]
        selected_tracks = [
            track
            for track in prefiltered
            if is_selected_track(track, track_selection, self.config.process_mc)
        ]
        self.histograms.fill_reco(
            event.collision, event.tracks, prefiltered, selected_tracks
        )
        return len(selected_tracks)

    def _process_iu(self, event: CollisionEvent) -> int:
        n_filled = 0
        for track in event.tracks:
            if not is_selected_track(track, self.config.track_selection, is_mc=False):
                continue
            if self.histograms.fill_iu_comparison(track):
                n_filled += 1
        return n_filled

    def _process_iu_filtered(self, event: CollisionEvent) -> int:
        track_selection = self.config.track_selection
        n_filled = 0
        for track in event.tracks:
            if track.iu is None or not passes_iu_prefilter(track.iu, track_selection):
                continue
            if not is_selected_track(track, track_selection, is_mc=False):
                continue
            if self.histograms.fill_iu_filtered(track):
                n_filled += 1
        return n_filled

    def process(self, event: CollisionEvent) -> ProcessResult:
        """
        Run every enabled process switch on one collision.

        Args:
            event: Collision with its tracks and generated particles

        Returns:
            ProcessResult of the collision
        """
        if not self._initialized:
            self.init()

        selection = evaluate_collision(event.collision, self.params)
        selected = self.is_selected_collision(selection)
        result = ProcessResult(selection=selection, selected=selected)

        if self.qa_enabled:
            result.num_selected_tracks = self._process_reco(event, selected)

        if self.config.process_data_iu and selected:
            result.num_iu_tracks = self._process_iu(event)

        if self.config.process_data_iu_filtered and selected:
            result.num_iu_filtered_tracks = self._process_iu_filtered(event)

        if self.emitter is not None:
            truth_particles = event.mc_particles if self.config.process_table_mc else None
            result.emission = self.emitter.emit(
                event.collision, event.tracks, truth_particles, selection
            )

        self.summary.num_collisions += 1
        self.summary.num_selected_collisions += int(selected)
        self.summary.num_selected_tracks += result.num_selected_tracks
        self.summary.num_iu_tracks += result.num_iu_tracks
        self.summary.num_iu_filtered_tracks += result.num_iu_filtered_tracks
        if result.emission is not None:
            if result.emission.accepted:
                self.summary.num_emitted_collisions += 1
            else:
                self.summary.skim_rejections[result.emission.reason] += 1

        if not selected:
            self.logger.debug(
                f"Collision {event.collision.global_index} rejected, failed flags: "
                f"{[flag.name for flag in selection.failed_flags(self.run_type.policy)]}"
            )
        return result

    def run(
        self,
        events: Iterable[CollisionEvent],
        total: Optional[int] = None,
        show_progress: bool = True,
    ) -> TaskSummary:
        """
        Process a stream of collisions.

        Args:
            events: Collisions in processing order
            total: Number of collisions, for the progress bar
            show_progress: Whether to show a progress bar

        Returns:
            TaskSummary accumulated over all processed collisions
        """
        if not self._initialized:
            self.init()

        self.logger.progress("Processing collisions")

        is_interactive = hasattr(sys.stdout, "isatty") and sys.stdout.isatty()
        with tqdm(
            events,
            desc="Collisions",
            total=total,
            unit="coll",
            disable=not show_progress,
            mininterval=0.1 if is_interactive else 30,
        ) as pbar:
            for event in pbar:
                self.process(event)

        self.summary.table_sizes = self.tables.sizes()
        self.logger.progress(
            f"Processed {self.summary.num_collisions} collisions, "
            f"{self.summary.num_selected_collisions} selected, "
            f"{self.summary.num_emitted_collisions} written to the derived tables"
        )
        return self.summary

    def save(
        self,
        histogram_path: Optional[Union[str, Path]] = None,
        table_path: Optional[Union[str, Path]] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        """Write the histograms and, if the skim is enabled, the derived tables."""
        metadata = dict(metadata or {})
        metadata["config"] = self.config.to_dict()
        metadata["summary"] = self.summary.to_dict()

        if histogram_path is not None and len(self.registry):
            self.registry.save(histogram_path, metadata=metadata)
        if table_path is not None and self.emitter is not None:
            self.tables.save(table_path, metadata=metadata)
