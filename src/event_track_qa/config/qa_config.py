from dataclasses import dataclass, field
from typing import Optional

from event_track_qa.selection.parameters import RunType, SelectionParameters
from event_track_qa.selection.track_filter import TrackSelectionConfig


@dataclass
class QAConfig:
    """Configuration of the event and track QA task"""

    is_run3: bool = False
    select_good_events: bool = True
    select_max_vtx_z: float = 100.0
    target_number_of_events: int = 10_000_000
    fraction_of_sampled_events: float = 1.0
    track_selection: TrackSelectionConfig = field(default_factory=TrackSelectionConfig)

    # Process switches
    process_data: bool = False
    process_data_iu: bool = True
    process_data_iu_filtered: bool = True
    process_mc: bool = False
    process_table_data: bool = False
    process_table_mc: bool = False

    # Selection parameter overrides
    system: int = 0
    disable_out_of_bunch_pileup_cuts: bool = False
    on_vs_of_params: Optional[list[float]] = None  # [v0m_a, v0m_b, spd_a, spd_b]

    def __post_init__(self):
        if isinstance(self.track_selection, dict):
            self.track_selection = TrackSelectionConfig.from_dict(self.track_selection)

    @property
    def run_type(self) -> RunType:
        return RunType.from_is_run3(self.is_run3)

    @property
    def is_mc(self) -> bool:
        return self.process_mc or self.process_table_mc

    @property
    def process_tables(self) -> bool:
        return self.process_table_data or self.process_table_mc

    def validate(self) -> None:
        """Validate QA configuration parameters"""
        if self.process_table_data and self.process_table_mc:
            raise ValueError(
                "Cannot run process_table_data and process_table_mc at the same time, "
                "enable only one of the table modes"
            )
        if self.select_max_vtx_z < 0:
            raise ValueError("select_max_vtx_z must be non-negative")
        if self.target_number_of_events < 0:
            raise ValueError("target_number_of_events must be non-negative")
        if not 0.0 <= self.fraction_of_sampled_events <= 1.0:
            raise ValueError("fraction_of_sampled_events must be in [0, 1]")
        self._validate_on_vs_of_params()
        self.track_selection.validate()

    def _validate_on_vs_of_params(self) -> None:
        if self.on_vs_of_params is not None and len(self.on_vs_of_params) != 4:
            raise ValueError(
                "on_vs_of_params must hold [v0m_a, v0m_b, spd_a, spd_b]"
            )

    def build_selection_parameters(self) -> SelectionParameters:
        """Default selection parameters with this configuration's overrides applied."""
        self._validate_on_vs_of_params()
        params = SelectionParameters(system=self.system)
        if self.on_vs_of_params is not None:
            params = params.with_on_vs_of_params(*self.on_vs_of_params)
        if self.disable_out_of_bunch_pileup_cuts:
            params = params.disable_out_of_bunch_pileup_cuts()
        return params

    def to_dict(self) -> dict:
        """Convert QAConfig to dictionary for serialization"""
        return {
            "is_run3": self.is_run3,
            "select_good_events": self.select_good_events,
            "select_max_vtx_z": self.select_max_vtx_z,
            "target_number_of_events": self.target_number_of_events,
            "fraction_of_sampled_events": self.fraction_of_sampled_events,
            "track_selection": self.track_selection.to_dict(),
            "process_data": self.process_data,
            "process_data_iu": self.process_data_iu,
            "process_data_iu_filtered": self.process_data_iu_filtered,
            "process_mc": self.process_mc,
            "process_table_data": self.process_table_data,
            "process_table_mc": self.process_table_mc,
            "system": self.system,
            "disable_out_of_bunch_pileup_cuts": self.disable_out_of_bunch_pileup_cuts,
            "on_vs_of_params": self.on_vs_of_params,
        }

    @classmethod
    def from_dict(cls, config_dict: dict) -> "QAConfig":
        return cls(**config_dict)
