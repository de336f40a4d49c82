"""
Configuration loading for the event and track QA task.

A configuration file is YAML with a ``qa`` section mapping onto
:class:`QAConfig` (including a nested ``track_selection`` section) and an
optional ``output`` section. Keys missing from the file take their defaults,
unknown keys are ignored with a warning.
"""

from dataclasses import fields
from pathlib import Path
from typing import Any, Union

import yaml

from event_track_qa.config.logging_config import get_logger
from event_track_qa.config.qa_config import QAConfig
from event_track_qa.selection.track_filter import TrackSelectionConfig

DEFAULT_OUTPUT_SETTINGS = {
    "histograms": "qa_histograms.json",
    "tables": "derived_tables.h5",
    "plots_dir": None,
}


class QAConfigLoader:
    """Loads QA configuration files into typed config objects."""

    def __init__(self):
        self.logger = get_logger(__name__)

    def load_config(self, config_path: Union[str, Path]) -> dict[str, Any]:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            Dictionary with the raw configuration
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            config = yaml.safe_load(f) or {}

        if not isinstance(config, dict):
            raise ValueError(f"Configuration file must hold a mapping: {config_path}")

        config["_source_config_file"] = str(config_path.absolute())
        return config

    def _known_keys(self, section: str, values: dict, cls) -> dict:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            self.logger.warning(f"Ignoring unknown keys in '{section}': {unknown}")
        return {key: value for key, value in values.items() if key in known}

    def create_config_objects(self, config_dict: dict[str, Any]) -> dict[str, Any]:
        """
        Create config objects from the loaded configuration.

        Args:
            config_dict: Dictionary from loaded YAML config

        Returns:
            Dictionary with ``qa_config``, ``selection_parameters``,
            ``output_settings`` and ``metadata``
        """
        qa_dict = dict(config_dict.get("qa") or {})
        track_dict = qa_dict.pop("track_selection", None) or {}

        track_selection = TrackSelectionConfig.from_dict(
            self._known_keys("qa.track_selection", track_dict, TrackSelectionConfig)
        )
        qa_config = QAConfig(
            track_selection=track_selection,
            **self._known_keys(
                "qa",
                qa_dict,
                QAConfig,
            ),
        )

        output_settings = dict(DEFAULT_OUTPUT_SETTINGS)
        output_settings.update(config_dict.get("output") or {})

        self.logger.info(
            f"Loaded QA configuration (run type {qa_config.run_type.value}, "
            f"tables {'on' if qa_config.process_tables else 'off'})"
        )

        return {
            "qa_config": qa_config,
            "selection_parameters": qa_config.build_selection_parameters(),
            "output_settings": output_settings,
            "metadata": {
                "name": config_dict.get("name", "unnamed_qa"),
                "description": config_dict.get("description", ""),
            },
            "_source_config_file": config_dict.get("_source_config_file"),
        }


def load_qa_config(config_path: Union[str, Path]) -> dict[str, Any]:
    """
    Convenience function to load a QA configuration.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing all config objects and settings
    """
    loader = QAConfigLoader()
    config_dict = loader.load_config(config_path)
    return loader.create_config_objects(config_dict)
