#!/usr/bin/env python3
"""
Run the event and track QA on an HDF5 input file.

Writes the QA histograms (JSON), the derived tables (HDF5) when a table mode
is enabled, and optionally one summary plot per histogram group.
"""

import argparse
import logging
import sys
import traceback
from pathlib import Path

from event_track_qa.config.logging_config import setup_logging
from event_track_qa.pipeline import run_event_track_qa


def main():
    """Main entry point for the script."""
    parser = argparse.ArgumentParser(
        description="Run the event and track QA on an HDF5 input file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_event_track_qa.py --config configs/qa_run3.yaml --input AO2D.h5
  python scripts/run_event_track_qa.py --config configs/qa_run3.yaml --input AO2D.h5 --plots
  python scripts/run_event_track_qa.py --config configs/qa_run3.yaml --input AO2D.h5 --max-events 1000 --seed 42
        """,
    )
    parser.add_argument("--config", type=str, required=True, help="YAML configuration file")
    parser.add_argument("--input", type=str, required=True, help="HDF5 input file")
    parser.add_argument(
        "--output-dir",
        type=str,
        default="qa_output",
        help="Directory for histograms, tables and plots (default: qa_output)",
    )
    parser.add_argument(
        "--max-events",
        type=int,
        default=None,
        help="Maximum number of collisions to process (default: all)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed of the derived-table sampling (default: unseeded)",
    )
    parser.add_argument("--plots", action="store_true", help="Write summary plots")
    parser.add_argument("--log-file", type=str, default=None, help="Also log to this file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    setup_logging(
        level=logging.DEBUG if args.debug else logging.INFO, log_file=args.log_file
    )

    try:
        run_event_track_qa(
            config_path=Path(args.config),
            input_path=Path(args.input),
            output_dir=Path(args.output_dir),
            max_events=args.max_events,
            seed=args.seed,
            make_plots=args.plots,
        )
        sys.exit(0)

    except KeyboardInterrupt:
        print("\n\nProcessing interrupted by user")
        sys.exit(1)
    except Exception as e:
        print(f"\nFatal error: {type(e).__name__}: {str(e)}")
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
