#!/usr/bin/env python3
"""
Pytest wrapper for the event and track QA test suite.

Runs the tests with the full output written to _test_results/pytest.log and
only warnings, errors, failures and progress lines echoed to stdout.
"""

import subprocess
import sys
from datetime import datetime
from pathlib import Path

LOG_PATH = Path("_test_results") / "pytest.log"

ECHO_KEYWORDS = (
    "warning",
    "error",
    "failed",
    "exception",
    "traceback",
    "assertion",
    "progress",
    "passed",
)


def run_pytest_with_filtered_output(pytest_args: list[str]) -> int:
    """Run pytest and show only the interesting lines in stdout."""
    start_time = datetime.now()
    LOG_PATH.parent.mkdir(parents=True, exist_ok=True)

    print("=" * 60)
    print("Event/Track QA Tests")
    print("=" * 60)
    print(f"Starting time: {start_time.strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"Full logs saved to: {LOG_PATH}")
    print("=" * 60)
    print()

    cmd = [sys.executable, "-u", "-m", "pytest", "-v", "--tb=short", "--no-header"]
    cmd.extend(pytest_args or ["tests"])

    try:
        with open(LOG_PATH, "w") as log_file:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                universal_newlines=True,
                bufsize=1,
            )
            for line in process.stdout:
                log_file.write(line)
                if any(keyword in line.lower() for keyword in ECHO_KEYWORDS):
                    print(line.rstrip())
            return_code = process.wait()
    except KeyboardInterrupt:
        print("\nTest run interrupted by user")
        return 130

    duration = (datetime.now() - start_time).total_seconds()
    print()
    print("=" * 60)
    print(f"Duration: {duration:.1f}s")
    if return_code == 0:
        print("Tests completed successfully")
    else:
        print(f"Tests failed with exit code {return_code}, see {LOG_PATH} for details")
        if duration < 1:
            print("The run failed instantly, this is often an import error, is the package installed?")
    print("=" * 60)
    return return_code


if __name__ == "__main__":
    sys.exit(run_pytest_with_filtered_output(sys.argv[1:]))
