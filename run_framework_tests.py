#!/usr/bin/env python3
"""
Framework Test Runner

This script runs the unit tests for the resilience framework itself.
These tests are separate from the cluster scenarios under tests/, which need
a local ArangoDB build or a docker image.

Usage:
    python run_framework_tests.py [pytest_args...]

Examples:
    python run_framework_tests.py                    # Run all framework tests
    python run_framework_tests.py -v                 # Verbose output
    python run_framework_tests.py -k test_endpoints  # Run only endpoint tests
"""

import sys
import subprocess
from pathlib import Path


def main():
    """Run framework tests using pytest."""
    root_dir = Path(__file__).parent

    pytest_args = [
        sys.executable, "-m", "pytest",
        "-c", str(root_dir / "framework_tests" / "pytest.ini"),
        str(root_dir / "framework_tests" / "unit"),
    ]

    if len(sys.argv) > 1:
        pytest_args.extend(sys.argv[1:])

    print("Running framework tests...")
    print(f"Command: {' '.join(pytest_args)}")
    print("-" * 60)

    try:
        result = subprocess.run(pytest_args, cwd=root_dir, check=False)
        sys.exit(result.returncode)
    except KeyboardInterrupt:
        print("\nTest run interrupted by user")
        sys.exit(130)
    except OSError as e:
        print(f"Error running tests: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
