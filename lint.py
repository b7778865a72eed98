#!/usr/bin/env python3
"""
Lint and format the project with ruff, isort and black.

By default issues are fixed in place. Pass --check to report them without
modifying any file (used in CI).
"""

import subprocess
import sys
from pathlib import Path

TARGETS = ["call_analytics", "tests", "main.py", "lint.py"]


def run_tool(command: list[str], description: str) -> bool:
    """
    Run one tool from the project root.

    Returns:
        True if the tool exited with status 0
    """
    print(f"\n{'=' * 80}")
    print(f"Running: {description}")
    print(f"Command: {' '.join(command)}")
    print(f"{'=' * 80}\n")

    result = subprocess.run(command, cwd=Path(__file__).parent)
    passed = result.returncode == 0
    print(f"\n{'✅' if passed else '❌'} {description} {'passed' if passed else 'failed'}\n")
    return passed


def build_steps(check_only: bool) -> list[tuple[list[str], str]]:
    if check_only:
        return [
            (["ruff", "check", *TARGETS], "ruff lint"),
            (["isort", "--check-only", *TARGETS], "isort check"),
            (["black", "--check", *TARGETS], "black check"),
        ]
    return [
        (["ruff", "check", "--fix", *TARGETS], "ruff auto-fix"),
        (["isort", *TARGETS], "isort"),
        (["black", *TARGETS], "black"),
    ]


def main() -> int:
    check_only = "--check" in sys.argv[1:]
    steps = build_steps(check_only)

    results = [run_tool(command, description) for command, description in steps]

    print(f"\n{'=' * 80}")
    print("SUMMARY")
    print(f"{'=' * 80}\n")
    for (_, description), passed in zip(steps, results):
        print(f"{'✅ PASSED' if passed else '❌ FAILED'}: {description}")

    if all(results):
        return 0

    if check_only:
        print("\n⚠️  Some checks failed. Run 'python lint.py' without --check to auto-fix.\n")
    return 1


if __name__ == "__main__":
    sys.exit(main())
