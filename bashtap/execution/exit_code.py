"""Process exit code computation.

Derives the runner's exit code from the final summary counts::

    +----------------------------------+-----------+
    | condition (first match wins)     | exit code |
    +----------------------------------+-----------+
    | fatal scheduler error            | 3         |
    | any failed test or file error    | 1         |
    | no tests discovered              | 2         |
    | otherwise                        | 0         |
    +----------------------------------+-----------+

Exit code 2 is shared with argparse usage errors.
"""

from __future__ import annotations

from bashtap.model import Summary

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NO_TESTS = 2
EXIT_USAGE = 2
EXIT_FATAL = 3


def compute_exit_code(summary: Summary, fatal: bool = False) -> int:
    """Compute the exit code for a finished run.

    Args:
        summary: Final counts across all files.
        fatal: Whether the scheduler aborted the run.

    Returns:
        One of ``EXIT_OK``, ``EXIT_FAILED``, ``EXIT_NO_TESTS`` or
        ``EXIT_FATAL``.
    """
    if fatal:
        return EXIT_FATAL
    if summary.failed or summary.errors:
        return EXIT_FAILED
    if summary.total == 0:
        return EXIT_NO_TESTS
    return EXIT_OK
