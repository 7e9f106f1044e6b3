"""Discover test files from command-line paths.

File arguments are taken as given.  Directory arguments expand to the
``*.bats`` files directly inside them, or anywhere below them when
``recursive`` is set.  Each directory's files are sorted; argument order is
kept.
"""

from __future__ import annotations

from pathlib import Path

TEST_FILE_SUFFIX = ".bats"


def discover_test_files(paths: list[Path], recursive: bool = False) -> list[Path]:
    """Expand ``paths`` into an ordered list of test files.

    Args:
        paths: Files and/or directories.
        recursive: Descend into subdirectories of directory arguments.

    Returns:
        Test file paths without duplicates, in argument order.

    Raises:
        FileNotFoundError: If a path does not exist.
    """
    found: list[Path] = []
    seen: set[Path] = set()

    def add(path: Path) -> None:
        key = path.resolve()
        if key not in seen:
            seen.add(key)
            found.append(path)

    for path in paths:
        if path.is_dir():
            pattern = f"**/*{TEST_FILE_SUFFIX}" if recursive else f"*{TEST_FILE_SUFFIX}"
            for candidate in sorted(path.glob(pattern)):
                if candidate.is_file():
                    add(candidate)
        elif path.exists():
            add(path)
        else:
            raise FileNotFoundError(f"{path} does not exist")
    return found
