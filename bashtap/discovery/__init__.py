"""Test file discovery."""

from bashtap.discovery.files import TEST_FILE_SUFFIX, discover_test_files

__all__ = ["TEST_FILE_SUFFIX", "discover_test_files"]
