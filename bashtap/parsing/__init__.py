"""Test file parsing."""

from bashtap.parsing.spec_parser import load_files, parse_file, parse_text

__all__ = ["load_files", "parse_file", "parse_text"]
