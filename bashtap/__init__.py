"""bashtap: a TAP-producing test runner for shell test files."""

__version__ = "0.1.0"
