"""Result aggregation and report formatters: TAP, pretty, JUnit, external."""

from bashtap.reporting.aggregator import Aggregator
from bashtap.reporting.artifacts import ReportFileFormatter
from bashtap.reporting.base import Formatter
from bashtap.reporting.external import ExternalFormatter
from bashtap.reporting.junit import JUnitFormatter, build_junit_tree, write_junit_report
from bashtap.reporting.pretty import PrettyFormatter
from bashtap.reporting.tap import TapFormatter, write_tap_report

__all__ = [
    "Aggregator",
    "ExternalFormatter",
    "Formatter",
    "JUnitFormatter",
    "PrettyFormatter",
    "ReportFileFormatter",
    "TapFormatter",
    "build_junit_tree",
    "write_junit_report",
    "write_tap_report",
]
