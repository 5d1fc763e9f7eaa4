"""Configuration document parsing with aggregated diagnostics."""

from .diagnostics import Diagnostic, DiagnosticCollector, LexicalPosition, Severity, log_diagnostic
from .parser import (
    ConfigurationParser,
    ParseResult,
    parse_configuration,
    parse_configuration_file,
)

__all__ = [
    "Diagnostic",
    "DiagnosticCollector",
    "LexicalPosition",
    "Severity",
    "log_diagnostic",
    "ConfigurationParser",
    "ParseResult",
    "parse_configuration",
    "parse_configuration_file",
]
