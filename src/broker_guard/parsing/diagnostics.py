"""Parse diagnostics.

Diagnostics are pushed to a caller-supplied sink as soon as they are
discovered and accumulated in order for later inspection. ``WARNING`` never
fails a parse; ``ERROR`` and ``FATAL`` do, but only once the whole document
has been checked.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Severity(str, enum.Enum):
    """Diagnostic severity."""

    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


# Diagnostic codes
WARN_XML = "warn-xml"
WARN_XML_NAMESPACE = "warn-xml-namespace"
WARN_UNDECLARED_ROLE = "warn-undeclared-role"
ERROR_XML_VALIDATION = "error-xml-validation"
ERROR_XML_MALFORMED = "error-xml-malformed"
ERROR_DUPLICATE_ADDRESS = "error-duplicate-address"
ERROR_DUPLICATE_ROLE = "error-duplicate-role"
ERROR_DUPLICATE_USER = "error-duplicate-user"
ERROR_UNDECLARED_ROLE = "error-undeclared-role"


@dataclass(frozen=True, slots=True)
class LexicalPosition:
    """Line and column (both 1-based) within ``source``."""

    line: int
    column: int
    source: Optional[str] = None

    def __str__(self) -> str:
        if self.source:
            return f"{self.source}:{self.line}:{self.column}"
        return f"{self.line}:{self.column}"


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A single parse-time problem report."""

    severity: Severity
    code: str
    position: LexicalPosition
    message: str

    @property
    def is_failure(self) -> bool:
        return self.severity in (Severity.ERROR, Severity.FATAL)

    def __str__(self) -> str:
        return f"{self.position}: {self.severity.value}: {self.code}: {self.message}"


DiagnosticSink = Callable[[Diagnostic], None]


class DiagnosticCollector:
    """Streams diagnostics to a sink and remembers them."""

    def __init__(self, sink: Optional[DiagnosticSink] = None):
        self._sink = sink
        self._diagnostics: List[Diagnostic] = []
        self._failed = False

    @property
    def failed(self) -> bool:
        return self._failed

    @property
    def diagnostics(self) -> Tuple[Diagnostic, ...]:
        return tuple(self._diagnostics)

    def reset(self) -> None:
        self._diagnostics.clear()
        self._failed = False

    def publish(self, diagnostic: Diagnostic) -> None:
        if diagnostic.is_failure:
            self._failed = True
        self._diagnostics.append(diagnostic)
        if self._sink is not None:
            self._sink(diagnostic)

    def warning(self, code: str, position: LexicalPosition, message: str) -> None:
        self.publish(Diagnostic(Severity.WARNING, code, position, message))

    def error(self, code: str, position: LexicalPosition, message: str) -> None:
        self.publish(Diagnostic(Severity.ERROR, code, position, message))

    def fatal(self, code: str, position: LexicalPosition, message: str) -> None:
        self.publish(Diagnostic(Severity.FATAL, code, position, message))


def log_diagnostic(diagnostic: Diagnostic, log: Optional[logging.Logger] = None) -> None:
    """Log *diagnostic* as ``line:column: message`` at a matching level."""
    log = log or logger
    level = logging.WARNING if diagnostic.severity == Severity.WARNING else logging.ERROR
    log.log(
        level,
        "%d:%d: %s",
        diagnostic.position.line,
        diagnostic.position.column,
        diagnostic.message,
    )
