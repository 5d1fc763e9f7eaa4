"""Exception types for broker configuration and policy evaluation.

Parse-time problems are aggregated into ``ConfigurationParseError`` so the
caller sees every diagnostic at once. Authentication and authorization
never raise these to a remote caller: the decision engine turns them into
a deny.
"""

from typing import Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from .parsing.diagnostics import Diagnostic


class BrokerGuardError(Exception):
    """Base exception for all broker guard errors."""

    pass


class ConfigurationError(BrokerGuardError):
    """A configuration document could not be turned into a policy model."""

    pass


class ConfigurationParseError(ConfigurationError):
    """The document failed validation. Carries every diagnostic observed."""

    def __init__(self, message: str, diagnostics: "Sequence[Diagnostic]" = ()):
        self.diagnostics = tuple(diagnostics)
        super().__init__(message)


class ConfigurationTransformError(ConfigurationError):
    """A validated document could not be converted to the domain model."""

    pass


class PasswordError(BrokerGuardError):
    """Base exception for password hashing failures."""

    pass


class PasswordAlgorithmError(PasswordError, ConfigurationTransformError):
    """An algorithm identifier is unknown or carries malformed parameters."""

    def __init__(self, message: str, identifier: str = ""):
        self.identifier = identifier
        super().__init__(message)


class BrokerError(BrokerGuardError):
    """The broker implementation could not be loaded or started."""

    pass
