"""Exception taxonomy shared across the assistant engine."""

from __future__ import annotations


class AssistantError(Exception):
    """Base class for every error raised by the assistant engine."""


class ValidationError(AssistantError, ValueError):
    """Raised when user input is rejected before any state changes."""


class RequestInFlightError(AssistantError, RuntimeError):
    """Raised when a submit arrives while another request is outstanding."""


class TransportError(AssistantError):
    """A network, timeout, or API failure reported by the chat transport.

    Attributes:
        message: Human-readable description shown to the user.
        error_type: Optional machine-readable type reported by the service.
    """

    def __init__(self, message: str, *, error_type: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type


class MissingCredentialsError(TransportError):
    """No API key could be resolved from any configured source."""

    DEFAULT_MESSAGE = "OPENAI_API_KEY not found. Set via environment, Settings Panel, or .env file."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.DEFAULT_MESSAGE, error_type="missing_credentials")


class ProtocolError(TransportError):
    """The service answered, but not in a shape the engine understands."""


class CorruptStateError(AssistantError):
    """Persisted state could not be decoded."""


class UnsupportedVersionError(CorruptStateError):
    """Persisted state declares a schema version this build cannot read."""

    def __init__(self, version: object) -> None:
        super().__init__(f"Unsupported history version: {version!r}")
        self.version = version


class MigrationError(AssistantError):
    """Migrating persisted state to the current schema failed."""


class ConfigError(AssistantError, ValueError):
    """Configuration values failed validation."""


__all__ = [
    "AssistantError",
    "ValidationError",
    "RequestInFlightError",
    "TransportError",
    "MissingCredentialsError",
    "ProtocolError",
    "CorruptStateError",
    "UnsupportedVersionError",
    "MigrationError",
    "ConfigError",
]
