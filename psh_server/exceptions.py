"""
Custom exception classes with context for the psh relay.

All exceptions inherit from PshError and support attaching contextual
information for logging. Only batch-level errors (NoRecipientsError,
StorageUnavailableError) ever reach the HTTP layer; per-device errors are
folded into DispatchResult entries by the dispatcher.
"""

from __future__ import annotations


class PshError(Exception):
    """
    Base exception for the psh relay.

    Attributes:
        message: Human-readable error message
        context: Optional dictionary with additional context for logging/debugging
    """

    def __init__(self, message: str, context: dict[str, object] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ConfigurationError(PshError):
    """
    Configuration error.

    Raised when config.yaml cannot be parsed or required APNs credentials
    are missing at startup.

    Example:
        raise ConfigurationError(
            "Missing APNs credentials",
            context={"missing": ["apns.key_id"]}
        )
    """


class StorageUnavailableError(PshError):
    """
    The relational store could not be reached or the query failed.

    Fatal for a broadcast when raised during device enumeration.
    """


class NoRecipientsError(PshError):
    """No devices are registered; the broadcast is not attempted."""

    def __init__(self, message: str = "No devices registered", context: dict[str, object] | None = None):
        super().__init__(message, context)


class InvalidEnvironmentError(PshError):
    """
    A device's stored environment tag is neither sandbox nor production.

    Example:
        raise InvalidEnvironmentError(
            "invalid environment",
            context={"environment": "staging"}
        )
    """


class TransportError(PshError):
    """APNs rejected the notification or could not be reached."""


class HistoryWriteError(StorageUnavailableError):
    """Writing a push history record failed after a successful send."""
