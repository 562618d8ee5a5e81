"""
Session error taxonomy.
"""

from __future__ import annotations


class SessionError(Exception):
    """Base class for query session errors."""


class QueryValidationError(SessionError, ValueError):
    """Raised by start() when the query or endpoint is missing."""


class InvalidTransitionError(SessionError):
    """Raised when a command is not valid from the current session state."""

    def __init__(self, command: str, state: str) -> None:
        super().__init__(f"Cannot {command} a session that is {state}")
        self.command = command
        self.state = state


class StreamProtocolError(SessionError):
    """Raised when a result page cannot be decoded."""


class ItemErrorLimitExceeded(SessionError):
    """Raised when too many result items failed conversion."""
