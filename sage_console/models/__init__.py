"""
Data models for the SaGe query console.
"""

from sage_console.models.session import (
    TERMINAL_STATES,
    ErrorInfo,
    ResultPage,
    SessionSnapshot,
    SessionState,
    StatsSnapshot,
)

__all__ = [
    "TERMINAL_STATES",
    "ErrorInfo",
    "ResultPage",
    "SessionSnapshot",
    "SessionState",
    "StatsSnapshot",
]
