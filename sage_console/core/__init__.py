"""
Core Package

Query session control: transport instrumentation, SaGe client adapter,
stats recording, result aggregation and the session state machine.

Usage:
    from sage_console.core import ExecutionSessionController
"""

from .errors import (
    InvalidTransitionError,
    ItemErrorLimitExceeded,
    QueryValidationError,
    SessionError,
    StreamProtocolError,
)
from .execution_controller import ExecutionSessionController, Session
from .query_client import SageQueryClient, SageResultStream
from .result_aggregator import ResultAggregator
from .stats_recorder import StatsRecorder
from .transport_instrumentation import InstrumentedTransport

__all__ = [
    "ExecutionSessionController",
    "InstrumentedTransport",
    "InvalidTransitionError",
    "ItemErrorLimitExceeded",
    "QueryValidationError",
    "ResultAggregator",
    "SageQueryClient",
    "SageResultStream",
    "Session",
    "SessionError",
    "StatsRecorder",
    "StreamProtocolError",
]
