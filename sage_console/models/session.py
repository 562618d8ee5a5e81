"""
Session Models

Defines Pydantic read models exposed by the session controller to the
presentation layer.
"""

from enum import Enum
from typing import Optional, Any, List
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SessionState(str, Enum):
    """Query session lifecycle state."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {SessionState.STOPPED, SessionState.COMPLETED, SessionState.FAILED}
)


class StatsSnapshot(BaseModel):
    """Live execution statistics for one session."""

    model_config = ConfigDict(frozen=True)

    elapsed_seconds: float = Field(0.0, description="Wall-clock time since start (s)")
    call_count: int = Field(0, description="Completed HTTP calls")
    avg_server_latency_ms: float = Field(
        0.0, description="Mean round-trip time of completed HTTP calls (ms)"
    )


class ErrorInfo(BaseModel):
    """Information about an error that occurred."""

    timestamp: datetime = Field(..., description="When the error occurred")
    error_type: str = Field(..., description="Type of error")
    error_message: str = Field(..., description="Error message")


class SessionSnapshot(BaseModel):
    """
    Read model of the current session.

    Results are not embedded; they are read through the paged results view
    or streamed incrementally over the WebSocket.
    """

    session_id: Optional[str] = Field(None, description="Session identifier")
    state: SessionState = Field(SessionState.IDLE, description="Session state")
    query: Optional[str] = Field(None, description="Query bound to the session")
    endpoint: Optional[str] = Field(None, description="Target SaGe endpoint")
    started_at: Optional[datetime] = Field(None, description="Execution start time")
    stats: StatsSnapshot = Field(default_factory=StatsSnapshot)
    result_count: int = Field(0, description="Flushed (visible) results")
    buffered_count: int = Field(0, description="Results awaiting flush")
    item_errors: int = Field(0, description="Result items that failed conversion")
    last_error: Optional[ErrorInfo] = Field(None, description="Terminal error")


class ResultPage(BaseModel):
    """One page of the visible result set."""

    page: int = Field(..., ge=0, description="Zero-based page number")
    page_size: int = Field(..., ge=1, description="Rows per page")
    total: int = Field(..., ge=0, description="Total visible results")
    items: List[Any] = Field(default_factory=list)
