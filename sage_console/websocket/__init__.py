"""
WebSocket package for live session streaming.
"""

from .streaming import build_session_payload, stream_session

__all__ = ["build_session_payload", "stream_session"]
