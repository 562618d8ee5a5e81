"""
Shared error mapping for API routes.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from sage_console.core.errors import InvalidTransitionError, QueryValidationError

logger = logging.getLogger(__name__)


def http_exception(action: str, error: Exception) -> HTTPException:
    """
    Convert an exception raised while performing ``action`` into an HTTPException.

    Validation errors map to 400, invalid state transitions to 409 and
    anything else to 500 (logged with its traceback).
    """
    if isinstance(error, HTTPException):
        return error
    if isinstance(error, QueryValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, InvalidTransitionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    logger.exception(f"Failed to {action}: {error}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}: {error}",
    )
