"""
API routes for query session control.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from sage_console.api.error_handling import http_exception
from sage_console.config import settings
from sage_console.core.execution_controller import (
    ExecutionSessionController,
    get_default_controller,
)
from sage_console.models.session import ResultPage, SessionSnapshot

router = APIRouter()


class SessionStartRequest(BaseModel):
    query: Optional[str] = None
    endpoint: Optional[str] = None


class SessionDefaults(BaseModel):
    endpoint: str
    query: str
    bucket_size: int
    page_size: int


@router.get("", response_model=SessionSnapshot)
async def get_session(
    controller: ExecutionSessionController = Depends(get_default_controller),
) -> SessionSnapshot:
    """
    Current session state, stats and last error.
    """
    return controller.snapshot()


@router.get("/defaults", response_model=SessionDefaults)
async def get_defaults(
    controller: ExecutionSessionController = Depends(get_default_controller),
) -> SessionDefaults:
    """
    Initial editor contents: default endpoint and query.
    """
    return SessionDefaults(
        endpoint=settings.DEFAULT_ENDPOINT,
        query=settings.DEFAULT_QUERY,
        bucket_size=controller.bucket_size,
        page_size=settings.RESULTS_PAGE_SIZE,
    )


@router.post("/start", response_model=SessionSnapshot, status_code=status.HTTP_202_ACCEPTED)
async def start_session(
    request: SessionStartRequest,
    controller: ExecutionSessionController = Depends(get_default_controller),
) -> SessionSnapshot:
    """
    Start executing a query. Results arrive asynchronously.
    """
    try:
        controller.start(request.query, request.endpoint)
        return controller.snapshot()
    except Exception as e:
        raise http_exception("start session", e)


@router.post("/pause", response_model=SessionSnapshot)
async def pause_session(
    controller: ExecutionSessionController = Depends(get_default_controller),
) -> SessionSnapshot:
    try:
        controller.pause()
        return controller.snapshot()
    except Exception as e:
        raise http_exception("pause session", e)


@router.post("/resume", response_model=SessionSnapshot)
async def resume_session(
    controller: ExecutionSessionController = Depends(get_default_controller),
) -> SessionSnapshot:
    try:
        controller.resume()
        return controller.snapshot()
    except Exception as e:
        raise http_exception("resume session", e)


@router.post("/toggle-pause", response_model=SessionSnapshot)
async def toggle_pause_session(
    controller: ExecutionSessionController = Depends(get_default_controller),
) -> SessionSnapshot:
    """
    Pause a running session or resume a paused one.
    """
    try:
        controller.toggle_pause()
        return controller.snapshot()
    except Exception as e:
        raise http_exception("toggle pause", e)


@router.post("/stop", response_model=SessionSnapshot)
async def stop_session(
    controller: ExecutionSessionController = Depends(get_default_controller),
) -> SessionSnapshot:
    """
    Stop the session. Stopping an idle or finished session is a no-op.
    """
    try:
        controller.stop()
        return controller.snapshot()
    except Exception as e:
        raise http_exception("stop session", e)


@router.get("/results", response_model=ResultPage)
async def get_results(
    page: int = Query(0, ge=0),
    page_size: Optional[int] = Query(None, ge=1, le=1000),
    controller: ExecutionSessionController = Depends(get_default_controller),
) -> ResultPage:
    """
    One page of the visible results.
    """
    return controller.page(page, page_size or settings.RESULTS_PAGE_SIZE)
