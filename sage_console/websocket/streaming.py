"""
WebSocket streaming of the live query session.
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any, Optional

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder
from starlette.websockets import WebSocketState

from sage_console.config import settings
from sage_console.core.execution_controller import ExecutionSessionController
from sage_console.models.session import SessionState

logger = logging.getLogger(__name__)


def build_session_payload(
    controller: ExecutionSessionController,
    *,
    sent_session_id: Optional[str],
    sent_count: int,
) -> tuple[dict[str, Any], Optional[str], int]:
    """
    Build one snapshot message carrying only rows the client has not seen.

    Returns the payload plus the updated ``(session_id, row_count)`` cursor.
    A new session resets the cursor and the message is flagged ``reset``.
    """
    snapshot = controller.snapshot()
    reset = snapshot.session_id != sent_session_id
    offset = 0 if reset else sent_count
    rows = controller.results_since(offset)
    payload = {
        "kind": "snapshot",
        "reset": reset,
        "offset": offset,
        "session": snapshot.model_dump(mode="json"),
        "rows": jsonable_encoder(rows),
        "timestamp": datetime.now(UTC).isoformat(),
    }
    return payload, snapshot.session_id, offset + len(rows)


async def stream_session(websocket: WebSocket, controller: ExecutionSessionController) -> None:
    """
    Push a snapshot after every redraw signal, and a live stats tick while
    the session is running.
    """
    await websocket.send_json(
        {
            "status": "connected",
            "timestamp": datetime.now(UTC).isoformat(),
        }
    )

    redraw = asyncio.Event()
    controller.add_listener(redraw.set)
    sent_session_id: Optional[str] = None
    sent_count = 0
    tick = max(0.1, float(settings.WS_SNAPSHOT_INTERVAL_SECONDS))

    try:
        payload, sent_session_id, sent_count = build_session_payload(
            controller, sent_session_id=sent_session_id, sent_count=sent_count
        )
        await websocket.send_json(payload)

        while True:
            recv_task = asyncio.create_task(websocket.receive())
            redraw_task = asyncio.create_task(redraw.wait())
            timeout = tick if controller.state is SessionState.RUNNING else None
            done, pending = await asyncio.wait(
                {recv_task, redraw_task},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            for task in pending:
                task.cancel()

            if recv_task in done:
                msg = recv_task.result()
                if msg.get("type") == "websocket.disconnect":
                    break
                # Commands go through the HTTP API; inbound messages are ignored.
                continue

            if websocket.client_state != WebSocketState.CONNECTED:
                break

            redraw.clear()
            payload, sent_session_id, sent_count = build_session_payload(
                controller, sent_session_id=sent_session_id, sent_count=sent_count
            )
            await websocket.send_json(payload)
    finally:
        controller.remove_listener(redraw.set)
