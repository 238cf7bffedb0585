"""WebSocket viewer: streams a session's frames out and its input back in."""

import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState
from pydantic import ValidationError

from kiosk.errors import TransportAuthFailure
from kiosk.models import BrowserSession, parse_viewer_message
from kiosk.services import (
    InputDispatcher,
    LifecycleController,
    ScreencastRelay,
    SessionStore,
)

logger = logging.getLogger(__name__)

# Close codes sent to viewers
CLOSE_MISSING_SESSION_ID = 1008
CLOSE_NOT_AUTHENTICATED = 4001
CLOSE_ACCESS_DENIED = 4003
CLOSE_START_FAILED = 4004
CLOSE_INTERNAL_ERROR = 1011


class WebSocketViewer:
    """ViewerConnection over a FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self._ws = websocket

    @property
    def is_open(self) -> bool:
        return (
            self._ws.client_state == WebSocketState.CONNECTED
            and self._ws.application_state == WebSocketState.CONNECTED
        )

    async def send_json(self, data: dict[str, Any]) -> None:
        await self._ws.send_json(data)


def resolve_user_id(websocket: WebSocket, header: str) -> str | None:
    """User id set by the fronting auth layer, from *header* or ``?userId=``."""
    return websocket.headers.get(header) or websocket.query_params.get("userId")


async def authorize_viewer(
    store: SessionStore, session_id: str, user_id: str
) -> BrowserSession:
    """Load the session and check that *user_id* owns it.

    Raises:
        TransportAuthFailure: the session does not exist or belongs to
            another user.  Both look the same to the viewer.
    """
    record = await store.get_session(session_id)
    if record is None or record.user_id != user_id:
        raise TransportAuthFailure(
            "Session not found or access denied", session_id=session_id
        )
    return record


async def serve_viewer(
    websocket: WebSocket,
    session_id: str | None,
    user_id: str | None,
    store: SessionStore,
    lifecycle: LifecycleController,
    relay: ScreencastRelay,
    dispatcher: InputDispatcher,
) -> None:
    """Run one viewer connection until it disconnects.

    Args:
        websocket: Accepted WebSocket from the viewer
        session_id: Session the viewer asked to watch
        user_id: Authenticated user id, if any
        store: Session store used for the ownership check
        lifecycle: Starts the session if it is not running yet
        relay: Screencast relay the viewer subscribes to
        dispatcher: Applies the viewer's input events
    """
    if not session_id:
        await websocket.close(code=CLOSE_MISSING_SESSION_ID, reason="Session ID required")
        return

    if not user_id:
        await websocket.close(code=CLOSE_NOT_AUTHENTICATED, reason="Not authenticated")
        return

    try:
        await authorize_viewer(store, session_id, user_id)
    except TransportAuthFailure as e:
        logger.info(f"Rejected viewer for session {session_id}: {e}")
        await websocket.close(code=CLOSE_ACCESS_DENIED, reason=str(e))
        return
    except Exception as e:
        logger.error(f"Failed to authorize viewer for session {session_id}: {e}")
        await websocket.close(code=CLOSE_INTERNAL_ERROR, reason="Internal error")
        return

    if not lifecycle.is_active(session_id):
        logger.info(f"Session {session_id} not active, starting it for viewer")
        try:
            await lifecycle.start(session_id)
        except Exception as e:
            logger.error(f"Failed to start session {session_id} for viewer: {e}")
            await websocket.close(code=CLOSE_START_FAILED, reason="Failed to start session")
            return

    viewer = WebSocketViewer(websocket)
    try:
        await relay.subscribe(session_id, viewer)
    except Exception as e:
        logger.error(f"Failed to start screencast for session {session_id}: {e}")
        await websocket.close(code=CLOSE_INTERNAL_ERROR, reason="Failed to start screencast")
        return

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = parse_viewer_message(raw)
            except ValidationError as e:
                logger.warning(f"Ignoring malformed viewer message for session {session_id}: {e}")
                continue

            try:
                await dispatcher.dispatch(session_id, message)
            except Exception as e:
                logger.error(f"Error dispatching {message.type} for session {session_id}: {e}")
    except WebSocketDisconnect:
        logger.debug(f"Viewer disconnected from session {session_id}")
    except Exception as e:
        logger.exception(f"Viewer error for session {session_id}: {e}")
        if viewer.is_open:
            await websocket.close(code=CLOSE_INTERNAL_ERROR, reason="Internal error")
    finally:
        await relay.unsubscribe(session_id, viewer)
