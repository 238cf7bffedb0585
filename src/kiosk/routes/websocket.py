"""WebSocket endpoint for live session viewers."""

from typing import Annotated

from fastapi import APIRouter, Query, WebSocket

from kiosk.dependencies import (
    DispatcherWsDep,
    LifecycleWsDep,
    RelayWsDep,
    SettingsWsDep,
    StoreWsDep,
)
from kiosk.viewer import resolve_user_id, serve_viewer

router = APIRouter(tags=["websocket"])


@router.websocket("/ws")
async def viewer_endpoint(
    websocket: WebSocket,
    lifecycle: LifecycleWsDep,
    store: StoreWsDep,
    relay: RelayWsDep,
    dispatcher: DispatcherWsDep,
    settings: SettingsWsDep,
    session_id: Annotated[str | None, Query(alias="sessionId")] = None,
) -> None:
    """Stream a session's screencast and accept its input events."""
    await websocket.accept()
    await serve_viewer(
        websocket,
        session_id,
        resolve_user_id(websocket, settings.user_header),
        store,
        lifecycle,
        relay,
        dispatcher,
    )
