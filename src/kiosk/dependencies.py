"""FastAPI dependency injection providers for services."""

from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, Request, WebSocket

if TYPE_CHECKING:
    from kiosk.config import Settings
    from kiosk.services import (
        InputDispatcher,
        LifecycleController,
        ScreencastRelay,
        SessionStore,
    )


def get_lifecycle(request: Request) -> "LifecycleController":
    """Get the lifecycle controller from app state."""
    return request.app.state.lifecycle


# WebSocket-specific dependencies (WebSocket routes don't have Request)
def get_lifecycle_ws(websocket: WebSocket) -> "LifecycleController":
    return websocket.app.state.lifecycle


def get_store_ws(websocket: WebSocket) -> "SessionStore":
    return websocket.app.state.store


def get_relay_ws(websocket: WebSocket) -> "ScreencastRelay":
    return websocket.app.state.relay


def get_dispatcher_ws(websocket: WebSocket) -> "InputDispatcher":
    return websocket.app.state.dispatcher


def get_settings_ws(websocket: WebSocket) -> "Settings":
    return websocket.app.state.settings


LifecycleDep = Annotated["LifecycleController", Depends(get_lifecycle)]

# WebSocket-specific dependencies
LifecycleWsDep = Annotated["LifecycleController", Depends(get_lifecycle_ws)]
StoreWsDep = Annotated["SessionStore", Depends(get_store_ws)]
RelayWsDep = Annotated["ScreencastRelay", Depends(get_relay_ws)]
DispatcherWsDep = Annotated["InputDispatcher", Depends(get_dispatcher_ws)]
SettingsWsDep = Annotated["Settings", Depends(get_settings_ws)]
