from .locks import KeyedLock
from .registry import EngineHandle, SessionRegistry
from .store import DatabaseSessionStore, MemorySessionStore, SessionStore
from .cookie_sync import CookieSynchronizer
from .screencast import ScreencastRelay, ViewerConnection
from .input_dispatcher import InputDispatcher
from .lifecycle import LifecycleController

__all__ = [
    "KeyedLock",
    "EngineHandle",
    "SessionRegistry",
    "DatabaseSessionStore",
    "MemorySessionStore",
    "SessionStore",
    "CookieSynchronizer",
    "ScreencastRelay",
    "ViewerConnection",
    "InputDispatcher",
    "LifecycleController",
]
