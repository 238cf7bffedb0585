"""Repository classes for database operations."""

from kiosk.db.repositories.cookies import CookieRepository
from kiosk.db.repositories.sessions import BrowserSessionRepository

__all__ = [
    "BrowserSessionRepository",
    "CookieRepository",
]
