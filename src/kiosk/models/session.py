from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from kiosk.db.models import BrowserSessionModel, CookieModel, SessionStatus

SameSite = Literal["Strict", "Lax", "None"]


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything stored is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class BrowserSession:
    session_id: str
    user_id: str
    url: str = ""
    status: SessionStatus = SessionStatus.STOPPED
    user_agent: str | None = None
    viewport_width: int = 1920
    viewport_height: int = 1080
    session_data: dict[str, Any] | None = None
    last_activity_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, model: BrowserSessionModel) -> "BrowserSession":
        """Create a BrowserSession from a database model."""
        return cls(
            session_id=model.session_id,
            user_id=model.user_id,
            url=model.url or "",
            status=SessionStatus(model.status.value),
            user_agent=model.user_agent,
            viewport_width=model.viewport_width,
            viewport_height=model.viewport_height,
            session_data=model.session_data,
            last_activity_at=_as_utc(model.last_activity_at),
            created_at=_as_utc(model.created_at),
            updated_at=_as_utc(model.updated_at),
        )


@dataclass
class Cookie:
    """A cookie as stored for a session, independent of engine or database."""

    name: str
    value: str
    domain: str | None = None
    path: str | None = None
    expires: datetime | None = None
    http_only: bool = False
    secure: bool = False
    same_site: SameSite | None = None
    session_id: str | None = None
    created_at: datetime | None = field(default=None, compare=False)

    @classmethod
    def from_model(cls, model: CookieModel) -> "Cookie":
        return cls(
            name=model.name,
            value=model.value,
            domain=model.domain,
            path=model.path,
            expires=_as_utc(model.expires),
            http_only=model.http_only,
            secure=model.secure,
            same_site=model.same_site,  # type: ignore[arg-type]
            session_id=model.session_id,
            created_at=_as_utc(model.created_at),
        )

    @classmethod
    def from_engine(cls, raw: dict[str, Any], session_id: str | None = None) -> "Cookie":
        """Build from a cookie dict as returned by ``BrowserContext.cookies()``.

        Session cookies are reported with ``expires == -1``.
        """
        expires = raw.get("expires")
        return cls(
            name=raw["name"],
            value=raw["value"],
            domain=raw.get("domain") or None,
            path=raw.get("path") or None,
            expires=(
                datetime.fromtimestamp(expires, tz=timezone.utc)
                if expires is not None and expires > 0
                else None
            ),
            http_only=bool(raw.get("httpOnly", False)),
            secure=bool(raw.get("secure", False)),
            same_site=raw.get("sameSite") or None,
            session_id=session_id,
        )

    def to_engine(self) -> dict[str, Any]:
        """Render in the shape ``BrowserContext.add_cookies()`` accepts."""
        cookie: dict[str, Any] = {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path or "/",
            "httpOnly": self.http_only,
            "secure": self.secure,
        }
        if self.expires is not None:
            cookie["expires"] = self.expires.timestamp()
        if self.same_site is not None:
            cookie["sameSite"] = self.same_site
        return cookie

    def to_row(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path,
            "expires": self.expires,
            "http_only": self.http_only,
            "secure": self.secure,
            "same_site": self.same_site,
        }
