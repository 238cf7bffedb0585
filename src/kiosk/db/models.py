"""SQLAlchemy ORM models for kiosk."""

import enum
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class SessionStatus(str, enum.Enum):
    """Browser session status enum."""

    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"
    ERROR = "error"


class BrowserSessionModel(Base):
    """A user's persistent browser session definition."""

    __tablename__ = "browser_sessions"

    session_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[SessionStatus] = mapped_column(
        Enum(SessionStatus, name="session_status", create_constraint=True),
        nullable=False,
        default=SessionStatus.STOPPED,
    )
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    viewport_width: Mapped[int] = mapped_column(Integer, nullable=False, default=1920)
    viewport_height: Mapped[int] = mapped_column(Integer, nullable=False, default=1080)
    session_data: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)

    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    cookies: Mapped[list["CookieModel"]] = relationship(
        "CookieModel",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class CookieModel(Base):
    """One cookie from the last harvested snapshot of a session's cookie jar."""

    __tablename__ = "session_cookies"

    cookie_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    session_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("browser_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    domain: Mapped[str | None] = mapped_column(Text, nullable=True)
    path: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    http_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    secure: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    same_site: Mapped[str | None] = mapped_column(String(10), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationship
    session: Mapped["BrowserSessionModel"] = relationship(
        "BrowserSessionModel", back_populates="cookies"
    )

    __table_args__ = ({"sqlite_autoincrement": True},)
