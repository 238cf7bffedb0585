"""Browser session repository for database operations."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from kiosk.db.models import BrowserSessionModel, SessionStatus


class BrowserSessionRepository:
    """Repository for browser session database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        user_id: str,
        url: str = "",
        status: SessionStatus = SessionStatus.STOPPED,
        user_agent: str | None = None,
        viewport_width: int = 1920,
        viewport_height: int = 1080,
        session_data: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> BrowserSessionModel:
        """Create a new browser session record.

        Args:
            user_id: Owning user
            url: Target URL opened when the session starts
            status: Initial status (normally stopped)
            user_agent: Optional user-agent override
            viewport_width: Viewport width in CSS pixels
            viewport_height: Viewport height in CSS pixels
            session_data: Free-form metadata kept alongside the session
            session_id: Optional specific session ID

        Returns:
            The created BrowserSessionModel
        """
        now = datetime.now(timezone.utc)
        model = BrowserSessionModel(
            user_id=user_id,
            url=url,
            status=status,
            user_agent=user_agent,
            viewport_width=viewport_width,
            viewport_height=viewport_height,
            session_data=session_data,
            last_activity_at=now,
            created_at=now,
            updated_at=now,
        )
        if session_id:
            model.session_id = session_id

        self.session.add(model)
        await self.session.flush()
        return model

    async def get(self, session_id: str) -> BrowserSessionModel | None:
        """Get a browser session by ID."""
        result = await self.session.execute(
            select(BrowserSessionModel).where(
                BrowserSessionModel.session_id == session_id
            )
        )
        return result.scalar_one_or_none()

    async def list_by_user(self, user_id: str) -> list[BrowserSessionModel]:
        """Get a user's sessions, oldest first."""
        result = await self.session.execute(
            select(BrowserSessionModel)
            .where(BrowserSessionModel.user_id == user_id)
            .order_by(BrowserSessionModel.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_all(self) -> list[BrowserSessionModel]:
        """Get every session, oldest first."""
        result = await self.session.execute(
            select(BrowserSessionModel).order_by(BrowserSessionModel.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_by_status(self, status: SessionStatus) -> list[BrowserSessionModel]:
        """Get every session (across all users) in *status*, oldest first."""
        result = await self.session.execute(
            select(BrowserSessionModel)
            .where(BrowserSessionModel.status == status)
            .order_by(BrowserSessionModel.created_at.asc())
        )
        return list(result.scalars().all())

    async def update(
        self,
        session_id: str,
        status: SessionStatus | None = None,
        url: str | None = None,
        user_agent: str | None = None,
        viewport_width: int | None = None,
        viewport_height: int | None = None,
        session_data: dict[str, Any] | None = None,
    ) -> BrowserSessionModel | None:
        """Update the given fields of a session.

        Moving a session to running also counts as activity.

        Returns:
            Updated BrowserSessionModel if found, None otherwise
        """
        model = await self.get(session_id)
        if model is None:
            return None

        now = datetime.now(timezone.utc)
        if status is not None:
            model.status = status
            if status == SessionStatus.RUNNING:
                model.last_activity_at = now
        if url is not None:
            model.url = url
        if user_agent is not None:
            model.user_agent = user_agent
        if viewport_width is not None:
            model.viewport_width = viewport_width
        if viewport_height is not None:
            model.viewport_height = viewport_height
        if session_data is not None:
            model.session_data = session_data
        model.updated_at = now
        await self.session.flush()
        return model

    async def delete(self, session_id: str) -> bool:
        """Delete a browser session record."""
        result = await self.session.execute(
            delete(BrowserSessionModel).where(
                BrowserSessionModel.session_id == session_id
            )
        )
        return (result.rowcount or 0) > 0
