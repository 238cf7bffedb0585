"""Cookie repository for database operations."""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from kiosk.db.models import CookieModel


class CookieRepository:
    """Repository for the stored cookie snapshot of each session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_session(self, session_id: str) -> list[CookieModel]:
        """Get a session's stored cookies in insertion order."""
        result = await self.session.execute(
            select(CookieModel)
            .where(CookieModel.session_id == session_id)
            .order_by(CookieModel.created_at.asc(), CookieModel.cookie_id.asc())
        )
        return list(result.scalars().all())

    async def clear(self, session_id: str) -> int:
        """Delete every stored cookie for a session.

        Returns:
            Number of rows removed
        """
        result = await self.session.execute(
            delete(CookieModel).where(CookieModel.session_id == session_id)
        )
        return result.rowcount or 0

    async def replace(
        self, session_id: str, cookies: list[dict[str, Any]]
    ) -> list[CookieModel]:
        """Replace a session's snapshot with *cookies*.

        Runs as delete-then-insert inside the caller's transaction, so the
        stored set is either the old snapshot or the new one, never a mix.

        Args:
            session_id: Owning session
            cookies: Dicts with name, value, domain, path, expires,
                http_only, secure and same_site keys

        Returns:
            The inserted CookieModel rows
        """
        await self.clear(session_id)

        models = []
        for cookie in cookies:
            expires: datetime | None = cookie.get("expires")
            models.append(
                CookieModel(
                    session_id=session_id,
                    name=cookie["name"],
                    value=cookie["value"],
                    domain=cookie.get("domain"),
                    path=cookie.get("path"),
                    expires=expires,
                    http_only=bool(cookie.get("http_only", False)),
                    secure=bool(cookie.get("secure", False)),
                    same_site=cookie.get("same_site"),
                )
            )
        self.session.add_all(models)
        await self.session.flush()
        return models
