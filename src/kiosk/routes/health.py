"""Health endpoint for load balancers and the outer API layer."""

from typing import Any

from fastapi import APIRouter

from kiosk.dependencies import LifecycleDep

router = APIRouter(tags=["health"])


@router.get("/api/health")
async def health(lifecycle: LifecycleDep) -> dict[str, Any]:
    """Report liveness and how many browser engines are running."""
    return {"status": "ok", "active_sessions": lifecycle.active_count()}
