"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


def _get_credentials_check():
    """Lazy import to avoid startup failures."""
    from ...services.routing.optimizer_client import check_credentials

    return check_credentials


@router.get("/health/optimizer", status_code=status.HTTP_200_OK)
def health_optimizer() -> dict:
    """Check that the fleet routing service can be authenticated against."""
    from ...data.depot_repository import resolve_depot

    try:
        check_credentials = _get_credentials_check()
        return {
            "service": "fleet-routing",
            "healthy": check_credentials(),
            "project_configured": bool(settings.optimizer_project_id),
            "depot_configured": resolve_depot() is not None,
        }
    except Exception as e:
        return {"service": "fleet-routing", "healthy": False, "error": str(e)}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Check which delivery store is active and whether it answers queries."""
    if settings.store_backend != "supabase":
        return {"backend": settings.store_backend, "configured": True, "connected": True}

    from ...db.supabase import get_supabase_client

    supabase = get_supabase_client()
    if not supabase:
        return {
            "backend": "supabase",
            "configured": False,
            "message": "Supabase not configured. Set DELIVERY_SUPABASE_URL and DELIVERY_SUPABASE_KEY environment variables.",
        }

    try:
        supabase.table("delivery_batches").select("id").limit(1).execute()
        return {"backend": "supabase", "configured": True, "connected": True}
    except Exception as exc:
        return {
            "backend": "supabase",
            "configured": True,
            "connected": False,
            "error": str(exc),
            "message": f"Database connection error: {exc}",
        }
