"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from focusgarden.config import get_settings
from focusgarden.database import get_session
from focusgarden.garden.catalog import SpeciesCatalog, get_catalog
from focusgarden.redis_client import redis_status

router = APIRouter()

# Redis only carries best-effort traffic, so running without it is still ready
_READY_VALUES = frozenset({"ok", "disabled"})


async def _database_status(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except Exception as exc:
        return f"error: {exc}"
    return "ok"


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe — returns 200 if the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
    catalog: SpeciesCatalog = Depends(get_catalog),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe — garden store, Redis and the species catalog."""
    checks = {
        "database": await _database_status(db),
        "redis": await redis_status(),
        "catalog": "ok" if len(catalog) else "error: empty species catalog",
    }
    ready = all(v in _READY_VALUES for v in checks.values())
    return {"status": "ready" if ready else "degraded", "checks": checks, "species": len(catalog)}


@router.get("/version")
async def version() -> dict[str, str]:
    """Return API version, environment and garden timezone."""
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
        "garden_timezone": settings.garden_timezone,
    }
