"""System health endpoint: database connectivity and uptime."""

import time

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from clinihub.api.deps import Session

router = APIRouter(prefix="/system", tags=["system"])

_start_time = time.time()


class ServiceHealth(BaseModel):
    status: str  # "ok" or "error"
    detail: str | None = None
    latency_ms: int | None = None


class HealthResponse(BaseModel):
    status: str
    uptime_seconds: int
    database: ServiceHealth


@router.get("/health", response_model=HealthResponse)
async def system_health(session: Session) -> HealthResponse:
    db = await _check_database(session)
    return HealthResponse(
        status="ok" if db.status == "ok" else "degraded",
        uptime_seconds=int(time.time() - _start_time),
        database=db,
    )


async def _check_database(session) -> ServiceHealth:
    t0 = time.monotonic()
    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:
        return ServiceHealth(status="error", detail=str(exc)[:200])
    return ServiceHealth(status="ok", latency_ms=int((time.monotonic() - t0) * 1000))
