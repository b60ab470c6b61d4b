# backend/mentorlink/routes/health.py
"""
Health check endpoint for monitoring and load balancer probes.
"""

from datetime import datetime, timezone
import logging
from typing import Dict

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import __version__
from ..database import get_db
from ..services.messaging import get_gateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

SERVICE_NAME = "mentorlink-messaging"

CHECK_OK = "ok"
CHECK_ERROR = "error"
CHECK_DISABLED = "disabled"


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    timestamp: str
    checks: Dict[str, str]


def _check_database(db: Session) -> str:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"Health check database probe failed: {str(e)}")
        return CHECK_ERROR
    return CHECK_OK


@router.get("/health", response_model=HealthResponse)
async def health_check(response: Response, db: Session = Depends(get_db)) -> HealthResponse:
    """
    Health check endpoint.

    The database is required; presence and relay failures report
    ``degraded`` because messaging keeps working without them.
    """
    checks = {"database": _check_database(db), "presence": CHECK_DISABLED, "relay": CHECK_DISABLED}

    gateway = get_gateway()
    if gateway is not None:
        checks["presence"] = CHECK_OK if await gateway.presence.check() else CHECK_ERROR
        if gateway.relay is not None:
            checks["relay"] = CHECK_OK if gateway.relay.is_running else CHECK_ERROR

    if checks["database"] != CHECK_OK:
        overall = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif CHECK_ERROR in checks.values():
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        service=SERVICE_NAME,
        version=__version__,
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        checks=checks,
    )
