"""
System Routes - Health

Public health check used by the hosting platform and the scheduler.
"""

import logging
from typing import Dict
from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel

from safety_audit import __version__
from safety_audit.settings import get_settings
from safety_audit.supabase_client import get_supabase

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/system", tags=["system"])


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    environment: str
    services: Dict[str, str]


@router.get("/health", response_model=HealthResponse)
def health_check():
    """
    Basic health check endpoint.
    Public - no auth required.
    """
    services = {}
    settings = get_settings()

    try:
        supabase = get_supabase()
        if supabase:
            supabase.table("findings").select("id").limit(1).execute()
            services["database"] = "healthy"
        else:
            services["database"] = "unavailable"
    except Exception as e:
        logger.warning(f"Health check database probe failed: {e}")
        services["database"] = f"error: {str(e)[:50]}"

    if settings.email_transport == "resend":
        services["email"] = "configured" if settings.resend_api_key else "unconfigured"
    else:
        services["email"] = f"function:{settings.email_function_name}"

    status = "healthy" if services["database"] == "healthy" else "degraded"

    return HealthResponse(
        status=status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        environment=settings.environment,
        services=services
    )
