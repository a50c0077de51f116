"""Health check endpoints.

None of these call Odoo: an unreachable accounting system must not take the
donation API out of rotation, since donations are accepted regardless.
"""

from datetime import datetime
from typing import Dict

from fastapi import APIRouter
from pydantic import BaseModel

from connectors import list_available_connectors
from core import __version__
from core.config import get_odoo_config


router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness plus whether invoicing is configured."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow().isoformat(),
        version=__version__,
        services={
            "api": "up",
            "invoicing": "configured" if get_odoo_config() is not None else "disabled",
            "connectors": ",".join(list_available_connectors()),
        },
    )


@router.get("/ready")
async def readiness_check() -> Dict[str, str]:
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> Dict[str, str]:
    return {"status": "alive"}
