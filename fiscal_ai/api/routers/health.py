from fastapi import APIRouter, Depends
from typing import Dict, Any

from ... import __version__
from ...service import FiscalAdvisor
from ..dependencies import get_advisor

router = APIRouter()


@router.get("")
async def health_check(advisor: FiscalAdvisor = Depends(get_advisor)) -> Dict[str, Any]:
    """
    Health of the database, the model server and the dead-letter channel
    """
    health_status = {
        "service": "fiscal-ai",
        "version": __version__,
        "status": "healthy",
        "components": {}
    }

    try:
        details = await advisor.health()
        health_status["components"] = {
            "database": details["database"],
            "model": details["model"],
            "dead_letters": details["dead_letters"],
        }
        health_status["timestamp"] = details["timestamp"]

        component_statuses = [
            details["database"]["status"],
            details["model"]["status"],
        ]

        if details["database"]["status"] == "unhealthy":
            health_status["status"] = "unhealthy"
        elif any(status != "healthy" for status in component_statuses):
            health_status["status"] = "degraded"

        return health_status

    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["error"] = str(e)
        return health_status
