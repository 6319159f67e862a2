from fastapi import APIRouter, Depends, Query
from typing import Any, Dict

from ...service import FiscalAdvisor
from ..dependencies import get_advisor
from ..schemas import BudgetUpdateRequest, camelize

router = APIRouter()


@router.get("/cost-analytics")
async def cost_analytics(
    user_id: str = Query(..., alias="userId", min_length=1),
    days: int = Query(30, ge=1, le=365),
    advisor: FiscalAdvisor = Depends(get_advisor),
) -> Dict[str, Any]:
    """Spend, savings and budget status for one user"""
    return camelize(await advisor.cost_analytics(user_id, days))


@router.put("/budget")
async def update_budget(
    body: BudgetUpdateRequest,
    advisor: FiscalAdvisor = Depends(get_advisor),
) -> Dict[str, Any]:
    status = await advisor.set_budget(body.user_id, body.daily_limit, body.monthly_limit)
    return camelize(status.to_dict())


@router.get("/capabilities")
async def capabilities(advisor: FiscalAdvisor = Depends(get_advisor)) -> Dict[str, Any]:
    return camelize(advisor.capabilities())


@router.get("/memory-stats")
async def memory_stats(
    user_id: str = Query(..., alias="userId", min_length=1),
    advisor: FiscalAdvisor = Depends(get_advisor),
) -> Dict[str, Any]:
    """Stored conversational memory and what it costs per month"""
    return camelize(await advisor.memory_stats(user_id))
