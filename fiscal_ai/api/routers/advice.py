import logging
from fastapi import APIRouter, Depends

from ...routing.models import EnhancementOptions, Query, QueryOptions
from ...service import FiscalAdvisor
from ..dependencies import get_advisor
from ..schemas import (
    AdviceRequest, AdviceResponse,
    EnhancedAdviceRequest, EnhancedAdviceResponse,
    MultiAgentRequest, MultiAgentResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/advice", response_model=AdviceResponse, response_model_by_alias=True)
async def fiscal_advice(body: AdviceRequest, advisor: FiscalAdvisor = Depends(get_advisor)):
    """Route one question to the cheapest adequate tier"""
    query = Query(
        text=body.query,
        user_id=body.user_id,
        options=body.options.to_query_options("fiscal-advice"),
    )
    answer = await advisor.advise(query)
    return AdviceResponse.from_answer(answer)


@router.post("/enhanced-advice", response_model=EnhancedAdviceResponse, response_model_by_alias=True)
async def enhanced_advice(body: EnhancedAdviceRequest, advisor: FiscalAdvisor = Depends(get_advisor)):
    """Escalate across tiers until the answer is satisfying or the budget is spent"""
    query = Query(
        text=body.query,
        user_id=body.user_id,
        options=QueryOptions(
            max_cost=body.options.max_cost,
            skip_memory=body.options.skip_memory,
            feature="enhanced-advice",
        ),
    )
    result = await advisor.enhance(
        query,
        EnhancementOptions(
            max_attempts=body.options.max_attempts,
            max_cost=body.options.max_cost,
            satisfaction_threshold=body.options.satisfaction_threshold,
        ),
    )
    return EnhancedAdviceResponse.from_result(result)


@router.post("/multi-agent-advice", response_model=MultiAgentResponse, response_model_by_alias=True)
async def multi_agent_advice(body: MultiAgentRequest, advisor: FiscalAdvisor = Depends(get_advisor)):
    """Run the multi-agent orchestrator directly"""
    query = Query(
        text=body.query,
        user_id=body.user_id,
        options=QueryOptions(max_cost=body.max_cost, feature="multi-agent-advice"),
    )
    answer = await advisor.multi_agent(
        query,
        urgency=body.context.urgency,
        requires_real_time_data=body.context.requires_real_time_data,
        requires_workspace_data=body.context.requires_workspace_data,
    )
    return MultiAgentResponse.from_answer(answer)
