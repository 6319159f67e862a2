from .models import AgentType, AgentTask, AgentResponse
from .base_agent import BaseAgent
from .fiscal_agents import FiscalAnalystAgent, ComplianceAgent, StrategyAgent
from .orchestrator import MultiAgentOrchestrator

__all__ = [
    "AgentType",
    "AgentTask",
    "AgentResponse",
    "BaseAgent",
    "FiscalAnalystAgent",
    "ComplianceAgent",
    "StrategyAgent",
    "MultiAgentOrchestrator",
]
