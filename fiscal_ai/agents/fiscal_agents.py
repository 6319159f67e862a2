from ..llm.models import ModelClient
from .base_agent import BaseAgent
from .models import AgentType, AgentTask
from .prompts import BASE_PROMPT, DOMAIN_PROMPTS


class FiscalAnalystAgent(BaseAgent):
    """Reads the user's figures and states the facts the other agents build on"""

    temperature = 0.2

    def __init__(self, model_client: ModelClient):
        super().__init__(AgentType.FISCAL_ANALYST, model_client)

    def get_system_prompt(self, task: AgentTask) -> str:
        return (
            f"{BASE_PROMPT} Tu es ANALYSTE FISCAL. Analyse les données chiffrées disponibles "
            "(chiffre d'affaires, progression vers les seuils, encaissements) et dégage les faits "
            "pertinents pour la question. Ne donne pas encore de conseil. "
            f"{DOMAIN_PROMPTS[task.domain]}"
        )


class ComplianceAgent(BaseAgent):
    """Obligations, deadlines and penalty risks"""

    temperature = 0.1
    default_confidence = 0.75

    def __init__(self, model_client: ModelClient):
        super().__init__(AgentType.COMPLIANCE, model_client)

    def get_system_prompt(self, task: AgentTask) -> str:
        return (
            f"{BASE_PROMPT} Tu es EXPERT CONFORMITÉ. Identifie les obligations déclaratives, "
            "les échéances URSSAF et fiscales, et les risques de pénalité. Termine par une liste "
            "d'actions à mener, une par ligne commençant par '-'."
        )


class StrategyAgent(BaseAgent):
    """Optimisation options and their trade-offs"""

    temperature = 0.4
    default_confidence = 0.65

    def __init__(self, model_client: ModelClient):
        super().__init__(AgentType.STRATEGY, model_client)

    def get_system_prompt(self, task: AgentTask) -> str:
        return (
            f"{BASE_PROMPT} Tu es CONSEILLER STRATÉGIQUE. Propose des options d'optimisation "
            "légales adaptées à la situation, avec leurs avantages et limites chiffrés. Termine "
            "par tes recommandations, une par ligne commençant par '-'."
        )
