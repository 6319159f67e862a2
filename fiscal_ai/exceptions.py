from typing import Optional


class FiscalAIError(Exception):
    """Base class for routing core errors"""


class BudgetExceededError(FiscalAIError):
    """Affordability pre-check failed; the query was never executed"""

    def __init__(
        self,
        reason: str,
        remaining_budget: float = 0.0,
        suggestion: str = "Simplify your question, wait for the next budget period or raise your budget limits",
    ):
        super().__init__(reason)
        self.reason = reason
        self.remaining_budget = max(0.0, remaining_budget)
        self.suggestion = suggestion


class BudgetConflictError(BudgetExceededError):
    """An explicitly forced tier does not fit the caller's max cost"""


class ContextProviderUnavailable(FiscalAIError):
    """A context provider could not deliver data"""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class TierExecutionFailed(FiscalAIError):
    """The model or agent call behind a tier failed"""

    def __init__(self, tier: str, message: str):
        super().__init__(f"{tier} execution failed: {message}")
        self.tier = tier


class RoutingTimeout(FiscalAIError):
    """The request deadline expired; in-flight work was cancelled"""

    def __init__(self, deadline_seconds: float, tier: Optional[str] = None):
        where = f" while running {tier}" if tier else ""
        super().__init__(f"Deadline of {deadline_seconds:.0f}s exceeded{where}")
        self.deadline_seconds = deadline_seconds
        self.tier = tier


class MemoryPersistenceFailed(FiscalAIError):
    """Conversational memory could not be written"""


class ModelServerError(FiscalAIError):
    """The language-model server returned an error"""

    def __init__(self, status: int, message: str):
        super().__init__(f"Model server error {status}: {message}")
        self.status = status
