from .ledger import (
    AffordabilityCheck,
    AlertLevel,
    BudgetAlert,
    BudgetStatus,
    CostLedger,
    Reservation,
)

__all__ = [
    "AffordabilityCheck",
    "AlertLevel",
    "BudgetAlert",
    "BudgetStatus",
    "CostLedger",
    "Reservation",
]
