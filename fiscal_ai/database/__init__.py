from .connection import DatabaseManager
from .models import Base, UsageRecord, UserBudget, MemoryEntry
from .repositories import UsageRepository, BudgetRepository, MemoryRepository

__all__ = [
    "DatabaseManager",
    "Base",
    "UsageRecord",
    "UserBudget",
    "MemoryEntry",
    "UsageRepository",
    "BudgetRepository",
    "MemoryRepository",
]
