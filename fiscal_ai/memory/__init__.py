from .manager import (
    DeadLetter,
    DeadLetterLog,
    MemoryDecision,
    SelectiveMemoryManager,
    StorageType,
    STORAGE_COSTS,
)

__all__ = [
    "DeadLetter",
    "DeadLetterLog",
    "MemoryDecision",
    "SelectiveMemoryManager",
    "StorageType",
    "STORAGE_COSTS",
]
