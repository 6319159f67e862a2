from .base import ContextProvider, HttpJsonProvider, ProviderResult
from .providers import (
    FiscalProfileProvider,
    MemoryContextProvider,
    WebSearchProvider,
    WorkspaceProvider,
)

__all__ = [
    "ContextProvider",
    "HttpJsonProvider",
    "ProviderResult",
    "FiscalProfileProvider",
    "MemoryContextProvider",
    "WebSearchProvider",
    "WorkspaceProvider",
]
