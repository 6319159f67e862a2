from .models import LLMRequest, LLMResponse, Message, MessageRole, HealthStatus, ModelClient
from .ollama_client import OllamaClient

__all__ = [
    "LLMRequest",
    "LLMResponse",
    "Message",
    "MessageRole",
    "HealthStatus",
    "ModelClient",
    "OllamaClient",
]
