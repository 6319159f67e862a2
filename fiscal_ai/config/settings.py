from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Model server (Ollama)
    ollama_host: str = Field(default="http://localhost:11434")
    ollama_model: str = Field(default="llama3.1:8b-instruct-q4_0")
    ollama_connection_pool_size: int = Field(default=20)
    ollama_connection_pool_limit_per_host: int = Field(default=10)
    ollama_connection_timeout: int = Field(default=10)
    ollama_request_timeout: int = Field(default=90)
    llm_max_concurrent: int = Field(default=5)

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./fiscal_ai.db")
    debug: bool = Field(default=False)

    # Budget (EUR)
    default_daily_budget: float = Field(default=0.50)
    default_monthly_budget: float = Field(default=5.00)
    failed_attempt_cost: float = Field(default=0.0001)
    daily_alert_thresholds: List[float] = Field(default_factory=lambda: [0.5, 0.8, 0.95])
    monthly_alert_thresholds: List[float] = Field(default_factory=lambda: [0.7, 0.9, 0.95])

    # Routing
    simple_length_threshold: int = Field(default=50)
    complex_length_threshold: int = Field(default=100)
    simple_deadline_seconds: float = Field(default=20.0)
    moderate_deadline_seconds: float = Field(default=30.0)
    urgent_deadline_seconds: float = Field(default=45.0)
    complex_deadline_seconds: float = Field(default=90.0)
    web_research_deadline_seconds: float = Field(default=120.0)
    request_deadline_seconds: float = Field(default=120.0)
    provider_timeout_seconds: float = Field(default=5.0)

    # Progressive enhancement
    enhancement_max_attempts: int = Field(default=2)
    enhancement_satisfaction_threshold: float = Field(default=0.75)

    # Context providers
    fiscal_profile_url: Optional[str] = Field(default=None)
    fiscal_profile_api_key: Optional[str] = Field(default=None)
    web_search_url: Optional[str] = Field(default=None)
    web_search_api_key: Optional[str] = Field(default=None)
    web_search_max_results: int = Field(default=5)
    workspace_url: Optional[str] = Field(default=None)
    workspace_api_key: Optional[str] = Field(default=None)

    # Conversational memory
    memory_context_entries: int = Field(default=5)
    dead_letter_capacity: int = Field(default=500)

    # API Configuration
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)

    # Monitoring
    log_level: str = Field(default="INFO")
    request_logging_enabled: bool = Field(default=True)


# Global settings instance
settings = Settings()
