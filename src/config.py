"""Application configuration using Pydantic Settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Logging
    log_format: str = "json"  # 'json' or 'text'
    log_level: str = "INFO"
    service_name: str = "classius-api"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Sage provider selection: openai, anthropic, local or ollama
    sage_provider: str = "openai"

    # OpenAI (hosted; api key is mandatory)
    openai_api_key: str = ""
    openai_model: str = "gpt-4"
    openai_base_url: str = "https://api.openai.com/v1"

    # Anthropic (declared, not yet implemented)
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-sonnet-20241022"

    # Self-hosted OpenAI-compatible server
    local_base_url: str = "http://localhost:8000"
    local_model: str = "classius-sage-7b"
    local_api_key: str = ""  # Optional for most local setups

    # Ollama
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3:8b"

    # Generation defaults; None keeps each provider's own max_tokens default
    sage_max_tokens: int | None = None
    sage_temperature: float = 0.7

    # Outer bounds applied by the HTTP layer around provider calls
    sage_ask_timeout_seconds: float = 120.0
    sage_health_timeout_seconds: float = 30.0

    # Health checks on OpenAI / local servers may fall back to a real
    # 5-token completion. Disable to avoid spending quota on every poll.
    sage_health_generation_probe: bool = True


settings = Settings()
