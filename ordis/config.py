"""Environment-based configuration for the extraction client."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Extraction client settings, loaded from environment variables."""

    # OpenAI-compatible endpoint (local Ollama by default)
    LLM_BASE_URL: str = "http://localhost:11434/v1"
    LLM_MODEL: str = "llama3.1:8b"
    LLM_API_KEY: str | None = None

    # HTTP timeouts
    LLM_TIMEOUT_SECONDS: float = 120.0  # covers slow local generation
    LLM_CONNECT_TIMEOUT: float = 10.0

    LOG_LEVEL: str = "INFO"

    model_config = {"env_prefix": "", "case_sensitive": True}


settings = Settings()
