"""Application settings loaded from environment variables via pydantic-settings.

# --- HOW SETTINGS WORK ------------------------------------------------
#
# Two sources, highest priority first:
#
#   1. Environment variables, e.g. ANTHROPIC_API_KEY=sk-ant-...
#   2. .env file in the project root (local development)
#
# Field ``max_concurrent_calls`` maps to env var ``MAX_CONCURRENT_CALLS``.
# Defaults apply when neither source sets a value.
#
# Pipeline tunables live here too; config/config.yaml can override the
# defaults for a deployment without touching the environment.
# ----------------------------------------------------------------------
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """karaokeScout application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === LLM Providers ===
    # Empty string = "not configured"; main.py falls through to the next provider.
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_text_model: str = ""
    openai_vision_model: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    ollama_base_url: str = ""
    ollama_text_model: str = "llama3.1"
    ollama_vision_model: str = "llava"
    llm_timeout_seconds: float = 90.0

    # === Fetching ===
    fetch_timeout_seconds: float = 30.0
    fetch_max_attempts: int = 3
    fetch_max_bytes: int = 50 * 1024 * 1024

    # === Discovery ===
    max_units: int = 50
    discovery_max_depth: int = 1
    include_subdomains: bool = False
    max_parallel_seeds: int = 2

    # === Extraction pool ===
    max_concurrent_calls: int = 3
    call_stagger_seconds: float = 0.5
    unit_timeout_seconds: float = 100.0
    model_max_attempts: int = 3
    retry_base_delay_seconds: float = 2.0
    retry_max_delay_seconds: float = 30.0
    html_max_chars: int = 60000

    # === Aggregation ===
    name_similarity_threshold: float = 0.85

    # === Persistence ===
    staging_db_path: str = "data/staging.db"
    entities_db_path: str = "data/entities.db"

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_llm_providers(self) -> list[str]:
        """Return provider names that have credentials or a URL configured."""
        providers: list[str] = []
        if self.anthropic_api_key:
            providers.append("anthropic")
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers
