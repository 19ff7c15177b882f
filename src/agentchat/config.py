"""Configuration for the chat backend using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from loguru import logger
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_PACKAGE_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _PACKAGE_DIR.parent.parent  # src/agentchat/ → project root

DEFAULT_JWT_SECRET = "dev-secret-change-in-production!!"


class ModelSpec(BaseModel):
    """One selectable chat model and its pricing."""

    model: str = Field(description="pydantic-ai model string, e.g. 'openai:gpt-4o-mini' or 'azure:gpt-4o'")
    display_name: str = ""
    description: str = ""
    input_cost_per_million: float = Field(default=0.0, ge=0)
    output_cost_per_million: float = Field(default=0.0, ge=0)
    supports_tools: bool = True


def _default_catalog() -> dict[str, ModelSpec]:
    return {
        "gpt-4o-mini": ModelSpec(
            model="openai:gpt-4o-mini",
            display_name="GPT-4o mini",
            description="Small, fast model for everyday tasks",
            input_cost_per_million=0.15,
            output_cost_per_million=0.60,
        ),
        "gpt-4o": ModelSpec(
            model="openai:gpt-4o",
            display_name="GPT-4o",
            description="Large model for complex, multi-step tasks",
            input_cost_per_million=2.50,
            output_cost_per_million=10.00,
        ),
    }


class Settings(BaseSettings):
    """All backend settings, loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=("settings_",),
    )

    # ------------------------------------------------------------------
    # Chat models
    # MODEL_CATALOG is JSON: {"id": {"model": "openai:gpt-4o", ...}}
    # ------------------------------------------------------------------
    model_catalog: dict[str, ModelSpec] = Field(default_factory=_default_catalog)
    default_chat_model: str = "gpt-4o-mini"
    title_model: str = "openai:gpt-4o-mini"
    artifact_model: str = "openai:gpt-4o-mini"

    # ------------------------------------------------------------------
    # Azure OpenAI, used for catalog entries with the "azure:" prefix
    # ------------------------------------------------------------------
    azure_openai_api_key: str = ""
    azure_openai_endpoint: str = ""
    azure_openai_api_version: str = "2025-01-01-preview"

    # ------------------------------------------------------------------
    # Chat turn
    # ------------------------------------------------------------------
    max_steps: int = Field(default=20, ge=1)
    default_system_prompt: str = "You are a friendly assistant! Keep your responses concise and helpful."
    chat_ready_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Titles
    # The placeholder is shown until the background title job finishes.
    # ------------------------------------------------------------------
    placeholder_title: str = "New Conversation"
    title_retry_attempts: int = Field(default=3, ge=1)
    title_retry_backoff_seconds: list[float] = Field(default_factory=lambda: [3.0, 3.0])

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------
    tool_timeout_seconds: float = 60.0
    tool_timeouts: dict[str, float] = Field(
        default_factory=lambda: {"run_python": 120.0, "create_logo": 90.0, "read_page": 30.0}
    )
    jina_api_key: str = ""
    jina_reader_url: str = "https://r.jina.ai/"
    fal_key: str = ""
    fal_logo_url: str = "https://fal.run/fal-ai/ideogram/v3"
    e2b_api_key: str = ""

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------
    db_path: Path = _PROJECT_ROOT / "database" / "agent_chat.sqlite"

    # ------------------------------------------------------------------
    # Auth (JWT). Set AUTH_ENABLED=false to disable for development
    # ------------------------------------------------------------------
    auth_enabled: bool = True
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_expiry_hours: int = 24
    open_registration: bool = False

    # ------------------------------------------------------------------
    # Rate limiting (sliding window per client IP)
    # ------------------------------------------------------------------
    rate_limit_enabled: bool = True
    rate_limit_requests: int = 100
    rate_limit_window_seconds: float = 3600.0

    # ------------------------------------------------------------------
    # Credits
    # ------------------------------------------------------------------
    credits_enabled: bool = False
    signup_credits: float = 1.0

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = False

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------
    observability: Literal["off", "logfire", "otel"] = "off"
    otel_service_name: str = "agent-chat-backend"
    otel_exporter_otlp_endpoint: str = "http://localhost:4318"
    otel_console_exporter: bool = False

    @model_validator(mode="after")
    def _check_title_backoff(self) -> "Settings":
        if any(delay < 0 for delay in self.title_retry_backoff_seconds):
            raise ValueError("title_retry_backoff_seconds must not contain negative delays")
        return self

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------
    def validate_runtime(self) -> None:
        """Check that the configuration is usable.

        Call this at application startup (not at import time) so that
        tests can override settings before validation runs.
        """
        if not self.model_catalog:
            raise ValueError("MODEL_CATALOG is empty. Configure at least one chat model.")
        if self.default_chat_model not in self.model_catalog:
            raise ValueError(
                f"DEFAULT_CHAT_MODEL '{self.default_chat_model}' is not in MODEL_CATALOG."
            )
        uses_azure = any(spec.model.startswith("azure:") for spec in self.model_catalog.values())
        if uses_azure and not (self.azure_openai_api_key and self.azure_openai_endpoint):
            raise ValueError(
                "MODEL_CATALOG uses azure: models but AZURE_OPENAI_API_KEY / AZURE_OPENAI_ENDPOINT are not set."
            )
        if self.auth_enabled and self.jwt_secret == DEFAULT_JWT_SECRET:
            logger.warning("JWT_SECRET is the development default. Set it before deploying.")


@lru_cache
def get_settings() -> Settings:
    """Return the cached Settings singleton."""
    return Settings()
