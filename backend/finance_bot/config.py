from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_CANDIDATES = (
    Path(__file__).resolve().parent.parent.parent / ".env",
    Path(__file__).resolve().parent.parent / ".env",
    Path.cwd() / ".env",
)

for env_path in _ENV_CANDIDATES:
    if env_path.is_file():
        load_dotenv(env_path, override=False)
        break


class Settings(BaseSettings):
    """Application configuration sourced from environment variables."""

    database_url: str = "postgresql+psycopg://postgres:postgres@db:5432/finance"
    telegram_bot_token: str | None = Field(default=None, alias="TELEGRAM_BOT_TOKEN")
    authorized_user_id: int | None = Field(default=None, alias="USER_ID")
    unauthorized_animation: str | None = Field(default=None, alias="YOU_SHALL_NOT_PASS")

    openrouter_api_key: str | None = Field(default=None, alias="OPENROUTER_API_KEY")
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    ai_model_text: str = Field(default="anthropic/claude-haiku-4.5", alias="AI_MODEL_TEXT")
    ai_model_text_fast: str = Field(default="openai/gpt-4o-mini", alias="AI_MODEL_TEXT_FAST")
    ai_model_vision: str = Field(default="anthropic/claude-sonnet-4.5", alias="AI_MODEL_VISION")
    ai_model_vision_fast: str = Field(default="openai/gpt-4o-mini", alias="AI_MODEL_VISION_FAST")
    ai_model_audio: str = Field(default="openai/whisper-1", alias="AI_MODEL_AUDIO")

    langfuse_public_key: str | None = Field(default=None, alias="LANGFUSE_PUBLIC_KEY")
    langfuse_secret_key: str | None = Field(default=None, alias="LANGFUSE_SECRET_KEY")
    langfuse_host: str = Field(default="https://cloud.langfuse.com", alias="LANGFUSE_HOST")
    prompt_cache_ttl_seconds: float = 300.0

    transaction_confidence_threshold: float = 50.0
    default_credit_card: str = "BBVA Credit Card"
    recent_transactions_limit: int = 10
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=None, populate_by_name=True)

    @field_validator("log_level", mode="before")
    @classmethod
    def normalise_log_level(cls, value: object) -> str:
        return str(value or "INFO").strip().upper()

    @property
    def model_defaults(self) -> dict[str, str]:
        """Default model per capability, keyed the way the gateway asks for them."""
        return {
            "text": self.ai_model_text,
            "text-fast": self.ai_model_text_fast,
            "vision": self.ai_model_vision,
            "vision-fast": self.ai_model_vision_fast,
            "audio": self.ai_model_audio,
        }


@lru_cache
def get_settings() -> Settings:
    """Return cached settings to avoid repeated environment parsing."""
    return Settings()
