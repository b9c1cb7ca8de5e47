"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Desktop agent configuration. All values come from environment variables."""

    # Telegram
    telegram_bot_token: str = Field(default="")
    allowed_user_ids: str = Field(default="")

    # Models
    chat_model: str = Field(default="claude-sonnet-4-5-20250929")
    analysis_model: str = Field(default="claude-haiku-4-5-20251001")

    # Plan generation
    plan_temperature: float = Field(default=0.3)
    plan_max_tokens: int = Field(default=1024)
    plan_top_p: float | None = Field(default=None)

    # Content analysis
    analysis_temperature: float = Field(default=0.3)
    analysis_max_tokens: int = Field(default=1024)

    # Knowledge index
    retrieval_limit: int = Field(default=5)

    # Credentials: "env_file" (packaged .env file) or "store" (local key store)
    credential_source: str = Field(default="env_file")
    credential_env_file: Path = Field(default=Path("config/.env"))
    credential_env_key: str = Field(default="ANTHROPIC_API_KEY")
    credential_store_path: Path = Field(default=Path("data/credentials.json"))

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_allowed_user_ids(self) -> set[int]:
        """Parse ALLOWED_USER_IDS into a set of ints."""
        if not self.allowed_user_ids.strip():
            return set()
        return {int(uid.strip()) for uid in self.allowed_user_ids.split(",") if uid.strip()}


settings = Settings()
