# src/shop_web_bff/config.py

import logging
from pydantic import Field, field_validator, AnyHttpUrl, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Union, Any
from pathlib import Path
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# .env is at the service root, two levels up from src/shop_web_bff/
CONFIG_FILE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT_DIR = CONFIG_FILE_DIR.parent.parent
ENV_FILE_PATH = PROJECT_ROOT_DIR / ".env"

if ENV_FILE_PATH.exists():
    load_dotenv(dotenv_path=ENV_FILE_PATH, override=True)
    logger.info("Shop-Web-BFF: loaded .env file from: %s", ENV_FILE_PATH)
else:
    logger.info("Shop-Web-BFF: .env file not found at %s. Relying on environment variables.", ENV_FILE_PATH)


class Settings(BaseSettings):
    # === Auth Session Service (the shop backend that owns user sessions) ===
    AUTH_API_BASE_URL: AnyHttpUrl
    EXCHANGE_TIMEOUT_SECONDS: float = 10.0

    # === OAuth callback handling ===
    # Comma-separated in the env, List[str] after validation
    OAUTH_PROVIDERS: Union[str, List[str]] = Field("google", validate_default=True)
    LOGIN_PATH: str = "/auth"
    DEFAULT_REDIRECT_PATH: str = "/"

    # === Session Management ===
    SESSION_COOKIE_SECURE: bool = False  # Set to True in production with HTTPS
    SESSION_COOKIE_MAX_AGE: int = 60 * 60 * 4  # 4 hours

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False
    )

    @field_validator("OAUTH_PROVIDERS", mode='before')
    @classmethod
    def parse_comma_separated_providers(cls, v: Any) -> List[str]:
        if isinstance(v, str):
            if not v.strip():
                return []
            return [provider.strip().lower() for provider in v.split(',') if provider.strip()]
        if isinstance(v, list):
            return [str(provider).strip().lower() for provider in v]
        raise TypeError('OAUTH_PROVIDERS: Expected a comma-separated string or a list.')

    @field_validator("LOGIN_PATH", "DEFAULT_REDIRECT_PATH")
    @classmethod
    def check_local_path(cls, v: str) -> str:
        if not v.startswith("/") or v.startswith("//"):
            raise ValueError(f"Expected an application path starting with '/', got {v!r}.")
        return v

    @model_validator(mode='after')
    def check_providers_configured(self) -> 'Settings':
        if not self.OAUTH_PROVIDERS:
            raise ValueError("OAUTH_PROVIDERS must name at least one identity provider.")
        return self


try:
    settings = Settings()
    logger.debug("Auth API base URL: %s", settings.AUTH_API_BASE_URL)
    logger.debug("OAuth providers: %s", settings.OAUTH_PROVIDERS)

except Exception:
    logger.exception("Shop-Web-BFF: Error instantiating Settings")
    raise
