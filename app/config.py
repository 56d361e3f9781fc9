import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Load environment variables from .env file FIRST
load_dotenv()

DEFAULT_AI_MODEL = "@cf/meta/llama-2-7b-chat-int8"
DEFAULT_CATALOG_PATH = Path(__file__).parent / "model_catalog.yaml"


# Strip whitespace, a trailing space in a secret or URL is a silent mismatch
def _getenv(key: str, default: str = None) -> str:
    val = os.getenv(key) or default
    return val.strip() if val else val


def _getbool(key: str, default: bool = False) -> bool:
    val = _getenv(key)
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    app_password: str
    ai_model: str = DEFAULT_AI_MODEL
    summary_model: str = DEFAULT_AI_MODEL
    model_catalog_path: str = str(DEFAULT_CATALOG_PATH)
    session_cookie_max_age: int = 3600
    summary_best_effort: bool = False
    kv_write_retries: int = 5
    log_level: str = "INFO"

    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    azure_openai_endpoint: Optional[str] = None
    azure_openai_api_key: Optional[str] = None
    azure_openai_api_version: str = "2024-08-01-preview"


def load_settings() -> Settings:
    app_password = _getenv("APP_PASSWORD")
    if not app_password:
        raise ValueError("APP_PASSWORD environment variable is not set")

    return Settings(
        app_password=app_password,
        ai_model=_getenv("AI_MODEL", DEFAULT_AI_MODEL),
        summary_model=_getenv("SUMMARY_MODEL", DEFAULT_AI_MODEL),
        model_catalog_path=_getenv("MODEL_CATALOG_PATH", str(DEFAULT_CATALOG_PATH)),
        session_cookie_max_age=int(_getenv("SESSION_COOKIE_MAX_AGE", "3600")),
        summary_best_effort=_getbool("SUMMARY_BEST_EFFORT"),
        kv_write_retries=int(_getenv("KV_WRITE_RETRIES", "5")),
        log_level=_getenv("LOG_LEVEL", "INFO"),
        openai_api_key=_getenv("OPENAI_API_KEY"),
        openai_base_url=_getenv("OPENAI_BASE_URL"),
        azure_openai_endpoint=_getenv("AZURE_OPENAI_ENDPOINT"),
        azure_openai_api_key=_getenv("AZURE_OPENAI_API_KEY"),
        azure_openai_api_version=_getenv("AZURE_OPENAI_API_VERSION", "2024-08-01-preview"),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
