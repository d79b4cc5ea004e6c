"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_API_HOST = "0.0.0.0"
DEFAULT_API_PORT = 8080
DEFAULT_CORS_ORIGIN = "*"


@dataclass(slots=True)
class Config:
    """Top-level application configuration."""

    bot_token: Optional[str]
    api_host: str
    api_port: int
    init_data_max_age_sec: Optional[int]
    cors_allow_origin: str


def _optional_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    if not stripped and default is None:
        return None
    if not stripped:
        return default
    return stripped


def _parse_int_env(
    name: str,
    default: int,
    *,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
) -> int:
    raw = _optional_env(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer value") from None
    if minimum is not None and value < minimum:
        raise RuntimeError(f"{name} must be greater than or equal to {minimum}")
    if maximum is not None and value > maximum:
        raise RuntimeError(f"{name} must be less than or equal to {maximum}")
    return value


def _bot_token() -> Optional[str]:
    token = _optional_env("TELEGRAM_BOT_TOKEN") or _optional_env("BOT_TOKEN")
    if token is None:
        return None
    return token.strip('"').strip("'") or None


def load_config(env_file: Optional[str] = None) -> Config:
    """Load configuration from the provided .env file (or default location).

    A missing bot token is not fatal here: the API answers 500 for every
    auth request until it is configured.
    """

    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    max_age = _parse_int_env("INIT_DATA_MAX_AGE_SEC", 0, minimum=0)

    return Config(
        bot_token=_bot_token(),
        api_host=_optional_env("API_HOST", DEFAULT_API_HOST) or DEFAULT_API_HOST,
        api_port=_parse_int_env("API_PORT", DEFAULT_API_PORT, minimum=1, maximum=65535),
        init_data_max_age_sec=max_age or None,
        cors_allow_origin=_optional_env("CORS_ALLOW_ORIGIN", DEFAULT_CORS_ORIGIN)
        or DEFAULT_CORS_ORIGIN,
    )
