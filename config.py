"""Configuration management for the site expense bot."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from dotenv import load_dotenv

# Placeholder URL shipped in example .env files; treated the same as no backend
PLACEHOLDER_API_URL = "https://your-n8n-instance.com/webhook"


def clean_env_value(value):
    """Clean environment variable value - strip whitespace AND quotes.

    Railway's UI sometimes automatically adds quotes around values.
    This function removes them so tokens work correctly.
    """
    if not value:
        return ""
    value = value.strip()
    if len(value) >= 2:
        if (value.startswith('"') and value.endswith('"')) or \
           (value.startswith("'") and value.endswith("'")):
            value = value[1:-1]
        # Also handle case where only leading quote exists (partial corruption)
        elif value.startswith('"') or value.startswith("'"):
            value = value[1:]
        elif value.endswith('"') or value.endswith("'"):
            value = value[:-1]
    return value.strip()


@dataclass(frozen=True)
class CurrencySettings:
    code: str = "BGN"
    symbol: str = "лв."
    decimals: int = 2


@dataclass(frozen=True)
class UserEntry:
    """One Telegram account mapped to a person in the backend."""
    telegram_id: int
    user_id: str
    name: str = ""


@dataclass(frozen=True)
class Settings:
    """Immutable runtime settings, built once in main() and passed down."""
    telegram_bot_token: str = ""
    api_base_url: str = ""
    api_token: str = ""
    request_timeout: float = 30.0
    allowed_user_ids: tuple[int, ...] = ()
    directors: tuple[UserEntry, ...] = ()
    technicians: tuple[UserEntry, ...] = ()
    currency: CurrencySettings = field(default_factory=CurrencySettings)
    strict_numbers: bool = False
    app_name: str = "BARIN ALP"

    @property
    def demo_mode(self) -> bool:
        """No real backend configured - the in-memory backend is used instead."""
        return not self.api_base_url or self.api_base_url.startswith(PLACEHOLDER_API_URL)


def parse_user_entries(raw: str) -> tuple[UserEntry, ...]:
    """Parse "telegram_id:user_id:Name" pairs separated by commas.

    The name part is optional. Malformed pairs are skipped.
    """
    entries = []
    for pair in clean_env_value(raw).split(","):
        parts = [p.strip() for p in pair.split(":", 2)]
        if len(parts) < 2 or not parts[0].isdigit() or not parts[1]:
            continue
        name = parts[2] if len(parts) == 3 else ""
        entries.append(UserEntry(telegram_id=int(parts[0]), user_id=parts[1], name=name))
    return tuple(entries)


def _parse_bool(value: str) -> bool:
    return clean_env_value(value).lower() in ("1", "true", "yes", "on")


def load_settings(env: Mapping[str, str] | None = None, use_dotenv: bool = True) -> Settings:
    """Build Settings from the environment (and .env when present)."""
    if env is None:
        if use_dotenv:
            load_dotenv()
        env = os.environ

    allowed = tuple(
        int(uid.strip())
        for uid in env.get("ALLOWED_USER_IDS", "").split(",")
        if uid.strip().isdigit()
    )

    currency = CurrencySettings(
        code=clean_env_value(env.get("CURRENCY_CODE")) or "BGN",
        symbol=clean_env_value(env.get("CURRENCY_SYMBOL")) or "лв.",
        decimals=int(clean_env_value(env.get("CURRENCY_DECIMALS")) or "2"),
    )

    return Settings(
        # Telegram Bot Token (get from @BotFather)
        telegram_bot_token=clean_env_value(env.get("TELEGRAM_BOT_TOKEN")),
        # n8n webhook base URL; empty runs the bot against demo data
        api_base_url=clean_env_value(env.get("API_BASE_URL")).rstrip("/"),
        api_token=clean_env_value(env.get("API_TOKEN")),
        request_timeout=float(clean_env_value(env.get("API_TIMEOUT")) or "30"),
        allowed_user_ids=allowed,
        # Format: "123456789:1:Georgi,987654321:2:Ivan"
        directors=parse_user_entries(env.get("DIRECTORS", "")),
        technicians=parse_user_entries(env.get("TECHNICIANS", "")),
        currency=currency,
        strict_numbers=_parse_bool(env.get("STRICT_NUMBERS", "")),
        app_name=clean_env_value(env.get("APP_NAME")) or "BARIN ALP",
    )
