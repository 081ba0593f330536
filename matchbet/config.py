import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .money import to_cents

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_GEMINI_MODEL = "gemini-2.0-flash-lite"
DEFAULT_ODDS_SUM_MIN = 0.95
DEFAULT_ODDS_SUM_MAX = 1.20

# values shipped in example .env files
PLACEHOLDER_KEYS = {"your_openai_api_key_here", "your_api_key_here", "your_gemini_api_key_here"}


def _usable_key(key: Optional[str]) -> bool:
    key = (key or "").strip()
    return bool(key) and key not in PLACEHOLDER_KEYS


class Settings(BaseModel):
    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_OPENAI_MODEL
    temperature: float = Field(default=1.0, ge=0.0, le=2.0)
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    gemini_temperature: float = Field(default=2.0, ge=0.0, le=2.0)
    # Accepted range for the sum of generated odds (1.0 plus overround).
    odds_sum_min: float = Field(default=DEFAULT_ODDS_SUM_MIN, gt=0)
    odds_sum_max: float = Field(default=DEFAULT_ODDS_SUM_MAX, gt=0)
    round_bonus: str = "5.00"
    starting_balance: str = "100.00"
    log_level: str = "INFO"

    @field_validator("round_bonus", "starting_balance")
    @classmethod
    def check_amount(cls, value: str) -> str:
        if to_cents(value) < 0:
            raise ValueError("amount cannot be negative")
        return value

    @model_validator(mode="after")
    def check_odds_range(self):
        if self.odds_sum_min > self.odds_sum_max:
            raise ValueError("odds_sum_min must not exceed odds_sum_max")
        return self

    @property
    def ai_provider(self) -> Optional[str]:
        """``"openai"`` first, then ``"gemini"``; ``None`` when neither key is usable."""
        if _usable_key(self.openai_api_key):
            return "openai"
        if _usable_key(self.gemini_api_key):
            return "gemini"
        return None

    @property
    def ai_enabled(self) -> bool:
        return self.ai_provider is not None


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(f"MATCHBET_{name}")
    if value is None or value == "":
        return default
    return value


def load_settings() -> Settings:
    values = {
        "openai_api_key": _env("OPENAI_API_KEY", os.environ.get("OPENAI_API_KEY")),
        "openai_model": _env("OPENAI_MODEL"),
        "temperature": _env("TEMPERATURE"),
        "gemini_api_key": _env("GEMINI_API_KEY", os.environ.get("GEMINI_API_KEY")),
        "gemini_model": _env("GEMINI_MODEL"),
        "gemini_temperature": _env("GEMINI_TEMPERATURE"),
        "odds_sum_min": _env("ODDS_SUM_MIN"),
        "odds_sum_max": _env("ODDS_SUM_MAX"),
        "round_bonus": _env("ROUND_BONUS"),
        "starting_balance": _env("STARTING_BALANCE"),
        "log_level": _env("LOG_LEVEL"),
    }
    return Settings(**{k: v for k, v in values.items() if v is not None})
