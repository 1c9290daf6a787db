"""Runtime configuration read from environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"
DEFAULT_COMPANIES_YAML = DATA_DIR / "companies.yaml"

DEFAULT_SEC_USER_AGENT = "MarketStep contact@marketstep.com"
DEFAULT_OPENAI_MODEL = "gpt-4-turbo-preview"
DEFAULT_HTTP_TIMEOUT = 10.0


def _get_default_user_agent() -> str:
    """
    Get SEC User-Agent from environment variable or use default.

    SEC requires a User-Agent with company name and contact email.
    Set SEC_USER_AGENT environment variable in production.
    """
    return os.environ.get("SEC_USER_AGENT", DEFAULT_SEC_USER_AGENT)


def _get_optional(name: str) -> Optional[str]:
    value = os.environ.get(name, "").strip()
    return value or None


def _get_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got: {raw}") from e


@dataclass(frozen=True)
class Settings:
    """
    Snapshot of the environment at load time.

    Components take explicit constructor arguments and only fall back to
    these values when the caller passes nothing.
    """

    finnhub_api_key: Optional[str] = None
    api_ninjas_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_OPENAI_MODEL
    sec_user_agent: str = DEFAULT_SEC_USER_AGENT
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    companies_path: Path = DEFAULT_COMPANIES_YAML

    @classmethod
    def from_env(cls) -> "Settings":
        companies = _get_optional("MARKETSTEP_COMPANIES")
        return cls(
            finnhub_api_key=_get_optional("FINNHUB_API_KEY"),
            api_ninjas_key=_get_optional("API_NINJAS_KEY"),
            openai_api_key=_get_optional("OPENAI_API_KEY"),
            openai_model=_get_optional("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL,
            sec_user_agent=_get_default_user_agent(),
            http_timeout=_get_float("MARKETSTEP_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
            companies_path=Path(companies) if companies else DEFAULT_COMPANIES_YAML,
        )
