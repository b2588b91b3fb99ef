from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .ratelimit import RateLimitPolicy
from .version import get_version

# Load a local .env for developer convenience.
# - Does NOT override already-set environment variables (platform env wins)
# - Safe: if .env doesn't exist, no-op
load_dotenv: Callable[..., object] | None
try:
    from dotenv import load_dotenv as _load_dotenv  # python-dotenv
except Exception:  # pragma: no cover
    load_dotenv = None
else:
    load_dotenv = _load_dotenv

_REPO_ROOT = Path(__file__).resolve().parents[1]  # repo root (where .env lives)
_ENV_PATH = _REPO_ROOT / ".env"
if load_dotenv is not None and _ENV_PATH.exists():
    load_dotenv(dotenv_path=_ENV_PATH, override=False)


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return v if v is not None and v.strip() != "" else default


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return default
    try:
        return int(v.strip())
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None:
        return default
    try:
        return float(v.strip())
    except Exception:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    return tuple(item.strip() for item in v.split(",") if item.strip())


def _env_optional(name: str) -> str | None:
    v = os.getenv(name)
    return v.strip() if v is not None and v.strip() else None


_ALLOWED_MAIL_PROVIDERS = {"smtp", "sendgrid"}

DEFAULT_PRODUCTION_ORIGINS: tuple[str, ...] = (
    "https://newus.in",
    "https://www.newus.in",
)

DEFAULT_DEVELOPMENT_ORIGINS: tuple[str, ...] = (
    "http://localhost:3000",
    "http://localhost:5173",  # Vite dev server
    "http://localhost:8080",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:8080",
)


@dataclass(frozen=True)
class Settings:
    """Central configuration for the service.

    Built once at startup and handed to every collaborator by reference, so
    decision logic (origin allow-list, rate-limit policies) never reads the
    environment on its own.
    """

    # ---- Build / runtime ----
    version: str
    is_production: bool

    # ---- Origin guard ----
    frontend_url: str | None
    production_origins: tuple[str, ...]
    development_origins: tuple[str, ...]

    # ---- Mail ----
    admin_email: str | None
    brand_name: str
    mail_provider: str  # smtp | sendgrid
    mail_from_email: str | None

    # SMTP
    smtp_host: str
    smtp_port: int
    smtp_secure: bool
    smtp_user: str | None
    smtp_password: str | None

    # SendGrid
    sendgrid_api_key: str | None

    # ---- Chat (OpenAI-compatible provider, OpenRouter by default) ----
    chat_api_key: str | None
    chat_base_url: str
    chat_model: str
    chat_temperature: float
    chat_max_tokens: int
    chat_max_history: int
    max_chat_message_chars: int

    # ---- Request governance ----
    rate_limit_enabled: bool
    general_limit: RateLimitPolicy
    newsletter_limit: RateLimitPolicy
    registration_limit: RateLimitPolicy
    chat_limit: RateLimitPolicy
    dedup_ttl_s: float
    side_effect_timeout_s: float
    sweep_interval_s: float

    # ---- OpenTelemetry ----
    otel_enabled: bool
    otel_exporter_otlp_endpoint: str | None
    otel_service_name: str

    @property
    def environment(self) -> str:
        return "production" if self.is_production else "development"


def _is_production_env() -> bool:
    # Hosting platforms do not always set NODE_ENV; any production marker wins.
    for name in ("APP_ENV", "NODE_ENV", "VERCEL_ENV"):
        if _env_str(name, "").strip().lower() == "production":
            return True
    return False


def _policy(name: str, *, key: str, default_max: int, default_window_s: int) -> RateLimitPolicy:
    upper = name.upper()
    limit = _env_int(f"RATE_LIMIT_{upper}_MAX", default_max)
    window_s = _env_int(f"RATE_LIMIT_{upper}_WINDOW_S", default_window_s)
    return RateLimitPolicy(
        name=name,
        limit=max(1, limit),
        window_s=float(max(1, window_s)),
        key=key,
    )


def load_settings() -> Settings:
    mail_provider = _env_str("MAIL_PROVIDER", "smtp").lower().strip()
    if mail_provider not in _ALLOWED_MAIL_PROVIDERS:
        mail_provider = "smtp"

    smtp_user = _env_optional("EMAIL_USER")
    # The SMTP login doubles as the sender unless an explicit sender is set.
    mail_from_email = _env_optional("MAIL_FROM_EMAIL") or smtp_user

    return Settings(
        version=_env_str("APP_VERSION", get_version()),
        is_production=_is_production_env(),
        frontend_url=_env_optional("FRONTEND_URL"),
        production_origins=_env_list("PRODUCTION_ORIGINS", DEFAULT_PRODUCTION_ORIGINS),
        development_origins=_env_list("DEVELOPMENT_ORIGINS", DEFAULT_DEVELOPMENT_ORIGINS),
        admin_email=_env_optional("ADMIN_EMAIL"),
        brand_name=_env_str("BRAND_NAME", "Newus"),
        mail_provider=mail_provider,
        mail_from_email=mail_from_email,
        smtp_host=_env_str("EMAIL_HOST", "smtp.gmail.com"),
        smtp_port=_env_int("EMAIL_PORT", 587),
        smtp_secure=_env_bool("EMAIL_SECURE", False),
        smtp_user=smtp_user,
        smtp_password=_env_optional("EMAIL_PASS"),
        sendgrid_api_key=_env_optional("SENDGRID_API_KEY"),
        chat_api_key=_env_optional("OPENROUTER_API_KEY"),
        chat_base_url=_env_str("CHAT_BASE_URL", "https://openrouter.ai/api/v1"),
        chat_model=_env_str("CHAT_MODEL", "meta-llama/llama-3.3-70b-instruct:free"),
        chat_temperature=_env_float("CHAT_TEMPERATURE", 0.6),
        chat_max_tokens=_env_int("CHAT_MAX_TOKENS", 700),
        chat_max_history=max(0, _env_int("CHAT_MAX_HISTORY", 10)),
        max_chat_message_chars=_env_int("MAX_CHAT_MESSAGE_CHARS", 2000),
        rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", True),
        general_limit=_policy("general", key="ip", default_max=10, default_window_s=60),
        newsletter_limit=_policy("newsletter", key="email", default_max=5, default_window_s=60),
        registration_limit=_policy("registration", key="ip", default_max=5, default_window_s=900),
        chat_limit=_policy("chat", key="ip", default_max=20, default_window_s=60),
        dedup_ttl_s=_env_float("DEDUP_TTL_S", 60.0),
        side_effect_timeout_s=_env_float("SIDE_EFFECT_TIMEOUT_S", 25.0),
        sweep_interval_s=_env_float("SWEEP_INTERVAL_S", 300.0),
        otel_enabled=_env_bool("OTEL_ENABLED", False),
        otel_exporter_otlp_endpoint=_env_optional("OTEL_EXPORTER_OTLP_ENDPOINT"),
        otel_service_name=_env_str("OTEL_SERVICE_NAME", "formgate"),
    )
