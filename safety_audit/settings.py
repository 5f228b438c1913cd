"""
Service Settings

Environment-driven configuration shared by the API, the escalation engine and the
scheduler worker. Values are read once and cached; call ``get_settings.cache_clear()``
after changing the environment (tests do this).
"""

import os
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

EMAIL_TRANSPORT_FUNCTION = "function"
EMAIL_TRANSPORT_RESEND = "resend"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}: {raw!r}, using {default}")
        return default


@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    email_transport: str = EMAIL_TRANSPORT_FUNCTION
    email_function_name: str = "send-notification-email"
    resend_api_key: str | None = None
    resend_api_url: str = "https://api.resend.com/emails"
    from_email: str = "noreply@auditapp.com"
    frontend_url: str = "http://localhost:3000"
    dedup_window_hours: float = 24
    pass_timeout_seconds: float = 300
    http_timeout_seconds: float = 10
    worker_interval_seconds: float = 3600
    cors_origins: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "Settings":
        transport = os.environ.get("EMAIL_TRANSPORT", EMAIL_TRANSPORT_FUNCTION).strip().lower()
        if transport not in (EMAIL_TRANSPORT_FUNCTION, EMAIL_TRANSPORT_RESEND):
            logger.warning(f"Unknown EMAIL_TRANSPORT {transport!r}, falling back to '{EMAIL_TRANSPORT_FUNCTION}'")
            transport = EMAIL_TRANSPORT_FUNCTION

        origins = os.environ.get("CORS_ORIGINS", "")

        return cls(
            environment=os.environ.get("ENVIRONMENT", "development"),
            email_transport=transport,
            email_function_name=os.environ.get("EMAIL_FUNCTION_NAME", "send-notification-email"),
            resend_api_key=os.environ.get("RESEND_API_KEY") or None,
            from_email=os.environ.get("FROM_EMAIL", "noreply@auditapp.com"),
            frontend_url=os.environ.get("FRONTEND_URL", "http://localhost:3000").rstrip("/"),
            dedup_window_hours=_env_float("ESCALATION_DEDUP_WINDOW_HOURS", 24),
            pass_timeout_seconds=_env_float("ESCALATION_PASS_TIMEOUT_SECONDS", 300),
            http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", 10),
            worker_interval_seconds=_env_float("ESCALATION_INTERVAL_SECONDS", 3600),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
