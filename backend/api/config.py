"""
Typed application configuration.

Values come from the environment (optionally seeded from a ``.env`` file at
the repository root). Construct with ``Settings.from_env()`` at the entry
point, or build one explicitly in tests.
"""
import os
import pathlib
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

ENV_PATH = pathlib.Path(__file__).parent.parent.parent / '.env'

DEFAULT_ORIGINS = [
    "http://localhost:3000",  # Local development frontend
    "http://localhost:5173",  # Vite dev server
]


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    log_level: str = "INFO"

    # Record store: "memory" keeps everything in-process, "supabase" uses the tables
    store_backend: str = "memory"
    supabase_url: str = ""
    supabase_key: str = ""

    # Notification sink; without a webhook reminders are only logged
    notify_webhook_url: Optional[str] = None
    notify_timeout_seconds: float = 5.0

    # Due-check poller; the API process runs one unless RUN_DUE_WATCHER=false
    poll_interval_seconds: float = 5.0
    run_due_watcher: bool = True

    # every_x_hours doses past midnight: "truncate" drops them, "wrap" keeps them
    overflow_policy: str = "truncate"

    sentry_dsn: Optional[str] = None
    api_token: Optional[str] = None
    allowed_origins: List[str] = field(default_factory=lambda: list(DEFAULT_ORIGINS))

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "Settings":
        if load_env_file:
            load_dotenv(dotenv_path=ENV_PATH)

        origins = _split_csv(os.environ.get("ALLOWED_ORIGINS")) or list(DEFAULT_ORIGINS)

        return cls(
            environment=os.environ.get("ENVIRONMENT", "development"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            store_backend=os.environ.get("STORE_BACKEND", "memory").lower(),
            supabase_url=os.environ.get("SUPABASE_URL", ""),
            supabase_key=os.environ.get("SUPABASE_KEY", ""),
            notify_webhook_url=os.environ.get("NOTIFY_WEBHOOK_URL") or None,
            notify_timeout_seconds=float(os.environ.get("NOTIFY_TIMEOUT_SECONDS", "5")),
            poll_interval_seconds=float(os.environ.get("POLL_INTERVAL_SECONDS", "5")),
            run_due_watcher=os.environ.get("RUN_DUE_WATCHER", "true").lower() in ("1", "true", "yes"),
            overflow_policy=os.environ.get("OVERFLOW_POLICY", "truncate").lower(),
            sentry_dsn=os.environ.get("SENTRY_DSN") or None,
            api_token=os.environ.get("API_TOKEN") or None,
            allowed_origins=origins,
        )
