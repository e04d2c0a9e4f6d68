# src/astrashare/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole client (normal "settings layer").
- No secrets required at import time; the auth token is optional.
- Every consumer receives settings by injection, get_settings() is only the default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

ENV_PREFIX = "ASTRA"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool

    # ---- Backend ----
    backend_url: str
    auth_token: Optional[str]
    http_timeout_seconds: float
    http_connect_timeout_seconds: float

    # ---- Task tracking ----
    poll_interval_seconds: float
    history_limit: int

    # ---- Notifications ----
    notifications_supported: bool
    notified_cap: int

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    state_db_path: Path

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "astrashare") or "astrashare"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        backend_url = (
            _first_env(_k("BACKEND_URL"), "BACKEND_URL", default="http://localhost:8000") or ""
        ).strip().rstrip("/")
        auth_token = (_first_env(_k("AUTH_TOKEN"), default="") or "").strip() or None

        http_timeout_seconds = _env_float(_k("HTTP_TIMEOUT_SECONDS"), 15.0)
        http_connect_timeout_seconds = _env_float(_k("HTTP_CONNECT_TIMEOUT_SECONDS"), 5.0)

        # Analysis jobs finish within a couple of minutes; a fixed cadence is enough.
        poll_interval_seconds = _env_float(_k("POLL_INTERVAL_SECONDS"), 3.0)
        history_limit = _env_int(_k("HISTORY_LIMIT"), 20)

        notifications_supported = _env_bool(_k("NOTIFICATIONS_SUPPORTED"), True)
        notified_cap = _env_int(_k("NOTIFIED_CAP"), 200)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/astrashare"))
        state_db_path = _env_path(_k("STATE_DB_PATH"), data_dir / "client_state.sqlite3")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            backend_url=backend_url,
            auth_token=auth_token,
            http_timeout_seconds=http_timeout_seconds,
            http_connect_timeout_seconds=http_connect_timeout_seconds,
            poll_interval_seconds=poll_interval_seconds,
            history_limit=history_limit,
            notifications_supported=notifications_supported,
            notified_cap=notified_cap,
            data_dir=data_dir,
            state_db_path=state_db_path,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
