"""
Application Configuration.

Pydantic Settings model for the TrackExpense application.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase (cloud mode) ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")

    # --- Local storage (local mode / fallback) ---
    LOCAL_DB_PATH: str = "trackexpense_local.db"
    LOCAL_STORAGE_QUOTA_BYTES: int = 5_000_000

    # Snapshot keys kept compatible with the browser build's localStorage.
    EXPENSES_STORAGE_KEY: str = "track_expense_data"
    USERS_STORAGE_KEY: str = "track_expense_users"
    SESSION_STORAGE_KEY: str = "billboard_user_id"

    # --- Cloud collections ---
    EXPENSES_COLLECTION: str = "expenses"
    USERS_COLLECTION: str = "users"
    CLOUD_POLL_INTERVAL_S: float = 5.0

    # --- Receipt extraction ---
    GEMINI_API_KEY: SecretStr = SecretStr("")
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_TIMEOUT_S: float = 30.0

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "trackexpense.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit a startup warning when the cloud store is not configured.

        Without Supabase credentials the process runs in local mode for its
        whole lifetime, so operators should see this once at startup.
        """
        _log = logging.getLogger("trackexpense.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found — all configuration loaded from "
                "environment variables or defaults."
            )

        if not self.SUPABASE_URL or not self.SUPABASE_ANON_KEY.get_secret_value():
            _log.warning(
                "Supabase credentials are empty — records will be kept in "
                "local storage only."
            )

        if not self.GEMINI_API_KEY.get_secret_value():
            _log.warning(
                "GEMINI_API_KEY is empty — receipt extraction will return "
                "blank drafts."
            )

        return self

    @property
    def cloud_configured(self) -> bool:
        """``True`` when both Supabase settings are present."""
        return bool(self.SUPABASE_URL and self.SUPABASE_ANON_KEY.get_secret_value())


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    On first call, creates an ``AppConfig`` instance (reading from ``.env``).
    Subsequent calls return the same instance.  Uses a check-lock-check
    pattern so the fast path stays lock-free.

    Prefer constructor injection of ``AppConfig`` in new code; the logger
    factory is the main caller of this function.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
