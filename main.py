"""
TrackExpense Entry Point.

Bootstraps the dependency graph via constructor injection, selects the
record store (Supabase when configured, local SQLite otherwise), restores
the persisted session and loads both collections.  Every subsystem is
wired here, no module-level globals.

Usage::

    python main.py
"""

from __future__ import annotations

import atexit
import sys
import traceback
from pathlib import Path

from trackexpense.auth import SessionManager
from trackexpense.config import get_config
from trackexpense.database import DatabaseManager
from trackexpense.logger import StructuredLogger, get_logger
from trackexpense.services import create_services

_LOAD_TIMEOUT_S: float = 10.0


def main() -> None:
    """Application entry point: wire dependencies and report state."""
    logger: StructuredLogger = get_logger("main")
    logger.info("Starting TrackExpense...")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()
    alert_logger = get_logger("alerts")

    def alert(message: str) -> None:
        alert_logger.warning(message)
        sys.stderr.write(f"{message}\n")

    # ------------------------------------------------------------------
    # 2. Database Manager (cloud when configured, local SQLite otherwise)
    # ------------------------------------------------------------------
    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        sqlite_path=Path(config.LOCAL_DB_PATH),
        logger=StructuredLogger(name="database"),
        storage_quota_bytes=config.LOCAL_STORAGE_QUOTA_BYTES,
        storage_keys={
            config.EXPENSES_COLLECTION: config.EXPENSES_STORAGE_KEY,
            config.USERS_COLLECTION: config.USERS_STORAGE_KEY,
        },
        alert=alert,
        poll_interval_s=config.CLOUD_POLL_INTERVAL_S,
    )

    # DatabaseManager.close() is idempotent, so this is safe alongside
    # the explicit close below.
    atexit.register(db.close)

    # ------------------------------------------------------------------
    # 3. Session Manager (restores the persisted user id)
    # ------------------------------------------------------------------
    session = SessionManager(
        storage=db.storage,
        storage_key=config.SESSION_STORAGE_KEY,
        logger=StructuredLogger(name="session"),
    )

    # ------------------------------------------------------------------
    # 4. Service Container (repositories + services)
    # ------------------------------------------------------------------
    services = create_services(db=db, config=config, session=session, alert=alert)
    expenses = services["expense_repository"]
    users = services["user_repository"]

    try:
        for repo in (users, expenses):
            if not repo.wait_until_loaded(_LOAD_TIMEOUT_S):
                logger.warning("Timed out waiting for '%s' to load.", repo.collection)

        current = users.current_user
        logger.info(
            "TrackExpense ready: mode=%s users=%d expenses=%d signed_in=%s",
            db.mode,
            len(users.users),
            len(expenses.expenses),
            current.email if current else None,
        )
    finally:
        expenses.close()
        users.close()
        services["receipt_extraction_service"].close()
        db.close()
        logger.info("TrackExpense shut down.")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n{detail}")
        sys.exit(1)
