"""
Business Logic Services Package.

Services depend on the Repository layer for data access and receive the
signed-in user explicitly.

The ``create_services()`` factory wires every repository and service together,
returning a typed dict that the application layer can consume without
knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import Callable, Optional, TypedDict

from trackexpense.auth import SessionManager
from trackexpense.config import AppConfig
from trackexpense.database import DatabaseManager
from trackexpense.logger import get_logger
from trackexpense.repositories.expense_repository import ExpenseRepository
from trackexpense.repositories.user_repository import UserRepository
from trackexpense.seed import demo_expenses, demo_users
from trackexpense.services.expense_workflow import ExpenseWorkflowService
from trackexpense.services.receipt_extraction import ReceiptExtractionService
from trackexpense.services.users import UserAdminService


class ServiceContainer(TypedDict):
    """Typed container for the repositories and services."""

    # --- Repositories ---
    expense_repository: ExpenseRepository
    user_repository: UserRepository

    # --- Services ---
    receipt_extraction_service: ReceiptExtractionService
    user_admin_service: UserAdminService
    expense_workflow_service: ExpenseWorkflowService


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    session: SessionManager,
    alert: Optional[Callable[[str], None]] = None,
) -> ServiceContainer:
    """
    Wire all repositories and services together.

    This is the single composition root for the service layer.  The
    application entry-point calls this once at startup.

    Args:
        db: Initialised DatabaseManager with the record store selected.
        config: Application configuration.
        session: Session holder shared with the user repository.
        alert: User-facing advisory message sink.

    Returns:
        ServiceContainer mapping names to fully-wired instances.
    """
    logger = get_logger("services")

    # ------------------------------------------------------------------
    # 1. Repositories (subscribe to their collections on construction)
    # ------------------------------------------------------------------
    expense_repo = ExpenseRepository(
        db=db,
        logger=get_logger("repositories.expenses"),
        collection=config.EXPENSES_COLLECTION,
        seed=demo_expenses,
    )
    user_repo = UserRepository(
        db=db,
        session=session,
        logger=get_logger("repositories.users"),
        collection=config.USERS_COLLECTION,
        seed=demo_users,
        alert=alert,
    )

    # ------------------------------------------------------------------
    # 2. Services
    # ------------------------------------------------------------------
    extraction = ReceiptExtractionService(
        api_key=config.GEMINI_API_KEY.get_secret_value(),
        model=config.GEMINI_MODEL,
        logger=get_logger("services.extraction"),
        timeout_s=config.GEMINI_TIMEOUT_S,
    )

    return ServiceContainer(
        expense_repository=expense_repo,
        user_repository=user_repo,
        receipt_extraction_service=extraction,
        user_admin_service=UserAdminService(
            user_repo=user_repo,
            expense_repo=expense_repo,
            logger=logger,
        ),
        expense_workflow_service=ExpenseWorkflowService(
            expense_repo=expense_repo,
            extraction=extraction,
            logger=logger,
        ),
    )


__all__ = [
    "ExpenseWorkflowService",
    "ReceiptExtractionService",
    "ServiceContainer",
    "UserAdminService",
    "create_services",
]
