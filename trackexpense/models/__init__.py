"""
Data Models Package.

Re-exports all Pydantic models:
    from trackexpense.models import Expense, ExpenseUpdate, User, PendingProfileUpdate
    from trackexpense.models import UserRole, ExpenseStatus, ExpenseCategory
"""

from trackexpense.models.enums import (
    ExpenseCategory,
    ExpenseStatus,
    PersistOutcome,
    StoreMode,
    UserRole,
)
from trackexpense.models.expense import Expense, ExpenseUpdate
from trackexpense.models.service_models import (
    ExpenseDraft,
    ExpenseReport,
    ReceiptAnalysisResult,
    ServiceResult,
)
from trackexpense.models.user import PendingProfileUpdate, User

__all__ = [
    "ExpenseCategory",
    "ExpenseStatus",
    "PersistOutcome",
    "StoreMode",
    "UserRole",
    "Expense",
    "ExpenseUpdate",
    "ExpenseDraft",
    "ExpenseReport",
    "ReceiptAnalysisResult",
    "ServiceResult",
    "PendingProfileUpdate",
    "User",
]
