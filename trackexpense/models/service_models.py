"""
Service Layer Data Transfer Objects.

Pydantic models for validated input/output at service boundaries.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from trackexpense.models.enums import ExpenseCategory, ExpenseStatus
from trackexpense.models.expense import Amount, Expense

T = TypeVar("T")

__all__ = [
    "ExpenseDraft",
    "ExpenseReport",
    "ReceiptAnalysisResult",
    "ServiceResult",
]


# ---------------------------------------------------------------------------
# Receipt extraction
# ---------------------------------------------------------------------------

class ReceiptAnalysisResult(BaseModel):
    """Structured fields returned by the extraction collaborator.

    Missing amounts default to zero and an unrecognised category collapses
    to ``Miscellaneous`` so a partially understood receipt still validates.
    """

    model_config = ConfigDict(populate_by_name=True)

    merchant: str = ""
    receipt_date: date = Field(default_factory=date.today, alias="date")
    subtotal: Amount = Decimal("0")
    tax: Amount = Decimal("0")
    total: Amount = Decimal("0")
    category: ExpenseCategory = ExpenseCategory.MISCELLANEOUS

    @field_validator("category", mode="before")
    @classmethod
    def _known_category(cls, value: object) -> object:
        if isinstance(value, str):
            for category in ExpenseCategory:
                if category.value.lower() == value.strip().lower():
                    return category
            return ExpenseCategory.MISCELLANEOUS
        return value

    @field_validator("receipt_date", mode="before")
    @classmethod
    def _unreadable_date_is_today(cls, value: object) -> object:
        if isinstance(value, str):
            try:
                return date.fromisoformat(value.strip())
            except ValueError:
                return date.today()
        return value

    @field_validator("subtotal", "tax", "total", mode="before")
    @classmethod
    def _blank_is_zero(cls, value: object) -> object:
        return Decimal("0") if value in (None, "") else value

    @classmethod
    def fallback(cls) -> "ReceiptAnalysisResult":
        """Blank draft used whenever extraction fails for any reason."""
        return cls()


class ExpenseDraft(BaseModel):
    """User-reviewed fields for a new expense, before identity is assigned."""

    model_config = ConfigDict(populate_by_name=True)

    merchant: str = ""
    expense_date: date = Field(alias="date")
    subtotal: Amount = Decimal("0")
    tax: Amount = Decimal("0")
    total: Amount = Decimal("0")
    category: ExpenseCategory = ExpenseCategory.MISCELLANEOUS
    receipt_image: str = Field(default="", repr=False)
    notes: str = ""

    @classmethod
    def from_analysis(
        cls, result: ReceiptAnalysisResult, receipt_image: str = "",
    ) -> "ExpenseDraft":
        return cls(
            merchant=result.merchant,
            expense_date=result.receipt_date,
            subtotal=result.subtotal,
            tax=result.tax,
            total=result.total,
            category=result.category,
            receipt_image=receipt_image,
        )


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

class ExpenseReport(BaseModel):
    """One owner's expenses for a year, or for a single month of it.

    ``total``, the status counts and ``by_category`` cover the whole period.
    ``expenses`` is narrowed by the optional status filter and stays
    newest first.
    """

    model_config = ConfigDict(frozen=True)

    year: int
    month: Optional[int] = None
    status: Optional[ExpenseStatus] = None
    expenses: list[Expense] = Field(default_factory=list)
    total: Amount = Decimal("0")
    approved: int = 0
    submitted: int = 0
    rejected: int = 0
    by_category: dict[ExpenseCategory, Decimal] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Generic service models
# ---------------------------------------------------------------------------

class ServiceResult(BaseModel, Generic[T]):
    """
    Standard service return envelope.

    All service methods return this, providing a consistent contract
    for the view/command layer.

    Generic over ``T`` so callers can annotate return types precisely
    (e.g. ``ServiceResult[list[User]]``).  Bare ``ServiceResult(...)``
    is treated as ``ServiceResult[Any]`` at runtime.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    status_code: int = 200
