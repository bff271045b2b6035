"""
Expense Model.

One receipt-backed expense record.  Records are stored as camelCase JSON
documents (``userId``, ``createdAt``, ``receiptImage``) so the same payload
serves the local snapshot and the cloud table.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel

from trackexpense.models.enums import ExpenseCategory, ExpenseStatus
from trackexpense.utils.general import JsonRecord

# Non-negative money amount, stored as a JSON number.
Amount = Annotated[
    Decimal,
    Field(ge=0),
    PlainSerializer(float, return_type=float, when_used="json"),
]


class Expense(BaseModel):
    """A submitted expense.

    ``user_name`` is a snapshot of the owner's display name at creation
    time and is not re-synced when the user is renamed.  No relation
    between ``subtotal``, ``tax`` and ``total`` is enforced.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    user_id: str
    user_name: str = ""
    merchant: str = ""
    expense_date: date = Field(alias="date")
    subtotal: Amount = Decimal("0")
    tax: Amount = Decimal("0")
    total: Amount = Decimal("0")
    category: ExpenseCategory = ExpenseCategory.MISCELLANEOUS
    receipt_image: str = Field(default="", repr=False)
    status: ExpenseStatus = ExpenseStatus.SUBMITTED
    notes: str = ""
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        # Ordering compares created_at across records; naive values are UTC.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_record(self) -> JsonRecord:
        """Serialise to the stored camelCase document."""
        return self.model_dump(mode="json", by_alias=True)


class ExpenseUpdate(BaseModel):
    """Partial edit of an expense.

    Identity fields (``id``, ``user_id``, ``created_at``) are deliberately
    absent: they are immutable after creation.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    merchant: Optional[str] = None
    expense_date: Optional[date] = Field(default=None, alias="date")
    subtotal: Optional[Amount] = None
    tax: Optional[Amount] = None
    total: Optional[Amount] = None
    category: Optional[ExpenseCategory] = None
    receipt_image: Optional[str] = Field(default=None, repr=False)
    status: Optional[ExpenseStatus] = None
    notes: Optional[str] = None

    def to_patch(self) -> JsonRecord:
        """Only the fields the caller actually set, as stored keys."""
        return self.model_dump(
            mode="json", by_alias=True, exclude_unset=True, exclude_none=True,
        )
