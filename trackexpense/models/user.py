"""
User Model.

User accounts plus the staged profile change awaiting admin approval.
Passwords are kept in plaintext to stay login-compatible with existing
stored accounts.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from trackexpense.models.enums import UserRole
from trackexpense.utils.general import JsonRecord


def normalize_email(email: str) -> str:
    """Canonical form used for every email comparison."""
    return email.strip().lower()


class PendingProfileUpdate(BaseModel):
    """A proposed name/email change.  At most one exists per user."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    email: str
    requested_at: datetime = Field(alias="date")


class User(BaseModel):
    """Represents a user account."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    email: str
    password: str = Field(default="", repr=False)
    role: UserRole = UserRole.SALES
    avatar: str = ""
    pending_updates: Optional[PendingProfileUpdate] = None

    @property
    def has_pending_update(self) -> bool:
        return self.pending_updates is not None

    def matches_email(self, email: str) -> bool:
        return normalize_email(self.email) == normalize_email(email)

    def to_record(self) -> JsonRecord:
        """Serialise to the stored camelCase document."""
        return self.model_dump(mode="json", by_alias=True)
