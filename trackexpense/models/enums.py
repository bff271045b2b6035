"""
Shared Enumerations for TrackExpense Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents, so persisted
records can be matched against plain strings.
"""

from __future__ import annotations
from enum import StrEnum


class UserRole(StrEnum):
    """Valid user roles.  New signups are always ``SALES``."""

    SALES = "SALES"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


class ExpenseStatus(StrEnum):
    """Expense review workflow states."""

    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ExpenseCategory(StrEnum):
    """Fixed expense categories.

    Values are title-case because the extraction model is prompted with
    exactly these labels and returns them verbatim.
    """

    RESTAURANT = "Restaurant"
    HOTEL = "Hotel"
    TRANSPORT = "Transport"
    SUPPLIES = "Supplies"
    MILEAGE = "Mileage"
    FUEL = "Fuel"
    PARKING = "Parking"
    MISCELLANEOUS = "Miscellaneous"


class StoreMode(StrEnum):
    """Which backing store the record layer is talking to."""

    CLOUD = "CLOUD"
    LOCAL = "LOCAL"


class PersistOutcome(StrEnum):
    """Result of a single write through the record store.

    ``DEFERRED`` means the write was queued for the cloud store and will
    become visible once the store redelivers the collection.  ``DEGRADED``
    means the local snapshot was saved with image payloads stripped.
    """

    SAVED = "SAVED"
    DEGRADED = "DEGRADED"
    FAILED = "FAILED"
    DEFERRED = "DEFERRED"
    NOOP = "NOOP"
