"""
Expense Repository.

Owns the collection of expense records.  The visible collection is always
ordered newest-creation-first; the order is re-applied after every store
delivery because the cloud store does not deliver rows in creation order.
"""

from __future__ import annotations

from typing import Optional

from trackexpense.database import DatabaseManager
from trackexpense.logger import StructuredLogger
from trackexpense.models.enums import ExpenseStatus, PersistOutcome
from trackexpense.models.expense import Expense, ExpenseUpdate
from trackexpense.repositories.base_repository import BaseRepository
from trackexpense.storage.record_store import SeedFactory
from trackexpense.utils.general import JsonRecord


class ExpenseRepository(BaseRepository[Expense]):
    """Data access layer for Expense records.

    In cloud mode every write returns ``PersistOutcome.DEFERRED`` and shows
    up in :attr:`expenses` only after the store redelivers the collection.
    In local mode the write is visible when the call returns.
    """

    OWNER_FIELD: str = "userId"

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        collection: str = "expenses",
        seed: Optional[SeedFactory] = None,
    ) -> None:
        super().__init__(db, logger, collection, seed)

    # ------------------------------------------------------------------
    # Reads (no I/O)
    # ------------------------------------------------------------------

    @property
    def expenses(self) -> list[Expense]:
        """All expenses, newest first."""
        return self._snapshot()

    def get(self, expense_id: str) -> Optional[Expense]:
        return self._find(expense_id)

    def list_by_owner(self, owner_id: str) -> list[Expense]:
        """Expenses owned by *owner_id*, newest first."""
        return [expense for expense in self._snapshot() if expense.user_id == owner_id]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, expense: Expense) -> PersistOutcome:
        """Store a new expense, keyed by its caller-generated id.

        The keyed put makes a retried create idempotent.
        """
        outcome = self.store.put(
            self._collection, expense.id, expense.to_record(), prepend=True,
        )
        self._logger.info("Expense %s created for %s (%s)", expense.id, expense.user_id, outcome)
        return outcome

    def edit(self, expense_id: str, changes: ExpenseUpdate) -> PersistOutcome:
        """Overwrite only the fields set on *changes*.  No-op for unknown ids."""
        patch = changes.to_patch()
        if not patch:
            return PersistOutcome.NOOP
        outcome = self.store.patch(self._collection, expense_id, patch)
        self._logger.info(
            "Expense %s edited: %s (%s)", expense_id, sorted(patch), outcome,
        )
        return outcome

    def update_status(
        self,
        expense_id: str,
        status: ExpenseStatus,
        notes: Optional[str] = None,
    ) -> PersistOutcome:
        """Set the review status.

        ``notes`` replaces the existing note only when it is non-empty; an
        empty or missing note keeps whatever note the expense already has.
        """
        patch: JsonRecord = {"status": str(status)}
        if notes:
            patch["notes"] = notes
        outcome = self.store.patch(self._collection, expense_id, patch)
        self._logger.info("Expense %s status -> %s (%s)", expense_id, status, outcome)
        return outcome

    def delete(self, expense_id: str) -> PersistOutcome:
        """Remove one expense.  No-op for unknown ids."""
        outcome = self.store.delete(self._collection, expense_id)
        self._logger.info("Expense %s deleted (%s)", expense_id, outcome)
        return outcome

    def delete_by_owner(self, owner_id: str) -> PersistOutcome:
        """Remove every expense owned by *owner_id* in a single store operation."""
        outcome = self.store.delete_where(self._collection, self.OWNER_FIELD, owner_id)
        self._logger.info("Expenses of user %s deleted (%s)", owner_id, outcome)
        return outcome

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _parse(self, record: JsonRecord) -> Expense:
        return Expense.model_validate(record)

    def _order(self, items: list[Expense]) -> list[Expense]:
        # Stable: records with equal timestamps keep store order.
        return sorted(items, key=lambda expense: expense.created_at, reverse=True)
