"""
Expense Workflow Service.

Capture, review and housekeeping of expenses on behalf of the signed-in
user:

- ``analyze_receipt`` turns a receipt photo into an editable draft
- ``submit_expense`` stamps identity, owner snapshot and creation time on
  a reviewed draft and stores it as SUBMITTED
- ``review_expense`` lets a MANAGER or ADMIN approve or reject
- ``edit_expense`` / ``delete_expense`` for the owner (or a reviewer)
- ``expense_report`` gives the period totals shown on the sales home page
"""

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional
from uuid import uuid4

from trackexpense.logger import StructuredLogger
from trackexpense.models.enums import ExpenseCategory, ExpenseStatus, UserRole
from trackexpense.models.expense import Expense, ExpenseUpdate
from trackexpense.models.service_models import ExpenseDraft, ExpenseReport, ServiceResult
from trackexpense.models.user import User
from trackexpense.repositories.expense_repository import ExpenseRepository
from trackexpense.services.base_service import BaseService
from trackexpense.services.receipt_extraction import ReceiptExtractionService
from trackexpense.utils.audit import log_audit_event

REVIEW_ROLES: frozenset[UserRole] = frozenset({UserRole.MANAGER, UserRole.ADMIN})


class ExpenseWorkflowService(BaseService):
    """Service layer for the expense lifecycle."""

    def __init__(
        self,
        expense_repo: ExpenseRepository,
        extraction: ReceiptExtractionService,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._expenses = expense_repo
        self._extraction = extraction

    def analyze_receipt(self, image: str) -> ExpenseDraft:
        """Draft an expense from a compressed receipt image.

        Extraction failures are already folded into a blank draft, so this
        always returns something the user can edit.
        """
        return ExpenseDraft.from_analysis(self._extraction.analyze(image), receipt_image=image)

    def submit_expense(
        self,
        draft: ExpenseDraft,
        current_user: Optional[User],
    ) -> ServiceResult[Expense]:
        denied = self._require_login(current_user)
        if denied is not None:
            return denied

        expense = Expense(
            id=uuid4().hex,
            user_id=current_user.id,
            user_name=current_user.name,
            merchant=draft.merchant,
            expense_date=draft.expense_date,
            subtotal=draft.subtotal,
            tax=draft.tax,
            total=draft.total,
            category=draft.category,
            receipt_image=draft.receipt_image,
            status=ExpenseStatus.SUBMITTED,
            notes=draft.notes,
            created_at=datetime.now(timezone.utc),
        )
        outcome = self._expenses.create(expense)
        log_audit_event(
            logger=self._logger,
            action="CREATE",
            entity_type="Expense",
            entity_id=expense.id,
            user_id=current_user.id,
            details={"total": float(expense.total), "outcome": str(outcome)},
        )
        return ServiceResult(success=True, data=expense)

    def review_expense(
        self,
        expense_id: str,
        status: ExpenseStatus,
        current_user: Optional[User],
        notes: Optional[str] = None,
    ) -> ServiceResult[dict[str, str]]:
        """Approve or reject a submitted expense.

        A non-empty *notes* replaces the expense's note; otherwise the
        existing note is kept.
        """
        denied = self._require_login(current_user)
        if denied is not None:
            return denied
        if current_user.role not in REVIEW_ROLES:
            return self._fail("Only MANAGER or ADMIN users can review expenses.", 403)
        if status not in (ExpenseStatus.APPROVED, ExpenseStatus.REJECTED):
            return self._fail(f"Invalid review status '{status}'.", 400)
        if self._expenses.get(expense_id) is None:
            return self._fail("Expense not found.", 404)

        outcome = self._expenses.update_status(expense_id, status, notes)
        log_audit_event(
            logger=self._logger,
            action="APPROVE" if status == ExpenseStatus.APPROVED else "REJECT",
            entity_type="Expense",
            entity_id=expense_id,
            user_id=current_user.id,
            details={"notes": notes or None, "outcome": str(outcome)},
        )
        return ServiceResult(
            success=True, data={"message": f"Expense {expense_id} {status.lower()}."},
        )

    def edit_expense(
        self,
        expense_id: str,
        changes: ExpenseUpdate,
        current_user: Optional[User],
    ) -> ServiceResult[dict[str, str]]:
        """Edit an expense.  Owners may edit fields; only reviewers may set status."""
        expense, denied = self._authorize(expense_id, current_user)
        if denied is not None:
            return denied

        if changes.status is not None and current_user.role not in REVIEW_ROLES:
            return self._fail(
                "Only MANAGER or ADMIN users can change an expense's status.", 403,
            )

        outcome = self._expenses.edit(expense_id, changes)
        log_audit_event(
            logger=self._logger,
            action="EDIT",
            entity_type="Expense",
            entity_id=expense_id,
            user_id=current_user.id,
            details={"fields": ",".join(sorted(changes.to_patch())), "outcome": str(outcome)},
        )
        return ServiceResult(success=True, data={"message": f"Expense {expense_id} updated."})

    def delete_expense(
        self,
        expense_id: str,
        current_user: Optional[User],
    ) -> ServiceResult[dict[str, str]]:
        expense, denied = self._authorize(expense_id, current_user)
        if denied is not None:
            return denied

        outcome = self._expenses.delete(expense_id)
        log_audit_event(
            logger=self._logger,
            action="DELETE",
            entity_type="Expense",
            entity_id=expense_id,
            user_id=current_user.id,
            details={"owner": expense.user_id, "outcome": str(outcome)},
        )
        return ServiceResult(success=True, data={"message": f"Expense {expense_id} deleted."})

    def expense_report(
        self,
        owner_id: str,
        year: int,
        month: Optional[int] = None,
        status: Optional[ExpenseStatus] = None,
    ) -> ExpenseReport:
        """Report over *owner_id*'s expenses dated in *year*.

        *month* (1-12) narrows the period to one month; ``None`` means the
        whole year.  *status* only filters the listed expenses, the totals
        and counts always cover the full period.
        """
        if month is not None and not 1 <= month <= 12:
            raise ValueError(f"month must be between 1 and 12, got {month}")

        in_period = [
            expense
            for expense in self._expenses.list_by_owner(owner_id)
            if expense.expense_date.year == year
            and (month is None or expense.expense_date.month == month)
        ]
        counts = Counter(expense.status for expense in in_period)
        return ExpenseReport(
            year=year,
            month=month,
            status=status,
            expenses=[e for e in in_period if status is None or e.status == status],
            total=sum((expense.total for expense in in_period), Decimal("0")),
            approved=counts[ExpenseStatus.APPROVED],
            submitted=counts[ExpenseStatus.SUBMITTED],
            rejected=counts[ExpenseStatus.REJECTED],
            by_category=self.summarize_by_category(in_period),
        )

    @staticmethod
    def summarize_by_category(expenses: Iterable[Expense]) -> dict[ExpenseCategory, Decimal]:
        """Sum of ``total`` per category, for report views."""
        totals: defaultdict[ExpenseCategory, Decimal] = defaultdict(Decimal)
        for expense in expenses:
            totals[expense.category] += expense.total
        return dict(totals)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _authorize(
        self,
        expense_id: str,
        current_user: Optional[User],
    ) -> tuple[Optional[Expense], Optional[ServiceResult]]:
        denied = self._require_login(current_user)
        if denied is not None:
            return None, denied
        expense = self._expenses.get(expense_id)
        if expense is None:
            return None, self._fail("Expense not found.", 404)
        if expense.user_id != current_user.id and current_user.role not in REVIEW_ROLES:
            return None, self._fail("You can only change your own expenses.", 403)
        return expense, None
