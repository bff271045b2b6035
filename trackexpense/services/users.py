"""
User Administration Service.

Admin-surface operations over user accounts: listing, role changes,
profile change approval and account deletion.

Architectural notes:
    - Only ADMIN users may call these operations.
    - An admin can never change their own role or delete their own account.
    - Deleting a user cascades to their expenses, and the cascade is
      issued before the account delete so no expense is ever left with a
      dangling owner.
"""

from __future__ import annotations

from typing import Optional

from trackexpense.logger import StructuredLogger
from trackexpense.models.enums import UserRole
from trackexpense.models.service_models import ServiceResult
from trackexpense.models.user import User
from trackexpense.repositories.expense_repository import ExpenseRepository
from trackexpense.repositories.user_repository import UserRepository
from trackexpense.services.base_service import BaseService
from trackexpense.utils.audit import log_audit_event


class UserAdminService(BaseService):
    """Service layer for admin user management operations."""

    def __init__(
        self,
        user_repo: UserRepository,
        expense_repo: ExpenseRepository,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._users = user_repo
        self._expenses = expense_repo

    def list_users(self, current_user: Optional[User]) -> ServiceResult[list[User]]:
        """All accounts, for the admin user table."""
        denied = self._require_admin(current_user, "list users")
        if denied is not None:
            return denied
        return ServiceResult(success=True, data=self._users.users)

    def update_user_role(
        self,
        user_id: str,
        new_role: str,
        current_user: Optional[User],
    ) -> ServiceResult[dict[str, str]]:
        """Change another user's role.

        Args:
            user_id: Target account.
            new_role: One of 'SALES', 'MANAGER', 'ADMIN'.
            current_user: The signed-in admin performing the change.
        """
        denied = self._require_admin(current_user, "update user roles")
        if denied is not None:
            return denied

        try:
            validated_role = UserRole(new_role)
        except ValueError:
            return self._fail(
                f"Invalid role specified: '{new_role}'. "
                f"Must be one of: {', '.join(r.value for r in UserRole)}.",
                400,
            )

        if user_id == current_user.id:
            return self._fail("You cannot change your own role.", 409)

        user = self._users.get_by_id(user_id)
        if user is None:
            return self._fail("User not found.", 404)

        outcome = self._users.update_role(user_id, validated_role, acting_user_id=current_user.id)
        log_audit_event(
            logger=self._logger,
            action="UPDATE_ROLE",
            entity_type="User",
            entity_id=user_id,
            user_id=current_user.id,
            details={
                "old_role": str(user.role),
                "new_role": str(validated_role),
                "outcome": str(outcome),
            },
        )
        return ServiceResult(
            success=True,
            data={"message": f"Role for user {user.name} updated to {validated_role}."},
        )

    def resolve_profile_update(
        self,
        user_id: str,
        approve: bool,
        current_user: Optional[User],
    ) -> ServiceResult[dict[str, str]]:
        """Approve or reject a user's pending name/email change."""
        denied = self._require_admin(current_user, "review profile changes")
        if denied is not None:
            return denied

        user = self._users.get_by_id(user_id)
        if user is None:
            return self._fail("User not found.", 404)
        if user.pending_updates is None:
            return self._fail("No pending profile update.", 404)

        outcome = self._users.resolve_profile_update(user_id, approve)
        log_audit_event(
            logger=self._logger,
            action="APPROVE_PROFILE_UPDATE" if approve else "REJECT_PROFILE_UPDATE",
            entity_type="User",
            entity_id=user_id,
            user_id=current_user.id,
            details={
                "proposed_name": user.pending_updates.name,
                "proposed_email": user.pending_updates.email,
                "outcome": str(outcome),
            },
        )
        verdict = "approved" if approve else "rejected"
        return ServiceResult(
            success=True, data={"message": f"Profile change for {user.name} {verdict}."},
        )

    def delete_user(
        self,
        user_id: str,
        current_user: Optional[User],
    ) -> ServiceResult[dict[str, str]]:
        """Delete an account and every expense it owns."""
        denied = self._require_admin(current_user, "delete users")
        if denied is not None:
            return denied

        if user_id == current_user.id:
            return self._fail("You cannot delete your own account.", 409)

        user = self._users.get_by_id(user_id)
        if user is None:
            return self._fail("User not found.", 404)

        expense_count = len(self._expenses.list_by_owner(user_id))
        cascade_outcome = self._expenses.delete_by_owner(user_id)
        user_outcome = self._users.delete_user(user_id, acting_user_id=current_user.id)

        log_audit_event(
            logger=self._logger,
            action="DELETE_USER",
            entity_type="User",
            entity_id=user_id,
            user_id=current_user.id,
            details={
                "email": user.email,
                "expenses_removed": expense_count,
                "expenses_outcome": str(cascade_outcome),
                "user_outcome": str(user_outcome),
            },
        )
        return ServiceResult(
            success=True,
            data={"message": f"User {user.name} and {expense_count} expense(s) deleted."},
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require_admin(
        self, current_user: Optional[User], action: str,
    ) -> Optional[ServiceResult]:
        denied = self._require_login(current_user)
        if denied is not None:
            return denied
        if current_user.role != UserRole.ADMIN:
            self._logger.warning("User %s may not %s", current_user.id, action)
            return self._fail(f"Only ADMIN users can {action}.", 403)
        return None
