"""
User Repository.

Owns the collection of user accounts, the sign-in flow and the two-phase
profile change workflow.

A user's pending profile update moves ``none -> pending`` on
:meth:`UserRepository.request_profile_update` and back to ``none`` on
:meth:`UserRepository.resolve_profile_update` (approve or reject).  A second
request while one is pending overwrites it.  The live name and email only
ever change through an approval.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import uuid4

from trackexpense.auth import SessionManager
from trackexpense.database import DatabaseManager
from trackexpense.logger import StructuredLogger
from trackexpense.models.enums import PersistOutcome, StoreMode, UserRole
from trackexpense.models.user import PendingProfileUpdate, User
from trackexpense.repositories.base_repository import BaseRepository
from trackexpense.seed import avatar_url
from trackexpense.storage.record_store import SeedFactory
from trackexpense.utils.general import JsonRecord

DUPLICATE_EMAIL_MESSAGE: str = "User already exists with this email. Please login."


class UserRepository(BaseRepository[User]):
    """Data access layer for User accounts.

    Parameters
    ----------
    db:
        Database manager providing the record store.
    session:
        Session holder; login/signup start it, deleting the signed-in
        user ends it.
    logger:
        Structured logger.
    collection:
        Collection (cloud table) name.
    seed:
        Demo accounts used when no user snapshot exists yet.
    alert:
        User-facing advisory message sink.
    """

    def __init__(
        self,
        db: DatabaseManager,
        session: SessionManager,
        logger: StructuredLogger,
        collection: str = "users",
        seed: Optional[SeedFactory] = None,
        alert: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._session = session
        self._restored_user_id: Optional[str] = session.user_id
        self._alert: Callable[[str], None] = alert or (
            lambda message: logger.warning("ALERT: %s", message)
        )
        super().__init__(db, logger, collection, seed)

    # ------------------------------------------------------------------
    # Reads (no I/O)
    # ------------------------------------------------------------------

    @property
    def users(self) -> list[User]:
        return self._snapshot()

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self._find(user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup by email."""
        for user in self._snapshot():
            if user.matches_email(email):
                return user
        return None

    @property
    def current_user(self) -> Optional[User]:
        """The signed-in user, looked up fresh from the collection."""
        user_id = self._session.user_id
        return self._find(user_id) if user_id else None

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> Optional[User]:
        """Sign in with a case-insensitive email and an exact password match."""
        user = self.get_by_email(email)
        if user is None or user.password != password:
            self._logger.info("Login rejected for %s", email)
            return None
        self._session.start(user.id)
        self._logger.info("User %s signed in", user.id)
        return user

    def logout(self) -> None:
        self._session.end()

    def signup(self, name: str, email: str, password: str) -> Optional[User]:
        """Create a SALES account and sign it in.

        Returns ``None`` (after alerting the user) when the email is taken.
        The check runs against the current collection only.
        """
        if self.get_by_email(email) is not None:
            self._logger.info("Signup rejected: email %s already registered", email)
            self._alert(DUPLICATE_EMAIL_MESSAGE)
            return None

        user = User(
            id=f"u-{uuid4().hex[:12]}",
            name=name,
            email=email.strip(),
            password=password,
            role=UserRole.SALES,
            avatar=avatar_url(name),
        )
        outcome = self.store.put(self._collection, user.id, user.to_record())
        self._session.start(user.id)
        self._logger.info("User %s signed up (%s)", user.id, outcome)
        return user

    # ------------------------------------------------------------------
    # Direct field updates
    # ------------------------------------------------------------------

    def update_role(
        self,
        user_id: str,
        role: UserRole,
        acting_user_id: Optional[str] = None,
    ) -> PersistOutcome:
        """Change a user's role.  A user may not change their own role."""
        if acting_user_id is not None and acting_user_id == user_id:
            self._logger.warning("User %s tried to change their own role", user_id)
            return PersistOutcome.NOOP
        return self._patch(user_id, {"role": str(role)}, "role")

    def update_avatar(self, user_id: str, avatar: str) -> PersistOutcome:
        return self._patch(user_id, {"avatar": avatar}, "avatar")

    def update_password(self, user_id: str, password: str) -> PersistOutcome:
        return self._patch(user_id, {"password": password}, "password")

    # ------------------------------------------------------------------
    # Profile change workflow
    # ------------------------------------------------------------------

    def request_profile_update(self, user_id: str, name: str, email: str) -> PersistOutcome:
        """Stage a name/email change, replacing any pending one."""
        pending = PendingProfileUpdate(
            name=name, email=email, requested_at=datetime.now(timezone.utc),
        )
        return self._patch(
            user_id,
            {"pendingUpdates": pending.model_dump(mode="json", by_alias=True)},
            "pending profile update",
        )

    def resolve_profile_update(self, user_id: str, approve: bool) -> PersistOutcome:
        """Apply (``approve=True``) or discard the pending change.

        Either way the pending change is cleared.  No-op when the user is
        unknown or has nothing pending.
        """
        user = self._find(user_id)
        if user is None or user.pending_updates is None:
            return PersistOutcome.NOOP

        patch: JsonRecord = {"pendingUpdates": None}
        if approve:
            patch["name"] = user.pending_updates.name
            patch["email"] = user.pending_updates.email
        return self._patch(
            user_id, patch, "profile update approved" if approve else "profile update rejected",
        )

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def delete_user(self, user_id: str, acting_user_id: Optional[str] = None) -> PersistOutcome:
        """Remove an account; ends the session if it was the signed-in user.

        Does not touch the user's expenses: callers must cascade those first
        (see :class:`~trackexpense.services.users.UserAdminService`).  A user
        may not delete themself.
        """
        if acting_user_id is not None and acting_user_id == user_id:
            self._logger.warning("User %s tried to delete themself", user_id)
            return PersistOutcome.NOOP

        outcome = self.store.delete(self._collection, user_id)
        if self._session.user_id == user_id:
            self._session.end()
        self._logger.info("User %s deleted (%s)", user_id, outcome)
        return outcome

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _parse(self, record: JsonRecord) -> User:
        return User.model_validate(record)

    def _after_delivery(self, first: bool) -> None:
        if not first:
            return
        known = {user.id for user in self._items}
        # A brand-new cloud project gets the demo accounts once.
        if not self._items and self._seed is not None and self.store.mode == StoreMode.CLOUD:
            seeds = self._seed()
            self._logger.info("Users table is empty; writing %d demo account(s).", len(seeds))
            for record in seeds:
                self.store.put(self._collection, str(record["id"]), record)
            known = {str(record["id"]) for record in seeds}

        restored = self._restored_user_id
        if restored is None or restored in known or self._session.user_id != restored:
            return
        self._logger.info("Restored session for unknown user %s; signing out.", restored)
        self._session.end()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _patch(self, user_id: str, changes: JsonRecord, label: str) -> PersistOutcome:
        outcome = self.store.patch(self._collection, user_id, changes)
        self._logger.info("User %s %s updated (%s)", user_id, label, outcome)
        return outcome
