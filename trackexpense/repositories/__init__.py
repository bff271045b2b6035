"""
Repository Layer Package.

Repositories own the in-memory record collections and are the only code
that writes to the record store.

Usage:
    from trackexpense.repositories.expense_repository import ExpenseRepository
    from trackexpense.repositories.user_repository import UserRepository
"""

from trackexpense.repositories.base_repository import BaseRepository
from trackexpense.repositories.expense_repository import ExpenseRepository
from trackexpense.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "ExpenseRepository",
    "UserRepository",
]
