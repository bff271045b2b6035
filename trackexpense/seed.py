"""
Built-in demo data.

Used on first run when no persisted snapshot exists, so a fresh install
has one account per role to sign in with and a couple of expenses to look at.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from urllib.parse import urlencode

from trackexpense.models.enums import ExpenseCategory, ExpenseStatus, UserRole
from trackexpense.models.expense import Expense
from trackexpense.models.user import User
from trackexpense.utils.general import JsonRecord

DEMO_SALES_ID: str = "u-sales-demo"


def avatar_url(name: str) -> str:
    """Generated initials avatar for *name*."""
    query = urlencode({"name": name, "background": "2563eb", "color": "fff"})
    return f"https://ui-avatars.com/api/?{query}"


def demo_users() -> list[JsonRecord]:
    users = [
        User(
            id="u-admin-demo",
            name="Ana Admin",
            email="admin@trackexpense.demo",
            password="admin123",
            role=UserRole.ADMIN,
            avatar=avatar_url("Ana Admin"),
        ),
        User(
            id="u-manager-demo",
            name="Marco Manager",
            email="manager@trackexpense.demo",
            password="manager123",
            role=UserRole.MANAGER,
            avatar=avatar_url("Marco Manager"),
        ),
        User(
            id=DEMO_SALES_ID,
            name="Sofia Sales",
            email="sales@trackexpense.demo",
            password="sales123",
            role=UserRole.SALES,
            avatar=avatar_url("Sofia Sales"),
        ),
    ]
    return [user.to_record() for user in users]


def demo_expenses() -> list[JsonRecord]:
    expenses = [
        Expense(
            id="e-demo-2",
            user_id=DEMO_SALES_ID,
            user_name="Sofia Sales",
            merchant="Hotel Central",
            expense_date=date(2025, 3, 12),
            subtotal=Decimal("110.00"),
            tax=Decimal("11.00"),
            total=Decimal("121.00"),
            category=ExpenseCategory.HOTEL,
            status=ExpenseStatus.APPROVED,
            created_at=datetime(2025, 3, 12, 21, 5, tzinfo=timezone.utc),
        ),
        Expense(
            id="e-demo-1",
            user_id=DEMO_SALES_ID,
            user_name="Sofia Sales",
            merchant="Cafe Norte",
            expense_date=date(2025, 3, 10),
            subtotal=Decimal("18.50"),
            tax=Decimal("1.85"),
            total=Decimal("20.35"),
            category=ExpenseCategory.RESTAURANT,
            created_at=datetime(2025, 3, 10, 13, 30, tzinfo=timezone.utc),
        ),
    ]
    return [expense.to_record() for expense in expenses]
