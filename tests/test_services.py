"""Tests for the admin and expense workflow services."""

from datetime import date
from decimal import Decimal

import pytest
from conftest import FakeSupabase, flush

from trackexpense.models import (
    ExpenseCategory,
    ExpenseDraft,
    ExpenseStatus,
    ExpenseUpdate,
    UserRole,
)
from trackexpense.seed import DEMO_SALES_ID, demo_expenses, demo_users
from trackexpense.services.expense_workflow import ExpenseWorkflowService
from trackexpense.services.receipt_extraction import ReceiptExtractionService
from trackexpense.services.users import UserAdminService


@pytest.fixture
def extraction(logger):
    service = ReceiptExtractionService(api_key="", model="gemini-2.5-flash", logger=logger)
    yield service
    service.close()


@pytest.fixture
def local_services(local_db, make_repos, logger, extraction):
    users, expenses, session = make_repos(local_db)
    return (
        users,
        expenses,
        UserAdminService(user_repo=users, expense_repo=expenses, logger=logger),
        ExpenseWorkflowService(expense_repo=expenses, extraction=extraction, logger=logger),
    )


def _draft(**overrides) -> ExpenseDraft:
    fields = dict(
        merchant="Taxi 24",
        expense_date=date(2025, 6, 3),
        subtotal=Decimal("20"),
        tax=Decimal("2"),
        total=Decimal("22"),
        category=ExpenseCategory.TRANSPORT,
    )
    fields.update(overrides)
    return ExpenseDraft(**fields)


class TestUserAdminService:
    def test_requires_admin(self, local_services):
        users, _, admin, _ = local_services
        assert admin.list_users(None).status_code == 401
        manager = users.get_by_id("u-manager-demo")
        assert admin.list_users(manager).status_code == 403
        assert admin.delete_user(DEMO_SALES_ID, manager).status_code == 403

    def test_list_users(self, local_services):
        users, _, admin, _ = local_services
        result = admin.list_users(users.get_by_id("u-admin-demo"))
        assert result.success
        assert len(result.data) == 3

    def test_update_role(self, local_services):
        users, _, admin, _ = local_services
        me = users.get_by_id("u-admin-demo")

        result = admin.update_user_role(DEMO_SALES_ID, "MANAGER", me)

        assert result.success
        assert users.get_by_id(DEMO_SALES_ID).role == UserRole.MANAGER

    @pytest.mark.parametrize(
        "target, role, status",
        [
            (DEMO_SALES_ID, "SUPERUSER", 400),
            ("u-admin-demo", "SALES", 409),
            ("ghost", "SALES", 404),
        ],
    )
    def test_update_role_rejections(self, local_services, target, role, status):
        users, _, admin, _ = local_services
        result = admin.update_user_role(target, role, users.get_by_id("u-admin-demo"))
        assert not result.success
        assert result.status_code == status
        assert users.get_by_id("u-admin-demo").role == UserRole.ADMIN

    def test_delete_user_cascades_expenses(self, local_services):
        users, expenses, admin, _ = local_services
        result = admin.delete_user(DEMO_SALES_ID, users.get_by_id("u-admin-demo"))

        assert result.success
        assert users.get_by_id(DEMO_SALES_ID) is None
        assert expenses.list_by_owner(DEMO_SALES_ID) == []

    def test_cannot_delete_self(self, local_services):
        users, _, admin, _ = local_services
        result = admin.delete_user("u-admin-demo", users.get_by_id("u-admin-demo"))
        assert result.status_code == 409
        assert users.get_by_id("u-admin-demo") is not None

    def test_resolve_profile_update(self, local_services):
        users, _, admin, _ = local_services
        me = users.get_by_id("u-admin-demo")
        assert admin.resolve_profile_update(DEMO_SALES_ID, True, me).status_code == 404

        users.request_profile_update(DEMO_SALES_ID, "Sofia P", "sofia.p@example.com")
        result = admin.resolve_profile_update(DEMO_SALES_ID, True, me)

        assert result.success
        assert users.get_by_id(DEMO_SALES_ID).email == "sofia.p@example.com"

    def test_cloud_cascade_runs_before_user_delete(self, make_db, make_repos, logger):
        cloud = FakeSupabase({"users": demo_users(), "expenses": demo_expenses()})
        db = make_db(cloud=cloud)
        users, expenses, _ = make_repos(db)
        flush(db)
        admin = UserAdminService(user_repo=users, expense_repo=expenses, logger=logger)

        assert admin.delete_user(DEMO_SALES_ID, users.get_by_id("u-admin-demo")).success
        flush(db)

        deletes = [(t, f) for t, op, f in cloud.calls if op == "delete"]
        assert deletes == [
            ("expenses", [("userId", DEMO_SALES_ID)]),
            ("users", [("id", DEMO_SALES_ID)]),
        ]
        assert expenses.expenses == []
        assert users.get_by_id(DEMO_SALES_ID) is None


class TestExpenseWorkflowService:
    def test_submit_requires_login(self, local_services):
        _, _, _, workflow = local_services
        assert workflow.submit_expense(_draft(), None).status_code == 401

    def test_submit_stamps_owner_and_status(self, local_services):
        users, expenses, _, workflow = local_services
        sales = users.get_by_id(DEMO_SALES_ID)

        result = workflow.submit_expense(_draft(notes="airport"), sales)

        assert result.success
        created = expenses.expenses[0]
        assert created.id == result.data.id
        assert created.user_id == DEMO_SALES_ID
        assert created.user_name == "Sofia Sales"
        assert created.status == ExpenseStatus.SUBMITTED
        assert created.total == Decimal("22")

    def test_review_requires_reviewer_role(self, local_services):
        users, _, _, workflow = local_services
        sales = users.get_by_id(DEMO_SALES_ID)
        result = workflow.review_expense("e-demo-1", ExpenseStatus.APPROVED, sales)
        assert result.status_code == 403

    def test_review_approves_with_note(self, local_services):
        users, expenses, _, workflow = local_services
        manager = users.get_by_id("u-manager-demo")

        result = workflow.review_expense("e-demo-1", ExpenseStatus.REJECTED, manager, "no receipt")

        assert result.success
        assert expenses.get("e-demo-1").status == ExpenseStatus.REJECTED
        assert expenses.get("e-demo-1").notes == "no receipt"

    def test_review_rejects_bad_status_and_unknown_expense(self, local_services):
        users, _, _, workflow = local_services
        admin = users.get_by_id("u-admin-demo")
        assert workflow.review_expense("e-demo-1", ExpenseStatus.SUBMITTED, admin).status_code == 400
        assert workflow.review_expense("ghost", ExpenseStatus.APPROVED, admin).status_code == 404

    def test_owner_may_edit_but_not_approve(self, local_services):
        users, expenses, _, workflow = local_services
        sales = users.get_by_id(DEMO_SALES_ID)

        assert workflow.edit_expense("e-demo-1", ExpenseUpdate(merchant="Cafe Sur"), sales).success
        assert expenses.get("e-demo-1").merchant == "Cafe Sur"

        denied = workflow.edit_expense(
            "e-demo-1", ExpenseUpdate(status=ExpenseStatus.APPROVED), sales,
        )
        assert denied.status_code == 403

    def test_others_may_not_delete(self, local_services):
        users, expenses, _, workflow = local_services
        other = users.signup("Other Sales", "other@example.com", "pw")

        assert workflow.delete_expense("e-demo-1", other).status_code == 403
        assert workflow.delete_expense("e-demo-1", users.get_by_id(DEMO_SALES_ID)).success
        assert expenses.get("e-demo-1") is None

    def test_analyze_receipt_without_key_gives_blank_draft(self, local_services):
        _, _, _, workflow = local_services
        draft = workflow.analyze_receipt("data:image/jpeg;base64,AAAA")
        assert draft.merchant == ""
        assert draft.total == Decimal("0")
        assert draft.expense_date == date.today()
        assert draft.receipt_image == "data:image/jpeg;base64,AAAA"

    def test_summarize_by_category(self, local_services):
        _, expenses, _, _ = local_services
        totals = ExpenseWorkflowService.summarize_by_category(expenses.expenses)
        assert totals == {
            ExpenseCategory.HOTEL: Decimal("121.0"),
            ExpenseCategory.RESTAURANT: Decimal("20.35"),
        }

    def test_report_for_whole_year(self, local_services):
        users, _, _, workflow = local_services
        new = workflow.submit_expense(_draft(), users.get_by_id(DEMO_SALES_ID)).data

        report = workflow.expense_report(DEMO_SALES_ID, 2025)

        assert [e.id for e in report.expenses] == [new.id, "e-demo-2", "e-demo-1"]
        assert report.total == Decimal("163.35")
        assert (report.approved, report.submitted, report.rejected) == (1, 2, 0)
        assert report.by_category == {
            ExpenseCategory.HOTEL: Decimal("121.0"),
            ExpenseCategory.RESTAURANT: Decimal("20.35"),
            ExpenseCategory.TRANSPORT: Decimal("22"),
        }

    def test_report_status_filter_narrows_list_only(self, local_services):
        users, _, _, workflow = local_services
        workflow.submit_expense(_draft(), users.get_by_id(DEMO_SALES_ID))

        report = workflow.expense_report(DEMO_SALES_ID, 2025, month=3, status=ExpenseStatus.SUBMITTED)

        assert [e.id for e in report.expenses] == ["e-demo-1"]
        assert report.total == Decimal("141.35")
        assert (report.approved, report.submitted, report.rejected) == (1, 1, 0)
        assert ExpenseCategory.TRANSPORT not in report.by_category

    @pytest.mark.parametrize("year, month", [(2024, None), (2025, 1)])
    def test_report_for_empty_period(self, local_services, year, month):
        _, _, _, workflow = local_services

        report = workflow.expense_report(DEMO_SALES_ID, year, month)

        assert report.expenses == []
        assert report.total == Decimal("0")
        assert (report.approved, report.submitted, report.rejected) == (0, 0, 0)
        assert report.by_category == {}

    def test_report_only_covers_the_owner(self, local_services):
        _, _, _, workflow = local_services
        assert workflow.expense_report("u-admin-demo", 2025).expenses == []

    def test_report_rejects_invalid_month(self, local_services):
        _, _, _, workflow = local_services
        with pytest.raises(ValueError):
            workflow.expense_report(DEMO_SALES_ID, 2025, month=13)
