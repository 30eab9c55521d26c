from datetime import date

import pytest

from app.domain.enums import ApprovalType, ExpenseAction, ExpenseStatus, HistoryAction
from app.domain.errors import ExpenseNotFoundError, ForbiddenError, ValidationError
from app.repositories.notification_repo import NotificationRepository
from app.services.expense_service import ExpenseService, ExpenseView


@pytest.fixture
def service():
    return ExpenseService()


def new_expense(service, ctx, approver_id, **overrides):
    data = {
        "amount": 1800.0,
        "expense_type": "Trains",
        "expense_date": date(2024, 9, 3),
        "description": "Pune to Mumbai",
        "approver_id": approver_id,
    }
    data.update(overrides)
    return service.create_expense(ctx, data)


# ── Create / Update ──────────────────────────────────────────────────────────

def test_create_draft(service, member_ctx, manager):
    result = new_expense(service, member_ctx, manager.user_id)
    expense = result["expense"]

    assert expense.status == ExpenseStatus.DRAFT
    assert expense.user_id == member_ctx.user_id
    assert result["policy_warning"] is None
    assert NotificationRepository().get_notifications_for_expense(expense.expense_id) == []


def test_create_submitted_notifies_and_warns(service, member_ctx, manager):
    result = new_expense(
        service, member_ctx, manager.user_id,
        expense_type="Flights", amount=7200, status=ExpenseStatus.SUBMITTED
    )

    assert result["expense"].status == ExpenseStatus.SUBMITTED
    assert result["policy_warning"].excess == 2200
    assert result["side_effects"].enqueued == [manager.email]


def test_create_rejects_other_statuses(service, member_ctx, manager):
    with pytest.raises(ValidationError):
        new_expense(service, member_ctx, manager.user_id, status=ExpenseStatus.APPROVED)


def test_approver_must_be_member(service, member_ctx, outsider):
    with pytest.raises(ValidationError, match="Approver must be a member"):
        new_expense(service, member_ctx, outsider.user_id)


def test_edit_draft(service, member_ctx, manager):
    expense = new_expense(service, member_ctx, manager.user_id)["expense"]

    updated = service.update_expense(member_ctx, expense.expense_id, {
        "amount": 1950,
        "expense_date": date(2024, 9, 4),
        "status": "approved",
    })

    assert updated.amount == 1950
    assert updated.expense_date == date(2024, 9, 4)
    assert updated.status == ExpenseStatus.DRAFT

    history = service.get_history(member_ctx, expense.expense_id)
    edit = next(e for e in history if e.action_type == HistoryAction.UPDATED)
    assert edit.new_value == "amount, expense_date"


def test_edit_restrictions(service, member_ctx, manager_ctx, manager):
    expense = new_expense(service, member_ctx, manager.user_id)["expense"]

    with pytest.raises(ForbiddenError):
        service.update_expense(manager_ctx, expense.expense_id, {"amount": 10})

    service.transition(member_ctx, expense.expense_id, ExpenseAction.SUBMIT)
    with pytest.raises(ValidationError, match="cannot be edited"):
        service.update_expense(member_ctx, expense.expense_id, {"amount": 10})


def test_rejected_expense_can_be_edited_and_resubmitted(service, member_ctx, manager_ctx, manager):
    expense = new_expense(service, member_ctx, manager.user_id)["expense"]
    service.transition(member_ctx, expense.expense_id, ExpenseAction.SUBMIT)
    service.transition(manager_ctx, expense.expense_id, ExpenseAction.MANAGER_REJECT, reason="Wrong date")

    service.update_expense(member_ctx, expense.expense_id, {"expense_date": date(2024, 9, 2)})
    result = service.transition(member_ctx, expense.expense_id, ExpenseAction.RESUBMIT)

    assert result.expense.status == ExpenseStatus.SUBMITTED
    assert result.expense.expense_date == date(2024, 9, 2)


# ── Approval types ───────────────────────────────────────────────────────────

def test_policy_approval_caps_at_limit(service, member_ctx, manager_ctx, manager):
    expense = new_expense(
        service, member_ctx, manager.user_id, expense_type="Flights", amount=7200, status=ExpenseStatus.SUBMITTED
    )["expense"]

    result = service.transition(
        manager_ctx, expense.expense_id, ExpenseAction.MANAGER_APPROVE, approval_type=ApprovalType.POLICY
    )

    assert result.expense.approved_amount == 5000
    assert result.custom_amount is True


def test_policy_approval_never_exceeds_request(service, member_ctx, manager_ctx, manager):
    expense = new_expense(service, member_ctx, manager.user_id, amount=900, status=ExpenseStatus.SUBMITTED)["expense"]

    result = service.transition(
        manager_ctx, expense.expense_id, ExpenseAction.MANAGER_APPROVE, approval_type=ApprovalType.POLICY
    )

    assert result.expense.approved_amount == 900
    assert result.custom_amount is False


def test_policy_approval_without_policy(service, member_ctx, manager_ctx, manager):
    expense = new_expense(
        service, member_ctx, manager.user_id, expense_type="Stationery", status=ExpenseStatus.SUBMITTED
    )["expense"]

    with pytest.raises(ValidationError, match="No policy limit for Stationery"):
        service.transition(
            manager_ctx, expense.expense_id, ExpenseAction.MANAGER_APPROVE, approval_type=ApprovalType.POLICY
        )


def test_custom_approval_needs_amount(service, member_ctx, manager_ctx, manager):
    expense = new_expense(service, member_ctx, manager.user_id, status=ExpenseStatus.SUBMITTED)["expense"]

    with pytest.raises(ValidationError):
        service.transition(
            manager_ctx, expense.expense_id, ExpenseAction.MANAGER_APPROVE, approval_type=ApprovalType.CUSTOM
        )

    result = service.transition(
        manager_ctx, expense.expense_id, ExpenseAction.MANAGER_APPROVE,
        approval_type=ApprovalType.CUSTOM, approved_amount=1500
    )
    assert result.expense.approved_amount == 1500


def test_full_approval_ignores_amount(service, member_ctx, manager_ctx, manager):
    expense = new_expense(service, member_ctx, manager.user_id, status=ExpenseStatus.SUBMITTED)["expense"]

    result = service.transition(
        manager_ctx, expense.expense_id, ExpenseAction.MANAGER_APPROVE,
        approval_type=ApprovalType.FULL, approved_amount=10
    )
    assert result.expense.approved_amount == 1800
    assert result.custom_amount is False


# ── Views ────────────────────────────────────────────────────────────────────

def test_views(service, member_ctx, manager_ctx, admin_ctx, finance_ctx, manager, admin):
    mine_draft = new_expense(service, member_ctx, manager.user_id)["expense"]
    for_manager = new_expense(service, member_ctx, manager.user_id, status=ExpenseStatus.SUBMITTED)["expense"]
    for_admin = new_expense(service, member_ctx, admin.user_id, status=ExpenseStatus.SUBMITTED)["expense"]
    service.transition(manager_ctx, for_manager.expense_id, ExpenseAction.MANAGER_APPROVE)

    def ids(ctx, view, **kwargs):
        return {e.expense_id for e in service.list_expenses(ctx, view, **kwargs)["items"]}

    assert ids(member_ctx, ExpenseView.MINE) == {mine_draft.expense_id, for_manager.expense_id, for_admin.expense_id}
    assert ids(manager_ctx, ExpenseView.APPROVALS) == set()
    assert ids(admin_ctx, ExpenseView.APPROVALS) == {for_admin.expense_id}
    assert ids(finance_ctx, ExpenseView.FINANCE) == {for_manager.expense_id}
    assert ids(finance_ctx, ExpenseView.PAYMENTS) == set()
    assert ids(admin_ctx, ExpenseView.ALL) == {mine_draft.expense_id, for_manager.expense_id, for_admin.expense_id}
    assert ids(member_ctx, ExpenseView.MINE, status=ExpenseStatus.DRAFT) == {mine_draft.expense_id}
    # A status outside the view matches nothing
    assert ids(finance_ctx, ExpenseView.FINANCE, status=ExpenseStatus.DRAFT) == set()

    page = service.list_expenses(member_ctx, ExpenseView.MINE, skip=0, limit=2)
    assert len(page["items"]) == 2
    assert page["total"] == 3


def test_review_views_need_review_role(service, member_ctx, manager_ctx):
    for view in (ExpenseView.FINANCE, ExpenseView.PAYMENTS, ExpenseView.RECORDS, ExpenseView.ALL):
        with pytest.raises(ForbiddenError):
            service.list_expenses(member_ctx, view)
    with pytest.raises(ValidationError, match="Unknown view"):
        service.list_expenses(manager_ctx, "everything")


def test_get_expense_detail(service, member_ctx, manager_ctx, manager):
    expense = new_expense(
        service, member_ctx, manager.user_id, expense_type="Flights", amount=6000, status=ExpenseStatus.SUBMITTED
    )["expense"]

    detail = service.get_expense(manager_ctx, expense.expense_id)
    assert detail["expense"].expense_id == expense.expense_id
    assert detail["policy_warning"].excess == 1000
    assert detail["allowed_actions"] == [ExpenseAction.MANAGER_APPROVE, ExpenseAction.MANAGER_REJECT]
    assert detail["voucher_id"] is None


def test_missing_expense(service, member_ctx):
    with pytest.raises(ExpenseNotFoundError):
        service.get_expense(member_ctx, "nope")


# ── Comments ─────────────────────────────────────────────────────────────────

def test_comments_notify_the_other_party(service, member_ctx, manager_ctx, finance_ctx, manager, member):
    expense = new_expense(service, member_ctx, manager.user_id)["expense"]

    result = service.add_comment(member_ctx, expense.expense_id, "  Receipt attached  ")
    assert result["comment"].content == "Receipt attached"
    assert result["side_effects"].enqueued == [manager.email]

    result = service.add_comment(manager_ctx, expense.expense_id, "Thanks")
    assert result["side_effects"].enqueued == [member.email]

    result = service.add_comment(finance_ctx, expense.expense_id, "Paid next cycle")
    assert result["side_effects"].enqueued == [member.email, manager.email]

    comments = service.list_comments(member_ctx, expense.expense_id)
    assert [c.content for c in comments] == ["Receipt attached", "Thanks", "Paid next cycle"]

    history = service.get_history(member_ctx, expense.expense_id)
    assert sum(1 for e in history if e.action_type == HistoryAction.COMMENTED) == 3


def test_empty_comment_rejected(service, member_ctx, manager):
    expense = new_expense(service, member_ctx, manager.user_id)["expense"]
    with pytest.raises(ValidationError):
        service.add_comment(member_ctx, expense.expense_id, "   ")
