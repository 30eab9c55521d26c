import pytest

from app.domain.enums import ExpenseAction, ExpenseStatus, DecisionStage, HistoryAction, TERMINAL_STATUSES
from app.domain.errors import InvalidTransitionError
from app.engine.transition_resolver import EDGES, TransitionResolver


@pytest.fixture
def resolver():
    return TransitionResolver()


@pytest.mark.parametrize("status, action, expected", [
    (ExpenseStatus.DRAFT, ExpenseAction.SUBMIT, ExpenseStatus.SUBMITTED),
    (ExpenseStatus.MANAGER_REJECTED, ExpenseAction.RESUBMIT, ExpenseStatus.SUBMITTED),
    (ExpenseStatus.FINANCE_REJECTED, ExpenseAction.RESUBMIT, ExpenseStatus.SUBMITTED),
    (ExpenseStatus.SUBMITTED, ExpenseAction.MANAGER_APPROVE, ExpenseStatus.APPROVED),
    (ExpenseStatus.SUBMITTED, ExpenseAction.MANAGER_REJECT, ExpenseStatus.MANAGER_REJECTED),
    (ExpenseStatus.APPROVED, ExpenseAction.FINANCE_APPROVE, ExpenseStatus.FINANCE_APPROVED),
    (ExpenseStatus.APPROVED, ExpenseAction.FINANCE_REJECT, ExpenseStatus.FINANCE_REJECTED),
    (ExpenseStatus.FINANCE_APPROVED, ExpenseAction.MARK_PAYMENT_PROCESSED, ExpenseStatus.PAYMENT_PROCESSED),
    (ExpenseStatus.FINANCE_APPROVED, ExpenseAction.MARK_PAYMENT_NOT_PROCESSED, ExpenseStatus.PAYMENT_NOT_PROCESSED),
])
def test_legal_edges(resolver, status, action, expected):
    assert resolver.resolve(status, action).to_status == expected


def test_payment_not_processed_is_its_own_status(resolver):
    """Refused payments land in a distinct terminal status, not a rejection"""
    edge = resolver.resolve(ExpenseStatus.FINANCE_APPROVED, ExpenseAction.MARK_PAYMENT_NOT_PROCESSED)
    assert edge.to_status == ExpenseStatus.PAYMENT_NOT_PROCESSED
    assert edge.to_status != ExpenseStatus.FINANCE_REJECTED
    assert edge.stage == DecisionStage.PAYMENT
    assert edge.history_action == HistoryAction.PAYMENT_NOT_PROCESSED


@pytest.mark.parametrize("status, action", [
    (ExpenseStatus.DRAFT, ExpenseAction.MANAGER_APPROVE),
    (ExpenseStatus.SUBMITTED, ExpenseAction.FINANCE_APPROVE),
    (ExpenseStatus.APPROVED, ExpenseAction.MANAGER_APPROVE),
    (ExpenseStatus.SUBMITTED, ExpenseAction.RESUBMIT),
    (ExpenseStatus.APPROVED, ExpenseAction.MARK_PAYMENT_PROCESSED),
])
def test_illegal_edges_raise(resolver, status, action):
    with pytest.raises(InvalidTransitionError) as exc:
        resolver.resolve(status, action)
    assert exc.value.http_status == 409
    assert exc.value.details["current_status"] == status.value


@pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
def test_terminal_statuses_have_no_exits(resolver, status):
    assert resolver.allowed_actions(status) == []
    for action in ExpenseAction:
        with pytest.raises(InvalidTransitionError):
            resolver.resolve(status, action)


def test_allowed_actions_follow_table_order(resolver):
    assert resolver.allowed_actions(ExpenseStatus.SUBMITTED) == [
        ExpenseAction.MANAGER_APPROVE, ExpenseAction.MANAGER_REJECT
    ]
    assert resolver.allowed_actions(ExpenseStatus.DRAFT) == [ExpenseAction.SUBMIT]


def test_every_action_has_an_edge():
    assert set(EDGES) == set(ExpenseAction)
