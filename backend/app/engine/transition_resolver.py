"""Transition Resolver - The expense state machine as one edge table"""
from typing import Dict, FrozenSet, NamedTuple, Optional

from ..domain.enums import ExpenseAction, ExpenseStatus, DecisionStage, HistoryAction
from ..domain.errors import InvalidTransitionError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class Edge(NamedTuple):
    """A legal move: the statuses it leaves from and the one it lands on"""
    from_statuses: FrozenSet[ExpenseStatus]
    to_status: ExpenseStatus
    stage: Optional[DecisionStage]
    history_action: HistoryAction


EDGES: Dict[ExpenseAction, Edge] = {
    ExpenseAction.SUBMIT: Edge(
        frozenset({ExpenseStatus.DRAFT}),
        ExpenseStatus.SUBMITTED,
        None,
        HistoryAction.SUBMITTED,
    ),
    ExpenseAction.RESUBMIT: Edge(
        frozenset({ExpenseStatus.MANAGER_REJECTED, ExpenseStatus.FINANCE_REJECTED}),
        ExpenseStatus.SUBMITTED,
        None,
        HistoryAction.RESUBMITTED,
    ),
    ExpenseAction.MANAGER_APPROVE: Edge(
        frozenset({ExpenseStatus.SUBMITTED}),
        ExpenseStatus.APPROVED,
        DecisionStage.MANAGER,
        HistoryAction.APPROVED,
    ),
    ExpenseAction.MANAGER_REJECT: Edge(
        frozenset({ExpenseStatus.SUBMITTED}),
        ExpenseStatus.MANAGER_REJECTED,
        DecisionStage.MANAGER,
        HistoryAction.REJECTED,
    ),
    ExpenseAction.FINANCE_APPROVE: Edge(
        frozenset({ExpenseStatus.APPROVED}),
        ExpenseStatus.FINANCE_APPROVED,
        DecisionStage.FINANCE,
        HistoryAction.FINANCE_APPROVED,
    ),
    ExpenseAction.FINANCE_REJECT: Edge(
        frozenset({ExpenseStatus.APPROVED}),
        ExpenseStatus.FINANCE_REJECTED,
        DecisionStage.FINANCE,
        HistoryAction.FINANCE_REJECTED,
    ),
    ExpenseAction.MARK_PAYMENT_PROCESSED: Edge(
        frozenset({ExpenseStatus.FINANCE_APPROVED}),
        ExpenseStatus.PAYMENT_PROCESSED,
        DecisionStage.PAYMENT,
        HistoryAction.PAYMENT_PROCESSED,
    ),
    ExpenseAction.MARK_PAYMENT_NOT_PROCESSED: Edge(
        frozenset({ExpenseStatus.FINANCE_APPROVED}),
        ExpenseStatus.PAYMENT_NOT_PROCESSED,
        DecisionStage.PAYMENT,
        HistoryAction.PAYMENT_NOT_PROCESSED,
    ),
}


class TransitionResolver:
    """
    Resolve the target status for an action

    Given current status S and action A:
    1. Look up the edge for A
    2. If S is not one of its source statuses -> raise InvalidTransitionError
    3. Otherwise return the edge
    """

    def __init__(self, edges: Optional[Dict[ExpenseAction, Edge]] = None):
        self.edges = edges or EDGES

    def resolve(self, current_status: ExpenseStatus, action: ExpenseAction) -> Edge:
        """
        Args:
            current_status: Status the expense is in now
            action: Requested action

        Returns:
            The matching Edge

        Raises:
            InvalidTransitionError: If the action is not legal from current_status
        """
        edge = self.edges.get(action)
        if edge is None or current_status not in edge.from_statuses:
            raise InvalidTransitionError(
                f"Cannot {action.value} an expense in status {current_status.value}",
                details={
                    "current_status": current_status.value,
                    "action": action.value,
                    "allowed_from": sorted(s.value for s in edge.from_statuses) if edge else []
                }
            )

        logger.debug(
            f"Resolved transition: {current_status.value} -> {edge.to_status.value}",
            extra={"action": action.value, "status": current_status.value}
        )
        return edge

    def allowed_actions(self, current_status: ExpenseStatus) -> list:
        """Actions that have an edge out of current_status, in table order"""
        return [action for action, edge in self.edges.items() if current_status in edge.from_statuses]
