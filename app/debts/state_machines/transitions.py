"""
Transition tables for every stateful ledger model.

Each table maps ``(from_state, event)`` to ``to_state``. A model never
decides reachability itself: it asks its StateMachine for the next state
and lets django-fsm write the protected status field.

Usage:
    from debts.state_machines import DEBT_MACHINE, DebtEvent, DebtStatus

    DEBT_MACHINE.next_state(DebtStatus.ACTIVE, DebtEvent.MARK_IN_ARREARS)
    # DebtStatus.IN_ARREARS

    DEBT_MACHINE.next_state(DebtStatus.SETTLED, DebtEvent.ASSIGN)
    # raises InvalidTransitionError
"""

from __future__ import annotations

from dataclasses import dataclass, field

from debts.exceptions import InvalidTransitionError
from debts.state_machines.states import (
    DebtEvent,
    DebtStatus,
    InstallmentEvent,
    InstallmentStatus,
    PaymentPlanEvent,
    PaymentPlanStatus,
    TransactionEvent,
    TransactionStatus,
)


@dataclass(frozen=True)
class StateMachine:
    """
    Explicit from-state × event → to-state table.

    Attributes:
        name: Entity name used in error messages
        transitions: Mapping of (state, event) to the resulting state
        terminal_states: States with no outgoing transitions
    """

    name: str
    transitions: dict[tuple[str, str], str]
    terminal_states: frozenset[str] = field(default_factory=frozenset)

    def next_state(self, current: str, event: str) -> str:
        """
        Return the state reached by ``event`` from ``current``.

        Raises:
            InvalidTransitionError: If the pair is not in the table
        """
        try:
            return self.transitions[(str(current), str(event))]
        except KeyError:
            raise InvalidTransitionError(
                f"Cannot {_label(event)} {self.name} in '{current}' state",
                details={
                    "entity": self.name,
                    "current_state": str(current),
                    "event": str(event),
                },
            ) from None

    def can(self, current: str, event: str) -> bool:
        return (str(current), str(event)) in self.transitions

    def is_terminal(self, state: str) -> bool:
        return str(state) in self.terminal_states

    def event_for(self, current: str, target: str, events) -> str:
        """
        Find which of ``events`` leads from ``current`` to ``target``.

        Used by administrative "set status" operations that name the
        target state instead of the event.

        Raises:
            InvalidTransitionError: If no listed event reaches ``target``
        """
        for event in events:
            if self.transitions.get((str(current), str(event))) == target:
                return event
        raise InvalidTransitionError(
            f"Cannot move {self.name} from '{current}' to '{target}'",
            details={
                "entity": self.name,
                "current_state": str(current),
                "target_state": str(target),
            },
        )

    @property
    def states(self) -> list[str]:
        """Every state that appears in the table."""
        seen = []
        for (source, _event), target in self.transitions.items():
            for state in (source, target):
                if state not in seen:
                    seen.append(state)
        return seen


def _label(event: str) -> str:
    return str(event).replace("_", " ")


def _states(*states) -> frozenset[str]:
    return frozenset(str(state) for state in states)


def _table(rows) -> dict[tuple[str, str], str]:
    """Expand ``(event, sources, target)`` rows into a transition dict."""
    table = {}
    for event, sources, target in rows:
        for source in sources:
            table[(str(source), str(event))] = target
    return table


# =============================================================================
# Debt
# =============================================================================

DEBT_MACHINE = StateMachine(
    name="debt",
    transitions=_table(
        [
            (DebtEvent.ASSIGN, [DebtStatus.PENDING_ASSIGNMENT], DebtStatus.ACTIVE),
            (DebtEvent.MARK_IN_ARREARS, [DebtStatus.ACTIVE], DebtStatus.IN_ARREARS),
            (DebtEvent.CURE_ARREARS, [DebtStatus.IN_ARREARS], DebtStatus.ACTIVE),
            (
                DebtEvent.FLAG_DISPUTE,
                [DebtStatus.ACTIVE, DebtStatus.IN_ARREARS],
                DebtStatus.DISPUTED,
            ),
            (DebtEvent.RESOLVE_DISPUTE, [DebtStatus.DISPUTED], DebtStatus.ACTIVE),
            (
                DebtEvent.SETTLE,
                [DebtStatus.ACTIVE, DebtStatus.IN_ARREARS],
                DebtStatus.SETTLED,
            ),
            (
                DebtEvent.WRITE_OFF,
                [DebtStatus.ACTIVE, DebtStatus.IN_ARREARS, DebtStatus.DISPUTED],
                DebtStatus.WRITTEN_OFF,
            ),
            (
                DebtEvent.ACCEPT_SETTLEMENT,
                [DebtStatus.ACTIVE, DebtStatus.IN_ARREARS, DebtStatus.DISPUTED],
                DebtStatus.SETTLED,
            ),
            (
                DebtEvent.PAY_OFF,
                [
                    DebtStatus.PENDING_ASSIGNMENT,
                    DebtStatus.ACTIVE,
                    DebtStatus.IN_ARREARS,
                    DebtStatus.DISPUTED,
                ],
                DebtStatus.SETTLED,
            ),
        ]
    ),
    terminal_states=_states(DebtStatus.SETTLED, DebtStatus.WRITTEN_OFF),
)

# Events an administrator may trigger by naming the target status.
ADMINISTRATIVE_DEBT_EVENTS = (
    DebtEvent.ASSIGN,
    DebtEvent.MARK_IN_ARREARS,
    DebtEvent.CURE_ARREARS,
    DebtEvent.FLAG_DISPUTE,
    DebtEvent.RESOLVE_DISPUTE,
    DebtEvent.SETTLE,
    DebtEvent.WRITE_OFF,
)


# =============================================================================
# Payment Plan
# =============================================================================

PAYMENT_PLAN_MACHINE = StateMachine(
    name="payment plan",
    transitions=_table(
        [
            (
                PaymentPlanEvent.SUBMIT_FOR_REVIEW,
                [PaymentPlanStatus.DRAFT],
                PaymentPlanStatus.PENDING_APPROVAL,
            ),
            (
                PaymentPlanEvent.ACTIVATE,
                [PaymentPlanStatus.DRAFT, PaymentPlanStatus.PENDING_APPROVAL],
                PaymentPlanStatus.ACTIVE,
            ),
            (
                PaymentPlanEvent.COMPLETE,
                [PaymentPlanStatus.ACTIVE],
                PaymentPlanStatus.COMPLETED,
            ),
            (
                PaymentPlanEvent.DEFAULT,
                [PaymentPlanStatus.ACTIVE],
                PaymentPlanStatus.DEFAULTED,
            ),
            (
                PaymentPlanEvent.CANCEL,
                [
                    PaymentPlanStatus.DRAFT,
                    PaymentPlanStatus.PENDING_APPROVAL,
                    PaymentPlanStatus.ACTIVE,
                ],
                PaymentPlanStatus.CANCELLED,
            ),
        ]
    ),
    terminal_states=_states(
        PaymentPlanStatus.COMPLETED,
        PaymentPlanStatus.DEFAULTED,
        PaymentPlanStatus.CANCELLED,
    ),
)


# =============================================================================
# Payment Installment
# =============================================================================

_PAYABLE_INSTALLMENT_STATES = [
    InstallmentStatus.SCHEDULED,
    InstallmentStatus.PARTIAL,
    InstallmentStatus.FAILED,
]

INSTALLMENT_MACHINE = StateMachine(
    name="installment",
    transitions=_table(
        [
            (
                InstallmentEvent.PAY_PARTIALLY,
                _PAYABLE_INSTALLMENT_STATES,
                InstallmentStatus.PARTIAL,
            ),
            (
                InstallmentEvent.PAY_IN_FULL,
                _PAYABLE_INSTALLMENT_STATES,
                InstallmentStatus.PAID,
            ),
            (InstallmentEvent.FAIL, _PAYABLE_INSTALLMENT_STATES, InstallmentStatus.FAILED),
            (InstallmentEvent.SKIP, _PAYABLE_INSTALLMENT_STATES, InstallmentStatus.SKIPPED),
            (
                InstallmentEvent.WRITE_OFF,
                _PAYABLE_INSTALLMENT_STATES,
                InstallmentStatus.WRITTEN_OFF,
            ),
            (
                InstallmentEvent.CANCEL,
                _PAYABLE_INSTALLMENT_STATES,
                InstallmentStatus.CANCELLED,
            ),
        ]
    ),
    terminal_states=_states(
        InstallmentStatus.PAID,
        InstallmentStatus.SKIPPED,
        InstallmentStatus.WRITTEN_OFF,
        InstallmentStatus.CANCELLED,
    ),
)


# =============================================================================
# Transaction
# =============================================================================

TRANSACTION_MACHINE = StateMachine(
    name="transaction",
    transitions=_table(
        [
            (TransactionEvent.SETTLE, [TransactionStatus.PENDING], TransactionStatus.SUCCEEDED),
            (TransactionEvent.FAIL, [TransactionStatus.PENDING], TransactionStatus.FAILED),
            (TransactionEvent.CANCEL, [TransactionStatus.PENDING], TransactionStatus.CANCELLED),
            (
                TransactionEvent.REFUND,
                [TransactionStatus.SUCCEEDED],
                TransactionStatus.REFUNDED,
            ),
        ]
    ),
    terminal_states=_states(
        TransactionStatus.FAILED,
        TransactionStatus.REFUNDED,
        TransactionStatus.CANCELLED,
    ),
)
