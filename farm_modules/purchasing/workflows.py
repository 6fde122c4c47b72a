"""
Purchasing Workflows.

State machines for purchase orders.  Two vocabularies are supported as named
configurations of one engine: the five-state scheme
(draft/approved/sent/received/cancelled) and the three-state scheme
(pendiente/aprobada/rechazada).  Both share the same guard semantics: an
order is editable only in its initial state.
"""

from dataclasses import dataclass, replace

from farm_kernel.exceptions import EditNotAllowedError, InvalidTransitionError
from farm_kernel.logging_config import get_logger
from farm_modules.purchasing.models import OrderStatus, PurchaseOrder, TransitionResult

logger = get_logger("modules.purchasing.workflows")


@dataclass(frozen=True)
class Guard:
    """A condition for a transition."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """
    A state machine definition.

    ``approval_state`` is the target whose transition materializes the payment
    schedule; ``cancellation_state`` is the soft end that cascades to expenses.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    approval_state: str
    cancellation_state: str

    @property
    def terminal_states(self) -> frozenset[str]:
        sources = {t.from_state for t in self.transitions}
        return frozenset(s for s in self.states if s not in sources)

    def allowed_targets(self, status: str) -> tuple[str, ...]:
        """Targets reachable from ``status`` in declaration order."""
        return tuple(t.to_state for t in self.transitions if t.from_state == status)

    def is_editable(self, status: str) -> bool:
        return status == self.initial_state

    def is_terminal(self, status: str) -> bool:
        return status in self.terminal_states


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

FRESH_STATUS = Guard(
    name="fresh_status",
    description="Current status re-read from storage and unchanged at write time",
)

logger.info(
    "purchasing_workflow_guards_defined",
    extra={"guards": [FRESH_STATUS.name]},
)


# -----------------------------------------------------------------------------
# Five-state workflow
# -----------------------------------------------------------------------------

_DRAFT = OrderStatus.DRAFT.value
_APPROVED = OrderStatus.APPROVED.value
_SENT = OrderStatus.SENT.value
_RECEIVED = OrderStatus.RECEIVED.value
_CANCELLED = OrderStatus.CANCELLED.value

FIVE_STATE_WORKFLOW = Workflow(
    name="five_state",
    description="Purchase order lifecycle: draft, approval, dispatch, receipt",
    initial_state=_DRAFT,
    states=(_DRAFT, _APPROVED, _SENT, _RECEIVED, _CANCELLED),
    transitions=(
        Transition(_DRAFT, _APPROVED, action="approve", guard=FRESH_STATUS),
        Transition(_DRAFT, _CANCELLED, action="cancel", guard=FRESH_STATUS),
        Transition(_APPROVED, _SENT, action="send", guard=FRESH_STATUS),
        Transition(_APPROVED, _CANCELLED, action="cancel", guard=FRESH_STATUS),
        Transition(_SENT, _RECEIVED, action="receive", guard=FRESH_STATUS),
        Transition(_SENT, _CANCELLED, action="cancel", guard=FRESH_STATUS),
        Transition(_RECEIVED, _CANCELLED, action="cancel", guard=FRESH_STATUS),
    ),
    approval_state=_APPROVED,
    cancellation_state=_CANCELLED,
)

logger.info(
    "purchasing_five_state_workflow_registered",
    extra={
        "workflow_name": FIVE_STATE_WORKFLOW.name,
        "state_count": len(FIVE_STATE_WORKFLOW.states),
        "transition_count": len(FIVE_STATE_WORKFLOW.transitions),
        "initial_state": FIVE_STATE_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Three-state workflow
# -----------------------------------------------------------------------------

_PENDIENTE = OrderStatus.PENDIENTE.value
_APROBADA = OrderStatus.APROBADA.value
_RECHAZADA = OrderStatus.RECHAZADA.value

THREE_STATE_WORKFLOW = Workflow(
    name="three_state",
    description="Purchase order approval: pending, then approved or rejected",
    initial_state=_PENDIENTE,
    states=(_PENDIENTE, _APROBADA, _RECHAZADA),
    transitions=(
        Transition(_PENDIENTE, _APROBADA, action="approve", guard=FRESH_STATUS),
        Transition(_PENDIENTE, _RECHAZADA, action="reject", guard=FRESH_STATUS),
    ),
    approval_state=_APROBADA,
    cancellation_state=_RECHAZADA,
)

logger.info(
    "purchasing_three_state_workflow_registered",
    extra={
        "workflow_name": THREE_STATE_WORKFLOW.name,
        "state_count": len(THREE_STATE_WORKFLOW.states),
        "transition_count": len(THREE_STATE_WORKFLOW.transitions),
        "initial_state": THREE_STATE_WORKFLOW.initial_state,
    },
)


WORKFLOWS: dict[str, Workflow] = {
    FIVE_STATE_WORKFLOW.name: FIVE_STATE_WORKFLOW,
    THREE_STATE_WORKFLOW.name: THREE_STATE_WORKFLOW,
}


def get_workflow(name: str) -> Workflow:
    """Look up a named workflow configuration."""
    try:
        return WORKFLOWS[name]
    except KeyError:
        raise ValueError(
            f"Unknown purchasing workflow {name!r}; expected one of {sorted(WORKFLOWS)}"
        ) from None


# -----------------------------------------------------------------------------
# Guards evaluation
# -----------------------------------------------------------------------------


def transition(
    order: PurchaseOrder,
    target: str,
    workflow: Workflow = FIVE_STATE_WORKFLOW,
) -> TransitionResult:
    """
    Move ``order`` to ``target`` if the workflow allows it.

    Pure: returns a copy with the new status and leaves persistence to the
    caller.  The caller must pass an order read from storage, not a cached one.

    Raises:
        InvalidTransitionError: ``target`` is not in the allowed-next set of
            ``order.status`` (every target fails from a terminal or unknown
            status).
    """
    allowed = workflow.allowed_targets(order.status)
    if target not in allowed:
        logger.info(
            "purchase_order_transition_rejected",
            extra={
                "order_id": str(order.id),
                "workflow": workflow.name,
                "current_status": order.status,
                "requested_status": target,
            },
        )
        raise InvalidTransitionError(order.status, target, allowed)

    return TransitionResult(
        order=replace(order, status=target),
        old_status=order.status,
        new_status=target,
    )


def ensure_editable(
    status: str,
    workflow: Workflow = FIVE_STATE_WORKFLOW,
    order_id: str | None = None,
) -> None:
    """Raise EditNotAllowedError unless ``status`` is the initial state."""
    if not workflow.is_editable(status):
        raise EditNotAllowedError(status, order_id=order_id)
