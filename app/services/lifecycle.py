"""
Status lifecycles for the four financial document types.

Each type owns a closed status enum and an explicit transition table.
Anything not listed in a table is refused with InvalidTransitionError; there
are no implicit or time-based transitions (an invoice only becomes
`overdue` when someone sets it).
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Type

from app.services.errors import DocumentLockedError, InvalidTransitionError, ValidationError


class DocumentKind(str, Enum):
    ESTIMATE = "estimate"
    CHANGE_ORDER = "change_order"
    INVOICE = "invoice"
    SERVICE_CALL = "service_call"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class EstimateStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"


class ChangeOrderStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class ServiceCallStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Lifecycle:
    kind: DocumentKind
    statuses: Type[Enum]
    initial: Enum
    transitions: Dict[Enum, FrozenSet[Enum]]
    editable: FrozenSet[Enum]

    def parse(self, value) -> Enum:
        if isinstance(value, self.statuses):
            return value
        if isinstance(value, Enum):
            value = value.value
        raw = str(value or "").strip().lower()
        try:
            return self.statuses(raw)
        except ValueError:
            allowed = ", ".join(s.value for s in self.statuses)
            raise ValidationError(f"status: must be one of {allowed}") from None

    def allowed_from(self, current) -> FrozenSet[Enum]:
        return self.transitions.get(self.parse(current), frozenset())

    def can_transition(self, current, requested) -> bool:
        return self.parse(requested) in self.allowed_from(current)

    def transition(self, current, requested) -> Enum:
        cur, req = self.parse(current), self.parse(requested)
        if req not in self.transitions.get(cur, frozenset()):
            raise InvalidTransitionError(
                f"{self.kind.label} cannot move from {cur.value} to {req.value}"
            )
        return req

    def is_terminal(self, status) -> bool:
        return not self.allowed_from(status)

    def is_editable(self, status) -> bool:
        return self.parse(status) in self.editable

    def ensure_editable(self, status) -> None:
        s = self.parse(status)
        if s not in self.editable:
            raise DocumentLockedError(
                f"{self.kind.label} items and tax rate cannot be changed once {s.value}"
            )


_E, _C, _I, _S = EstimateStatus, ChangeOrderStatus, InvoiceStatus, ServiceCallStatus

ESTIMATE_LIFECYCLE = Lifecycle(
    kind=DocumentKind.ESTIMATE,
    statuses=EstimateStatus,
    initial=_E.DRAFT,
    transitions={
        _E.DRAFT: frozenset({_E.SENT}),
        _E.SENT: frozenset({_E.APPROVED, _E.REJECTED}),
    },
    editable=frozenset({_E.DRAFT}),
)

CHANGE_ORDER_LIFECYCLE = Lifecycle(
    kind=DocumentKind.CHANGE_ORDER,
    statuses=ChangeOrderStatus,
    initial=_C.DRAFT,
    transitions={
        _C.DRAFT: frozenset({_C.SENT, _C.CANCELLED}),
        _C.SENT: frozenset({_C.APPROVED, _C.REJECTED, _C.CANCELLED}),
    },
    editable=frozenset({_C.DRAFT}),
)

INVOICE_LIFECYCLE = Lifecycle(
    kind=DocumentKind.INVOICE,
    statuses=InvoiceStatus,
    initial=_I.DRAFT,
    transitions={
        _I.DRAFT: frozenset({_I.SENT}),
        _I.SENT: frozenset({_I.PAID, _I.OVERDUE, _I.CANCELLED}),
        # an overdue invoice stays collectable
        _I.OVERDUE: frozenset({_I.PAID, _I.CANCELLED}),
    },
    editable=frozenset({_I.DRAFT}),
)

SERVICE_CALL_LIFECYCLE = Lifecycle(
    kind=DocumentKind.SERVICE_CALL,
    statuses=ServiceCallStatus,
    initial=_S.OPEN,
    transitions={
        _S.OPEN: frozenset({_S.IN_PROGRESS, _S.CANCELLED}),
        _S.IN_PROGRESS: frozenset({_S.COMPLETED, _S.CANCELLED}),
    },
    editable=frozenset({_S.OPEN, _S.IN_PROGRESS}),
)

LIFECYCLES: Dict[DocumentKind, Lifecycle] = {
    lc.kind: lc
    for lc in (ESTIMATE_LIFECYCLE, CHANGE_ORDER_LIFECYCLE, INVOICE_LIFECYCLE, SERVICE_CALL_LIFECYCLE)
}


def lifecycle_for(kind) -> Lifecycle:
    return LIFECYCLES[DocumentKind(kind)]
