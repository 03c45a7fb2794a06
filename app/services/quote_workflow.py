"""Quote status transition engine.

One table defines every legal status change of a quote, and one table
defines which fields may be written in which statuses. Everything that
moves a quote (the store's conditional updates, the ORM @validates hook,
the API) asks this module; nothing else hard-codes status names.
"""

import enum
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from app.exceptions import FieldLocked, InvalidTransition
from app.models.quote import QuoteStatus

S = QuoteStatus


class QuoteTransition(str, enum.Enum):
    SUBMIT_FOR_DIAGNOSIS = "submit_for_diagnosis"
    RECORD_DIAGNOSIS = "record_diagnosis"
    SEND = "send"
    VIEW = "view"
    ACCEPT = "accept"
    REJECT = "reject"
    EXPIRE = "expire"
    CONVERT = "convert"


# transition -> (allowed sources, target)
TRANSITIONS: Dict[QuoteTransition, Tuple[FrozenSet[QuoteStatus], QuoteStatus]] = {
    QuoteTransition.SUBMIT_FOR_DIAGNOSIS: (frozenset({S.DRAFT}), S.AWAITING_DIAGNOSIS),
    QuoteTransition.RECORD_DIAGNOSIS: (frozenset({S.AWAITING_DIAGNOSIS}), S.DIAGNOSED),
    QuoteTransition.SEND: (frozenset({S.DIAGNOSED}), S.SENT),
    QuoteTransition.VIEW: (frozenset({S.SENT}), S.VIEWED),
    QuoteTransition.ACCEPT: (frozenset({S.SENT, S.VIEWED}), S.ACCEPTED),
    QuoteTransition.REJECT: (frozenset({S.SENT, S.VIEWED}), S.REJECTED),
    QuoteTransition.EXPIRE: (frozenset({S.SENT, S.VIEWED}), S.EXPIRED),
    QuoteTransition.CONVERT: (frozenset({S.ACCEPTED}), S.CONVERTED),
}

TERMINAL_STATUSES = frozenset({S.REJECTED, S.EXPIRED, S.CONVERTED})

# Statuses a customer can still decide in
OPEN_FOR_DECISION = frozenset({S.SENT, S.VIEWED})

PROBLEM_FIELDS = frozenset({
    "customer_id",
    "vehicle_id",
    "reported_problem_category",
    "reported_problem_description",
    "reported_problem_symptoms",
})
PRICING_FIELDS = frozenset({"items", "labor_cost", "parts_cost", "discount", "tax_amount"})
DIAGNOSIS_FIELDS = frozenset({
    "identified_problem_category",
    "identified_problem_description",
    "identified_problem_id",
    "diagnostic_notes",
    "inspection_notes",
    "recommendations",
    "estimated_hours",
})

_PROBLEM_STATUSES = frozenset({S.DRAFT, S.AWAITING_DIAGNOSIS})
_PRICING_STATUSES = frozenset({S.DIAGNOSED, S.SENT, S.VIEWED, S.ACCEPTED})
_VALIDITY_STATUSES = frozenset({S.DRAFT, S.AWAITING_DIAGNOSIS, S.DIAGNOSED, S.SENT, S.VIEWED})
_OPEN_STATUSES = frozenset(s for s in QuoteStatus if s not in TERMINAL_STATUSES)

# field -> statuses in which a client update may write it
WRITABLE_IN: Dict[str, FrozenSet[QuoteStatus]] = {
    **{field: _PROBLEM_STATUSES for field in PROBLEM_FIELDS},
    **{field: _PRICING_STATUSES for field in PRICING_FIELDS},
    "valid_until": _VALIDITY_STATUSES,
    "elevator_id": _OPEN_STATUSES,
}


def _as_status(value) -> QuoteStatus:
    return value if isinstance(value, QuoteStatus) else QuoteStatus(value)


def sources_for(transition: QuoteTransition) -> FrozenSet[QuoteStatus]:
    return TRANSITIONS[transition][0]


def next_status(current, transition: QuoteTransition) -> QuoteStatus:
    """Target status of `transition` from `current`, or InvalidTransition."""
    current = _as_status(current)
    sources, target = TRANSITIONS[transition]
    if current not in sources:
        raise InvalidTransition(current, target)
    return target


def can_transition(current, target) -> bool:
    current, target = _as_status(current), _as_status(target)
    return any(current in sources and target == to for sources, to in TRANSITIONS.values())


def ensure_status_change(current: Optional[str], target) -> QuoteStatus:
    """Validate a direct status assignment.

    New quotes may only start in DRAFT; re-assigning the current status is
    a no-op.
    """
    target = _as_status(target)
    if current is None:
        if target is not S.DRAFT:
            raise InvalidTransition(None, target)
        return target
    current = _as_status(current)
    if current is target:
        return target
    if not can_transition(current, target):
        raise InvalidTransition(current, target)
    return target


def check_writable(current, fields: Iterable[str]) -> None:
    """Raise FieldLocked for the first field not writable in `current`.

    Diagnosis fields and status are never writable through an update; the
    first goes through the diagnosis gate and the second through transitions.
    """
    current = _as_status(current)
    for field in sorted(fields):
        if field in DIAGNOSIS_FIELDS:
            raise FieldLocked(field, [S.AWAITING_DIAGNOSIS], current)
        allowed = WRITABLE_IN.get(field)
        if allowed is None:
            raise FieldLocked(field, [], current)
        if current not in allowed:
            raise FieldLocked(field, allowed, current)
