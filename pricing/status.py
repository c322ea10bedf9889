"""
Quote status transitions.

    draft -> sent -> approved | rejected
    any state except cancelled -> cancelled
"""

from enum import Enum
from typing import Dict, FrozenSet, Union

from utils import ValidationError, ErrorCodes


class QuoteStatus(str, Enum):
    """报价状态枚举"""
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS: Dict[QuoteStatus, FrozenSet[QuoteStatus]] = {
    QuoteStatus.DRAFT: frozenset({QuoteStatus.SENT, QuoteStatus.CANCELLED}),
    QuoteStatus.SENT: frozenset({QuoteStatus.APPROVED, QuoteStatus.REJECTED, QuoteStatus.CANCELLED}),
    QuoteStatus.APPROVED: frozenset({QuoteStatus.CANCELLED}),
    QuoteStatus.REJECTED: frozenset({QuoteStatus.CANCELLED}),
    QuoteStatus.CANCELLED: frozenset(),
}


def _coerce(status: Union[str, QuoteStatus]) -> QuoteStatus:
    try:
        return QuoteStatus(status)
    except ValueError:
        raise ValidationError(
            f"Invalid status: {status}",
            ErrorCodes.VALIDATION_INVALID_STATUS
        ) from None


def can_transition(current: Union[str, QuoteStatus], target: Union[str, QuoteStatus]) -> bool:
    """判断状态是否可以迁移，相同状态视为幂等"""
    current, target = _coerce(current), _coerce(target)
    return current == target or target in ALLOWED_TRANSITIONS[current]


def validate_transition(current: Union[str, QuoteStatus], target: Union[str, QuoteStatus]) -> QuoteStatus:
    """校验状态迁移，非法时抛出 ValidationError"""
    if not can_transition(current, target):
        raise ValidationError(
            f"Cannot change quote status from {_coerce(current).value} to {_coerce(target).value}",
            ErrorCodes.VALIDATION_INVALID_TRANSITION,
            context={"current": _coerce(current).value, "target": _coerce(target).value}
        )
    return _coerce(target)
