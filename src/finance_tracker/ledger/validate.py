from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Literal, Union

from .categories import classify
from .models import DESCRIPTION_PLACEHOLDER, NewTransaction, TransactionDraft

RejectReason = Literal["missing_required_field", "invalid_amount"]


@dataclass(frozen=True)
class Accepted:
    transaction: NewTransaction


@dataclass(frozen=True)
class Rejected:
    reason: RejectReason
    field: str
    message: str


ValidationResult = Union[Accepted, Rejected]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def parse_amount(value: Any) -> float | None:
    """
    Returns a finite float or None when the value is not a number.
    Sign is not checked here.
    """
    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float, Decimal)):
        num = float(value)
    elif isinstance(value, str):
        try:
            num = float(value.strip())
        except ValueError:
            return None
    else:
        return None

    if not math.isfinite(num):
        return None
    return num


def round_to_cents(amount: float) -> float | None:
    """Half-up to 0.01; None when the value is too large to carry cents."""
    try:
        return float(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return None


def validate(draft: TransactionDraft) -> ValidationResult:
    if _is_blank(draft.amount):
        return Rejected("missing_required_field", "amount", "Amount is required.")

    amount = parse_amount(draft.amount)
    if amount is None:
        return Rejected("invalid_amount", "amount", "Amount must be a number.")
    if amount <= 0:
        return Rejected("invalid_amount", "amount", "Amount must be greater than zero.")

    rounded = round_to_cents(amount)
    if rounded is None:
        return Rejected("invalid_amount", "amount", "Amount is too large.")
    amount = rounded
    if amount <= 0:
        return Rejected("invalid_amount", "amount", "Amount must be at least 0.01.")

    if _is_blank(draft.category):
        return Rejected("missing_required_field", "category", "Category is required.")

    if _is_blank(draft.date):
        return Rejected("missing_required_field", "date", "Date is required.")

    category = str(draft.category).strip()
    description = (draft.description or "").strip() or DESCRIPTION_PLACEHOLDER

    return Accepted(
        NewTransaction(
            amount=amount,
            kind=classify(category),
            category=category,
            description=description,
            date=str(draft.date).strip(),
        )
    )
