from __future__ import annotations

from ..core.dates import is_iso_date, is_month_key
from ..ledger.categories import CATEGORIES
from ..ledger.models import TransactionDraft

_MAX_CATEGORY_WORDS = max(len(c.name.split()) for c in CATEGORIES)


def _match_category(tokens: list[str]) -> tuple[str | None, int]:
    """Longest registry name at the head of tokens; falls back to the first token."""
    if not tokens:
        return None, 0

    for n in range(min(_MAX_CATEGORY_WORDS, len(tokens)), 0, -1):
        candidate = " ".join(tokens[:n]).lower()
        for c in CATEGORIES:
            if c.name.lower() == candidate:
                return c.name, n

    return tokens[0], 1


def parse_add_args(args: str, *, today: str) -> TransactionDraft:
    """
    "<amount> <category> [YYYY-MM-DD] [description...]" -> draft.

    Nothing is validated here; missing parts stay None so the validator
    can report them.
    """
    tokens = (args or "").split()

    amount = tokens[0] if tokens else None
    category, used = _match_category(tokens[1:])
    rest = tokens[1 + used :]

    date = today
    if rest and is_iso_date(rest[0]):
        date = rest[0]
        rest = rest[1:]

    description = " ".join(rest).strip() or None
    return TransactionDraft(amount=amount, category=category, date=date, description=description)


def command_args(text: str | None) -> str:
    parts = (text or "").split(maxsplit=1)
    return parts[1].strip() if len(parts) > 1 else ""


def parse_month_arg(args: str) -> str | None:
    arg = (args or "").strip()
    return arg if is_month_key(arg) else None
