from __future__ import annotations

from typing import Optional

from .models import Category, TxKind

UNKNOWN_ICON = "❓"

# Order matters: forms list categories in this order and the first expense
# entry is the preselected one.
CATEGORIES: tuple[Category, ...] = (
    Category(name="Salary", kind="income", icon="💼"),
    Category(name="Freelance", kind="income", icon="💻"),
    Category(name="Investments", kind="income", icon="📈"),
    Category(name="Gifts", kind="income", icon="🎁"),
    Category(name="Groceries", kind="expense", icon="🛒"),
    Category(name="Rent", kind="expense", icon="🏠"),
    Category(name="Utilities", kind="expense", icon="💡"),
    Category(name="Transport", kind="expense", icon="🚗"),
    Category(name="Dining Out", kind="expense", icon="🍽️"),
    Category(name="Entertainment", kind="expense", icon="🎬"),
    Category(name="Shopping", kind="expense", icon="🛍️"),
    Category(name="Health", kind="expense", icon="💊"),
    Category(name="Education", kind="expense", icon="📚"),
    Category(name="Other", kind="expense", icon="📦"),
)

_BY_NAME: dict[str, Category] = {c.name: c for c in CATEGORIES}


def lookup(name: str | None) -> Optional[Category]:
    if not name:
        return None
    return _BY_NAME.get(name)


def classify(name: str | None) -> TxKind:
    # Unknown or removed categories count as spending so reports never break on them.
    cat = lookup(name)
    return cat.kind if cat is not None else "expense"


def icon_for(name: str | None) -> str:
    cat = lookup(name)
    return cat.icon if cat is not None else UNKNOWN_ICON


def default_category() -> Category:
    return next(c for c in CATEGORIES if c.kind == "expense")


def categories_of(kind: TxKind) -> list[Category]:
    return [c for c in CATEGORIES if c.kind == kind]


def match_name(text: str | None) -> Optional[Category]:
    """Case-insensitive lookup for free-typed input (CLI, chat commands)."""
    t = (text or "").strip().lower()
    if not t:
        return None
    for c in CATEGORIES:
        if c.name.lower() == t:
            return c
    return None
