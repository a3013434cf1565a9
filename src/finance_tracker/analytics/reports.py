from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Protocol

from ..ledger.models import TxKind


class ReportInput(Protocol):
    amount: float
    kind: TxKind
    category: str
    date: str


@dataclass(frozen=True)
class CategoryShare:
    category: str
    amount: float
    pct: float


@dataclass(frozen=True)
class MonthlyReport:
    month_key: str  # YYYY-MM
    total_income: float
    total_expense: float
    net_balance: float
    transactions_count: int
    # expense categories only, biggest first, ties by name
    category_breakdown: dict[str, float] = field(default_factory=dict)

    def breakdown(self) -> list[CategoryShare]:
        return [
            CategoryShare(category=k, amount=v, pct=share_pct(v, self.total_expense))
            for k, v in self.category_breakdown.items()
        ]


def to_cents(amount: float) -> int:
    # whole cents, half-up
    return int(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP) * 100)


def cents_to_units(value: int) -> float:
    return round(value / 100.0, 2)


def share_pct(amount: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return amount / total * 100.0


def month_key(date: str) -> str:
    return (date or "")[:7]


def build_reports(transactions: Iterable[ReportInput]) -> list[MonthlyReport]:
    """
    Groups transactions into calendar months by their user-entered date
    (never by createdAt) and totals each month.

    Months come out newest first. Plain string sort on YYYY-MM is chronological.
    """
    income: dict[str, int] = defaultdict(int)
    expense: dict[str, int] = defaultdict(int)
    count: dict[str, int] = defaultdict(int)
    by_category: dict[str, dict[str, int]] = defaultdict(dict)

    for t in transactions:
        key = month_key(t.date)
        cents = to_cents(t.amount)
        count[key] += 1

        if t.kind == "income":
            income[key] += cents
            continue

        expense[key] += cents
        cats = by_category[key]
        cats[t.category] = cats.get(t.category, 0) + cents

    reports: list[MonthlyReport] = []
    for key in sorted(count.keys(), reverse=True):
        cats = by_category.get(key, {})
        ranked = sorted(cats.items(), key=lambda x: (-x[1], x[0]))
        reports.append(
            MonthlyReport(
                month_key=key,
                total_income=cents_to_units(income[key]),
                total_expense=cents_to_units(expense[key]),
                net_balance=cents_to_units(income[key] - expense[key]),
                transactions_count=count[key],
                category_breakdown={k: cents_to_units(v) for k, v in ranked},
            )
        )
    return reports


def find_month(reports: list[MonthlyReport], key: str) -> MonthlyReport | None:
    for r in reports:
        if r.month_key == key:
            return r
    return None
