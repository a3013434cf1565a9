from __future__ import annotations

from typing import Iterable

from ..analytics.reports import MonthlyReport
from ..core.dates import month_label
from ..ledger.categories import CATEGORIES, icon_for
from ..ledger.models import Transaction
from ..ledger.validate import Rejected

# legacy parse_mode="Markdown" only escapes these
_MD_SPECIAL = "_*`["


def md_escape(text: str | None) -> str:
    if text is None:
        return ""
    return "".join("\\" + ch if ch in _MD_SPECIAL else ch for ch in str(text))


def _bold(text: str, md: bool) -> str:
    return f"*{text}*" if md else text


def _esc(text: str, md: bool) -> str:
    return md_escape(text) if md else text


def fmt_money(v: float, symbol: str = "$") -> str:
    sign = "-" if v < 0 else ""
    return f"{sign}{symbol}{abs(v):,.2f}"


def section(title: str, lines: Iterable[str], *, md: bool = True) -> str:
    body = "\n".join(line for line in lines if line)
    return f"{_bold(title, md)}\n{body}".strip()


def info(message: str) -> str:
    return f"ℹ️ {message}"


def success(message: str) -> str:
    return f"✅ {message}"


def warning(message: str) -> str:
    return f"⚠️ {message}"


def error(message: str) -> str:
    return f"❌ {message}"


def divider() -> str:
    return "──────────────────"


def bullets(items: Iterable[str], *, prefix: str = "• ") -> str:
    xs = [x for x in items if x]
    return "\n".join(prefix + x for x in xs)


def report_layout(
    header: str,
    totals_block: str,
    breakdown_block: str | None = None,
    status_block: str | None = None,
    *,
    md: bool = True,
) -> str:
    parts: list[str] = [_bold(header, md)]

    if totals_block:
        parts.append(totals_block)

    if breakdown_block:
        parts.append(divider())
        parts.append(breakdown_block)

    if status_block:
        parts.append(divider())
        parts.append(status_block)

    return "\n\n".join(parts).strip()


def transaction_line(t: Transaction, *, symbol: str = "$", md: bool = True) -> str:
    sign = "+" if t.kind == "income" else "-"
    amount = f"{sign}{fmt_money(t.amount, symbol)}"
    return (
        f"{icon_for(t.category)} {_esc(t.date, md)} {_bold(_esc(amount, md), md)} "
        f"{_esc(t.category, md)} · {_esc(t.description, md)}"
    )


def render_transactions(
    items: list[Transaction], *, limit: int = 10, symbol: str = "$", md: bool = True
) -> str:
    if not items:
        return info("No transactions yet. Add one with /add.")

    lines = [transaction_line(t, symbol=symbol, md=md) for t in items[:limit]]
    if len(items) > limit:
        lines.append(f"... and {len(items) - limit} more")
    return section("Recent transactions", lines, md=md)


def render_month_report(
    report: MonthlyReport,
    *,
    symbol: str = "$",
    stale: bool = False,
    md: bool = True,
) -> str:
    totals = "\n".join(
        [
            f"💰 Income: {_esc(fmt_money(report.total_income, symbol), md)}",
            f"💸 Expenses: {_esc(fmt_money(report.total_expense, symbol), md)}",
            f"⚖️ Net: {_bold(_esc(fmt_money(report.net_balance, symbol), md), md)}",
        ]
    )

    shares = report.breakdown()
    breakdown_block = None
    if shares:
        breakdown_block = section(
            "Spending by category",
            [
                f"{icon_for(s.category)} {_esc(s.category, md)}: "
                f"{_esc(fmt_money(s.amount, symbol), md)} ({s.pct:.1f}%)"
                for s in shares
            ],
            md=md,
        )

    status_block = warning("Live updates are unavailable, figures may be stale.") if stale else None

    return report_layout(
        f"📅 {month_label(report.month_key)}",
        totals,
        breakdown_block,
        status_block,
        md=md,
    )


def render_reports(
    reports: list[MonthlyReport],
    *,
    limit: int = 3,
    symbol: str = "$",
    stale: bool = False,
    md: bool = True,
) -> str:
    if not reports:
        text = info("No data for reports yet.")
        if stale:
            text += "\n" + warning("Live updates are unavailable, figures may be stale.")
        return text

    cards = [render_month_report(r, symbol=symbol, stale=False, md=md) for r in reports[:limit]]
    if stale:
        cards.append(warning("Live updates are unavailable, figures may be stale."))
    return "\n\n".join(cards)


def render_categories(*, md: bool = True) -> str:
    income = [f"{c.icon} {_esc(c.name, md)}" for c in CATEGORIES if c.kind == "income"]
    expense = [f"{c.icon} {_esc(c.name, md)}" for c in CATEGORIES if c.kind == "expense"]
    return "\n\n".join(
        [
            section("Income", [bullets(income)], md=md),
            section("Expenses", [bullets(expense)], md=md),
        ]
    )


def rejection_message(rejection: Rejected) -> str:
    return warning(rejection.message)


def saved_message(t: Transaction, *, symbol: str = "$") -> str:
    return success(f"Saved: {transaction_line(t, symbol=symbol)}")


def write_failed_message(reason: str) -> str:
    return error(f"Could not save the transaction: {md_escape(reason)}\nYour input is kept, send /retry to try again.")


def busy_message() -> str:
    return warning("Still saving the previous transaction, try again in a moment.")


def auth_failed_message() -> str:
    return error("Could not sign in to the ledger. Check the backend settings and try /start again.")


def start_message() -> str:
    parts: list[str] = []
    parts.append("👋 *Finance Tracker*")
    parts.append("")
    parts.append("Record income and expenses, get monthly summaries by category.")
    parts.append("")
    parts.append(
        section(
            "Quick start",
            [
                "/add 25.50 Groceries — expense for today",
                "/add 1200 Salary 2024-05-01 May salary — with date and note",
                "/report — latest months",
            ],
        )
    )
    parts.append("")
    parts.append("Commands: /help")
    return "\n".join(parts).strip()


def help_message() -> str:
    parts: list[str] = []
    parts.append("📘 *Help*")
    parts.append("")
    parts.append(
        section(
            "Transactions",
            [
                "/add <amount> <category> [YYYY-MM-DD] [description]",
                "/retry — resend the last transaction that failed to save",
                "/recent — latest entries",
                "/categories — available categories",
            ],
        )
    )
    parts.append("")
    parts.append(
        section(
            "Reports",
            [
                "/report — last 3 months",
                "/report YYYY-MM — a single month",
                "/autoreports on|off — monthly summary on the 1st",
            ],
        )
    )
    parts.append("")
    parts.append("Transactions go into the month of their date, even when entered later.")
    return "\n".join(parts).strip()
