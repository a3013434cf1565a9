from __future__ import annotations

from finance_tracker.analytics.reports import build_reports
from finance_tracker.bot import templates
from finance_tracker.ledger.models import Transaction
from finance_tracker.ledger.validate import Rejected


def _render(**kwargs) -> str:
    return templates.report_layout(
        header=kwargs.get("header", "HEADER"),
        totals_block=kwargs.get("totals_block", "TOTALS"),
        breakdown_block=kwargs.get("breakdown_block"),
        status_block=kwargs.get("status_block"),
    )


def _assert_order(text: str, *parts: str) -> None:
    idx = -1
    for p in parts:
        j = text.find(p)
        assert j != -1, f"Missing part: {p!r}\n{text}"
        assert j > idx, f"Wrong order for part: {p!r}\n{text}"
        idx = j


def _tx(tid: str, amount: float, kind: str, category: str, date: str, created: int) -> Transaction:
    return Transaction(
        id=tid, amount=amount, kind=kind, category=category, description="N/A", date=date, createdAt=created
    )


def test_layout_totals_only():
    text = _render()
    _assert_order(text, "HEADER", "TOTALS")
    assert templates.divider() not in text


def test_layout_full_blocks():
    text = _render(breakdown_block="BREAKDOWN", status_block="STALE")
    _assert_order(text, "HEADER", "TOTALS", "BREAKDOWN", "STALE")
    assert text.count(templates.divider()) == 2


def test_month_report_lists_categories_by_amount():
    reports = build_reports(
        [
            _tx("1", 2000, "income", "Salary", "2024-05-01", 1),
            _tx("2", 10, "expense", "Transport", "2024-05-02", 2),
            _tx("3", 40, "expense", "Groceries", "2024-05-03", 3),
        ]
    )
    text = templates.render_month_report(reports[0], symbol="$", md=False)

    _assert_order(text, "May 2024", "Income: $2,000.00", "Expenses: $50.00", "Groceries", "Transport")
    assert "(80.0%)" in text
    assert "(20.0%)" in text
    assert "Salary" not in text
    assert "stale" not in text


def test_month_report_marks_stale():
    reports = build_reports([_tx("1", 5, "expense", "Other", "2024-05-02", 1)])
    text = templates.render_month_report(reports[0], stale=True)
    assert "stale" in text


def test_render_reports_empty_and_limit():
    assert "No data" in templates.render_reports([])

    rows = [_tx(str(i), 1, "expense", "Other", f"2024-0{i}-01", i) for i in range(1, 6)]
    text = templates.render_reports(build_reports(rows), limit=2, md=False)
    assert "May 2024" in text
    assert "April 2024" in text
    assert "March 2024" not in text


def test_transaction_line_escapes_markdown():
    t = Transaction(
        id="x",
        amount=3,
        kind="expense",
        category="Other",
        description="snack_bar *deal*",
        date="2024-05-01",
        createdAt=1,
    )
    line = templates.transaction_line(t)
    assert "snack\\_bar \\*deal\\*" in line
    assert line.startswith("📦")
    assert templates.transaction_line(t, md=False).endswith("snack_bar *deal*")


def test_income_line_has_plus_sign():
    t = _tx("x", 1200, "income", "Salary", "2024-05-01", 1)
    assert "+$1,200.00" in templates.transaction_line(t, md=False)


def test_render_transactions_truncates():
    items = [_tx(str(i), 1, "expense", "Other", "2024-05-01", i) for i in range(12)]
    text = templates.render_transactions(items, limit=10, md=False)
    assert "... and 2 more" in text


def test_rejection_and_failure_messages():
    rej = Rejected(reason="invalid_amount", field="amount", message="Amount must be greater than zero")
    assert "greater than zero" in templates.rejection_message(rej)
    assert "/retry" in templates.write_failed_message("timeout")


def test_categories_grouped_by_kind():
    text = templates.render_categories(md=False)
    _assert_order(text, "Income", "Salary", "Expenses", "Groceries", "Other")


def test_md_escape_only_touches_legacy_markdown_chars():
    assert templates.md_escape("lunch (work) [x] a_b *c* `d`") == "lunch (work) \\[x] a\\_b \\*c\\* \\`d\\`"
    assert templates.md_escape("C:\\temp") == "C:\\temp"
    assert templates.md_escape(None) == ""
