import pytest

from finance_tracker.analytics.reports import build_reports
from finance_tracker.ledger.models import TransactionDraft
from finance_tracker.ledger.validate import Accepted, Rejected, validate


def _draft(**kw) -> TransactionDraft:
    base = {"amount": "25.5", "category": "Groceries", "date": "2024-05-10", "description": "weekly shop"}
    base.update(kw)
    return TransactionDraft(**base)


@pytest.mark.parametrize("amount", ["0", "-5", "abc", "nan", "inf", "-0.01", 0, -3.2, float("nan"), True])
def test_invalid_amount(amount):
    r = validate(_draft(amount=amount))
    assert isinstance(r, Rejected)
    assert r.reason == "invalid_amount"
    assert r.field == "amount"


@pytest.mark.parametrize("amount", [None, "", "   "])
def test_missing_amount(amount):
    r = validate(_draft(amount=amount))
    assert isinstance(r, Rejected)
    assert r.reason == "missing_required_field"
    assert r.field == "amount"


@pytest.mark.parametrize("field", ["category", "date"])
@pytest.mark.parametrize("value", [None, "", "  "])
def test_missing_category_or_date(field, value):
    r = validate(_draft(**{field: value}))
    assert isinstance(r, Rejected)
    assert r.reason == "missing_required_field"
    assert r.field == field


def test_amount_checked_before_category():
    r = validate(_draft(amount="-1", category=None))
    assert isinstance(r, Rejected)
    assert r.reason == "invalid_amount"


def test_kind_comes_from_category_not_draft():
    r = validate(_draft(category="Salary", kind="expense"))
    assert isinstance(r, Accepted)
    assert r.transaction.kind == "income"

    r = validate(_draft(category="Groceries", kind="income"))
    assert isinstance(r, Accepted)
    assert r.transaction.kind == "expense"


def test_unknown_category_is_accepted_as_expense():
    r = validate(_draft(category="Pet Food"))
    assert isinstance(r, Accepted)
    assert r.transaction.kind == "expense"
    assert r.transaction.category == "Pet Food"


def test_normalization():
    r = validate(_draft(amount=" 25.5 ", description="   "))
    assert isinstance(r, Accepted)
    tx = r.transaction
    assert tx.amount == 25.5
    assert tx.description == "N/A"
    assert tx.date == "2024-05-10"
    assert tx.to_payload() == {
        "amount": 25.5,
        "kind": "expense",
        "category": "Groceries",
        "description": "N/A",
        "date": "2024-05-10",
    }


def test_missing_description_defaults_to_placeholder():
    r = validate(_draft(description=None))
    assert isinstance(r, Accepted)
    assert r.transaction.description == "N/A"


def test_numeric_amount_accepted():
    r = validate(_draft(amount=12))
    assert isinstance(r, Accepted)
    assert r.transaction.amount == 12.0


@pytest.mark.parametrize("amount", ["0.004", 0.001, "0.0049"])
def test_amount_below_one_cent_rejected(amount):
    r = validate(_draft(amount=amount))
    assert isinstance(r, Rejected)
    assert r.reason == "invalid_amount"
    assert r.field == "amount"


def test_amount_rounded_to_cents():
    r = validate(_draft(amount="0.005"))
    assert isinstance(r, Accepted)
    assert r.transaction.amount == 0.01

    r = validate(_draft(amount="19.999"))
    assert r.transaction.amount == 20.0


def test_huge_amount_rejected():
    r = validate(_draft(amount="1e300"))
    assert isinstance(r, Rejected)
    assert r.reason == "invalid_amount"


def test_every_accepted_amount_shows_in_reports():
    rows = []
    for raw in ["0.005", "0.005", "0.005", "0.01"]:
        r = validate(_draft(amount=raw))
        assert isinstance(r, Accepted)
        rows.append(r.transaction)

    (rep,) = build_reports(rows)
    assert rep.total_expense == round(sum(t.amount for t in rows), 2)
    assert rep.category_breakdown["Groceries"] > 0
