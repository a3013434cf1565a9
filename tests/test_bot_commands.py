import pytest

from finance_tracker.bot.commands import command_args, parse_add_args, parse_month_arg
from finance_tracker.ledger.validate import Accepted, Rejected, validate

TODAY = "2024-05-20"


def test_amount_and_category_default_to_today():
    d = parse_add_args("25.50 groceries", today=TODAY)
    assert d.amount == "25.50"
    assert d.category == "Groceries"
    assert d.date == TODAY
    assert d.description is None


def test_multi_word_category_with_date_and_description():
    d = parse_add_args("42 dining out 2024-05-03 team lunch", today=TODAY)
    assert d.category == "Dining Out"
    assert d.date == "2024-05-03"
    assert d.description == "team lunch"


def test_unknown_category_is_kept_as_typed():
    d = parse_add_args("9 Pets vet visit", today=TODAY)
    assert d.category == "Pets"
    assert d.description == "vet visit"


def test_invalid_date_stays_in_description():
    d = parse_add_args("9 Other 2024-13-40 odd", today=TODAY)
    assert d.date == TODAY
    assert d.description == "2024-13-40 odd"


def test_missing_parts_reach_validator():
    d = parse_add_args("12", today=TODAY)
    assert d.category is None
    out = validate(d)
    assert isinstance(out, Rejected)
    assert out.field == "category"


def test_parsed_salary_is_income():
    out = validate(parse_add_args("1200 salary 2024-05-01", today=TODAY))
    assert isinstance(out, Accepted)
    assert out.transaction.kind == "income"
    assert out.transaction.description == "N/A"


@pytest.mark.parametrize(
    "text,expected",
    [
        ("/add 5 Other", "5 Other"),
        ("/report", ""),
        (None, ""),
        ("/report   2024-05 ", "2024-05"),
    ],
)
def test_command_args(text, expected):
    assert command_args(text) == expected


def test_parse_month_arg():
    assert parse_month_arg("2024-05") == "2024-05"
    assert parse_month_arg("2024-5") is None
    assert parse_month_arg("") is None
