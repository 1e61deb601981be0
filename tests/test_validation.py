import pytest

from guided_workflow.domain.models import CollectFormat, CollectStep, ValidationRule
from guided_workflow.execution.validation import (
    InvalidCollectValueError,
    validate_collected_value,
)


def _step(fmt=CollectFormat.TEXT, **rule):
    return CollectStep(guid="c1", format=fmt, validation=ValidationRule(**rule))


def test_empty_value_is_rejected():
    with pytest.raises(InvalidCollectValueError):
        validate_collected_value(_step(), "   ")
    with pytest.raises(InvalidCollectValueError):
        validate_collected_value(_step(), None)


def test_required_field_reports_missing_value():
    with pytest.raises(InvalidCollectValueError, match="This field is required"):
        validate_collected_value(_step(required=True), "  ")
    with pytest.raises(InvalidCollectValueError, match="A value is required"):
        validate_collected_value(_step(required=False), "")
    assert validate_collected_value(_step(required=True), "x") == "x"


def test_text_is_trimmed():
    assert validate_collected_value(_step(), "  hello ") == "hello"


def test_phone_needs_ten_digits():
    assert validate_collected_value(_step(CollectFormat.PHONE), "(555) 123-4567") == "(555) 123-4567"
    with pytest.raises(InvalidCollectValueError, match="10 digits"):
        validate_collected_value(_step(CollectFormat.PHONE), "555-1234")


def test_email():
    assert validate_collected_value(_step(CollectFormat.EMAIL), "a@b.co") == "a@b.co"
    with pytest.raises(InvalidCollectValueError):
        validate_collected_value(_step(CollectFormat.EMAIL), "not-an-email")


def test_numeric_is_normalized_to_digits():
    assert validate_collected_value(_step(CollectFormat.NUMERIC), "12 34") == "1234"
    with pytest.raises(InvalidCollectValueError):
        validate_collected_value(_step(CollectFormat.NUMERIC), "12a")


def test_money():
    assert validate_collected_value(_step(CollectFormat.MONEY), "$1,234.50") == "$1,234.50"
    with pytest.raises(InvalidCollectValueError):
        validate_collected_value(_step(CollectFormat.MONEY), "12.345")


def test_dates_and_bounds():
    step = _step(CollectFormat.DATE, min_date="2024-01-01", max_date="2024-12-31")
    assert validate_collected_value(step, "2024-06-15") == "2024-06-15"
    with pytest.raises(InvalidCollectValueError):
        validate_collected_value(step, "2024-02-30")
    with pytest.raises(InvalidCollectValueError, match="on or after"):
        validate_collected_value(step, "2023-12-31")
    with pytest.raises(InvalidCollectValueError, match="on or before"):
        validate_collected_value(step, "2025-01-01")


def test_length_and_pattern():
    step = _step(min_length=3, max_length=5, pattern=r"[A-Z]+")
    assert validate_collected_value(step, "ABCD") == "ABCD"
    with pytest.raises(InvalidCollectValueError, match="at least"):
        validate_collected_value(step, "AB")
    with pytest.raises(InvalidCollectValueError, match="at most"):
        validate_collected_value(step, "ABCDEF")
    with pytest.raises(InvalidCollectValueError, match="required format"):
        validate_collected_value(step, "abcd")


def test_invalid_pattern_is_ignored():
    assert validate_collected_value(_step(pattern="[unclosed"), "value") == "value"
