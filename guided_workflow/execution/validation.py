"""
Collect Validation

Checks a value typed into a collect row against the step's format and
validation rule, and returns the normalized value to store.
"""

import logging
import re
from datetime import date, datetime
from typing import Any, Optional

from ..domain.models import CollectFormat, CollectStep

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MONEY_PATTERN = re.compile(r"^\d+(\.\d{0,2})?$")
ALPHANUMERIC_PATTERN = re.compile(r"^[A-Za-z0-9 ]+$")
PHONE_DIGITS = 10


class InvalidCollectValueError(ValueError):
    """The value cannot be accepted; the message is shown to the agent."""
    pass


def _parse_date(text: str) -> Optional[date]:
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def validate_collected_value(step: CollectStep, raw: Any) -> str:
    """
    Returns the value to store, or raises InvalidCollectValueError.
    Empty input is always rejected; fields marked required say so.
    """
    rule = step.validation

    value = "" if raw is None else str(raw).strip()
    if not value:
        if rule.required:
            raise InvalidCollectValueError("This field is required")
        raise InvalidCollectValueError("A value is required")

    if step.format == CollectFormat.PHONE:
        digits = re.sub(r"\D", "", value)
        if len(digits) != PHONE_DIGITS:
            raise InvalidCollectValueError("Phone number must be 10 digits")

    elif step.format == CollectFormat.EMAIL:
        if not EMAIL_PATTERN.match(value):
            raise InvalidCollectValueError("Invalid email address")

    elif step.format == CollectFormat.NUMERIC:
        value = re.sub(r"\s", "", value)
        if not value.isdigit():
            raise InvalidCollectValueError("Only numbers are allowed")

    elif step.format == CollectFormat.ALPHANUMERIC:
        if not ALPHANUMERIC_PATTERN.match(value):
            raise InvalidCollectValueError("Only letters and numbers are allowed")

    elif step.format == CollectFormat.MONEY:
        if not MONEY_PATTERN.match(value.replace("$", "").replace(",", "")):
            raise InvalidCollectValueError("Invalid currency format")

    elif step.format in (CollectFormat.DATE, CollectFormat.DATETIME):
        parsed = _parse_date(value)
        if parsed is None:
            raise InvalidCollectValueError("Invalid date")
        minimum = _parse_date(rule.min_date) if rule.min_date else None
        maximum = _parse_date(rule.max_date) if rule.max_date else None
        if minimum and parsed < minimum:
            raise InvalidCollectValueError(f"Date must be on or after {rule.min_date}")
        if maximum and parsed > maximum:
            raise InvalidCollectValueError(f"Date must be on or before {rule.max_date}")

    if rule.min_length is not None and len(value) < rule.min_length:
        raise InvalidCollectValueError(f"Must be at least {rule.min_length} characters")
    if rule.max_length is not None and len(value) > rule.max_length:
        raise InvalidCollectValueError(f"Must be at most {rule.max_length} characters")
    if rule.pattern:
        try:
            matched = re.fullmatch(rule.pattern, value) is not None
        except re.error as e:
            logger.warning(f"Ignoring invalid pattern on step {step.guid}: {e}")
            matched = True
        if not matched:
            raise InvalidCollectValueError("Value does not match the required format")

    return value
