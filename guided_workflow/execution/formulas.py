"""
Formula Evaluator - Conditional Expression Language

Evaluates the small boolean language used by answer `Evaluate` fields and
conditional variable assignments, e.g.

    accounttype.equals(business).or.customer.tier.equals(gold)
    age.greaterthan(18)
    callreason.notempty

The result is always one of the strings "true", "false" or "unknown".
Evaluation is a pure function of the VariableStore and never raises: anything
that cannot be parsed or compared yields "unknown".
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional, Union

from ..state.variables import VariableStore, format_value

logger = logging.getLogger(__name__)

TRUE = "true"
FALSE = "false"
UNKNOWN = "unknown"

_CONNECTIVE = re.compile(r"\.(or|and)\.", re.IGNORECASE)

# Longer operator names come first so greaterthanequalto is not read as greaterthan.
_OPERATION = re.compile(
    r"\.(empty|notempty|equals|notequals|contains|notcontains|startswith|endswith"
    r"|greaterthanequalto|greaterthan|lessthanequalto|lessthan)(\([^)]*\))?$",
    re.IGNORECASE,
)

_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")

_CUSTOMER_PREFIX = "customer."

_FALSY_TEXT = ("", "false", "0")
_TRUE_TEXT = ("true", "1")

_ORDERING = ("greaterthan", "greaterthanequalto", "lessthan", "lessthanequalto")


def _result(flag: bool) -> str:
    return TRUE if flag else FALSE


def _is_truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) > 0
    return str(value).strip().lower() not in _FALSY_TEXT


def _is_blank(value: Any) -> bool:
    return value is None or format_value(value).strip() == ""


def _parse_number(text: str) -> Optional[float]:
    if not _NUMBER.match(text):
        return None
    return float(text)


def _parse_date(text: str) -> Optional[datetime]:
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.strptime(text, "%m/%d/%Y")
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _sign(left: Union[float, datetime, str], right: Union[float, datetime, str]) -> int:
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


class FormulaEvaluator:
    def __init__(self, variables: VariableStore):
        self.variables = variables

    def evaluate(self, formula: Optional[str]) -> str:
        if not formula or not formula.strip():
            return UNKNOWN

        try:
            connective = _CONNECTIVE.search(formula)
            if connective is None:
                return self._evaluate_condition(formula.strip())

            # The earliest connective picks the operator. Parts are single
            # conditions: the other connective is never split, so
            # a.and.b.or.c reads as a AND a condition named "b.or.c".
            operator = connective.group(1).lower()
            parts = re.split(rf"\.{operator}\.", formula, flags=re.IGNORECASE)

            if operator == "or":
                for part in parts:
                    if self._evaluate_condition(part.strip()) == TRUE:
                        return TRUE
                return FALSE

            for part in parts:
                if self._evaluate_condition(part.strip()) != TRUE:
                    return FALSE
            return TRUE

        except (TypeError, ValueError, re.error) as e:
            logger.warning(f"Could not evaluate formula '{formula}': {e}")
            return UNKNOWN

    # ==========================================================================
    # Single conditions
    # ==========================================================================

    def _evaluate_condition(self, condition: str) -> str:
        if not condition:
            return UNKNOWN

        match = _OPERATION.search(condition)
        if match is None:
            return _result(_is_truthy(self._lookup(condition)))

        name = condition[: match.start()].strip()
        if not name:
            return UNKNOWN

        operation = match.group(1).lower()
        value = self._lookup(name)

        if operation == "empty":
            return _result(_is_blank(value))
        if operation == "notempty":
            return _result(not _is_blank(value))

        if match.group(2) is None:
            logger.debug(f"Operation '{operation}' without a parameter in '{condition}'")
            return UNKNOWN

        param = self.variables.interpolate(match.group(2)[1:-1])
        return self._apply(operation, value, param)

    def _lookup(self, name: str) -> Any:
        if name.lower().startswith(_CUSTOMER_PREFIX):
            field = name[len(_CUSTOMER_PREFIX):]
            value = self.variables.get_variable(f"customer_{field}")
            if value is None:
                value = self.variables.get_variable(field)
            return value
        return self.variables.get_variable(name)

    def _apply(self, operation: str, value: Any, param: str) -> str:
        text = format_value(value).lower()
        needle = param.lower()

        if operation in _ORDERING:
            order = self._compare(value, param)
            if order is None:
                return UNKNOWN
            if operation == "greaterthan":
                return _result(order > 0)
            if operation == "greaterthanequalto":
                return _result(order >= 0)
            if operation == "lessthan":
                return _result(order < 0)
            return _result(order <= 0)

        if operation in ("equals", "notequals"):
            if needle in ("true", "false"):
                equal = self._as_bool(value) == (needle == "true")
            else:
                equal = text == needle
            return _result(equal if operation == "equals" else not equal)

        if operation in ("contains", "notcontains"):
            if isinstance(value, (list, tuple, set)):
                found = any(format_value(item).lower() == needle for item in value)
            else:
                found = needle in text
            return _result(found if operation == "contains" else not found)

        if operation == "startswith":
            return _result(text.startswith(needle))
        if operation == "endswith":
            return _result(text.endswith(needle))

        return UNKNOWN

    @staticmethod
    def _as_bool(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        return format_value(value).strip().lower() in _TRUE_TEXT

    @staticmethod
    def _compare(value: Any, param: str) -> Optional[int]:
        """
        Orders value against param: numbers first, then dates, then plain
        strings. Returns None when the operands cannot be ordered.
        """
        if value is None:
            return None

        left = format_value(value).strip()
        right = param.strip()

        left_number, right_number = _parse_number(left), _parse_number(right)
        if left_number is not None and right_number is not None:
            return _sign(left_number, right_number)

        left_date, right_date = _parse_date(left), _parse_date(right)
        if left_date is not None and right_date is not None:
            return _sign(left_date, right_date)

        # A number against free text has no meaningful order.
        if left_number is not None or right_number is not None:
            return None

        return _sign(left, right)
