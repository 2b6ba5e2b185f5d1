"""
Condition-step evaluation against the client + appointment context.

Evaluation never raises: a field missing from the context, or a comparison
value of the wrong shape, evaluates to False (the false branch).
"""
import logging
from typing import Any, Dict, Optional

from ..models.steps import ConditionConfig, ConditionOperator
from ..util.clock import DAY_MS

logger = logging.getLogger(__name__)

# fields holding epoch-ms timestamps; compared as whole days elapsed
DATE_FIELDS = frozenset({"last_appointment_date"})

# accepted spellings of context keys
FIELD_ALIASES = {
    "client_portal_status": "client_status",
    "status": "client_status",
    "type": "appointment_type",
}

MISSING = object()


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict, set)):
        return len(value) == 0
    return False


def _compare_list(actual: list, op: ConditionOperator, expected: Any) -> bool:
    if op in (ConditionOperator.has_tag, ConditionOperator.contains):
        return expected in actual
    if op in (ConditionOperator.not_has_tag, ConditionOperator.not_contains):
        return expected not in actual
    if op == ConditionOperator.equals:
        return actual == (expected if isinstance(expected, list) else [expected])
    if op == ConditionOperator.not_equals:
        return actual != (expected if isinstance(expected, list) else [expected])
    return False


def _compare_numbers(actual: float, op: ConditionOperator, expected: Any) -> bool:
    target = _number(expected)
    if target is None:
        return False
    if op == ConditionOperator.equals:
        return actual == target
    if op == ConditionOperator.not_equals:
        return actual != target
    if op == ConditionOperator.greater_than:
        return actual > target
    if op == ConditionOperator.less_than:
        return actual < target
    return False


def _compare_strings(actual: str, op: ConditionOperator, expected: Any) -> bool:
    if op in (ConditionOperator.greater_than, ConditionOperator.less_than):
        number = _number(actual)
        return number is not None and _compare_numbers(number, op, expected)
    if expected is None:
        return False
    a, e = actual.lower(), str(expected).lower()
    if op == ConditionOperator.equals:
        return a == e
    if op == ConditionOperator.not_equals:
        return a != e
    if op == ConditionOperator.contains:
        return e in a
    if op == ConditionOperator.not_contains:
        return e not in a
    return False


def resolve_field(context: Dict[str, Any], field: str) -> Any:
    key = FIELD_ALIASES.get(field, field)
    if key in context:
        return context[key]
    # dotted paths reach into nested metadata, e.g. "appointment.provider"
    current: Any = context
    for part in field.split("."):
        if not isinstance(current, dict) or part not in current:
            return MISSING
        current = current[part]
    return current


def evaluate_condition(config: ConditionConfig, context: Dict[str, Any], now: int) -> bool:
    value = resolve_field(context, config.field)
    if value is MISSING or value is None:
        logger.debug("Condition field %r missing from context; taking false branch", config.field)
        return False

    op = ConditionOperator(config.operator)
    expected = config.comparison_value

    if op == ConditionOperator.is_empty:
        return _is_empty(value)
    if op == ConditionOperator.is_not_empty:
        return not _is_empty(value)

    if config.field in DATE_FIELDS:
        stamp = _number(value)
        if stamp is None:
            return False
        days_elapsed = int((now - stamp) // DAY_MS)
        return _compare_numbers(float(days_elapsed), op, expected)

    if isinstance(value, (list, tuple, set)):
        return _compare_list(list(value), op, expected)
    if isinstance(value, bool):
        return _compare_strings(str(value).lower(), op, expected)
    if isinstance(value, (int, float)):
        if op in (ConditionOperator.contains, ConditionOperator.not_contains):
            return _compare_strings(str(value), op, expected)
        return _compare_numbers(float(value), op, expected)
    if isinstance(value, str):
        return _compare_strings(value, op, expected)
    return False
