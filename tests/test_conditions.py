import pytest

from clinicflow.automation.conditions import evaluate_condition
from clinicflow.models.steps import ConditionConfig
from clinicflow.util.clock import DAY_MS

NOW = 1_760_000_000_000

CONTEXT = {
    "tags": ["vip", "morpheus8"],
    "client_status": "active",
    "appointment_type": "Filler",
    "appointment_count": 3,
    "last_appointment_date": NOW - 10 * DAY_MS - 1000,
    "email": "",
}


def cond(field, operator, value=None):
    return ConditionConfig(field=field, operator=operator, comparison_value=value)


@pytest.mark.parametrize("config, expected", [
    (cond("tags", "has_tag", "vip"), True),
    (cond("tags", "contains", "vip"), True),
    (cond("tags", "not_has_tag", "vip"), False),
    (cond("tags", "not_contains", "new"), True),
    (cond("client_status", "equals", "ACTIVE"), True),
    (cond("client_portal_status", "not_equals", "active"), False),
    (cond("appointment_type", "contains", "fill"), True),
    (cond("appointment_count", "greater_than", "2"), True),
    (cond("appointment_count", "less_than", 3), False),
    (cond("appointment_count", "equals", 3), True),
    (cond("email", "is_empty"), True),
    (cond("tags", "is_not_empty"), True),
])
def test_operators(config, expected):
    assert evaluate_condition(config, CONTEXT, NOW) is expected


def test_last_appointment_date_compares_whole_days():
    # 10 days and one second ago counts as 10 days
    assert evaluate_condition(cond("last_appointment_date", "greater_than", 9), CONTEXT, NOW) is True
    assert evaluate_condition(cond("last_appointment_date", "greater_than", 10), CONTEXT, NOW) is False
    assert evaluate_condition(cond("last_appointment_date", "less_than", 11), CONTEXT, NOW) is True


@pytest.mark.parametrize("operator", ["equals", "not_equals", "has_tag", "greater_than", "is_empty", "is_not_empty"])
def test_missing_field_is_false(operator):
    assert evaluate_condition(cond("loyalty_points", operator, 5), CONTEXT, NOW) is False


def test_bad_comparison_value_is_false():
    assert evaluate_condition(cond("appointment_count", "greater_than", "many"), CONTEXT, NOW) is False


def test_dotted_path_reaches_nested_metadata():
    ctx = {"appointment": {"provider": "Dr. Kim"}}
    assert evaluate_condition(cond("appointment.provider", "contains", "kim"), ctx, NOW) is True
