import pytest

from springcheck.core.condition import evaluate_condition, validate_applicability, validate_condition

INJECTION_CONDITION = {
    "all": [
        {"attr": "annotation", "op": "in", "value": ["Autowired", "Inject"]},
        {"attr": "class", "op": "matches", "value": "Service$"},
    ]
}


# --- evaluate_condition ---

def test_triggers_on_autowired_service_field():
    attrs = {"annotation": "Autowired", "class": "OrderService"}
    assert evaluate_condition(INJECTION_CONDITION, attrs) is True


def test_no_trigger_on_other_annotation():
    attrs = {"annotation": "Resource", "class": "OrderService"}
    assert evaluate_condition(INJECTION_CONDITION, attrs) is False


def test_no_trigger_when_class_does_not_match():
    attrs = {"annotation": "Inject", "class": "OrderController"}
    assert evaluate_condition(INJECTION_CONDITION, attrs) is False


def test_any_condition():
    condition = {
        "any": [
            {"attr": "a", "op": "eq", "value": 1},
            {"attr": "b", "op": "eq", "value": 2},
        ]
    }
    assert evaluate_condition(condition, {"a": 1, "b": 99}) is True
    assert evaluate_condition(condition, {"a": 99, "b": 2}) is True
    assert evaluate_condition(condition, {"a": 99, "b": 99}) is False


def test_not_condition():
    condition = {"not": {"attr": "reason", "op": "eq", "value": "self_invocation"}}
    assert evaluate_condition(condition, {"reason": "private_method"}) is True
    assert evaluate_condition(condition, {"reason": "self_invocation"}) is False


@pytest.mark.parametrize("op,value,actual,expected", [
    ("ne", "x", "y", True),
    ("not_in", ["a", "b"], "c", True),
    ("not_in", ["a", "b"], "a", False),
    ("gte", 4, 4, True),
    ("gte", 4, 3, False),
    ("lte", 2, 3, False),
])
def test_leaf_operators(op, value, actual, expected):
    assert evaluate_condition({"attr": "n", "op": op, "value": value}, {"n": actual}) is expected


def test_numeric_operator_on_string_is_false():
    assert evaluate_condition({"attr": "n", "op": "gte", "value": 1}, {"n": "10"}) is False


def test_missing_attribute_returns_false():
    attrs = {"class": "OrderService"}
    assert evaluate_condition(INJECTION_CONDITION, attrs) is False


def test_attribute_present_but_none_still_evaluates():
    """An attribute explicitly set to None should still be compared, not short-circuited."""
    condition = {"attr": "x", "op": "eq", "value": None}
    assert evaluate_condition(condition, {"x": None}) is True


# --- validate_condition ---

def test_validate_valid_condition():
    errors = validate_condition(INJECTION_CONDITION)
    assert errors == []


def test_validate_missing_attr_key():
    condition = {"op": "eq", "value": True}
    errors = validate_condition(condition)
    assert any("missing required key 'attr'" in e for e in errors)


def test_validate_unknown_operator():
    condition = {"attr": "x", "op": "regex", "value": ".*"}
    errors = validate_condition(condition)
    assert any("unknown operator" in e for e in errors)


def test_validate_in_with_non_list_value():
    condition = {"attr": "x", "op": "in", "value": "not-a-list"}
    errors = validate_condition(condition)
    assert any("requires a list value" in e for e in errors)


def test_validate_gte_requires_number():
    errors = validate_condition({"attr": "x", "op": "gte", "value": "four"})
    assert any("requires a number" in e for e in errors)


def test_validate_bad_regex():
    errors = validate_condition({"attr": "x", "op": "matches", "value": "("})
    assert any("invalid regex" in e for e in errors)


def test_validate_nested_error():
    condition = {"all": [{"any": [{"attr": "x", "op": "bad", "value": 1}]}]}
    errors = validate_condition(condition)
    assert any("unknown operator" in e for e in errors)
    assert any("where.all[0].any[0]" in e for e in errors)


# --- validate_applicability ---

def test_applicability_requires_kind():
    errors = validate_applicability({"where": {"attr": "x", "op": "eq", "value": 1}})
    assert any("missing required key 'kind'" in e for e in errors)


def test_applicability_rejects_unknown_keys():
    errors = validate_applicability({"kind": "FieldInjection", "severity": "blocking"})
    assert any("unknown keys" in e for e in errors)


def test_applicability_validates_unless():
    errors = validate_applicability({"kind": "EqualsOverridden", "unless": {"same": "class"}})
    assert any("when.unless: missing required key 'kind'" in e for e in errors)
    assert any("when.unless.same" in e for e in errors)


def test_applicability_accepts_full_block():
    when = {
        "kind": "EqualsOverridden",
        "where": {"attr": "class", "op": "ne", "value": ""},
        "unless": {"kind": "HashCodeOverridden", "same": ["path", "class"]},
    }
    assert validate_applicability(when) == []
