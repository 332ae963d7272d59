from __future__ import annotations

import re
from typing import Any, Mapping

_VALID_OPS = {"eq", "ne", "in", "not_in", "gte", "lte", "matches"}
_LIST_OPS = {"in", "not_in"}


def validate_condition(condition: Mapping) -> list[str]:
    """Return a list of error strings if the condition tree is malformed."""
    errors: list[str] = []
    _validate_node(condition, errors, path="where")
    return errors


def _validate_node(node: Mapping, errors: list[str], path: str) -> None:
    if not isinstance(node, Mapping):
        errors.append(f"{path}: expected dict, got {type(node).__name__}")
        return

    for combinator in ("all", "any"):
        if combinator in node:
            children = node[combinator]
            if not isinstance(children, (list, tuple)):
                errors.append(f"{path}.{combinator}: expected list, got {type(children).__name__}")
                return
            for i, child in enumerate(children):
                _validate_node(child, errors, path=f"{path}.{combinator}[{i}]")
            return

    if "not" in node:
        _validate_node(node["not"], errors, path=f"{path}.not")
        return

    # Leaf node: must have attr, op, value
    for key in ("attr", "op", "value"):
        if key not in node:
            errors.append(f"{path}: missing required key '{key}'")
    op = node.get("op")
    if op is not None and op not in _VALID_OPS:
        errors.append(f"{path}: unknown operator '{op}' (valid: {sorted(_VALID_OPS)})")
    val = node.get("value")
    if op in _LIST_OPS and val is not None and not isinstance(val, (list, tuple, set, frozenset)):
        errors.append(f"{path}: '{op}' operator requires a list value, got {type(val).__name__}")
    if op in ("gte", "lte") and not isinstance(val, (int, float)):
        errors.append(f"{path}: '{op}' operator requires a number, got {type(val).__name__}")
    if op == "matches":
        try:
            re.compile(str(val))
        except re.error as e:
            errors.append(f"{path}: invalid regex {val!r}: {e}")


def evaluate_condition(condition: Mapping, attrs: Mapping[str, Any]) -> bool:
    """Evaluate an all/any/not condition tree against a fact's attributes.

    Missing attributes cause the leaf condition to evaluate to False.
    """
    if "all" in condition:
        return all(evaluate_condition(c, attrs) for c in condition["all"])
    if "any" in condition:
        return any(evaluate_condition(c, attrs) for c in condition["any"])
    if "not" in condition:
        return not evaluate_condition(condition["not"], attrs)

    name = condition["attr"]
    op = condition["op"]
    expected = condition["value"]

    if name not in attrs:
        return False
    actual = attrs[name]

    if op == "eq":
        return actual == expected
    if op == "ne":
        return actual != expected
    if op == "in":
        return actual in expected
    if op == "not_in":
        return actual not in expected
    if op == "gte":
        return isinstance(actual, (int, float)) and actual >= expected
    if op == "lte":
        return isinstance(actual, (int, float)) and actual <= expected
    if op == "matches":
        return re.search(str(expected), str(actual)) is not None

    raise ValueError(f"Unknown operator: {op}")


def validate_applicability(when: Any) -> list[str]:
    """Validate a rule's `when` block: kind, optional where and unless."""
    if not isinstance(when, Mapping):
        return [f"when: expected dict, got {type(when).__name__}"]

    errors: list[str] = []
    if not isinstance(when.get("kind"), str) or not when.get("kind"):
        errors.append("when: missing required key 'kind'")
    unknown = set(when) - {"kind", "where", "unless"}
    if unknown:
        errors.append(f"when: unknown keys: {sorted(unknown)}")
    if "where" in when:
        errors.extend(validate_condition(when["where"]))
    if "unless" in when:
        unless = when["unless"]
        if not isinstance(unless, Mapping):
            errors.append(f"when.unless: expected dict, got {type(unless).__name__}")
        else:
            if not isinstance(unless.get("kind"), str) or not unless.get("kind"):
                errors.append("when.unless: missing required key 'kind'")
            same = unless.get("same", [])
            if not isinstance(same, (list, tuple)) or not all(isinstance(s, str) for s in same):
                errors.append("when.unless.same: expected a list of attribute names")
    return errors
