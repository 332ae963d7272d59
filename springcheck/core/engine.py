from __future__ import annotations

from typing import Any, Iterable, Mapping

from .condition import evaluate_condition
from .models import Fact, Finding, Rule
from .registry import RuleRegistry


class EvaluationError(Exception):
    """Raised when a rule cannot be evaluated; always names the failing rule."""

    def __init__(self, rule_id: str, cause: BaseException) -> None:
        super().__init__(f"rule {rule_id}: {type(cause).__name__}: {cause}")
        self.rule_id = rule_id
        self.cause = cause


class RuleEvaluator:
    """Matches extracted facts against registry rules and produces findings."""

    def __init__(self, registry: RuleRegistry) -> None:
        self._registry = registry

    def evaluate(self, facts: Iterable[Fact], rules: Iterable[Rule] | None = None) -> list[Finding]:
        ordered_facts = sorted(set(facts), key=Fact.sort_key)
        by_kind: dict[str, list[Fact]] = {}
        for f in ordered_facts:
            by_kind.setdefault(f.kind, []).append(f)

        selected = self._registry.automated() if rules is None else tuple(r for r in rules if r.automated)
        rank = {r.id: i for i, r in enumerate(self._registry.rules)}

        keyed: list[tuple[tuple, Finding]] = []
        for position, rule in enumerate(selected):
            try:
                for finding in _evaluate_rule(rule, by_kind):
                    order = (
                        self._registry.category_rank(rule.category),
                        finding.location,
                        rank.get(rule.id, len(rank) + position),
                    )
                    keyed.append((order, finding))
            except Exception as e:
                raise EvaluationError(rule.id, e) from e

        keyed.sort(key=lambda item: item[0])
        return [finding for _, finding in keyed]


def _evaluate_rule(rule: Rule, by_kind: Mapping[str, list[Fact]]) -> list[Finding]:
    when = rule.when
    matched = [
        f for f in by_kind.get(when["kind"], [])
        if _applies(f, when) and not _suppressed(f, when, by_kind)
    ]
    if not matched:
        return []

    if rule.aggregate:
        return [_make_finding(rule, matched)]
    return [_make_finding(rule, [f]) for f in matched]


def _applies(fact: Fact, when: Mapping[str, Any]) -> bool:
    where = when.get("where")
    if where is None:
        return True
    return evaluate_condition(where, fact.lookup())


def _suppressed(fact: Fact, when: Mapping[str, Any], by_kind: Mapping[str, list[Fact]]) -> bool:
    """True when a correlated fact named by `unless` shares every `same` attribute."""
    unless = when.get("unless")
    if unless is None:
        return False

    mine = fact.lookup()
    same = unless.get("same", ())
    for other in by_kind.get(unless["kind"], []):
        theirs = other.lookup()
        if all(name in mine and name in theirs and mine[name] == theirs[name] for name in same):
            return True
    return False


def _make_finding(rule: Rule, facts: list[Fact]) -> Finding:
    first = facts[0]
    values = first.lookup()
    values["count"] = len(facts)
    values["symbols"] = ", ".join(f.location.symbol for f in facts if f.location.symbol)
    return Finding(
        rule_id=rule.id,
        rule_version=rule.version,
        category=rule.category,
        severity=rule.severity,
        title=rule.title,
        message=rule.message.format_map(values),
        location=first.location,
        evidence=tuple(facts),
    )
