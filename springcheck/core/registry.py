from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from .condition import validate_applicability
from .models import SEVERITIES, Rule

_REQUIRED_RULE_KEYS = {"id", "version", "category", "severity", "title"}

# Sections are read in this order by a reviewer; the rules document must follow it.
SECTION_ORDER = (
    "change-understanding",
    "language",
    "framework",
    "architecture",
    "testing",
    "feedback-format",
)


class ConfigError(Exception):
    """Raised when a rules document or project configuration is malformed."""


@dataclass(frozen=True)
class Section:
    id: str
    title: str
    categories: tuple[str, ...] = ()
    guidance: tuple[str, ...] = ()


class RuleRegistry:
    """Loads the YAML rules document and serves immutable Rule records."""

    def __init__(
        self,
        path: Path,
        disabled: tuple[str, ...] | list[str] = (),
        severity_overrides: Mapping[str, str] | None = None,
    ) -> None:
        self.path = Path(path)
        try:
            with open(self.path, encoding="utf-8") as f:
                document = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigError(f"rules file not found: {self.path}") from None
        except yaml.YAMLError as e:
            raise ConfigError(f"{self.path}: invalid YAML: {e}") from None

        if not isinstance(document, dict):
            raise ConfigError(f"{self.path}: expected a YAML mapping at top level")

        self.name = str(document.get("name", "")).strip()
        self.description = str(document.get("description", "")).strip()

        sections, errors = _parse_sections(document.get("sections", []))
        raw_rules = document.get("rules", [])
        if not isinstance(raw_rules, list):
            errors.append("'rules' must be a list")
            raw_rules = []

        known_categories = [c for s in sections for c in s.categories]
        errors.extend(_validate_rules(raw_rules, set(known_categories)))
        if errors:
            joined = "\n  ".join(errors)
            raise ConfigError(f"{self.path}: rules validation failed:\n  {joined}")

        rules = [_build_rule(r) for r in raw_rules]
        rules = _apply_overrides(rules, disabled, severity_overrides or {}, self.path)

        self.sections: tuple[Section, ...] = tuple(sections)
        self._categories: tuple[str, ...] = tuple(known_categories)
        self._rules: tuple[Rule, ...] = tuple(rules)
        self._by_id = {r.id: r for r in self._rules}

    def load(self) -> frozenset[Rule]:
        return frozenset(self._rules)

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    def automated(self) -> tuple[Rule, ...]:
        return tuple(r for r in self._rules if r.automated)

    def by_category(self, category: str) -> tuple[Rule, ...]:
        return tuple(r for r in self._rules if r.category == category)

    def categories(self) -> tuple[str, ...]:
        return self._categories

    def category_rank(self, category: str) -> int:
        try:
            return self._categories.index(category)
        except ValueError:
            return len(self._categories)

    def get(self, rule_id: str) -> Rule | None:
        return self._by_id.get(rule_id)

    def __len__(self) -> int:
        return len(self._rules)


def default_rules_path() -> Path:
    return Path(__file__).resolve().parent.parent / "rules" / "java_spring.yaml"


def _parse_sections(raw: Any) -> tuple[list[Section], list[str]]:
    errors: list[str] = []
    if not isinstance(raw, list):
        return [], ["'sections' must be a list"]

    sections: list[Section] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict) or "id" not in item:
            errors.append(f"sections[{i}]: expected a mapping with an 'id'")
            continue
        categories = item.get("categories") or []
        guidance = item.get("guidance") or []
        if not isinstance(categories, list) or not isinstance(guidance, list):
            errors.append(f"sections[{i}] (id={item['id']}): 'categories' and 'guidance' must be lists")
            continue
        sections.append(Section(
            id=str(item["id"]),
            title=str(item.get("title", item["id"])),
            categories=tuple(str(c) for c in categories),
            guidance=tuple(str(g) for g in guidance),
        ))

    ids = tuple(s.id for s in sections)
    if ids != SECTION_ORDER:
        errors.append(f"sections must be exactly {list(SECTION_ORDER)} in that order, got {list(ids)}")

    seen: dict[str, str] = {}
    for s in sections:
        for c in s.categories:
            if c in seen:
                errors.append(f"category '{c}' declared in both '{seen[c]}' and '{s.id}'")
            seen[c] = s.id
    return sections, errors


def _validate_rules(rules: list, categories: set[str]) -> list[str]:
    """Validate that every rule has required keys, a unique id and a well-formed condition."""
    errors: list[str] = []
    seen_ids: dict[str, int] = {}
    for i, rule in enumerate(rules):
        if not isinstance(rule, dict):
            errors.append(f"rules[{i}]: expected dict, got {type(rule).__name__}")
            continue
        rid = rule.get("id", "?")
        missing = _REQUIRED_RULE_KEYS - rule.keys()
        if missing:
            errors.append(f"rules[{i}] (id={rid}): missing keys: {sorted(missing)}")
        if not isinstance(rid, str):
            errors.append(f"rules[{i}] (id={rid}): 'id' must be a string")
        elif rid in seen_ids:
            errors.append(f"rules[{i}] (id={rid}): duplicate rule id (first defined at rules[{seen_ids[rid]}])")
        else:
            seen_ids[rid] = i
        if "severity" in rule and rule["severity"] not in SEVERITIES:
            errors.append(f"rules[{i}] (id={rid}): unknown severity '{rule['severity']}' (valid: {list(SEVERITIES)})")
        if "category" in rule and not isinstance(rule["category"], str):
            errors.append(f"rules[{i}] (id={rid}): 'category' must be a string")
        elif "category" in rule and rule["category"] not in categories:
            errors.append(f"rules[{i}] (id={rid}): category '{rule['category']}' is not declared in any section")
        if "version" in rule and (not isinstance(rule["version"], int) or rule["version"] < 1):
            errors.append(f"rules[{i}] (id={rid}): 'version' must be a positive integer")
        if rule.get("when") is not None:
            for err in validate_applicability(rule["when"]):
                errors.append(f"rules[{i}] (id={rid}): {err}")
            if not rule.get("message"):
                errors.append(f"rules[{i}] (id={rid}): automated rules need a 'message' template")
    return errors


def _build_rule(raw: dict) -> Rule:
    when = raw.get("when")
    return Rule(
        id=str(raw["id"]),
        version=int(raw["version"]),
        category=str(raw["category"]),
        severity=str(raw["severity"]),
        title=str(raw["title"]),
        description=str(raw.get("description") or "").strip(),
        message=str(raw.get("message") or "").strip(),
        when=_freeze(when) if when is not None else None,
        aggregate=bool(raw.get("aggregate", False)),
    )


def _apply_overrides(
    rules: list[Rule],
    disabled: tuple[str, ...] | list[str],
    overrides: Mapping[str, str],
    path: Path,
) -> list[Rule]:
    ids = {r.id for r in rules}
    unknown = sorted((set(disabled) | set(overrides)) - ids)
    if unknown:
        raise ConfigError(f"{path}: configuration references unknown rule ids: {unknown}")
    for rid, severity in overrides.items():
        if severity not in SEVERITIES:
            raise ConfigError(f"severity override for {rid}: unknown severity '{severity}'")

    result: list[Rule] = []
    for rule in rules:
        if rule.id in disabled:
            continue
        if rule.id in overrides:
            rule = replace(rule, severity=overrides[rule.id])
        result.append(rule)
    return result


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value
