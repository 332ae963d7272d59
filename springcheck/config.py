from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .core.models import SEVERITIES
from .core.registry import ConfigError, default_rules_path

logger = logging.getLogger(__name__)

FAIL_ON_CHOICES = ("blocking", "suggested", "never")

_SEARCH_PATHS = [
    Path(".springcheck.yaml"),
    Path(".springcheck.yml"),
]
_KNOWN_KEYS = {"rules", "disabled_rules", "severity_overrides", "fail_on", "exclude", "max_workers"}


@dataclass(frozen=True)
class ProjectConfig:
    path: Path | None = None
    rules: Path | None = None
    disabled_rules: tuple[str, ...] = ()
    severity_overrides: dict[str, str] = field(default_factory=dict)
    fail_on: str = "blocking"
    exclude: tuple[str, ...] = ()
    max_workers: int = 4


class ConfigLocator:
    """Finds the project configuration file: explicit path, $SPRINGCHECK_CONFIG, then the working directory."""

    def __init__(self, config_path: Path | None = None) -> None:
        self._explicit_path = config_path

    def searched_locations(self) -> list[str]:
        """Return the list of paths that would be checked, in order."""
        locations: list[str] = []
        if self._explicit_path:
            locations.append(str(self._explicit_path))
        env_path = os.environ.get("SPRINGCHECK_CONFIG")
        if env_path:
            locations.append(f"$SPRINGCHECK_CONFIG ({env_path})")
        locations.extend(str(p) for p in _SEARCH_PATHS)
        return locations

    def resolve(self) -> Path | None:
        if self._explicit_path:
            if not self._explicit_path.exists():
                raise ConfigError(f"config file not found: {self._explicit_path}")
            return self._explicit_path

        env_path = os.environ.get("SPRINGCHECK_CONFIG")
        if env_path:
            p = Path(env_path)
            if p.exists():
                return p

        for p in _SEARCH_PATHS:
            if p.exists():
                return p

        return None


def load_project_config(config_path: Path | None = None) -> ProjectConfig:
    """Load the project configuration, or defaults when no file is found."""
    locator = ConfigLocator(config_path)
    path = locator.resolve()
    if path is None:
        logger.debug("no project config found; searched: %s", ", ".join(locator.searched_locations()))
        return ProjectConfig()
    logger.debug("using project config %s", path)

    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"{path}: invalid YAML: {e}") from None
    if raw is None:
        return ProjectConfig(path=path)
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a YAML mapping at top level")

    errors = _validate(raw)
    if errors:
        joined = "\n  ".join(errors)
        raise ConfigError(f"{path}: configuration validation failed:\n  {joined}")

    rules = raw.get("rules")
    rules_path = None
    if rules:
        rules_path = Path(rules)
        if not rules_path.is_absolute():
            rules_path = path.parent / rules_path

    return ProjectConfig(
        path=path,
        rules=rules_path,
        disabled_rules=tuple(raw.get("disabled_rules") or ()),
        severity_overrides=dict(raw.get("severity_overrides") or {}),
        fail_on=raw.get("fail_on", "blocking"),
        exclude=tuple(raw.get("exclude") or ()),
        max_workers=raw.get("max_workers", 4),
    )


def resolve_rules_path(explicit: Path | None, config: ProjectConfig) -> Path:
    """--rules, then $SPRINGCHECK_RULES, then the config's `rules`, then the bundled document."""
    if explicit:
        return explicit
    env_path = os.environ.get("SPRINGCHECK_RULES")
    if env_path:
        return Path(env_path)
    if config.rules:
        return config.rules
    return default_rules_path()


def _validate(raw: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    unknown = set(raw) - _KNOWN_KEYS
    if unknown:
        errors.append(f"unknown keys: {sorted(unknown)}")
    if "rules" in raw and not isinstance(raw["rules"], str):
        errors.append("'rules' must be a path string")
    for key in ("disabled_rules", "exclude"):
        value = raw.get(key)
        if value is not None and (not isinstance(value, list) or not all(isinstance(v, str) for v in value)):
            errors.append(f"'{key}' must be a list of strings")
    overrides = raw.get("severity_overrides")
    if overrides is not None:
        if not isinstance(overrides, dict):
            errors.append("'severity_overrides' must be a mapping of rule id to severity")
        else:
            for rid, severity in overrides.items():
                if severity not in SEVERITIES:
                    errors.append(f"severity_overrides.{rid}: unknown severity '{severity}' (valid: {list(SEVERITIES)})")
    if "fail_on" in raw and raw["fail_on"] not in FAIL_ON_CHOICES:
        errors.append(f"'fail_on' must be one of {list(FAIL_ON_CHOICES)}")
    workers = raw.get("max_workers")
    if workers is not None and (isinstance(workers, bool) or not isinstance(workers, int) or workers < 1):
        errors.append("'max_workers' must be a positive integer")
    return errors
