from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

SEVERITIES = ("blocking", "suggested", "positive")


@dataclass(frozen=True, order=True)
class Location:
    path: str
    line: int
    symbol: str = ""

    def __str__(self) -> str:
        return f"{self.path}:{self.line}"


@dataclass(frozen=True)
class Fact:
    """One objective observation about a change, e.g. kind=FieldInjection."""

    kind: str
    location: Location
    attributes: tuple[tuple[str, Any], ...] = ()
    detector: str = ""

    @classmethod
    def make(cls, kind: str, location: Location, detector: str = "", **attributes: Any) -> Fact:
        return cls(
            kind=kind,
            location=location,
            attributes=tuple(sorted(attributes.items())),
            detector=detector,
        )

    @property
    def attrs(self) -> dict[str, Any]:
        return dict(self.attributes)

    def lookup(self) -> dict[str, Any]:
        """Attributes plus the location pseudo-attributes used by conditions and templates."""
        values = {
            "kind": self.kind,
            "path": self.location.path,
            "line": self.location.line,
            "symbol": self.location.symbol,
        }
        values.update(self.attributes)
        return values

    def sort_key(self) -> tuple:
        return (self.location, self.kind, self.attributes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "path": self.location.path,
            "line": self.location.line,
            "symbol": self.location.symbol,
            "attributes": self.attrs,
            "detector": self.detector,
        }


@dataclass(frozen=True)
class Rule:
    id: str
    version: int
    category: str
    severity: str
    title: str
    description: str = field(default="", compare=False)
    message: str = field(default="", compare=False)
    when: Mapping[str, Any] | None = field(default=None, compare=False)
    aggregate: bool = field(default=False, compare=False)

    @property
    def automated(self) -> bool:
        return self.when is not None

    @property
    def ref(self) -> str:
        return f"{self.id}@{self.version}"


@dataclass(frozen=True)
class Finding:
    rule_id: str
    rule_version: int
    category: str
    severity: str
    title: str
    message: str
    location: Location
    evidence: tuple[Fact, ...]

    def __post_init__(self) -> None:
        if not self.evidence:
            raise ValueError(f"finding for rule {self.rule_id} has no supporting facts")

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_version": self.rule_version,
            "category": self.category,
            "severity": self.severity,
            "title": self.title,
            "message": self.message,
            "path": self.location.path,
            "line": self.location.line,
            "symbol": self.location.symbol,
            "evidence": [f.to_dict() for f in self.evidence],
        }


@dataclass(frozen=True)
class Report:
    blocking: tuple[Finding, ...] = ()
    suggested: tuple[Finding, ...] = ()
    positive: tuple[Finding, ...] = ()

    @property
    def total(self) -> int:
        return len(self.blocking) + len(self.suggested) + len(self.positive)

    def bucket(self, severity: str) -> tuple[Finding, ...]:
        return getattr(self, severity)


@dataclass(frozen=True)
class AnalysisFailure:
    path: str
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "reason": self.reason}
