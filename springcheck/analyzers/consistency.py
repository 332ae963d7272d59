"""Naming and layout consistency, within a file and across the files of a change."""
from __future__ import annotations

import re
from pathlib import PurePosixPath

from ..core.models import Fact
from .base import SourceUnit

ACRONYMS = ("API", "DTO", "HTTP", "ID", "JSON", "JWT", "SQL", "URI", "URL", "UUID", "XML")
_SOURCE_SET = re.compile(r"(?:^|/)src/(?:main|test|integrationTest)/java/(.+)$")
_PACKAGE_LINE = re.compile(r"^\s*package\s+[\w.]+\s*;", re.MULTILINE)


class ConsistencyScanner:
    """File/type naming, package layout and acronym casing across the change."""

    name = "consistency"

    def scan(self, unit: SourceUnit) -> list[Fact]:
        facts: list[Fact] = []
        path = PurePosixPath(unit.path.replace("\\", "/"))
        for jtype in unit.source.types:
            if "public" in jtype.modifiers and jtype.name != path.stem and unit.touches(jtype.line):
                facts.append(unit.fact(
                    "TypeNameMismatch", jtype.line, jtype.name, self.name,
                    **{"class": jtype.name, "file": path.name},
                ))

        expected = _expected_package(str(path))
        if expected is not None and unit.source.package != expected:
            m = _PACKAGE_LINE.search(unit.source.code)
            line = unit.source.line_of(m.start()) if m else 1
            if unit.touches(line):
                facts.append(unit.fact(
                    "PackagePathMismatch", line, unit.source.package or "<default>", self.name,
                    package=unit.source.package, expected=expected,
                ))
        return facts

    def scan_change(self, units: list[SourceUnit]) -> list[Fact]:
        """Flag type names whose acronym casing disagrees with the rest of the change.

        The majority spelling wins; a tie goes to the CamelCase form (`Dto`).
        """
        facts: list[Fact] = []
        for acronym in ACRONYMS:
            camel = acronym.capitalize()
            upper_re = re.compile(rf"(?<![A-Z]){acronym}(?![a-z])")
            camel_re = re.compile(rf"{camel}(?![a-z])")
            upper, camel_case = [], []
            for unit in units:
                for jtype in unit.source.all_types():
                    if upper_re.search(jtype.name):
                        upper.append((unit, jtype))
                    elif camel_re.search(jtype.name):
                        camel_case.append((unit, jtype))
            if not upper or not camel_case:
                continue
            if len(upper) > len(camel_case):
                minority, expected, found = camel_case, acronym, camel
            else:
                minority, expected, found = upper, camel, acronym
            for unit, jtype in minority:
                if unit.touches(jtype.line):
                    facts.append(unit.fact(
                        "InconsistentAcronymCasing", jtype.line, jtype.name, self.name,
                        **{"class": jtype.name, "acronym": acronym, "found": found, "expected": expected},
                    ))
        return facts


def _expected_package(path: str) -> str | None:
    m = _SOURCE_SET.search(path)
    if m is None:
        return None
    return ".".join(PurePosixPath(m.group(1)).parent.parts)
