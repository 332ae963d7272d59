from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator

from ..core.models import Fact, Location
from .java import JavaMethod, JavaSource, JavaType, match_brace, match_paren

SPRING_STEREOTYPES = {"Service", "Component", "Repository", "RestController", "Controller", "Configuration"}
CONTROLLER_ANNOTATIONS = {"RestController", "Controller"}
TEST_ANNOTATIONS = {"Test", "ParameterizedTest", "RepeatedTest", "TestFactory", "TestTemplate"}
DATA_ACCESS_TYPE = re.compile(r"^\w*(Repository|Dao|DAO)$")


@dataclass(frozen=True)
class SourceUnit:
    """A parsed Java file plus the lines a change touched (None = whole file)."""

    source: JavaSource
    changed_lines: frozenset[int] | None = None

    @property
    def path(self) -> str:
        return self.source.path

    def touches(self, start: int, end: int | None = None) -> bool:
        if self.changed_lines is None:
            return True
        end = start if end is None else end
        return any(start <= n <= end for n in self.changed_lines)

    def touches_type(self, jtype: JavaType) -> bool:
        return self.touches(jtype.line, jtype.end_line)

    def location(self, line: int, symbol: str = "") -> Location:
        return Location(path=self.path, line=line, symbol=symbol)

    def fact(self, kind: str, line: int, symbol: str, detector: str, **attributes) -> Fact:
        return Fact.make(kind, self.location(line, symbol), detector=detector, **attributes)

    def body_matches(self, method: JavaMethod, pattern: re.Pattern) -> Iterator[tuple[re.Match, int]]:
        """Yield (match, line) for pattern hits inside a method body."""
        if method.body is None:
            return
        for m in pattern.finditer(method.body):
            yield m, self.source.line_of(method.body_start + m.start())


def block_after(text: str, index: int) -> tuple[int, int] | None:
    """Span of the `{...}` block or single statement that follows text[index:].

    Used for loop bodies: index points just past the loop header.
    """
    i = index
    while i < len(text) and text[i].isspace():
        i += 1
    if i >= len(text):
        return None
    if text[i] == "{":
        return i + 1, match_brace(text, i)
    end = text.find(";", i)
    return (i, end) if end != -1 else None


def paren_span(text: str, open_index: int) -> tuple[int, int]:
    return open_index + 1, match_paren(text, open_index)


def is_spring_bean(jtype: JavaType) -> bool:
    return jtype.has_annotation(*SPRING_STEREOTYPES)


def is_controller(jtype: JavaType) -> bool:
    return jtype.has_annotation(*CONTROLLER_ANNOTATIONS)


def is_test_method(method: JavaMethod) -> bool:
    return method.has_annotation(*TEST_ANNOTATIONS)


def data_access_fields(jtype: JavaType) -> dict[str, str]:
    """Field name -> type for repository/DAO collaborators."""
    found: dict[str, str] = {}
    for f in jtype.fields:
        if DATA_ACCESS_TYPE.match(f.type.split("<", 1)[0]):
            found[f.name] = f.type
    return found
