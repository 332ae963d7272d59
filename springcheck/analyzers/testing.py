"""Test quality detectors: assertion strength and test independence."""
from __future__ import annotations

import re

from ..core.models import Fact
from .base import SourceUnit, is_test_method
from .java import JavaAnnotation, JavaMethod, JavaType

# Optional class qualifier: Assert., Assertions., org.junit.Assert., Mockito.
_QUALIFIER = r"(?:(?:[a-z_$][\w$]*\s*\.\s*)*[A-Z][\w$]*\s*\.\s*)?"
_ASSERTION = re.compile(
    rf"(?<![\w$.]){_QUALIFIER}(?:assert\w*|verify\w*|expect\w*|fail|then)\s*\("
    r"|\.\s*(?:andExpect|andExpectAll|expectStatus|expectBody|should\w*|verify\w*)\s*\("
)
_WEAK = (
    re.compile(rf"^{_QUALIFIER}assertNotNull\s*\("),
    re.compile(rf"^{_QUALIFIER}assertTrue\s*\(\s*true\s*\)$"),
    re.compile(rf"^{_QUALIFIER}assertTrue\s*\(.*!=\s*null\s*\)$", re.DOTALL),
    re.compile(rf"^{_QUALIFIER}assertFalse\s*\(.*==\s*null\s*\)$", re.DOTALL),
    re.compile(rf"^{_QUALIFIER}assertThat\s*\(.*\)\s*\.\s*isNotNull\s*\(\s*\)$", re.DOTALL),
)
_EXCEPTION_PATH = re.compile(
    r"\b(?:assertThrows|assertThrowsExactly|assertThatThrownBy|assertThatExceptionOfType|assertThatCode)\s*\("
)
_SLEEP = re.compile(r"\bThread\s*\.\s*sleep\s*\(|\bTimeUnit\s*\.\s*\w+\s*\.\s*sleep\s*\(")
_MUTABLE_INIT = re.compile(
    r"^new\s+(?:ArrayList|LinkedList|HashMap|LinkedHashMap|TreeMap|HashSet|LinkedHashSet|TreeSet"
    r"|ConcurrentHashMap|AtomicInteger|AtomicLong|AtomicReference|StringBuilder)\b"
)
# Class-level orderers that make execution order part of the contract.
# Random, JVM and DEFAULT sorters do not.
_ORDERERS = {"TestMethodOrder": ("OrderAnnotation",), "FixMethodOrder": ("NAME_ASCENDING",)}


class AssertionScanner:
    """Tests without assertions, tests with only weak assertions, and sleeps in tests."""

    name = "assertions"

    def scan(self, unit: SourceUnit) -> list[Fact]:
        if not unit.source.is_test:
            return []
        facts: list[Fact] = []
        for jtype in unit.source.all_types():
            helpers = {m.name for m in jtype.methods if not is_test_method(m)}
            for m in jtype.methods:
                if m.body is None or not is_test_method(m) or not unit.touches(m.line, m.end_line):
                    continue
                facts.extend(self._scan_test(unit, jtype, m, helpers))
        return facts

    def _scan_test(self, unit: SourceUnit, jtype: JavaType, m: JavaMethod, helpers: set[str]) -> list[Fact]:
        facts: list[Fact] = []
        symbol = f"{jtype.name}.{m.name}"
        attrs = {"class": jtype.name, "method": m.name}

        for _, line in unit.body_matches(m, _SLEEP):
            facts.append(unit.fact("SleepInTest", line, symbol, self.name, **attrs))
            break

        test_annotation = m.annotation("Test")
        if _EXCEPTION_PATH.search(m.body) or (test_annotation and "expected" in test_annotation.arguments):
            facts.append(unit.fact("ExceptionPathTested", m.line, symbol, self.name, **attrs))
            return facts

        assertions = [s for s in _statements(m.body) if _ASSERTION.search(s)]
        if not assertions:
            if not _calls_any(m.body, helpers):
                facts.append(unit.fact("TestWithoutAssertion", m.line, symbol, self.name, **attrs))
            return facts

        if all(any(p.match(s) for p in _WEAK) for s in assertions):
            facts.append(unit.fact("WeakAssertion", m.line, symbol, self.name, assertions=len(assertions), **attrs))
        return facts


class TestIndependenceScanner:
    """Shared mutable state and explicit ordering between test methods."""

    name = "test_independence"

    def scan(self, unit: SourceUnit) -> list[Fact]:
        if not unit.source.is_test:
            return []
        facts: list[Fact] = []
        for jtype in unit.source.all_types():
            if not any(is_test_method(m) for m in jtype.methods):
                continue
            for f in jtype.fields:
                if "static" not in f.modifiers or f.annotations or not unit.touches(f.line):
                    continue
                shared = "final" not in f.modifiers or bool(f.initializer and _MUTABLE_INIT.match(f.initializer))
                if shared:
                    facts.append(unit.fact(
                        "SharedMutableTestState", f.line, f"{jtype.name}.{f.name}", self.name,
                        **{"class": jtype.name, "field": f.name},
                    ))

            mechanism = next((a for a in jtype.annotations if _imposes_order(a)), None)
            if mechanism is None:
                ordered = [m for m in jtype.methods if m.has_annotation("Order") and is_test_method(m)]
                if ordered:
                    mechanism = ordered[0].annotation("Order")
            if mechanism is not None and unit.touches_type(jtype):
                facts.append(unit.fact(
                    "OrderDependentTests", mechanism.line or jtype.line, jtype.name, self.name,
                    **{"class": jtype.name, "annotation": mechanism.simple_name},
                ))
        return facts


def _statements(body: str) -> list[str]:
    """Split a method body on `;` outside parentheses, dropping block punctuation."""
    statements: list[str] = []
    depth = 0
    start = 0
    for i, c in enumerate(body):
        if c == "(":
            depth += 1
        elif c == ")":
            depth -= 1
        elif c == ";" and depth == 0:
            text = body[start:i]
            cut = max(text.rfind("{"), text.rfind("}"))
            statements.append(re.sub(r"\s+", " ", text[cut + 1:]).strip())
            start = i + 1
    return [s for s in statements if s]


def _calls_any(body: str, names: set[str]) -> bool:
    return any(re.search(rf"(?<![\w$.])(?:this\s*\.\s*)?{re.escape(n)}\s*\(", body) for n in names)


def _imposes_order(annotation: JavaAnnotation) -> bool:
    markers = _ORDERERS.get(annotation.simple_name, ())
    return any(re.search(rf"\b{m}\b", annotation.arguments) for m in markers)
