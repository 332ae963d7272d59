"""Resource handling and exception handling detectors."""
from __future__ import annotations

import re

from ..core.models import Fact
from .base import SourceUnit
from .java import JavaMethod, JavaType, match_brace, match_paren, type_base

_RESOURCE_NEW = re.compile(
    r"^\s*new\s+(FileInputStream|FileOutputStream|FileReader|FileWriter|BufferedReader|BufferedWriter"
    r"|InputStreamReader|OutputStreamWriter|PrintWriter|Scanner|ZipFile|JarFile|RandomAccessFile"
    r"|Socket|ServerSocket|ObjectInputStream|ObjectOutputStream|Formatter)\s*\("
)
_RESOURCE_CALL = re.compile(
    r"(?:\bFiles\s*\.\s*(lines|list|walk|newInputStream|newOutputStream|newBufferedReader|newBufferedWriter)"
    r"|\.\s*(getConnection|prepareStatement|createStatement|executeQuery|openStream))\s*\("
)
_DECLARATION = re.compile(r"\b([A-Z][\w.]*(?:<[^;=(){}]*>)?)\s+([a-z_$][\w$]*)\s*=\s*([^;]+);")
_TRY_RESOURCES = re.compile(r"\btry\s*\(")
_CATCH = re.compile(r"\bcatch\s*\(")
_PRINT_STACK_TRACE = re.compile(r"^\w+\s*\.\s*printStackTrace\s*\(\s*\)\s*;$")
_LOG_ONLY = re.compile(r"^(?:log|logger|LOG|LOGGER|Log)\s*\.\s*\w+\s*\((.*)\)\s*;$", re.DOTALL)
_BROAD_TYPES = {"Exception", "Throwable", "RuntimeException"}
_INTENTIONAL_NAMES = {"ignored", "ignore", "expected", "unused"}


class ResourceScanner:
    """Finds closeable resources opened outside try-with-resources and never closed."""

    name = "resources"

    def scan(self, unit: SourceUnit) -> list[Fact]:
        facts: list[Fact] = []
        for jtype in unit.source.all_types():
            for method in jtype.methods:
                if method.body is None or not unit.touches(method.line, method.end_line):
                    continue
                facts.extend(self._scan_method(unit, jtype, method))
        return facts

    def _scan_method(self, unit: SourceUnit, jtype: JavaType, method: JavaMethod) -> list[Fact]:
        body = method.body
        symbol = f"{jtype.name}.{method.name}"
        headers = _try_headers(body)
        facts: list[Fact] = []

        for start, end in headers:
            line = unit.source.line_of(method.body_start + start)
            if unit.touches(line):
                facts.append(unit.fact(
                    "TryWithResources", line, symbol, self.name,
                    **{"class": jtype.name, "method": method.name},
                ))

        for m in _DECLARATION.finditer(body):
            if any(start <= m.start() <= end for start, end in headers):
                continue
            expr = m.group(3)
            resource = _resource_kind(expr)
            if resource is None:
                continue
            var = m.group(2)
            if _ownership_handled(body, var):
                continue
            line = unit.source.line_of(method.body_start + m.start(2))
            if not unit.touches(line):
                continue
            facts.append(unit.fact(
                "UnclosedResource", line, symbol, self.name,
                **{"class": jtype.name, "method": method.name, "variable": var, "resource": resource},
            ))
        return facts


class ExceptionHandlingScanner:
    """Finds catch blocks that swallow the exception or catch too broadly."""

    name = "exceptions"

    def scan(self, unit: SourceUnit) -> list[Fact]:
        facts: list[Fact] = []
        for jtype in unit.source.all_types():
            for method in jtype.methods:
                if method.body is None:
                    continue
                facts.extend(self._scan_method(unit, jtype, method))
        return facts

    def _scan_method(self, unit: SourceUnit, jtype: JavaType, method: JavaMethod) -> list[Fact]:
        body = method.body
        symbol = f"{jtype.name}.{method.name}"
        facts: list[Fact] = []

        for m in _CATCH.finditer(body):
            open_paren = m.end() - 1
            close_paren = match_paren(body, open_paren)
            clause = body[open_paren + 1:close_paren].strip()
            brace = body.find("{", close_paren)
            if brace == -1:
                continue
            inner = body[brace + 1:match_brace(body, brace)].strip()

            parts = clause.replace("final ", "").split()
            if len(parts) < 2:
                continue
            var = parts[-1]
            types = [type_base(t) for t in " ".join(parts[:-1]).split("|")]
            exception_type = " | ".join(types)

            line = unit.source.line_of(method.body_start + m.start())
            if not unit.touches(line) or var in _INTENTIONAL_NAMES:
                continue

            handling = _swallowed(inner, var)
            attrs = {"class": jtype.name, "method": method.name, "exception_type": exception_type}
            if handling is not None:
                facts.append(unit.fact("SwallowedException", line, symbol, self.name, handling=handling, **attrs))
            if _BROAD_TYPES & set(types) and not re.search(r"\bthrow\b", inner):
                facts.append(unit.fact("BroadCatch", line, symbol, self.name, **attrs))
        return facts


def _try_headers(body: str) -> list[tuple[int, int]]:
    spans = []
    for m in _TRY_RESOURCES.finditer(body):
        open_paren = m.end() - 1
        spans.append((m.start(), match_paren(body, open_paren)))
    return spans


def _resource_kind(expr: str) -> str | None:
    m = _RESOURCE_NEW.match(expr)
    if m:
        return m.group(1)
    m = _RESOURCE_CALL.search(expr)
    if m:
        return m.group(1) or m.group(2)
    return None


def _ownership_handled(body: str, var: str) -> bool:
    """True when the variable is closed, returned, stored or handed to a try header."""
    v = re.escape(var)
    patterns = (
        rf"\b{v}\s*\.\s*close\s*\(",
        rf"\breturn\s+{v}\s*;",
        rf"\bthis\s*\.\s*\w+\s*=\s*{v}\s*;",
        rf"\btry\s*\([^)]*\b{v}\b",
        rf"\b(?:IOUtils|IoUtils|Closeables)\s*\.\s*close\w*\s*\(\s*{v}\b",
    )
    return any(re.search(p, body) for p in patterns)


def _swallowed(inner: str, var: str) -> str | None:
    if not inner:
        return "empty"
    if _PRINT_STACK_TRACE.match(inner):
        return "print_stack_trace"
    m = _LOG_ONLY.match(inner)
    if m and ";" not in m.group(1) and not re.search(rf"\b{re.escape(var)}\b", m.group(1)):
        return "log_without_cause"
    return None
