"""Spring detectors: dependency injection, layering, transactions and N+1 access."""
from __future__ import annotations

import re

from ..core.models import Fact
from .base import (
    SourceUnit,
    block_after,
    data_access_fields,
    is_controller,
    is_spring_bean,
    paren_span,
)
from .java import JavaMethod, JavaType, match_paren, type_base

_INJECTION_ANNOTATIONS = ("Autowired", "Inject", "Resource")
_LOMBOK_CONSTRUCTORS = ("RequiredArgsConstructor", "AllArgsConstructor")
_MAPPING_ANNOTATIONS = ("GetMapping", "PostMapping", "PutMapping", "DeleteMapping", "PatchMapping", "RequestMapping")
_QUERY_COLLABORATORS = {"EntityManager", "JdbcTemplate", "NamedParameterJdbcTemplate", "MongoTemplate"}

_DECISION = re.compile(r"\b(?:if|for|while|case|catch)\b|&&|\|\||[\w)\]]\s*\?\s*[\w(\"'!-]")
_LOOP = re.compile(r"\b(for|while)\s*\(")
_STREAM_STEP = re.compile(r"\.\s*(forEach|map|flatMap|filter|peek|anyMatch|allMatch|noneMatch)\s*\(")
_READ_ONLY = re.compile(r"\breadOnly\s*=\s*true\b")


class InjectionScanner:
    """Field injection versus constructor injection on Spring beans."""

    name = "spring_di"

    def scan(self, unit: SourceUnit) -> list[Fact]:
        if unit.source.is_test:
            return []
        facts: list[Fact] = []
        for jtype in unit.source.all_types():
            injected = [f for f in jtype.fields if f.has_annotation(*_INJECTION_ANNOTATIONS)]
            for f in injected:
                if not unit.touches(f.line):
                    continue
                annotation = next(a.simple_name for a in f.annotations if a.simple_name in _INJECTION_ANNOTATIONS)
                facts.append(unit.fact(
                    "FieldInjection", f.line, f"{jtype.name}.{f.name}", self.name,
                    **{"class": jtype.name, "field": f.name, "annotation": annotation, "type": f.type},
                ))
            if not injected and is_spring_bean(jtype) and unit.touches_type(jtype):
                fact = self._constructor_injection(unit, jtype)
                if fact is not None:
                    facts.append(fact)
        return facts

    def _constructor_injection(self, unit: SourceUnit, jtype: JavaType) -> Fact | None:
        dependencies = [
            f for f in jtype.fields
            if {"private", "final"} <= f.modifiers and "static" not in f.modifiers and f.initializer is None
        ]
        if not dependencies:
            return None
        if not jtype.constructors and not jtype.has_annotation(*_LOMBOK_CONSTRUCTORS):
            return None
        return unit.fact(
            "ConstructorInjection", jtype.line, jtype.name, self.name,
            **{"class": jtype.name, "dependencies": len(dependencies)},
        )


class LayeringScanner:
    """Controllers that hold business logic or talk to repositories directly."""

    name = "spring_layers"

    def scan(self, unit: SourceUnit) -> list[Fact]:
        facts: list[Fact] = []
        for jtype in unit.source.all_types():
            if not is_controller(jtype):
                continue
            for field_name, field_type in data_access_fields(jtype).items():
                f = jtype.field_named(field_name)
                if unit.touches(f.line):
                    facts.append(unit.fact(
                        "ControllerRepositoryAccess", f.line, f"{jtype.name}.{field_name}", self.name,
                        **{"class": jtype.name, "field": field_name, "type": type_base(field_type)},
                    ))
            for m in jtype.methods:
                if m.body is None or not m.has_annotation(*_MAPPING_ANNOTATIONS):
                    continue
                if not unit.touches(m.line, m.end_line):
                    continue
                points = len(_DECISION.findall(m.body))
                if points == 0:
                    continue
                facts.append(unit.fact(
                    "ControllerBusinessLogic", m.line, f"{jtype.name}.{m.name}", self.name,
                    **{"class": jtype.name, "method": m.name, "decision_points": points},
                ))
        return facts


class TransactionScanner:
    """@Transactional placed where the Spring proxy cannot apply it, and read-only queries."""

    name = "transactions"

    def scan(self, unit: SourceUnit) -> list[Fact]:
        facts: list[Fact] = []
        for jtype in unit.source.all_types():
            controller = is_controller(jtype)
            class_tx = jtype.annotation("Transactional")
            if class_tx is not None and controller and unit.touches(class_tx.line, jtype.line):
                facts.append(self._misplaced(unit, jtype, None, class_tx.line, "controller_layer"))

            transactional = {m.name for m in jtype.methods if m.has_annotation("Transactional")}
            for m in jtype.methods:
                tx = m.annotation("Transactional")
                if tx is not None and unit.touches(tx.line, m.line):
                    reason = _misplacement(m, controller)
                    if reason is not None:
                        facts.append(self._misplaced(unit, jtype, m, m.line, reason))
                    elif _READ_ONLY.search(tx.arguments) and not controller:
                        facts.append(unit.fact(
                            "ReadOnlyTransactionalQuery", m.line, f"{jtype.name}.{m.name}", self.name,
                            **{"class": jtype.name, "method": m.name},
                        ))
                if tx is None and class_tx is None and m.body is not None:
                    facts.extend(self._self_invocations(unit, jtype, m, transactional))
        return facts

    def _self_invocations(self, unit: SourceUnit, jtype: JavaType, m: JavaMethod, targets: set[str]) -> list[Fact]:
        facts: list[Fact] = []
        for callee in sorted(targets - {m.name}):
            pattern = re.compile(rf"(?<![\w$.])(?:this\s*\.\s*)?{re.escape(callee)}\s*\(")
            for _, line in unit.body_matches(m, pattern):
                if unit.touches(line):
                    facts.append(unit.fact(
                        "TransactionalMisplacement", line, f"{jtype.name}.{m.name}", self.name,
                        **{"class": jtype.name, "method": callee, "caller": m.name, "reason": "self_invocation"},
                    ))
                    break
        return facts

    def _misplaced(self, unit: SourceUnit, jtype: JavaType, m: JavaMethod | None, line: int, reason: str) -> Fact:
        symbol = f"{jtype.name}.{m.name}" if m is not None else jtype.name
        return unit.fact(
            "TransactionalMisplacement", line, symbol, self.name,
            **{"class": jtype.name, "method": m.name if m is not None else "", "reason": reason},
        )


class QueryInLoopScanner:
    """Repository or query calls made once per element of a loop or stream (N+1)."""

    name = "n_plus_one"

    def scan(self, unit: SourceUnit) -> list[Fact]:
        facts: list[Fact] = []
        for jtype in unit.source.all_types():
            collaborators = set(data_access_fields(jtype))
            collaborators |= {f.name for f in jtype.fields if type_base(f.type) in _QUERY_COLLABORATORS}
            if not collaborators:
                continue
            call = re.compile(r"\b(" + "|".join(sorted(map(re.escape, collaborators))) + r")\s*\.\s*(\w+)\s*\(")
            for m in jtype.methods:
                if m.body is not None and unit.touches(m.line, m.end_line):
                    facts.extend(self._scan_method(unit, jtype, m, call))
        return facts

    def _scan_method(self, unit: SourceUnit, jtype: JavaType, m: JavaMethod, call: re.Pattern) -> list[Fact]:
        body = m.body
        spans: list[tuple[int, int, str]] = []
        for loop in _LOOP.finditer(body):
            header_end = match_paren(body, loop.end() - 1)
            block = block_after(body, header_end + 1)
            if block is not None:
                spans.append((block[0], block[1], loop.group(1)))
        for step in _STREAM_STEP.finditer(body):
            start, end = paren_span(body, step.end() - 1)
            spans.append((start, end, "stream"))
        spans.sort()

        found: dict[int, Fact] = {}
        for start, end, loop_kind in spans:
            for hit in call.finditer(body, start, end):
                if hit.start() in found:
                    continue
                line = unit.source.line_of(m.body_start + hit.start())
                if not unit.touches(line):
                    continue
                found[hit.start()] = unit.fact(
                    "QueryInLoop", line, f"{jtype.name}.{m.name}", self.name,
                    **{
                        "class": jtype.name,
                        "method": m.name,
                        "repository": hit.group(1),
                        "call": hit.group(2),
                        "loop": loop_kind,
                    },
                )
        return list(found.values())


def _misplacement(m: JavaMethod, controller: bool) -> str | None:
    if controller:
        return "controller_layer"
    if "private" in m.modifiers:
        return "private_method"
    if "final" in m.modifiers:
        return "final_method"
    if "static" in m.modifiers:
        return "static_method"
    return None
