"""Java language detectors: immutability, generics, Optional and equality contracts."""
from __future__ import annotations

import re

from ..core.models import Fact
from .base import SourceUnit
from .java import JavaMethod, JavaType, type_base

GENERIC_TYPES = {
    "List", "ArrayList", "LinkedList", "Map", "HashMap", "LinkedHashMap", "TreeMap", "ConcurrentHashMap",
    "Set", "HashSet", "LinkedHashSet", "TreeSet", "Collection", "Iterable", "Iterator", "Optional",
    "Queue", "Deque", "ArrayDeque", "Comparator", "Comparable", "Supplier", "Function", "Consumer",
    "Predicate", "ResponseEntity", "Stream",
}
_COLLECTION_TYPES = {"List", "Set", "Map", "Collection"}
_MUTABLE_MODEL_ANNOTATIONS = {
    "Entity", "Embeddable", "MappedSuperclass", "Document", "Data", "Setter", "ConfigurationProperties",
}
_LOMBOK_EQUALITY = {"Data", "Value", "EqualsAndHashCode"}
_FRAMEWORK_FIELD_ANNOTATIONS = {
    "Autowired", "Inject", "Resource", "Value", "PersistenceContext", "Setter", "Mock", "Spy",
    "InjectMocks", "MockBean", "Captor",
}
_IMMUTABLE_INIT = re.compile(r"^(List|Set|Map)\s*\.\s*(of|copyOf)\b|^Collections\s*\.\s*(unmodifiable|empty)|^Immutable")

_RAW_NEW = re.compile(r"\bnew\s+(" + "|".join(sorted(GENERIC_TYPES)) + r")\s*\(")
_RAW_LOCAL = re.compile(r"(?<![\w.<,])(" + "|".join(sorted(GENERIC_TYPES)) + r")\s+([a-z_$][\w$]*)\s*[=;:]")
_OPTIONAL_LOCAL = re.compile(r"\bOptional\s*<[^;=]*>\s+([a-z_$][\w$]*)\s*=")
_CHAINED_GET = re.compile(
    r"\.\s*(findById|findFirst|findAny|findOne|findByEmail|max|min|reduce)\s*\((?:[^()]|\([^()]*\))*\)\s*\.\s*get\s*\(\s*\)"
)
_RETURN_NULL = re.compile(r"\breturn\s+null\s*;")


class ImmutabilityScanner:
    """Fields that could be final, and getters leaking mutable collections."""

    name = "immutability"

    def scan(self, unit: SourceUnit) -> list[Fact]:
        if unit.source.is_test:
            return []
        facts: list[Fact] = []
        for jtype in unit.source.all_types():
            if jtype.kind not in ("class", "enum") or jtype.has_annotation(*_MUTABLE_MODEL_ANNOTATIONS):
                continue
            facts.extend(self._final_candidates(unit, jtype))
            facts.extend(self._exposed_collections(unit, jtype))
        return facts

    def _final_candidates(self, unit: SourceUnit, jtype: JavaType) -> list[Fact]:
        facts: list[Fact] = []
        constructors = jtype.constructors
        others = [m for m in jtype.methods if not m.is_constructor and m.body is not None]
        others += [m for nested in jtype.types for m in nested.methods if m.body is not None]

        for f in jtype.fields:
            if "private" not in f.modifiers or f.modifiers & {"final", "static", "volatile"}:
                continue
            if f.annotations or not unit.touches(f.line):
                continue
            assigned_in_ctor = any(_assigns(m, f.name) for m in constructors)
            if f.initializer is None and not assigned_in_ctor:
                continue
            if f.initializer is not None and assigned_in_ctor:
                continue
            if any(_assigns(m, f.name) for m in others):
                continue
            facts.append(unit.fact(
                "FieldCouldBeFinal", f.line, f"{jtype.name}.{f.name}", self.name,
                **{"class": jtype.name, "field": f.name, "type": f.type},
            ))
        return facts

    def _exposed_collections(self, unit: SourceUnit, jtype: JavaType) -> list[Fact]:
        facts: list[Fact] = []
        for m in jtype.methods:
            if m.body is None or m.parameters or "public" not in m.modifiers:
                continue
            if m.return_type is None or type_base(m.return_type) not in _COLLECTION_TYPES:
                continue
            ret = re.fullmatch(r"\s*return\s+(?:this\s*\.\s*)?([a-zA-Z_$][\w$]*)\s*;\s*", m.body)
            if not ret:
                continue
            f = jtype.field_named(ret.group(1))
            if f is None or type_base(f.type) not in _COLLECTION_TYPES:
                continue
            if f.initializer and _IMMUTABLE_INIT.search(f.initializer):
                continue
            if not unit.touches(m.line, m.end_line):
                continue
            facts.append(unit.fact(
                "MutableCollectionExposed", m.line, f"{jtype.name}.{m.name}", self.name,
                **{"class": jtype.name, "method": m.name, "field": f.name},
            ))
        return facts


class GenericsScanner:
    """Raw uses of generic library types."""

    name = "generics"

    def scan(self, unit: SourceUnit) -> list[Fact]:
        facts: list[Fact] = []
        for jtype in unit.source.all_types():
            for f in jtype.fields:
                if _is_raw(f.type) and unit.touches(f.line):
                    facts.append(self._fact(unit, jtype, f.line, f"{jtype.name}.{f.name}", f.type, "field"))
            for m in jtype.methods:
                symbol = f"{jtype.name}.{m.name}"
                if m.return_type and _is_raw(m.return_type) and unit.touches(m.line):
                    facts.append(self._fact(unit, jtype, m.line, symbol, m.return_type, "return"))
                for p in m.parameters:
                    if _is_raw(p.type) and unit.touches(m.line):
                        facts.append(self._fact(unit, jtype, m.line, f"{symbol}({p.name})", p.type, "parameter"))
                for match, line in unit.body_matches(m, _RAW_NEW):
                    if unit.touches(line):
                        facts.append(self._fact(unit, jtype, line, symbol, match.group(1), "construction"))
                for match, line in unit.body_matches(m, _RAW_LOCAL):
                    if unit.touches(line):
                        facts.append(self._fact(unit, jtype, line, f"{symbol}.{match.group(2)}", match.group(1), "local"))
        return facts

    def _fact(self, unit, jtype, line, symbol, type_name, usage) -> Fact:
        return unit.fact(
            "RawGenericType", line, symbol, self.name,
            **{"class": jtype.name, "type": type_base(type_name), "usage": usage},
        )


class OptionalScanner:
    """Optional used as a field or parameter, unchecked get(), and null returned as Optional."""

    name = "optional"

    def scan(self, unit: SourceUnit) -> list[Fact]:
        facts: list[Fact] = []
        for jtype in unit.source.all_types():
            for f in jtype.fields:
                if type_base(f.type) == "Optional" and unit.touches(f.line):
                    facts.append(unit.fact(
                        "OptionalField", f.line, f"{jtype.name}.{f.name}", self.name,
                        **{"class": jtype.name, "field": f.name},
                    ))
            for m in jtype.methods:
                facts.extend(self._scan_method(unit, jtype, m))
        return facts

    def _scan_method(self, unit: SourceUnit, jtype: JavaType, m: JavaMethod) -> list[Fact]:
        facts: list[Fact] = []
        symbol = f"{jtype.name}.{m.name}"
        attrs = {"class": jtype.name, "method": m.name}

        optional_vars = []
        for p in m.parameters:
            if type_base(p.type) == "Optional":
                optional_vars.append(p.name)
                if unit.touches(m.line):
                    facts.append(unit.fact("OptionalParameter", m.line, symbol, self.name, parameter=p.name, **attrs))

        if m.body is None:
            return facts

        if m.return_type and type_base(m.return_type) == "Optional":
            for _, line in unit.body_matches(m, _RETURN_NULL):
                if unit.touches(line):
                    facts.append(unit.fact("OptionalReturnsNull", line, symbol, self.name, **attrs))

        optional_vars += [match.group(1) for match, _ in unit.body_matches(m, _OPTIONAL_LOCAL)]
        for var in optional_vars:
            v = re.escape(var)
            if re.search(rf"\b{v}\s*\.\s*(isPresent|isEmpty|ifPresent|ifPresentOrElse)\s*\(", m.body):
                continue
            for _, line in unit.body_matches(m, re.compile(rf"\b{v}\s*\.\s*get\s*\(\s*\)")):
                if unit.touches(line):
                    facts.append(unit.fact("OptionalGetWithoutCheck", line, symbol, self.name, variable=var, **attrs))
                    break

        for match, line in unit.body_matches(m, _CHAINED_GET):
            if unit.touches(line):
                facts.append(unit.fact(
                    "OptionalGetWithoutCheck", line, symbol, self.name, variable=f"{match.group(1)}(...)", **attrs,
                ))
        return facts


class EqualityContractScanner:
    """Records which classes override equals and hashCode; rules pair them up."""

    name = "equality"

    def scan(self, unit: SourceUnit) -> list[Fact]:
        facts: list[Fact] = []
        for jtype in unit.source.all_types():
            if jtype.kind != "class" or jtype.has_annotation(*_LOMBOK_EQUALITY):
                continue
            if not unit.touches_type(jtype):
                continue
            for m in jtype.methods:
                if m.body is None:
                    continue
                if m.name == "equals" and len(m.parameters) == 1 and type_base(m.parameters[0].type) == "Object":
                    kind = "EqualsOverridden"
                elif m.name == "hashCode" and not m.parameters:
                    kind = "HashCodeOverridden"
                else:
                    continue
                facts.append(unit.fact(kind, m.line, f"{jtype.name}.{m.name}", self.name, **{"class": jtype.name}))
        return facts


class ValueTypeScanner:
    """Records used for data carriers."""

    name = "value_types"

    def scan(self, unit: SourceUnit) -> list[Fact]:
        return [
            unit.fact("RecordValueType", t.line, t.name, self.name, **{"class": t.name, "components": len(t.components)})
            for t in unit.source.all_types()
            if t.kind == "record" and unit.touches(t.line, t.end_line)
        ]


def _is_raw(type_name: str) -> bool:
    return type_base(type_name) in GENERIC_TYPES and "<" not in type_name and "." not in type_name.split("<")[0]


def _assigns(method: JavaMethod, name: str) -> bool:
    if method.body is None:
        return False
    n = re.escape(name)
    pattern = rf"(?<![\w$.])(?:this\s*\.\s*)?{n}\s*(?:=(?!=)|\+=|-=|\*=|/=|\+\+|--)|(?:\+\+|--)\s*(?:this\s*\.\s*)?{n}\b"
    return re.search(pattern, method.body) is not None
