"""Change analysis: turn a diff or a set of Java sources into facts."""
from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Sequence, Union

from ..core.models import AnalysisFailure, Fact
from .base import SourceUnit
from .consistency import ConsistencyScanner
from .diff import DiffFile, parse_diff
from .java import JavaParseError, JavaSource, parse_java
from .language import (
    EqualityContractScanner,
    GenericsScanner,
    ImmutabilityScanner,
    OptionalScanner,
    ValueTypeScanner,
)
from .robustness import ExceptionHandlingScanner, ResourceScanner
from .spring import InjectionScanner, LayeringScanner, QueryInLoopScanner, TransactionScanner
from .testing import AssertionScanner, TestIndependenceScanner

logger = logging.getLogger(__name__)

INSUFFICIENT_CONTEXT = "insufficient context in diff hunks; pass --source-root or regenerate the diff with more context"


@dataclass(frozen=True)
class UnifiedDiff:
    """A unified diff; modified files are read from source_root when given."""

    text: str
    name: str = "diff"
    source_root: Path | None = None


@dataclass(frozen=True)
class SourceTree:
    """Java source text keyed by path. Every line is in scope."""

    files: Mapping[str, str]
    name: str = "sources"

    @classmethod
    def from_paths(cls, paths: Iterable[Path | str], name: str = "sources") -> SourceTree:
        """Collect .java files from files and directories; other files are skipped."""
        files: dict[str, str] = {}
        for raw in paths:
            path = Path(raw)
            if path.is_dir():
                candidates = sorted(p for p in path.rglob("*.java") if p.is_file())
            elif path.exists():
                candidates = [path] if path.suffix == ".java" else []
            else:
                raise FileNotFoundError(f"no such file or directory: {path}")
            for p in candidates:
                files[p.as_posix()] = p.read_text(encoding="utf-8", errors="replace")
        return cls(files=files, name=name)


@dataclass(frozen=True)
class ParsedSources:
    """Already-outlined Java sources."""

    sources: Sequence[JavaSource]
    name: str = "parsed"


Change = Union[UnifiedDiff, SourceTree, ParsedSources]


@dataclass(frozen=True)
class AnalysisResult:
    facts: frozenset[Fact] = frozenset()
    failures: tuple[AnalysisFailure, ...] = ()

    def facts_sorted(self) -> list[Fact]:
        return sorted(self.facts, key=Fact.sort_key)


@dataclass
class ChangeAnalyzer:
    """Runs every fact detector over the Java files of a change.

    A file that cannot be outlined becomes an AnalysisFailure; the other
    files are still analyzed.
    """

    exclude: Sequence[str] = ()
    scanners: list = field(default_factory=lambda: [
        ResourceScanner(),
        ExceptionHandlingScanner(),
        ImmutabilityScanner(),
        GenericsScanner(),
        OptionalScanner(),
        EqualityContractScanner(),
        ValueTypeScanner(),
        InjectionScanner(),
        LayeringScanner(),
        TransactionScanner(),
        QueryInLoopScanner(),
        AssertionScanner(),
        TestIndependenceScanner(),
        ConsistencyScanner(),
    ])

    def analyze(self, change: Change) -> AnalysisResult:
        if isinstance(change, UnifiedDiff):
            units, failures = self._diff_units(change)
        elif isinstance(change, SourceTree):
            units, failures = self._tree_units(change)
        elif isinstance(change, ParsedSources):
            units = [SourceUnit(s) for s in change.sources if not self._excluded(s.path)]
            failures = []
        else:
            raise TypeError(f"unsupported change type: {type(change).__name__}")

        facts: set[Fact] = set()
        scanned: list[SourceUnit] = []
        for unit in units:
            try:
                unit_facts = [f for s in self.scanners for f in s.scan(unit)]
            except JavaParseError as e:
                failures.append(AnalysisFailure(unit.path, str(e)))
                continue
            facts.update(unit_facts)
            scanned.append(unit)
            logger.debug("%s: %d fact(s)", unit.path, len(unit_facts))

        for scanner in self.scanners:
            if hasattr(scanner, "scan_change"):
                facts.update(scanner.scan_change(scanned))

        return AnalysisResult(facts=frozenset(facts), failures=tuple(failures))

    def _excluded(self, path: str) -> bool:
        return any(fnmatch.fnmatch(path, pattern) for pattern in self.exclude)

    def _tree_units(self, change: SourceTree) -> tuple[list[SourceUnit], list[AnalysisFailure]]:
        units: list[SourceUnit] = []
        failures: list[AnalysisFailure] = []
        for path in sorted(change.files):
            if not path.endswith(".java") or self._excluded(path):
                logger.debug("skipping %s", path)
                continue
            try:
                units.append(SourceUnit(parse_java(change.files[path], path)))
            except JavaParseError as e:
                failures.append(AnalysisFailure(path, str(e)))
        return units, failures

    def _diff_units(self, change: UnifiedDiff) -> tuple[list[SourceUnit], list[AnalysisFailure]]:
        units: list[SourceUnit] = []
        failures: list[AnalysisFailure] = []
        for dfile in parse_diff(change.text):
            path = dfile.path
            if dfile.is_deleted or dfile.is_binary or not path.endswith(".java") or self._excluded(path):
                logger.debug("skipping %s", path)
                continue
            if not dfile.changed_lines:
                logger.debug("no added lines in %s", path)
                continue
            try:
                text = self._post_image(dfile, change.source_root)
                source = parse_java(text, path)
                if not dfile.is_new and change.source_root is None and not _covers(source, dfile.changed_lines):
                    failures.append(AnalysisFailure(path, INSUFFICIENT_CONTEXT))
                    continue
                units.append(SourceUnit(source, dfile.changed_lines))
            except FileNotFoundError:
                failures.append(AnalysisFailure(path, f"not found under source root {change.source_root}"))
            except JavaParseError as e:
                if dfile.is_new or change.source_root is not None:
                    failures.append(AnalysisFailure(path, str(e)))
                else:
                    failures.append(AnalysisFailure(path, INSUFFICIENT_CONTEXT))
        return units, failures

    @staticmethod
    def _post_image(dfile: DiffFile, source_root: Path | None) -> str:
        if dfile.is_new:
            return dfile.new_text()
        if source_root is not None:
            return (Path(source_root) / dfile.path).read_text(encoding="utf-8", errors="replace")
        return dfile.fragment()


def _covers(source: JavaSource, lines: frozenset[int]) -> bool:
    """True when every changed code line falls inside a recovered top-level type."""
    code_lines = source.code.split("\n")
    spans = [(min([t.line] + [a.line for a in t.annotations if a.line]), t.end_line) for t in source.types]
    for n in lines:
        text = code_lines[n - 1].strip() if n <= len(code_lines) else ""
        if not text or text.startswith(("import ", "package ")):
            continue
        if not any(start <= n <= end for start, end in spans):
            return False
    return True


__all__ = [
    "AnalysisResult",
    "Change",
    "ChangeAnalyzer",
    "ParsedSources",
    "SourceTree",
    "UnifiedDiff",
]
