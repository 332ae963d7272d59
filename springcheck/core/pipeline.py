"""One review run per change-set: analyze, evaluate, format."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from ..analyzers import Change, ChangeAnalyzer
from .engine import EvaluationError, RuleEvaluator
from .formatter import FeedbackFormatter, FormatError
from .models import AnalysisFailure, Fact, Finding, Report
from .registry import RuleRegistry

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    EVALUATING = "evaluating"
    FORMATTING = "formatting"
    DONE = "done"
    FAILED = "failed"


class StageError(Exception):
    """A review run failed; names the stage and, when known, the rule."""

    def __init__(self, stage: RunState, cause: BaseException, rule_id: str | None = None) -> None:
        where = f" (rule {rule_id})" if rule_id and rule_id not in str(cause) else ""
        super().__init__(f"{stage.value} failed{where}: {cause}")
        self.stage = stage
        self.cause = cause
        self.rule_id = rule_id


@dataclass(frozen=True)
class RunResult:
    change_name: str
    facts: tuple[Fact, ...]
    findings: tuple[Finding, ...]
    report: Report
    failures: tuple[AnalysisFailure, ...] = ()

    @property
    def outcome(self) -> str:
        """`issues`, `clean`, or `incomplete` when some files could not be analyzed."""
        if self.failures:
            return "incomplete"
        return "issues" if self.report.blocking or self.report.suggested else "clean"


class ReviewRun:
    """Drives one change-set through idle -> analyzing -> evaluating -> formatting -> done.

    Any stage error moves the run to `failed` and is raised as StageError.
    There are no retries; a run executes at most once.
    """

    def __init__(self, change: Change, registry: RuleRegistry, analyzer: ChangeAnalyzer | None = None) -> None:
        self.change = change
        self.registry = registry
        self.analyzer = analyzer or ChangeAnalyzer()
        self.state = RunState.IDLE

    def execute(self) -> RunResult:
        if self.state is not RunState.IDLE:
            raise RuntimeError(f"review run already executed (state: {self.state.value})")
        name = getattr(self.change, "name", type(self.change).__name__)

        self._enter(RunState.ANALYZING, name)
        try:
            analysis = self.analyzer.analyze(self.change)
        except Exception as e:
            self._fail(e)

        self._enter(RunState.EVALUATING, name)
        try:
            findings = RuleEvaluator(self.registry).evaluate(analysis.facts)
        except EvaluationError as e:
            self._fail(e, e.rule_id)
        except Exception as e:
            self._fail(e)

        self._enter(RunState.FORMATTING, name)
        try:
            report = FeedbackFormatter().format(findings)
        except FormatError as e:
            self._fail(e, e.rule_id)
        except Exception as e:
            self._fail(e)

        self._enter(RunState.DONE, name)
        return RunResult(
            change_name=name,
            facts=tuple(analysis.facts_sorted()),
            findings=tuple(findings),
            report=report,
            failures=analysis.failures,
        )

    def _enter(self, state: RunState, name: str) -> None:
        logger.debug("%s: %s -> %s", name, self.state.value, state.value)
        self.state = state

    def _fail(self, cause: BaseException, rule_id: str | None = None):
        stage = self.state
        self.state = RunState.FAILED
        raise StageError(stage, cause, rule_id) from cause


def review_changes(
    changes: Sequence[Change],
    registry: RuleRegistry,
    max_workers: int = 4,
    analyzer: ChangeAnalyzer | None = None,
) -> list[RunResult]:
    """Review independent change-sets in parallel; results follow input order."""
    runs = [ReviewRun(c, registry, analyzer) for c in changes]
    if len(runs) <= 1 or max_workers <= 1:
        return [run.execute() for run in runs]
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(ReviewRun.execute, runs))
