from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from springcheck.analyzers import ChangeAnalyzer, SourceTree, UnifiedDiff
from springcheck.core.engine import EvaluationError
from springcheck.core.pipeline import ReviewRun, RunState, StageError, review_changes
from springcheck.core.registry import RuleRegistry, default_rules_path

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def registry():
    return RuleRegistry(default_rules_path())


def _tree(*names):
    return SourceTree({n: (FIXTURES / n).read_text() for n in names}, name="+".join(names))


# --- single run ---

def test_run_goes_through_all_stages(registry):
    run = ReviewRun(_tree("OrderService.java"), registry)
    assert run.state is RunState.IDLE
    result = run.execute()
    assert run.state is RunState.DONE

    assert result.change_name == "OrderService.java"
    assert [f.rule_id for f in result.report.blocking] == ["DI-001", "TX-002", "TX-001", "JPA-001"]
    assert result.outcome == "issues"
    assert len(result.findings) == result.report.total


def test_money_scenario(registry):
    result = ReviewRun(_tree("Money.java"), registry).execute()
    [finding] = result.report.blocking
    assert finding.rule_id == "CON-001"
    assert finding.message == "Money overrides equals but not hashCode."
    assert result.report.suggested == result.report.positive == ()


def test_clean_change(registry):
    tree = SourceTree({"Price.java": "public record Price(long cents) {}\n"})
    result = ReviewRun(tree, registry).execute()
    assert result.outcome == "clean"
    assert [f.rule_id for f in result.report.positive] == ["IMM-003"]


def test_empty_change_gives_empty_report(registry):
    result = ReviewRun(SourceTree({}), registry).execute()
    assert result.facts == ()
    assert result.report.blocking == result.report.suggested == result.report.positive == ()
    assert result.outcome == "clean"


def test_incomplete_outcome(registry):
    diff = UnifiedDiff((FIXTURES / "modified_controller.diff").read_text())
    result = ReviewRun(diff, registry).execute()
    assert result.outcome == "incomplete"
    assert result.report.total == 0


def test_run_executes_once(registry):
    run = ReviewRun(SourceTree({}), registry)
    run.execute()
    with pytest.raises(RuntimeError, match="already executed"):
        run.execute()


# --- failures ---

def test_evaluation_failure_names_stage_and_rule(tmp_path):
    rules = tmp_path / "rules.yaml"
    rules.write_text(yaml.dump({
        "sections": [
            {"id": "change-understanding"}, {"id": "language"},
            {"id": "framework", "categories": ["Spring-DI"]},
            {"id": "architecture"}, {"id": "testing"}, {"id": "feedback-format"},
        ],
        "rules": [{
            "id": "DI-009", "version": 1, "category": "Spring-DI", "severity": "blocking",
            "title": "t", "message": "{no_such_attribute}", "when": {"kind": "FieldInjection"},
        }],
    }))
    run = ReviewRun(_tree("OrderService.java"), RuleRegistry(rules))
    with pytest.raises(StageError) as exc:
        run.execute()
    assert run.state is RunState.FAILED
    assert exc.value.stage is RunState.EVALUATING
    assert exc.value.rule_id == "DI-009"
    assert isinstance(exc.value.cause, EvaluationError)


def test_analysis_failure_is_a_stage_error(registry):
    class Exploding(ChangeAnalyzer):
        def analyze(self, change):
            raise OSError("disk gone")

    run = ReviewRun(SourceTree({}), registry, analyzer=Exploding())
    with pytest.raises(StageError, match="analyzing failed: disk gone"):
        run.execute()


def test_formatting_failure_is_a_stage_error(registry):
    run = ReviewRun(_tree("Money.java"), registry)
    with patch("springcheck.core.pipeline.FeedbackFormatter.format", side_effect=RuntimeError("boom")):
        with pytest.raises(StageError, match="formatting failed: boom") as exc:
            run.execute()
    assert run.state is RunState.FAILED
    assert exc.value.stage is RunState.FORMATTING
    assert exc.value.rule_id is None


# --- parallel change-sets ---

def test_review_changes_keeps_input_order(registry):
    changes = [_tree("Money.java"), _tree("OrderService.java"), _tree("ReportReader.java"), SourceTree({}, name="empty")]
    results = review_changes(changes, registry, max_workers=4)
    assert [r.change_name for r in results] == ["Money.java", "OrderService.java", "ReportReader.java", "empty"]
    assert [r.outcome for r in results] == ["issues", "issues", "issues", "clean"]


def test_parallel_matches_sequential(registry):
    changes = [_tree("OrderController.java"), _tree("OrderServiceTest.java")]
    parallel = review_changes(changes, registry, max_workers=2)
    sequential = review_changes(changes, registry, max_workers=1)
    assert [r.findings for r in parallel] == [r.findings for r in sequential]
