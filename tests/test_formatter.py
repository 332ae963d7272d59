import pytest
import yaml

from springcheck.core.formatter import (
    BUCKET_TITLES,
    FeedbackFormatter,
    FormatError,
    render_checklist,
    render_markdown,
    render_text,
    report_to_dict,
)
from springcheck.core.models import Fact, Finding, Location
from springcheck.core.registry import RuleRegistry, default_rules_path


def _finding(rule_id, severity, line=1, symbol=""):
    location = Location("src/A.java", line, symbol)
    fact = Fact.make("K", location, detector="test")
    return Finding(rule_id, 1, "Contracts", severity, f"title {rule_id}", f"message {rule_id}", location, (fact,))


# --- partitioning ---

def test_partitions_by_severity_preserving_order():
    findings = [
        _finding("A", "suggested", 1),
        _finding("B", "blocking", 2),
        _finding("C", "positive", 3),
        _finding("D", "blocking", 4),
    ]
    report = FeedbackFormatter().format(findings)
    assert [f.rule_id for f in report.blocking] == ["B", "D"]
    assert [f.rule_id for f in report.suggested] == ["A"]
    assert [f.rule_id for f in report.positive] == ["C"]


def test_no_finding_dropped_or_duplicated():
    findings = [_finding(str(i), ("blocking", "suggested", "positive")[i % 3], i) for i in range(10)]
    report = FeedbackFormatter().format(findings)
    assert report.total == len(findings)
    assert sorted(report.blocking + report.suggested + report.positive, key=lambda f: f.rule_id) == sorted(
        findings, key=lambda f: f.rule_id
    )


def test_empty_input_gives_three_empty_buckets():
    report = FeedbackFormatter().format([])
    assert report.blocking == report.suggested == report.positive == ()
    assert report_to_dict(report) == {"blocking": [], "suggested": [], "positive": []}


def test_unknown_severity_raises_format_error():
    with pytest.raises(FormatError) as exc:
        FeedbackFormatter().format([_finding("X-1", "critical")])
    assert exc.value.rule_id == "X-1"


# --- rendering ---

def test_markdown_has_exact_bucket_headings():
    report = FeedbackFormatter().format([_finding("A", "blocking", 7, "A.run")])
    text = render_markdown(report)
    assert "## Required Changes (Blocking)" in text
    assert "## Suggested Improvements (Non-blocking)" in text
    assert "## Positive Feedback" in text
    assert "1. **A** title A: `src/A.java:7` (`A.run`)" in text
    assert text.count("_None._") == 2


def test_text_lists_findings_by_bucket():
    report = FeedbackFormatter().format([_finding("S", "suggested", 3), _finding("B", "blocking", 9)])
    lines = render_text(report).splitlines()
    assert lines[0] == "[BLOCKING] B: title B"
    assert lines[1] == "  src/A.java:9  message B"
    assert "[SUGGESTED] S: title S" in lines


def test_report_to_dict_keys():
    report = FeedbackFormatter().format([_finding("A", "positive", 2, "A.x")])
    data = report_to_dict(report)
    assert set(data) == {"blocking", "suggested", "positive"}
    f = data["positive"][0]
    assert set(f) == {
        "rule_id", "rule_version", "category", "severity", "title", "message",
        "path", "line", "symbol", "evidence",
    }
    assert set(f["evidence"][0]) == {"kind", "path", "line", "symbol", "attributes", "detector"}


# --- checklist document ---

def test_checklist_front_matter_and_sections():
    registry = RuleRegistry(default_rules_path())
    doc = render_checklist(registry)

    assert doc.startswith("---\n")
    front = yaml.safe_load(doc.split("---\n")[1])
    assert front["name"] == registry.name
    assert front["description"] == registry.description

    positions = [doc.index(f"## {i}. {s.title}") for i, s in enumerate(registry.sections, start=1)]
    assert positions == sorted(positions)
    for title in BUCKET_TITLES.values():
        assert doc.index(f"### {title}") > positions[-1]


def test_checklist_marks_automated_and_advisory():
    doc = render_checklist(RuleRegistry(default_rules_path()))
    assert "- [ ] **DI-001** (blocking, automated) Field injection" in doc
    assert "- [ ] **CU-001** (suggested, advisory)" in doc
