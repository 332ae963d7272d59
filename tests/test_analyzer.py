"""ChangeAnalyzer over the three change representations."""
from pathlib import Path

import pytest

from springcheck.analyzers import INSUFFICIENT_CONTEXT, ChangeAnalyzer, ParsedSources, SourceTree, UnifiedDiff
from springcheck.analyzers.java import parse_java

FIXTURES = Path(__file__).parent / "fixtures"


def _kinds(result):
    return {f.kind for f in result.facts}


# --- source trees ---

def test_source_tree_from_directory():
    tree = SourceTree.from_paths([FIXTURES])
    assert sorted(Path(p).name for p in tree.files) == [
        "Money.java", "OrderController.java", "OrderService.java", "OrderServiceTest.java", "ReportReader.java",
    ]

    result = ChangeAnalyzer().analyze(tree)
    assert result.failures == ()
    assert {"FieldInjection", "EqualsOverridden", "UnclosedResource", "QueryInLoop", "TestWithoutAssertion"} <= _kinds(result)


def test_from_paths_skips_non_java_files(tmp_path):
    (tmp_path / "notes.txt").write_text("hello")
    (tmp_path / "A.java").write_text("class A {}")
    tree = SourceTree.from_paths([tmp_path / "notes.txt", tmp_path / "A.java"])
    assert list(tree.files) == [(tmp_path / "A.java").as_posix()]


def test_from_paths_missing_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        SourceTree.from_paths([tmp_path / "missing"])


def test_parse_failure_is_isolated():
    tree = SourceTree({
        "Broken.java": "class Broken { void f() { ",
        "Money.java": (FIXTURES / "Money.java").read_text(),
        "README.md": "# not java",
    })
    result = ChangeAnalyzer().analyze(tree)
    assert [f.path for f in result.failures] == ["Broken.java"]
    assert "unbalanced" in result.failures[0].reason
    assert _kinds(result) == {"EqualsOverridden"}


def test_exclude_patterns():
    tree = SourceTree({"gen/Money.java": (FIXTURES / "Money.java").read_text()})
    assert ChangeAnalyzer(exclude=["gen/*"]).analyze(tree).facts == frozenset()


def test_facts_sorted_is_deterministic():
    tree = SourceTree.from_paths([FIXTURES])
    first = ChangeAnalyzer().analyze(tree).facts_sorted()
    second = ChangeAnalyzer().analyze(tree).facts_sorted()
    assert first == second
    assert [f.location for f in first] == sorted(f.location for f in first)


# --- parsed sources ---

def test_parsed_sources():
    source = parse_java((FIXTURES / "Money.java").read_text(), "Money.java")
    result = ChangeAnalyzer().analyze(ParsedSources([source]))
    assert _kinds(result) == {"EqualsOverridden"}


# --- diffs ---

def test_new_file_diff_is_fully_analyzed():
    result = ChangeAnalyzer().analyze(UnifiedDiff((FIXTURES / "new_service.diff").read_text()))
    assert result.failures == ()
    assert _kinds(result) == {"FieldInjection", "PackagePathMismatch", "RecordValueType"}
    injection = next(f for f in result.facts if f.kind == "FieldInjection")
    assert injection.location.path == "src/main/java/com/shop/order/InvoiceService.java"
    assert injection.location.line == 10


def test_modified_file_with_source_root_is_scoped_to_changed_lines():
    diff = UnifiedDiff((FIXTURES / "modified_controller.diff").read_text(), source_root=FIXTURES)
    result = ChangeAnalyzer().analyze(diff)
    assert result.failures == ()
    kinds = _kinds(result)
    assert "TransactionalMisplacement" in kinds
    assert "ControllerRepositoryAccess" not in kinds
    assert "OptionalGetWithoutCheck" not in kinds


def test_modified_file_without_context_is_reported():
    result = ChangeAnalyzer().analyze(UnifiedDiff((FIXTURES / "modified_controller.diff").read_text()))
    assert result.facts == frozenset()
    [failure] = result.failures
    assert failure.path == "OrderController.java"
    assert failure.reason == INSUFFICIENT_CONTEXT


def test_missing_post_image_is_reported(tmp_path):
    diff = UnifiedDiff((FIXTURES / "modified_controller.diff").read_text(), source_root=tmp_path)
    [failure] = ChangeAnalyzer().analyze(diff).failures
    assert "not found under source root" in failure.reason


def test_unknown_change_type():
    with pytest.raises(TypeError, match="unsupported change type"):
        ChangeAnalyzer().analyze("class A {}")
