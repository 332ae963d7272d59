from pathlib import Path

from springcheck.analyzers.diff import parse_diff

FIXTURES = Path(__file__).parent / "fixtures"

PLAIN_DIFF = """\
--- a/src/A.java\t2024-01-01 00:00:00
+++ b/src/A.java\t2024-01-02 00:00:00
@@ -1,3 +1,3 @@
 class A {
--- removed comment line
+    int x;
 }
--- a/src/B.java
+++ b/src/B.java
@@ -2 +2 @@
-old
+new
"""


# --- git diffs ---

def test_new_file_diff():
    files = parse_diff((FIXTURES / "new_service.diff").read_text())
    assert [f.path for f in files] == ["src/main/java/com/shop/order/InvoiceService.java", "README.md"]

    invoice = files[0]
    assert invoice.is_new
    assert invoice.old_path is None
    assert invoice.changed_lines == frozenset(range(1, 15))
    text = invoice.new_text()
    assert text.startswith("package com.shop.billing;\n")
    assert text.count("\n") == 14


def test_modified_file_hunk_lines():
    [dfile] = parse_diff((FIXTURES / "modified_controller.diff").read_text())
    assert dfile.path == "OrderController.java"
    assert not dfile.is_new

    [hunk] = dfile.hunks
    assert (hunk.old_start, hunk.old_count, hunk.new_start, hunk.new_count) == (16, 6, 16, 7)
    assert hunk.header == "public class OrderController {"
    assert hunk.added_lines == [(19, "    @Transactional")]
    assert [n for n, _ in hunk.context_lines] == [16, 17, 18, 20, 21, 22]
    assert dfile.changed_lines == frozenset({19})


def test_fragment_keeps_line_numbers():
    [dfile] = parse_diff((FIXTURES / "modified_controller.diff").read_text())
    lines = dfile.fragment().splitlines()
    assert len(lines) == 22
    assert lines[0] == ""
    assert lines[18] == "    @Transactional"


def test_deleted_renamed_and_binary():
    text = (
        "diff --git a/Old.java b/Old.java\n"
        "deleted file mode 100644\n"
        "--- a/Old.java\n"
        "+++ /dev/null\n"
        "@@ -1 +0,0 @@\n"
        "-class Old {}\n"
        "diff --git a/X.java b/Y.java\n"
        "similarity index 100%\n"
        "rename from X.java\n"
        "rename to Y.java\n"
        "diff --git a/logo.png b/logo.png\n"
        "Binary files a/logo.png and b/logo.png differ\n"
    )
    deleted, renamed, binary = parse_diff(text)
    assert deleted.is_deleted and deleted.path == "Old.java"
    assert deleted.hunks[0].removed_lines == [(1, "class Old {}")]
    assert renamed.is_renamed and renamed.path == "Y.java"
    assert binary.is_binary


# --- plain diff -u ---

def test_plain_unified_diff_splits_files():
    a, b = parse_diff(PLAIN_DIFF)
    assert a.path == "src/A.java"
    assert b.path == "src/B.java"
    assert a.hunks[0].removed_lines == [(2, "-- removed comment line")]
    assert a.changed_lines == frozenset({2})
    assert b.hunks[0].added_lines == [(2, "new")]


def test_no_newline_marker_is_ignored():
    text = "--- a/A.java\n+++ b/A.java\n@@ -1 +1 @@\n-a\n\\ No newline at end of file\n+b\n"
    [dfile] = parse_diff(text)
    assert dfile.hunks[0].added_lines == [(1, "b")]


def test_empty_input():
    assert parse_diff("") == []
