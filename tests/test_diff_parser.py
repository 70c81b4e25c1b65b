"""Tests for relay.diff_parser module."""

from relay.diff_parser import ParsedDiff, is_unified_diff, parse_unified_diff


class TestIsUnifiedDiff:
    def test_hunk_marker(self):
        assert is_unified_diff("@@ -1 +1 @@\n-a\n+b")

    def test_file_headers(self):
        assert is_unified_diff("--- a/x\n+++ b/x")

    def test_markdown_rule_is_not_a_diff(self):
        assert not is_unified_diff("# Title\n---\ntext")


class TestParseUnifiedDiff:
    """Tests for parse_unified_diff function."""

    def test_empty_input_returns_none(self):
        assert parse_unified_diff("") is None

    def test_plain_content_is_new_text(self):
        """Content without diff markers is the whole new file."""
        assert parse_unified_diff("print('hi')") == ParsedDiff(old_text=None, new_text="print('hi')")

    def test_reconstructs_old_and_new_text(self):
        # Given
        diff = "--- a/f.py\n+++ b/f.py\n@@ -1,2 +1,2 @@\n keep\n-old\n+new"

        # When
        result = parse_unified_diff(diff)

        # Then
        assert result == ParsedDiff(old_text="keep\nold", new_text="keep\nnew")

    def test_dev_null_source_is_new_file(self):
        # Given
        diff = "--- /dev/null\n+++ b/f.py\n@@ -0,0 +1,2 @@\n+a\n+b"

        # When
        result = parse_unified_diff(diff)

        # Then
        assert result == ParsedDiff(old_text=None, new_text="a\nb")

    def test_lines_before_first_hunk_are_ignored(self):
        diff = "diff --git a/f.py b/f.py\nindex 123..456\n--- a/f.py\n+++ b/f.py\n@@ -1 +1 @@\n-x\n+y"
        assert parse_unified_diff(diff) == ParsedDiff(old_text="x", new_text="y")

    def test_pure_addition_has_no_old_text(self):
        diff = "@@ -0,0 +1 @@\n+only"
        assert parse_unified_diff(diff) == ParsedDiff(old_text=None, new_text="only")
