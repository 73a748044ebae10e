#!/usr/bin/env python3
"""Tests for pattern definition parsing and the pattern store."""
import pytest

from grokline.patterns import PatternGroup, PatternStore, PatternStoreError, parse_pattern_definitions


class TestDefinitionParsing:
    """Test the line-oriented definition file format."""

    def test_basic_lines(self):
        lines = [
            "# comment",
            "",
            "   ",
            "WORD \\b\\w+\\b",
            "PAIR %{WORD}=%{WORD}",
        ]
        assert parse_pattern_definitions(lines) == {"WORD": "\\b\\w+\\b", "PAIR": "%{WORD}=%{WORD}"}

    def test_first_whitespace_run_is_the_only_delimiter(self):
        test_cases = [
            ("SPACED a b  c", "a b  c"),
            ("TABBED\t\tx\ty", "x\ty"),
            ("TRAILING body ", "body "),
            ("CRLF body\r\n", "body"),
        ]
        for line, expected_body in test_cases:
            name = line.split()[0]
            parsed = parse_pattern_definitions([line])
            assert parsed == {name: expected_body}, f"{line!r} should define {name} as {expected_body!r}"

    def test_indented_comment_is_skipped(self):
        assert parse_pattern_definitions(["   # not a definition"]) == {}

    def test_name_without_body_is_skipped(self):
        assert parse_pattern_definitions(["LONELY", "OK yes"]) == {"OK": "yes"}

    def test_later_definition_wins(self):
        assert parse_pattern_definitions(["A one", "A two"]) == {"A": "two"}


class TestPatternStore:
    """Test registration, lookup and group loading."""

    def test_lookup(self):
        store = PatternStore({"A": "a+"})
        definition = store.lookup("A")
        assert (definition.name, definition.body, definition.group) == ("A", "a+", None)
        assert store.lookup("B") is None
        assert "A" in store and "B" not in store

    def test_add_replaces(self):
        store = PatternStore()
        store.add("A", "a", group="custom")
        store.add("A", "aa")
        assert store.lookup("A").body == "aa"
        assert len(store) == 1

    def test_invalid_definition(self):
        store = PatternStore()
        with pytest.raises(PatternStoreError):
            store.add("", "x")
        with pytest.raises(PatternStoreError):
            store.add_all({"A": None})

    def test_load_builtin_group(self, store):
        assert store.loaded_groups == ["grok-patterns"]
        assert store.lookup("WORD").body == "\\b\\w+\\b"
        assert store.lookup("WORD").group == "grok-patterns"
        assert store.lookup("COMMONAPACHELOG") is None

    def test_load_group_by_any_name(self):
        for name in ("httpd", "HTTPD", PatternGroup.HTTPD):
            store = PatternStore()
            patterns = store.load_group(name)
            assert "COMMONAPACHELOG" in patterns
            assert store.loaded_groups == ["httpd"]

    def test_unknown_group(self):
        with pytest.raises(PatternStoreError, match="Unknown pattern group"):
            PatternStore().load_group("no-such-group")

    def test_load_file(self, tmp_path):
        path = tmp_path / "custom"
        path.write_text("# mine\nGREETING hello %{WORD:who}\nFAREWELL bye \n", encoding="utf-8")
        store = PatternStore()
        assert store.load_file(path) == {"GREETING": "hello %{WORD:who}", "FAREWELL": "bye "}
        assert store.lookup("GREETING").group == "custom"

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(PatternStoreError, match="Failed to load patterns"):
            PatternStore().load_file(tmp_path / "missing")

    def test_snapshot_views(self):
        store = PatternStore({"B": "b", "A": "a"})
        assert store.names() == ["A", "B"]
        assert store.as_dict() == {"B": "b", "A": "a"}
