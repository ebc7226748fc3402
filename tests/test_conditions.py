"""Tests for condition operators and condition trees."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from datafile_flags import DatafileReader
from datafile_flags.conditions import (
    condition_is_matched,
    get_value_from_context,
    has_value_at_path,
    stringify_value,
)
from datafile_flags.models import ConditionLeaf


@pytest.fixture
def empty_reader() -> DatafileReader:
    """A reader over a datafile without features or segments."""
    return DatafileReader({"schemaVersion": "2", "revision": "1", "features": {}, "segments": {}})


@pytest.fixture
def matches(empty_reader: DatafileReader) -> Callable[[Any, dict[str, Any]], bool]:
    """Return a function evaluating raw datafile conditions against a context."""
    return empty_reader.all_conditions_are_matched


def leaf(attribute: str, operator: str, value: Any = None, regex_flags: str | None = None) -> ConditionLeaf:
    return ConditionLeaf(attribute=attribute, operator=operator, value=value, regex_flags=regex_flags)


# =============================================================================
# Context Lookup
# =============================================================================


class TestContextLookup:
    """Tests for reading values out of a context."""

    def test_simple_values(self) -> None:
        """Test top-level attributes are returned as is."""
        context = {"name": "John", "age": 30}
        assert get_value_from_context(context, "name") == "John"
        assert get_value_from_context(context, "age") == 30

    def test_dot_paths(self) -> None:
        """Test nested attributes are resolved with dot notation."""
        context = {"user": {"profile": {"name": "John"}}}
        assert get_value_from_context(context, "user.profile.name") == "John"

    def test_missing_paths(self) -> None:
        """Test missing attributes resolve to None."""
        context = {"name": "John"}
        assert get_value_from_context(context, "age") is None
        assert get_value_from_context(context, "user.profile.name") is None
        assert get_value_from_context(context, "name.first") is None

    def test_none_context(self) -> None:
        """Test a missing context resolves every path to None."""
        assert get_value_from_context(None, "name") is None

    def test_has_value_at_path_distinguishes_null(self) -> None:
        """Test a present None value is different from a missing attribute."""
        context = {"country": None, "user": {"plan": None}}
        assert has_value_at_path(context, "country") is True
        assert has_value_at_path(context, "user.plan") is True
        assert has_value_at_path(context, "city") is False
        assert has_value_at_path(context, "user.id") is False

    def test_stringify_value(self) -> None:
        """Test values are rendered like JSON-native SDKs render them."""
        assert stringify_value("nl") == "nl"
        assert stringify_value(1) == "1"
        assert stringify_value(1.0) == "1"
        assert stringify_value(1.5) == "1.5"
        assert stringify_value(True) == "true"
        assert stringify_value(False) == "false"
        assert stringify_value(None) == ""


# =============================================================================
# Operators
# =============================================================================


class TestEqualityOperators:
    """Tests for equals and notEquals."""

    def test_equals(self, empty_reader: DatafileReader) -> None:
        """Test equals matches identical values only."""
        condition = leaf("browser_type", "equals", "chrome")
        assert condition_is_matched(condition, {"browser_type": "chrome"}, empty_reader.get_regex) is True
        assert condition_is_matched(condition, {"browser_type": "firefox"}, empty_reader.get_regex) is False

    def test_equals_with_dot_path(self, empty_reader: DatafileReader) -> None:
        """Test equals resolves nested attributes."""
        condition = leaf("browser.type", "equals", "chrome")
        assert condition_is_matched(condition, {"browser": {"type": "chrome"}}, empty_reader.get_regex) is True

    def test_equals_does_not_coerce_types(self, empty_reader: DatafileReader) -> None:
        """Test equals never treats 1 and True or "1" and 1 as the same."""
        assert condition_is_matched(leaf("flag", "equals", True), {"flag": 1}, empty_reader.get_regex) is False
        assert condition_is_matched(leaf("flag", "equals", 1), {"flag": True}, empty_reader.get_regex) is False
        assert condition_is_matched(leaf("n", "equals", 1), {"n": "1"}, empty_reader.get_regex) is False
        assert condition_is_matched(leaf("flag", "equals", True), {"flag": True}, empty_reader.get_regex) is True

    def test_equals_null(self, empty_reader: DatafileReader) -> None:
        """Test equals null matches a missing attribute."""
        assert condition_is_matched(leaf("country", "equals", None), {}, empty_reader.get_regex) is True

    def test_not_equals(self, empty_reader: DatafileReader) -> None:
        """Test notEquals is the negation of equals."""
        condition = leaf("browser_type", "notEquals", "chrome")
        assert condition_is_matched(condition, {"browser_type": "firefox"}, empty_reader.get_regex) is True
        assert condition_is_matched(condition, {"browser_type": "chrome"}, empty_reader.get_regex) is False


class TestExistenceOperators:
    """Tests for exists and notExists."""

    def test_exists(self, empty_reader: DatafileReader) -> None:
        """Test exists requires a non-null value."""
        condition = leaf("browser_type", "exists")
        assert condition_is_matched(condition, {"browser_type": "chrome"}, empty_reader.get_regex) is True
        assert condition_is_matched(condition, {"other": "value"}, empty_reader.get_regex) is False
        assert condition_is_matched(condition, {"browser_type": None}, empty_reader.get_regex) is False

    def test_exists_with_dot_path(self, empty_reader: DatafileReader) -> None:
        """Test exists resolves nested attributes."""
        condition = leaf("browser.name", "exists")
        assert condition_is_matched(condition, {"browser": {"name": "chrome"}}, empty_reader.get_regex) is True

    def test_not_exists(self, empty_reader: DatafileReader) -> None:
        """Test notExists matches missing attributes only."""
        condition = leaf("name", "notExists")
        assert condition_is_matched(condition, {"other": "value"}, empty_reader.get_regex) is True
        assert condition_is_matched(condition, {"name": "John"}, empty_reader.get_regex) is False

    def test_exists_with_falsy_values(self, empty_reader: DatafileReader) -> None:
        """Test falsy values still exist."""
        condition = leaf("value", "exists")
        for value in (0, "", False, []):
            assert condition_is_matched(condition, {"value": value}, empty_reader.get_regex) is True


class TestStringOperators:
    """Tests for contains, startsWith, endsWith and their negations."""

    @pytest.mark.parametrize(
        ("operator", "value", "context_value", "expected"),
        [
            ("contains", "Hello", "Hello World", True),
            ("contains", "Hello", "Hi World", False),
            ("notContains", "Hello", "Hi World", True),
            ("notContains", "Hello", "Hello World", False),
            ("startsWith", "Hello", "Hello World", True),
            ("startsWith", "Hello", "Hi Hello World", False),
            ("endsWith", "World", "Hello World", True),
            ("endsWith", "World", "World Hello", False),
        ],
    )
    def test_operator(
        self, empty_reader: DatafileReader, operator: str, value: str, context_value: str, expected: bool
    ) -> None:
        """Test each string operator against matching and non-matching values."""
        condition = leaf("name", operator, value)
        assert condition_is_matched(condition, {"name": context_value}, empty_reader.get_regex) is expected

    @pytest.mark.parametrize("operator", ["contains", "notContains", "startsWith", "endsWith"])
    def test_non_string_values_never_match(self, empty_reader: DatafileReader, operator: str) -> None:
        """Test string operators require strings on both sides."""
        assert condition_is_matched(leaf("name", operator, "1"), {"name": 123}, empty_reader.get_regex) is False
        assert condition_is_matched(leaf("name", operator, 1), {"name": "123"}, empty_reader.get_regex) is False
        assert condition_is_matched(leaf("name", operator, "1"), {}, empty_reader.get_regex) is False


class TestMembershipOperators:
    """Tests for in and notIn."""

    def test_in(self, empty_reader: DatafileReader) -> None:
        """Test in matches values contained in the list."""
        condition = leaf("browser_type", "in", ["chrome", "firefox"])
        assert condition_is_matched(condition, {"browser_type": "chrome"}, empty_reader.get_regex) is True
        assert condition_is_matched(condition, {"browser_type": "edge"}, empty_reader.get_regex) is False

    def test_not_in(self, empty_reader: DatafileReader) -> None:
        """Test notIn matches values missing from the list."""
        condition = leaf("browser_type", "notIn", ["chrome", "firefox"])
        assert condition_is_matched(condition, {"browser_type": "edge"}, empty_reader.get_regex) is True
        assert condition_is_matched(condition, {"browser_type": "chrome"}, empty_reader.get_regex) is False

    def test_numbers_are_compared_as_strings(self, empty_reader: DatafileReader) -> None:
        """Test numeric context values are stringified before the lookup."""
        condition = leaf("age", "in", ["18", "21"])
        assert condition_is_matched(condition, {"age": 18}, empty_reader.get_regex) is True
        assert condition_is_matched(condition, {"age": 21.0}, empty_reader.get_regex) is True

    @pytest.mark.parametrize("operator", ["in", "notIn"])
    def test_missing_attribute_never_matches(self, empty_reader: DatafileReader, operator: str) -> None:
        """Test both in and notIn require the attribute to be present."""
        condition = leaf("country", operator, ["nl", "de"])
        assert condition_is_matched(condition, {"city": "Amsterdam"}, empty_reader.get_regex) is False
        assert condition_is_matched(condition, {"user": {}}, empty_reader.get_regex) is False

    def test_present_null_is_not_in_list(self, empty_reader: DatafileReader) -> None:
        """Test a present null attribute is evaluated like any other value."""
        condition = leaf("country", "notIn", ["nl", "de"])
        assert condition_is_matched(condition, {"country": None}, empty_reader.get_regex) is True

    def test_nested_attribute(self, empty_reader: DatafileReader) -> None:
        """Test in resolves nested attributes."""
        condition = leaf("user.country", "in", ["nl"])
        assert condition_is_matched(condition, {"user": {"country": "nl"}}, empty_reader.get_regex) is True

    def test_non_list_value_never_matches(self, empty_reader: DatafileReader) -> None:
        """Test in requires a list as its condition value."""
        condition = leaf("country", "in", "nl")
        assert condition_is_matched(condition, {"country": "nl"}, empty_reader.get_regex) is False

    def test_list_context_value_never_matches(self, empty_reader: DatafileReader) -> None:
        """Test in requires a scalar context value."""
        condition = leaf("country", "in", ["nl"])
        assert condition_is_matched(condition, {"country": ["nl"]}, empty_reader.get_regex) is False


class TestIncludesOperators:
    """Tests for includes and notIncludes."""

    def test_includes(self, empty_reader: DatafileReader) -> None:
        """Test includes checks membership in a context list."""
        condition = leaf("permissions", "includes", "write")
        assert condition_is_matched(condition, {"permissions": ["read", "write"]}, empty_reader.get_regex) is True
        assert condition_is_matched(condition, {"permissions": ["read"]}, empty_reader.get_regex) is False

    def test_not_includes(self, empty_reader: DatafileReader) -> None:
        """Test notIncludes is the negation of includes."""
        condition = leaf("permissions", "notIncludes", "write")
        context_without = {"permissions": ["read", "admin"]}
        context_with = {"permissions": ["read", "write", "admin"]}
        assert condition_is_matched(condition, context_without, empty_reader.get_regex) is True
        assert condition_is_matched(condition, context_with, empty_reader.get_regex) is False

    def test_requires_list(self, empty_reader: DatafileReader) -> None:
        """Test includes never matches a non-list context value."""
        condition = leaf("permissions", "includes", "write")
        assert condition_is_matched(condition, {"permissions": "write"}, empty_reader.get_regex) is False


class TestNumericOperators:
    """Tests for the numeric comparison operators."""

    @pytest.mark.parametrize(
        ("operator", "context_value", "expected"),
        [
            ("greaterThan", 19, True),
            ("greaterThan", 18, False),
            ("greaterThanOrEquals", 18, True),
            ("greaterThanOrEquals", 17, False),
            ("lessThan", 17, True),
            ("lessThan", 18, False),
            ("lessThanOrEquals", 18, True),
            ("lessThanOrEquals", 19, False),
            ("greaterThan", 18.5, True),
        ],
    )
    def test_operator(self, empty_reader: DatafileReader, operator: str, context_value: float, expected: bool) -> None:
        """Test each numeric operator on both sides of its boundary."""
        condition = leaf("age", operator, 18)
        assert condition_is_matched(condition, {"age": context_value}, empty_reader.get_regex) is expected

    def test_strings_never_match(self, empty_reader: DatafileReader) -> None:
        """Test numeric operators do not coerce strings."""
        condition = leaf("age", "greaterThan", 18)
        assert condition_is_matched(condition, {"age": "19"}, empty_reader.get_regex) is False

    def test_booleans_never_match(self, empty_reader: DatafileReader) -> None:
        """Test booleans are not treated as numbers."""
        condition = leaf("age", "greaterThan", 0)
        assert condition_is_matched(condition, {"age": True}, empty_reader.get_regex) is False


class TestSemverOperators:
    """Tests for the semver* operators."""

    @pytest.mark.parametrize(
        ("operator", "value", "context_value", "expected"),
        [
            ("semverEquals", "1.0.0", "1.0.0", True),
            ("semverEquals", "1.0.0", "1.0.1", False),
            ("semverNotEquals", "1.0.0", "1.0.1", True),
            ("semverGreaterThan", "1.0.0", "2.0.0", True),
            ("semverGreaterThan", "1.0.0", "1.0.0", False),
            ("semverGreaterThanOrEquals", "1.0.0", "1.0.0", True),
            ("semverLessThan", "1.0.0", "0.9.0", True),
            ("semverLessThan", "1.0.0", "1.0.0-beta", True),
            ("semverLessThanOrEquals", "1.0.0", "1.0.0", True),
            ("semverLessThanOrEquals", "1.0.0", "1.10.0", False),
        ],
    )
    def test_operator(
        self, empty_reader: DatafileReader, operator: str, value: str, context_value: str, expected: bool
    ) -> None:
        """Test each semver operator."""
        condition = leaf("version", operator, value)
        assert condition_is_matched(condition, {"version": context_value}, empty_reader.get_regex) is expected

    def test_invalid_version_is_a_non_match(self, empty_reader: DatafileReader) -> None:
        """Test an unparseable version is treated as a non-match."""
        condition = leaf("version", "semverGreaterThan", "1.0.0")
        assert condition_is_matched(condition, {"version": "not-a-version"}, empty_reader.get_regex) is False


class TestRegexOperators:
    """Tests for matches and notMatches."""

    def test_matches(self, empty_reader: DatafileReader) -> None:
        """Test matches searches the context value."""
        condition = leaf("name", "matches", "^[a-zA-Z]{2,}$")
        assert condition_is_matched(condition, {"name": "Hello"}, empty_reader.get_regex) is True
        assert condition_is_matched(condition, {"name": "Hi World"}, empty_reader.get_regex) is False

    def test_not_matches(self, empty_reader: DatafileReader) -> None:
        """Test notMatches is the negation of matches."""
        condition = leaf("name", "notMatches", "^[a-zA-Z]{2,}$")
        assert condition_is_matched(condition, {"name": "Hi World"}, empty_reader.get_regex) is True
        assert condition_is_matched(condition, {"name": "Hello"}, empty_reader.get_regex) is False

    def test_case_insensitive_flag(self, empty_reader: DatafileReader) -> None:
        """Test the i flag makes the match case-insensitive."""
        sensitive = leaf("name", "matches", "^HELLO$")
        insensitive = leaf("name", "matches", "^HELLO$", regex_flags="i")
        assert condition_is_matched(sensitive, {"name": "hello"}, empty_reader.get_regex) is False
        assert condition_is_matched(insensitive, {"name": "hello"}, empty_reader.get_regex) is True

    def test_ignored_flags(self, empty_reader: DatafileReader) -> None:
        """Test the u, g and y flags are accepted."""
        condition = leaf("name", "matches", "^hello$", regex_flags="gu")
        assert condition_is_matched(condition, {"name": "hello"}, empty_reader.get_regex) is True

    def test_unsupported_flag_is_a_non_match(self, empty_reader: DatafileReader) -> None:
        """Test an unknown flag makes the condition a non-match."""
        condition = leaf("name", "matches", "^hello$", regex_flags="q")
        assert condition_is_matched(condition, {"name": "hello"}, empty_reader.get_regex) is False

    def test_invalid_pattern_is_a_non_match(self, empty_reader: DatafileReader) -> None:
        """Test a pattern that does not compile makes the condition a non-match."""
        condition = leaf("name", "matches", "[unclosed")
        assert condition_is_matched(condition, {"name": "[unclosed"}, empty_reader.get_regex) is False


class TestDateOperators:
    """Tests for before and after."""

    def test_before(self, empty_reader: DatafileReader) -> None:
        """Test before compares ISO 8601 timestamps."""
        condition = leaf("date", "before", "2023-05-13T16:23:59Z")
        assert condition_is_matched(condition, {"date": "2023-05-12T00:00:00Z"}, empty_reader.get_regex) is True
        assert condition_is_matched(condition, {"date": "2023-05-14T00:00:00Z"}, empty_reader.get_regex) is False

    def test_after(self, empty_reader: DatafileReader) -> None:
        """Test after compares ISO 8601 timestamps."""
        condition = leaf("date", "after", "2023-05-13T16:23:59Z")
        assert condition_is_matched(condition, {"date": "2023-05-14T00:00:00Z"}, empty_reader.get_regex) is True

    def test_datetime_objects(self, empty_reader: DatafileReader) -> None:
        """Test datetime context values are accepted."""
        condition = leaf("date", "before", "2023-05-13T16:23:59Z")
        context = {"date": datetime(2023, 5, 12, tzinfo=UTC)}
        assert condition_is_matched(condition, context, empty_reader.get_regex) is True

    def test_unparseable_date_is_a_non_match(self, empty_reader: DatafileReader) -> None:
        """Test an invalid date makes the condition a non-match."""
        condition = leaf("date", "before", "2023-05-13T16:23:59Z")
        assert condition_is_matched(condition, {"date": "yesterday"}, empty_reader.get_regex) is False
        assert condition_is_matched(condition, {}, empty_reader.get_regex) is False


class TestOperatorErrors:
    """Tests for operators that cannot be evaluated."""

    def test_unknown_operator(self, empty_reader: DatafileReader) -> None:
        """Test an unknown operator never matches."""
        condition = leaf("name", "invalid_operator", "test")
        assert condition_is_matched(condition, {"name": "test"}, empty_reader.get_regex) is False

    def test_error_is_logged(self, empty_reader: DatafileReader, caplog: pytest.LogCaptureFixture) -> None:
        """Test evaluation errors are logged as warnings."""
        condition = leaf("date", "before", "2023-05-13T16:23:59Z")
        condition_is_matched(condition, {"date": "yesterday"}, empty_reader.get_regex)

        assert any(r.getMessage() == "error in condition evaluation" for r in caplog.records)


# =============================================================================
# Condition Trees
# =============================================================================


class TestConditionTrees:
    """Tests for nested and / or / not groups."""

    def test_wildcard(self, matches: Callable[[Any, dict[str, Any]], bool]) -> None:
        """Test "*" matches every context."""
        assert matches("*", {}) is True
        assert matches("*", {"browser_type": "chrome"}) is True

    def test_empty_list_matches(self, matches: Callable[[Any, dict[str, Any]], bool]) -> None:
        """Test an empty list is a vacuous and."""
        assert matches([], {"browser_type": "chrome"}) is True

    def test_single_leaf(self, matches: Callable[[Any, dict[str, Any]], bool]) -> None:
        """Test a single leaf object is accepted without a list."""
        condition = {"attribute": "browser_type", "operator": "equals", "value": "chrome"}
        assert matches(condition, {"browser_type": "chrome"}) is True
        assert matches(condition, {"browser_type": "firefox"}) is False

    def test_list_is_and(self, matches: Callable[[Any, dict[str, Any]], bool]) -> None:
        """Test a list of conditions requires every one to match."""
        conditions = [
            {"attribute": "browser_type", "operator": "equals", "value": "chrome"},
            {"attribute": "browser_version", "operator": "equals", "value": "1.0"},
        ]
        assert matches(conditions, {"browser_type": "chrome", "browser_version": "1.0"}) is True
        assert matches(conditions, {"browser_type": "chrome", "browser_version": "2.0"}) is False

    def test_and(self, matches: Callable[[Any, dict[str, Any]], bool]) -> None:
        """Test explicit and groups."""
        conditions = {"and": [{"attribute": "browser_type", "operator": "equals", "value": "chrome"}]}
        assert matches(conditions, {"browser_type": "chrome"}) is True
        assert matches(conditions, {"browser_type": "firefox"}) is False

    def test_or(self, matches: Callable[[Any, dict[str, Any]], bool]) -> None:
        """Test or groups require at least one match."""
        conditions = {
            "or": [
                {"attribute": "browser_type", "operator": "equals", "value": "chrome"},
                {"attribute": "browser_version", "operator": "equals", "value": "1.0"},
            ]
        }
        assert matches(conditions, {"browser_type": "chrome"}) is True
        assert matches(conditions, {"browser_version": "1.0"}) is True
        assert matches(conditions, {"browser_type": "firefox"}) is False

    def test_empty_or_never_matches(self, matches: Callable[[Any, dict[str, Any]], bool]) -> None:
        """Test an empty or group has nothing to match."""
        assert matches({"or": []}, {"browser_type": "chrome"}) is False

    def test_not_negates_the_conjunction(self, matches: Callable[[Any, dict[str, Any]], bool]) -> None:
        """Test not [A, B] means NOT (A AND B)."""
        conditions = {
            "not": [
                {"attribute": "browser_type", "operator": "equals", "value": "chrome"},
                {"attribute": "browser_version", "operator": "equals", "value": "1.0"},
            ]
        }
        assert matches(conditions, {"browser_type": "chrome", "browser_version": "1.0"}) is False
        assert matches(conditions, {"browser_type": "chrome", "browser_version": "2.0"}) is True
        assert matches(conditions, {"browser_type": "firefox", "browser_version": "2.0"}) is True

    def test_empty_not_matches(self, matches: Callable[[Any, dict[str, Any]], bool]) -> None:
        """Test an empty not group matches every context."""
        assert matches({"not": []}, {}) is True

    def test_nested_groups(self, matches: Callable[[Any, dict[str, Any]], bool]) -> None:
        """Test groups nest inside each other."""
        conditions = [
            {"attribute": "country", "operator": "equals", "value": "nl"},
            {
                "or": [
                    {"attribute": "browser_type", "operator": "equals", "value": "chrome"},
                    {
                        "and": [
                            {"attribute": "device", "operator": "equals", "value": "mobile"},
                            {"not": [{"attribute": "os", "operator": "equals", "value": "ios"}]},
                        ]
                    },
                ]
            },
        ]
        assert matches(conditions, {"country": "nl", "browser_type": "chrome"}) is True
        assert matches(conditions, {"country": "nl", "device": "mobile", "os": "android"}) is True
        assert matches(conditions, {"country": "nl", "device": "mobile", "os": "ios"}) is False
        assert matches(conditions, {"country": "de", "browser_type": "chrome"}) is False

    def test_json_string_conditions(self, matches: Callable[[Any, dict[str, Any]], bool]) -> None:
        """Test conditions stored as a JSON string are decoded."""
        conditions = json.dumps([{"attribute": "country", "operator": "equals", "value": "nl"}])
        assert matches(conditions, {"country": "nl"}) is True
        assert matches(conditions, {"country": "de"}) is False

    def test_invalid_json_string_never_matches(self, matches: Callable[[Any, dict[str, Any]], bool]) -> None:
        """Test an undecodable conditions string never matches."""
        assert matches("not json", {"country": "nl"}) is False

    def test_unrecognised_node_never_matches(self, matches: Callable[[Any, dict[str, Any]], bool]) -> None:
        """Test objects that are neither leaves nor groups never match."""
        assert matches({"unknown": "shape"}, {"country": "nl"}) is False
        assert matches(42, {"country": "nl"}) is False
