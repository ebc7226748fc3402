"""Tests for DatafileReader."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from datafile_flags import DatafileReader, MatchedForce
from datafile_flags.models import Allocation, Datafile, TrafficRule, parse_segments

# =============================================================================
# Lookups
# =============================================================================


class TestLookups:
    """Tests for datafile accessors."""

    def test_revision_and_schema_version(self, reader: DatafileReader) -> None:
        """Test revision and schema version are exposed."""
        assert reader.get_revision() == "1.0"
        assert reader.get_schema_version() == "2"

    def test_accepts_parsed_datafile(self, experiment_datafile: dict[str, Any]) -> None:
        """Test a parsed datafile is used without re-parsing."""
        datafile = Datafile.from_dict(experiment_datafile)

        assert DatafileReader(datafile).datafile is datafile

    def test_get_feature(self, reader: DatafileReader) -> None:
        """Test features are looked up by key."""
        feature = reader.get_feature("test")

        assert feature is not None
        assert feature.key == "test"
        assert reader.get_feature("unknown") is None

    def test_get_segment(self, reader: DatafileReader) -> None:
        """Test segments are looked up by key."""
        segment = reader.get_segment("netherlands")

        assert segment is not None
        assert segment.key == "netherlands"
        assert reader.get_segment("unknown") is None

    def test_feature_keys(self, reader: DatafileReader) -> None:
        """Test feature keys keep datafile order."""
        assert reader.get_feature_keys() == ["test", "anotherTest"]

    def test_variable_keys(self, reader: DatafileReader) -> None:
        """Test variable keys of a feature, and of a missing feature."""
        assert "color" in reader.get_variable_keys("test")
        assert reader.get_variable_keys("anotherTest") == []
        assert reader.get_variable_keys("unknown") == []

    def test_has_variations(self, reader: DatafileReader) -> None:
        """Test has_variations for features with and without variations."""
        assert reader.has_variations("test") is True
        assert reader.has_variations("anotherTest") is False
        assert reader.has_variations("unknown") is False

    def test_repr(self, reader: DatafileReader) -> None:
        """Test the repr names the revision and feature count."""
        assert repr(reader) == "DatafileReader(revision='1.0', features=2)"


# =============================================================================
# Regex Cache
# =============================================================================


class TestRegexCache:
    """Tests for get_regex."""

    def test_compiled_once(self, reader: DatafileReader) -> None:
        """Test the same pattern and flags return the same compiled object."""
        assert reader.get_regex("^a+$", "i") is reader.get_regex("^a+$", "i")

    def test_flags_are_part_of_the_key(self, reader: DatafileReader) -> None:
        """Test different flags compile different patterns."""
        insensitive = reader.get_regex("^a+$", "i")
        sensitive = reader.get_regex("^a+$")

        assert insensitive is not sensitive
        assert insensitive.match("AAA") is not None
        assert sensitive.match("AAA") is None

    def test_multiline_and_dotall(self, reader: DatafileReader) -> None:
        """Test the m and s flags."""
        assert reader.get_regex("^b$", "m").search("a\nb") is not None
        assert reader.get_regex("a.b", "s").search("a\nb") is not None

    def test_unknown_flag_raises(self, reader: DatafileReader) -> None:
        """Test unsupported flags are rejected."""
        with pytest.raises(ValueError, match="Unsupported regex flag"):
            reader.get_regex("a", "z")


# =============================================================================
# Segments
# =============================================================================


class TestSegmentMatching:
    """Tests for all_segments_are_matched."""

    def test_wildcard(self, reader: DatafileReader) -> None:
        """Test "*" matches every context."""
        assert reader.all_segments_are_matched("*", {}) is True

    def test_single_segment(self, reader: DatafileReader) -> None:
        """Test a segment with JSON-string conditions."""
        assert reader.all_segments_are_matched("netherlands", {"country": "nl"}) is True
        assert reader.all_segments_are_matched("netherlands", {"country": "de"}) is False

    def test_list_requires_all(self, reader: DatafileReader) -> None:
        """Test a list of segments requires every segment."""
        segments = ["netherlands", "mobile"]

        assert reader.all_segments_are_matched(segments, {"country": "nl", "deviceType": "mobile"}) is True
        assert reader.all_segments_are_matched(segments, {"country": "nl", "deviceType": "desktop"}) is False

    def test_or(self, reader: DatafileReader) -> None:
        """Test or groups of segments."""
        segments = {"or": ["netherlands", "germany"]}

        assert reader.all_segments_are_matched(segments, {"country": "de"}) is True
        assert reader.all_segments_are_matched(segments, {"country": "be"}) is False

    def test_not_negates_the_conjunction(self, reader: DatafileReader) -> None:
        """Test not [A, B] means NOT (A AND B)."""
        segments = {"not": ["netherlands", "mobile"]}

        assert reader.all_segments_are_matched(segments, {"country": "nl", "deviceType": "mobile"}) is False
        assert reader.all_segments_are_matched(segments, {"country": "nl", "deviceType": "desktop"}) is True
        assert reader.all_segments_are_matched(segments, {"country": "de", "deviceType": "mobile"}) is True

    def test_nested(self, reader: DatafileReader) -> None:
        """Test nested segment groups."""
        segments = {"and": ["mobile", {"or": ["netherlands", "belgium"]}]}

        assert reader.all_segments_are_matched(segments, {"country": "be", "deviceType": "mobile"}) is True
        assert reader.all_segments_are_matched(segments, {"country": "de", "deviceType": "mobile"}) is False

    def test_unknown_segment_never_matches(self, reader: DatafileReader) -> None:
        """Test a reference to a missing segment does not match."""
        assert reader.all_segments_are_matched("unknown", {"country": "nl"}) is False
        assert reader.all_segments_are_matched({"or": ["unknown", "netherlands"]}, {"country": "nl"}) is True

    def test_unrecognised_shape_never_matches(self, reader: DatafileReader) -> None:
        """Test segment values with an unsupported shape do not match."""
        assert reader.all_segments_are_matched(42, {}) is False
        assert reader.all_segments_are_matched({"unknown": ["netherlands"]}, {"country": "nl"}) is False


# =============================================================================
# Traffic and Allocation
# =============================================================================


def _rule(key: str, segments: Any, allocation: list[tuple[str, int, int]] | None = None) -> TrafficRule:
    return TrafficRule(
        key=key,
        segments=parse_segments(segments),
        percentage=100_000,
        allocation=tuple(Allocation(variation, (start, end)) for variation, start, end in allocation or []),
    )


class TestTrafficMatching:
    """Tests for get_matched_traffic and get_matched_allocation."""

    def test_first_matching_rule_wins(self, reader: DatafileReader) -> None:
        """Test traffic rules are searched in order."""
        feature = reader.get_feature("test")
        assert feature is not None

        belgian = reader.get_matched_traffic(feature.traffic, {"country": "be"})
        everyone = reader.get_matched_traffic(feature.traffic, {"country": "nl"})

        assert belgian is not None and belgian.key == "2"
        assert everyone is not None and everyone.key == "1"

    def test_no_matching_rule(self, reader: DatafileReader) -> None:
        """Test None is returned when no rule applies."""
        rules = [_rule("nl", "netherlands"), _rule("de", "germany")]

        assert reader.get_matched_traffic(rules, {"country": "be"}) is None

    @pytest.mark.parametrize(
        ("bucket_value", "expected"),
        [(0, "control"), (49_999, "control"), (50_000, "control"), (50_001, "treatment"), (100_000, "treatment")],
    )
    def test_allocation_ranges_are_inclusive(self, reader: DatafileReader, bucket_value: int, expected: str) -> None:
        """Test both ends of an allocation range are inclusive."""
        rule = _rule("1", "*", [("control", 0, 50_000), ("treatment", 50_000, 100_000)])

        allocation = reader.get_matched_allocation(rule, bucket_value)

        assert allocation is not None
        assert allocation.variation == expected

    def test_no_matching_allocation(self, reader: DatafileReader) -> None:
        """Test None is returned outside every allocation."""
        rule = _rule("1", "*", [("control", 0, 10_000)])

        assert reader.get_matched_allocation(rule, 10_001) is None
        assert reader.get_matched_allocation(_rule("2", "*"), 0) is None


# =============================================================================
# Force
# =============================================================================


class TestForceMatching:
    """Tests for get_matched_force."""

    def test_condition_force(self, reader: DatafileReader) -> None:
        """Test the first force rule with matching conditions is returned with its index."""
        matched = reader.get_matched_force("test", {"userId": "user-gb"})

        assert matched.force_index == 1
        assert matched.force is not None
        assert matched.force.enabled is False

    def test_accepts_feature_object(self, reader: DatafileReader) -> None:
        """Test the feature can be passed instead of its key."""
        feature = reader.get_feature("test")
        assert feature is not None

        assert reader.get_matched_force(feature, {"userId": "user-ch"}).force_index == 0

    def test_no_match(self, reader: DatafileReader) -> None:
        """Test an empty result when nothing matches."""
        assert reader.get_matched_force("test", {"userId": "someone"}) == MatchedForce()
        assert reader.get_matched_force("unknown", {"userId": "user-gb"}) == MatchedForce()

    def test_segment_force(
        self,
        make_datafile: Callable[..., dict[str, Any]],
        country_segments: dict[str, Any],
    ) -> None:
        """Test force rules targeting segments."""
        data = make_datafile(
            segments=country_segments,
            features={
                "f": {
                    "bucketBy": "userId",
                    "force": [
                        {"segments": ["netherlands"], "enabled": True},
                        {"conditions": [{"attribute": "userId", "operator": "equals", "value": "1"}], "enabled": False},
                    ],
                }
            },
        )
        segment_reader = DatafileReader(data)

        assert segment_reader.get_matched_force("f", {"country": "nl", "userId": "1"}).force_index == 0
        assert segment_reader.get_matched_force("f", {"country": "de", "userId": "1"}).force_index == 1

    def test_conditions_or_segments(
        self,
        make_datafile: Callable[..., dict[str, Any]],
        country_segments: dict[str, Any],
    ) -> None:
        """Test a rule with both conditions and segments matches on either."""
        data = make_datafile(
            segments=country_segments,
            features={
                "f": {
                    "bucketBy": "userId",
                    "force": [
                        {
                            "conditions": [{"attribute": "userId", "operator": "equals", "value": "1"}],
                            "segments": ["germany"],
                            "enabled": True,
                        }
                    ],
                }
            },
        )
        both_reader = DatafileReader(data)

        assert both_reader.get_matched_force("f", {"userId": "1"}).force_index == 0
        assert both_reader.get_matched_force("f", {"country": "de"}).force_index == 0
        assert both_reader.get_matched_force("f", {"country": "nl"}).force is None
