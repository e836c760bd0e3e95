"""
Tests for end criteria and their text form.
"""

import math

import pytest

from queuenet.examples import net1
from queuenet.simulation import (
    ConfigurationError,
    CriteriaParseError,
    MaxArrivals,
    MaxDepartures,
    MaxTime,
    format_end_criteria,
    parse_end_criteria,
)
from queuenet.simulation.criteria import validate_criteria


class TestParseEndCriteria:
    def test_all_kinds(self):
        criteria = parse_end_criteria("MaxArrivals:Queue,10;MaxDepartures:Source,20;MaxTime:100")
        assert criteria == (
            MaxArrivals("Queue", 10),
            MaxDepartures("Source", 20),
            MaxTime(100.0),
        )

    def test_brackets_and_whitespace(self):
        criteria = parse_end_criteria("[MaxDepartures:Queue,5]; [ MaxTime: 1.5 ]")
        assert criteria == (MaxDepartures("Queue", 5), MaxTime(1.5))

    def test_empty(self):
        assert parse_end_criteria("") == ()
        assert parse_end_criteria(None) == ()
        assert parse_end_criteria("   ") == ()

    def test_format_round_trip(self):
        criteria = (MaxArrivals("Queue", 10), MaxTime(2.5))
        assert format_end_criteria(criteria) == "MaxArrivals:Queue,10;MaxTime:2.5"
        assert parse_end_criteria(format_end_criteria(criteria)) == criteria

    @pytest.mark.parametrize(
        "text, token",
        [
            ("MaxFoo:1", "MaxFoo:1"),
            ("MaxArrivals:Queue", "MaxArrivals:Queue"),
            ("MaxArrivals:Queue,ten", "MaxArrivals:Queue,ten"),
            ("MaxArrivals:,10", "MaxArrivals:,10"),
            ("MaxDepartures:Queue,-1", "MaxDepartures:Queue,-1"),
            ("MaxTime", "MaxTime"),
            ("MaxTime:abc", "MaxTime:abc"),
            ("MaxTime:1,2", "MaxTime:1,2"),
            ("MaxTime:1:2", "MaxTime:1:2"),
            ("MaxTime:nan", "MaxTime:nan"),
            ("MaxTime:inf", "MaxTime:inf"),
            ("MaxTime:-5", "MaxTime:-5"),
        ],
    )
    def test_malformed_segments(self, text, token):
        with pytest.raises(CriteriaParseError) as excinfo:
            parse_end_criteria(text)
        assert excinfo.value.token == token
        assert token in str(excinfo.value)

    def test_malformed_segment_is_identified(self):
        with pytest.raises(CriteriaParseError) as excinfo:
            parse_end_criteria("MaxTime:10;MaxArrivals:Queue,x")
        assert excinfo.value.token == "MaxArrivals:Queue,x"

    def test_trailing_separator(self):
        with pytest.raises(CriteriaParseError):
            parse_end_criteria("MaxTime:10;")

    def test_parse_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_end_criteria("Nope")


class TestValidateCriteria:
    def test_known_nodes(self):
        validate_criteria((MaxArrivals("Queue", 1), MaxDepartures("Source", 1), MaxTime(1.0)), net1())

    def test_unknown_node(self):
        with pytest.raises(ConfigurationError):
            validate_criteria((MaxArrivals("Missing", 1),), net1())
        with pytest.raises(ConfigurationError):
            validate_criteria((MaxDepartures("Missing", 1),), net1())

    def test_unsupported_criterion(self):
        with pytest.raises(ConfigurationError):
            validate_criteria(("MaxTime:10",), net1())

    @pytest.mark.parametrize("seconds", [math.nan, math.inf, -1.0])
    def test_unusable_time_limit(self, seconds):
        with pytest.raises(ConfigurationError):
            validate_criteria((MaxTime(seconds),), net1())

    def test_zero_time_limit_is_allowed(self):
        validate_criteria((MaxTime(0.0),), net1())
