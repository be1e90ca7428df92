"""Tests for typed value inference."""

from datetime import datetime, timezone

import pytest

from xml_query_engine.normalization import (
    Duration,
    NptRange,
    Timecode,
    normalize_key,
    normalize_name,
    normalize_value,
)


class TestNormalizeValue:
    """Test suite for normalize_value classification order."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("", ""),
            ("true", True),
            ("false", False),
            ("null", None),
            ("42", 42),
            ("-7", -7),
            ("0x1F", 31),
            ("1.5", 1.5),
            ("1e3", 1000.0),
            ("hello", "hello"),
            ("10-20", "10-20"),
        ],
    )
    def test_scalars(self, text, expected):
        """Test literal and numeric classification."""
        result = normalize_value(text)
        assert result == expected
        assert type(result) is type(expected)

    def test_non_string_passthrough(self):
        """Test non-string values are returned unchanged."""
        marker = object()
        assert normalize_value(marker) is marker
        assert normalize_value(3) == 3

    def test_case_sensitive_literals(self):
        """Test only lowercase boolean literals are recognized."""
        assert normalize_value("True") == "True"

    def test_iso_date(self):
        """Test ISO-8601 dates and date-times."""
        assert normalize_value("2020-01-02") == datetime(2020, 1, 2)
        assert normalize_value("2020-01-02T03:04:05Z") == datetime(
            2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc
        )

    def test_rfc_2822_date(self):
        """Test RFC 2822 dates get a timezone."""
        result = normalize_value("Thu, 02 Jan 2020 03:04:05 +0000")
        assert result == datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_timecode(self):
        """Test SMPTE timecodes and drop-frame detection."""
        assert normalize_value("01:02:03:04") == Timecode(1, 2, 3, 4)
        drop = normalize_value("00:00:01;02")
        assert drop.drop_frame is True
        assert str(drop) == "00:00:01;02"
        assert Timecode(0, 0, 1, 2).total_frames(25) == 27

    def test_duration(self):
        """Test ISO-8601 durations."""
        duration = normalize_value("PT1H30M")

        assert isinstance(duration, Duration)
        assert duration.total_seconds() == 5400
        assert str(duration) == "PT1H30M"

    def test_calendar_duration_has_no_fixed_length(self):
        """Test durations with months cannot become timedeltas."""
        with pytest.raises(ValueError):
            normalize_value("P1M").to_timedelta()

    def test_npt_range(self):
        """Test normal-play-time ranges."""
        assert normalize_value("npt=10-20") == NptRange(10.0, 20.0)
        assert normalize_value("npt=now-").start == "now"
        clock = normalize_value("0:00:10-0:01:00")
        assert clock.duration == 50.0
        assert str(NptRange(10.0, 20.0)) == "npt=10-20"


class TestKeysAndNames:
    """Test suite for key and name normalization."""

    def test_normalize_key(self):
        """Test attribute keys become camelCase."""
        assert normalize_key("data-value") == "dataValue"
        assert normalize_key("Data-Value") == "dataValue"
        assert normalize_key("provider_ID") == "providerID"
        assert normalize_key("provider_ID", preserve_consecutive_uppercase=False) == "providerId"

    def test_normalize_name(self):
        """Test node names are lowercased."""
        assert normalize_name("MyNode") == "mynode"
        assert normalize_name(None) == ""
