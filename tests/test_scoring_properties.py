"""
Property-based tests for the scoring helpers.

Covers risk level derivation from reputation counters and the
human-readable domain age string.
"""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_intel.enums import RiskLevel
from domain_intel.exceptions import ParseError
from domain_intel.scoring import compute_age, derive_risk_level, parse_date


NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

counts = st.integers(min_value=0, max_value=500)


class TestRiskLevelProperty:
    """Risk level is strict and evaluated in order: High, Medium, Low, Clean."""

    @given(malicious=st.integers(min_value=6, max_value=500), suspicious=counts)
    @settings(max_examples=100)
    def test_more_than_five_malicious_is_high(self, malicious: int, suspicious: int) -> None:
        assert derive_risk_level(malicious, suspicious) == RiskLevel.HIGH

    @given(malicious=counts, suspicious=counts)
    @settings(max_examples=100)
    def test_high_only_when_malicious_above_five(self, malicious: int, suspicious: int) -> None:
        level = derive_risk_level(malicious, suspicious)
        assert (level == RiskLevel.HIGH) == (malicious > 5)

    @given(malicious=st.integers(min_value=1, max_value=5), suspicious=counts)
    @settings(max_examples=100)
    def test_any_malicious_up_to_five_is_medium(self, malicious: int, suspicious: int) -> None:
        assert derive_risk_level(malicious, suspicious) == RiskLevel.MEDIUM

    @given(suspicious=st.integers(min_value=4, max_value=500))
    @settings(max_examples=100)
    def test_many_suspicious_without_malicious_is_medium(self, suspicious: int) -> None:
        assert derive_risk_level(0, suspicious) == RiskLevel.MEDIUM

    @pytest.mark.parametrize("suspicious", [1, 2, 3])
    def test_few_suspicious_is_low(self, suspicious: int) -> None:
        assert derive_risk_level(0, suspicious) == RiskLevel.LOW

    def test_boundaries(self) -> None:
        assert derive_risk_level(5, 0) == RiskLevel.MEDIUM
        assert derive_risk_level(0, 3) == RiskLevel.LOW
        assert derive_risk_level(0, 0) == RiskLevel.CLEAN


class TestDomainAgeProperty:
    """Age decomposes whole days as 365-day years and 30-day months."""

    def test_four_hundred_days(self) -> None:
        created = (NOW - timedelta(days=400)).isoformat()
        assert compute_age(created, now=NOW) == "1 year 1 month 5 days"

    @given(days=st.integers(min_value=0, max_value=20000))
    @settings(max_examples=100)
    def test_components_match_decomposition(self, days: int) -> None:
        created = (NOW - timedelta(days=days, hours=1)).isoformat()
        age = compute_age(created, now=NOW)

        years, months, rest = days // 365, (days % 365) // 30, days % 365 % 30
        if years == months == rest == 0:
            assert age == "Less than 1 day"
            return

        expected = []
        for count, unit in ((years, "year"), (months, "month"), (rest, "day")):
            if count:
                expected.append(f"{count} {unit}{'s' if count > 1 else ''}")
        assert age == " ".join(expected)

    def test_same_day_is_less_than_one_day(self) -> None:
        created = (NOW - timedelta(hours=5)).isoformat()
        assert compute_age(created, now=NOW) == "Less than 1 day"

    def test_singular_units(self) -> None:
        created = (NOW - timedelta(days=365 + 30 + 1)).isoformat()
        assert compute_age(created, now=NOW) == "1 year 1 month 1 day"

    @pytest.mark.parametrize("missing", [None, "", "-"])
    def test_missing_date_is_placeholder(self, missing) -> None:
        assert compute_age(missing, now=NOW) == "-"

    @pytest.mark.parametrize("raw", ["not a date", "sometime in 1999", "??"])
    def test_unparseable_date_returned_unchanged(self, raw: str) -> None:
        assert compute_age(raw, now=NOW) == raw

    def test_zulu_and_plain_dates_parse(self) -> None:
        assert parse_date("2020-01-01T00:00:00Z") == datetime(2020, 1, 1, tzinfo=timezone.utc)
        assert parse_date("2020-01-01") == datetime(2020, 1, 1, tzinfo=timezone.utc)
        assert parse_date("14-Aug-1995") == datetime(1995, 8, 14, tzinfo=timezone.utc)

    def test_parse_date_rejects_garbage(self) -> None:
        with pytest.raises(ParseError):
            parse_date("garbage")
