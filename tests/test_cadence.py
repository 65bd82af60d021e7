"""
Tests for cadence.py - update regularity scoring.
"""

import pytest
from datetime import datetime, timedelta

from ghostjobs.cadence import analyze_cadence, coefficient_of_variation, intervals_in_days


def series(start: datetime, gaps_in_days):
    out = [start]
    for gap in gaps_in_days:
        out.append(out[-1] + timedelta(days=gap))
    return out


START = datetime(2025, 1, 1, 8, 0, 0)


class TestIntervals:
    """Test interval extraction."""

    def test_sorts_before_diffing(self):
        """Out-of-order timestamps should give positive intervals."""
        ts = series(START, [1, 2, 3])
        assert intervals_in_days(list(reversed(ts))) == [1.0, 2.0, 3.0]

    def test_drops_unparseable(self):
        """Invalid entries should be ignored."""
        assert intervals_in_days(["2025-01-01T00:00:00Z", "not a date", "2025-01-03T00:00:00Z"]) == [2.0]

    def test_zero_mean_cv_is_zero(self):
        """All-zero intervals should not divide by zero."""
        assert coefficient_of_variation([0.0, 0.0, 0.0]) == 0.0


class TestAnalyzeCadence:
    """Test the cadence score."""

    def test_weekly_refresh_is_suspicious(self, update_series):
        """Exactly weekly updates should score 0."""
        assert analyze_cadence(update_series) == 0.0

    def test_irregular_updates_score_high(self):
        """Widely varying gaps should score 1."""
        assert analyze_cadence(series(START, [1, 40, 3, 60])) == 1.0

    def test_fewer_than_four_is_neutral(self):
        """Three timestamps are not enough history."""
        assert analyze_cadence(series(START, [1, 40])) == 0.5
        assert analyze_cadence([]) == 0.5

    def test_invalid_entries_do_not_count(self):
        """Unparseable timestamps should not make up the minimum."""
        ts = [t.isoformat() for t in series(START, [7, 7])] + ["garbage"]
        assert analyze_cadence(ts) == 0.5

    def test_mid_range_is_linear(self):
        """CV between 0.2 and 0.5 maps linearly."""
        # intervals 5, 10, 5, 10: mean 7.5, pstdev 2.5, cv 1/3
        score = analyze_cadence(series(START, [5, 10, 5, 10]))
        assert score == pytest.approx((1 / 3 - 0.2) / 0.3)

    def test_accepts_iso_strings(self):
        """ISO-8601 strings with Z suffix should parse."""
        ts = [(START + timedelta(days=7 * i)).strftime("%Y-%m-%dT%H:%M:%SZ") for i in range(5)]
        assert analyze_cadence(ts) == 0.0
