"""
Update cadence analysis.

Automated keep-alive reposting tends to fire on a near-fixed schedule, while
organic edits land irregularly. The coefficient of variation of the gaps
between source updates separates the two.
"""

import statistics
from typing import Iterable, List

from .normalize import TimestampLike, parse_timestamp

MIN_TIMESTAMPS = 4
NEUTRAL_SCORE = 0.5
REGULAR_CV = 0.2
IRREGULAR_CV = 0.5

SECONDS_PER_DAY = 86400.0


def intervals_in_days(timestamps: Iterable[TimestampLike]) -> List[float]:
    """Sorted gaps between consecutive valid timestamps, in days."""
    parsed = sorted(ts for ts in (parse_timestamp(t) for t in timestamps) if ts is not None)
    return [
        (later - earlier).total_seconds() / SECONDS_PER_DAY
        for earlier, later in zip(parsed, parsed[1:])
    ]


def coefficient_of_variation(values: List[float]) -> float:
    """Population stddev over mean; 0 when the mean is not positive."""
    mean = statistics.fmean(values)
    if mean <= 0:
        return 0.0
    return statistics.pstdev(values) / mean


def analyze_cadence(timestamps: Iterable[TimestampLike]) -> float:
    """
    Regularity score of a series of update times, in [0, 1].

    Returns 0.5 with fewer than four valid timestamps. Otherwise maps the
    coefficient of variation of the intervals: below 0.2 scores 0.0
    (suspiciously regular), above 0.5 scores 1.0 (organic), linear between.
    """
    intervals = intervals_in_days(timestamps)
    if len(intervals) < MIN_TIMESTAMPS - 1:
        return NEUTRAL_SCORE

    cv = coefficient_of_variation(intervals)
    if cv < REGULAR_CV:
        return 0.0
    if cv > IRREGULAR_CV:
        return 1.0
    return min(max((cv - REGULAR_CV) / (IRREGULAR_CV - REGULAR_CV), 0.0), 1.0)
