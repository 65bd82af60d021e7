"""
Multi-signal ghost job scoring.

Each signal is a value in [0, 1] where higher means "looks like a real,
actively hiring posting". The overall score is the weighted average of the
signals that are present, so a LOW score means HIGH ghost-job risk:

    score < 0.4  -> "High" risk
    score < 0.7  -> "Medium" risk
    otherwise    -> "Low" risk

Signals that could not be computed are absent (None), never zero.
"""

import math
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence, Union

from .cadence import analyze_cadence
from .hashing import DEFAULT_CHANGE_THRESHOLD, is_significant_change
from .nlp import NlpAnalysis
from .normalize import TimestampLike, host_of, parse_timestamp, utcnow
from .sources.base import PostingFeatures

FRESHNESS_HORIZON_DAYS = 90

HIGH_RISK = "High"
MEDIUM_RISK = "Medium"
LOW_RISK = "Low"

RED_FLAG_THRESHOLD = 0.5

# Known ATS and job board hosts
ATS_HOST_HINTS = {
    "boards.greenhouse.io",
    "job-boards.greenhouse.io",
    "greenhouse.io",
    "lever.co",
    "myworkdayjobs.com",
    "smartrecruiters.com",
    "ashbyhq.com",
    "icims.com",
}


@dataclass
class ScoreWeights:
    """Per-signal weights; they sum to 1.0 when every signal is present."""

    freshness: float = 0.18
    link_integrity: float = 0.10
    salary_disclosure: float = 0.21
    salary_min_present: float = 0.13
    source_credibility: float = 0.10
    skills_present: float = 0.10
    buzzword_penalty: float = 0.04
    comp_period_clarity: float = 0.04
    update_cadence: float = 0.05
    content_change_quality: float = 0.05

    def get(self, name: str) -> Optional[float]:
        if name not in {f.name for f in fields(self)}:
            return None
        return getattr(self, name)


DEFAULT_WEIGHTS = ScoreWeights()


@dataclass
class ScoreBreakdown:
    freshness: Optional[float] = None
    link_integrity: Optional[float] = None
    salary_disclosure: Optional[float] = None
    salary_min_present: Optional[float] = None
    source_credibility: Optional[float] = None
    skills_present: Optional[float] = None
    buzzword_penalty: Optional[float] = None
    comp_period_clarity: Optional[float] = None
    update_cadence: Optional[float] = None
    content_change_quality: Optional[float] = None

    def present(self) -> Dict[str, float]:
        """Signals that were computed, in declaration order."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


@dataclass
class SnapshotFingerprint:
    content_simhash: str
    metadata_simhash: str


@dataclass
class ScoringInput:
    """Everything the aggregator looks at for one posting.

    ``update_timestamps`` and ``snapshots`` are only set for trackable jobs
    with enough history; leaving them as None drops the matching signal.
    """

    url: Optional[str] = None
    first_published: TimestampLike = None
    updated_at: TimestampLike = None
    features: PostingFeatures = field(default_factory=PostingFeatures)
    host_hint: Optional[str] = None
    link_ok: bool = False
    link_loop: bool = False
    nlp: Optional[NlpAnalysis] = None
    update_timestamps: Optional[Sequence[TimestampLike]] = None
    snapshots: Optional[Sequence[SnapshotFingerprint]] = None


@dataclass
class ScoreResult:
    score: float
    breakdown: ScoreBreakdown


def clamp01(x: float) -> float:
    if x is None or not math.isfinite(x):
        return 0.0
    return min(max(x, 0.0), 1.0)


# --- Feature extractors ------------------------------------------------------

def feature_freshness(published: TimestampLike, now: Optional[datetime] = None) -> float:
    """1 when just published, decaying linearly to 0 at 90 days; 0.5 if unknown."""
    pub = parse_timestamp(published)
    if pub is None:
        return 0.5
    now = now or utcnow()
    age_days = abs((now - pub).total_seconds()) / 86400
    return clamp01(1 - min(age_days / FRESHNESS_HORIZON_DAYS, 1))


def feature_link_integrity(link_ok: bool, link_loop: bool) -> float:
    return 1.0 if link_ok and not link_loop else 0.0


def feature_salary_disclosure(features: PostingFeatures) -> float:
    if features.salary_min is not None:
        return 1.0
    if features.salary_max is not None:
        return 0.5
    return 0.0


def feature_salary_min_present(features: PostingFeatures) -> float:
    return 1.0 if features.salary_min is not None else 0.0


def _host_matches(host: str, hints) -> bool:
    return any(host == h or host.endswith("." + h) for h in hints)


def feature_source_credibility(features: PostingFeatures, host: Optional[str]) -> float:
    """ATS hosts rank highest; structured salary provenance nudges up, free text down."""
    source = features.salary_source or "unknown"
    if source in ("metadata", "both"):
        boost = 0.1
    elif source == "text":
        boost = -0.1
    else:
        boost = 0.0

    base = 0.5
    if host:
        if _host_matches(host, ATS_HOST_HINTS):
            base = 0.9
        elif "careers." in host or host.endswith(".jobs"):
            base = 0.7
        else:
            base = 0.6
    return clamp01(base + boost)


def feature_skills_present(nlp: Optional[NlpAnalysis]) -> float:
    if nlp is None or not nlp.skills:
        return 0.0
    if len(nlp.skills) >= 5:
        return 1.0
    return 0.5


def feature_buzzword_penalty(nlp: Optional[NlpAnalysis]) -> float:
    if nlp is None:
        return 1.0
    count = nlp.buzzword_count
    if count <= 0:
        return 1.0
    if count >= 5:
        return 0.0
    return clamp01(1 - count * 0.2)


def feature_comp_period_clarity(nlp: Optional[NlpAnalysis]) -> float:
    if nlp is None or not nlp.comp_period_detected:
        return 0.5
    return 1.0


def feature_content_change_quality(
    snapshots: Optional[Sequence[SnapshotFingerprint]],
    cadence_score: Optional[float] = None,
    threshold: int = DEFAULT_CHANGE_THRESHOLD,
) -> float:
    """
    Share of refreshes that actually changed the posting.

    Consecutive snapshots count as a real change when either the content or
    the metadata simhash moved beyond ``threshold`` bits. Fingerprints that
    keep reappearing lower the score by up to half, and a value already below
    0.3 is dampened further when the cadence score is below 0.3 too.
    """
    if not snapshots or len(snapshots) < 2:
        return 0.5

    significant = 0
    comparisons = 0
    occurrences: Dict[str, int] = {}
    for prev, curr in zip(snapshots, snapshots[1:]):
        if (is_significant_change(prev.content_simhash, curr.content_simhash, threshold)
                or is_significant_change(prev.metadata_simhash, curr.metadata_simhash, threshold)):
            significant += 1
        comparisons += 1
        for fingerprint in (str(curr.content_simhash), str(curr.metadata_simhash)):
            occurrences[fingerprint] = occurrences.get(fingerprint, 0) + 1

    score = significant / comparisons

    duplicates = sum(count for count in occurrences.values() if count > 1)
    total = sum(occurrences.values())
    duplicate_ratio = duplicates / total if total else 0.0
    if duplicate_ratio > 0.5:
        score *= 1 - duplicate_ratio * 0.5

    if cadence_score is not None and cadence_score < 0.3 and score < 0.3:
        score *= 0.8

    return clamp01(score)


# --- Aggregation -------------------------------------------------------------

def finalize_score(
    breakdown: Union[ScoreBreakdown, Mapping[str, float]],
    weights: Optional[ScoreWeights] = None,
) -> float:
    """
    Weighted average over the signals present in ``breakdown``.

    Weights of absent signals are left out of the denominator. If no present
    signal has a positive weight, the plain mean of present signals is used.
    No signals at all scores 0.
    """
    weights = weights or DEFAULT_WEIGHTS
    values = breakdown.present() if isinstance(breakdown, ScoreBreakdown) else {
        k: v for k, v in breakdown.items() if v is not None
    }

    total_weight = 0.0
    total = 0.0
    for name, value in values.items():
        weight = weights.get(name)
        if weight is not None and weight > 0:
            total_weight += weight
            total += weight * clamp01(value)

    if total_weight > 0:
        return clamp01(total / total_weight)

    if not values:
        return 0.0
    return clamp01(sum(clamp01(v) for v in values.values()) / len(values))


def score_job(
    data: ScoringInput,
    weights: Optional[ScoreWeights] = None,
    now: Optional[datetime] = None,
    change_threshold: int = DEFAULT_CHANGE_THRESHOLD,
) -> ScoreResult:
    breakdown = ScoreBreakdown()
    published = data.first_published if parse_timestamp(data.first_published) else data.updated_at
    breakdown.freshness = feature_freshness(published, now)
    breakdown.link_integrity = feature_link_integrity(data.link_ok, data.link_loop)
    breakdown.salary_disclosure = feature_salary_disclosure(data.features)
    breakdown.salary_min_present = feature_salary_min_present(data.features)
    breakdown.source_credibility = feature_source_credibility(
        data.features, data.host_hint or host_of(data.url)
    )
    breakdown.skills_present = feature_skills_present(data.nlp)
    breakdown.buzzword_penalty = feature_buzzword_penalty(data.nlp)
    breakdown.comp_period_clarity = feature_comp_period_clarity(data.nlp)

    if data.update_timestamps is not None:
        breakdown.update_cadence = analyze_cadence(data.update_timestamps)
    if data.snapshots is not None:
        breakdown.content_change_quality = feature_content_change_quality(
            data.snapshots, breakdown.update_cadence, change_threshold
        )

    return ScoreResult(score=finalize_score(breakdown, weights), breakdown=breakdown)


def risk_tier(score: float) -> str:
    """Ghost-job risk tier; the scale is inverted (low score, high risk)."""
    if score < 0.4:
        return HIGH_RISK
    if score < 0.7:
        return MEDIUM_RISK
    return LOW_RISK


# --- Explanations ------------------------------------------------------------

def _weak(value: Optional[float]) -> bool:
    return value is not None and value < RED_FLAG_THRESHOLD


def red_flags(breakdown: ScoreBreakdown) -> List[str]:
    return [name for name, value in breakdown.present().items() if value < RED_FLAG_THRESHOLD]


def generate_recommendations(breakdown: ScoreBreakdown) -> List[str]:
    """User-facing advice for each weak signal; related weak signals share one message."""
    if not red_flags(breakdown):
        return ["No ghosts detected! This looks like a legitimate opportunity."]

    recommendations: List[str] = []

    weak_disclosure = _weak(breakdown.salary_disclosure)
    weak_min = _weak(breakdown.salary_min_present)
    if weak_disclosure and weak_min:
        recommendations.append(
            "This posting has unclear compensation details. Ask about salary ranges during the interview."
        )
    else:
        if weak_disclosure:
            recommendations.append("Ask about the salary range during the interview.")
        if weak_min:
            recommendations.append(
                "No stated minimum salary may be intentionally vague, depending on the nature of the job."
            )

    weak_skills = _weak(breakdown.skills_present)
    weak_buzzwords = _weak(breakdown.buzzword_penalty)
    if weak_skills and weak_buzzwords:
        recommendations.append(
            "Consider asking clarifying questions about the role and requirements - "
            "the description may be vague."
        )
    else:
        if weak_skills:
            recommendations.append("Ask for a detailed job description with specific technical requirements.")
        if weak_buzzwords:
            recommendations.append("Seek concrete expectations and responsibilities beyond generic phrases.")

    cadence = _weak(breakdown.update_cadence)
    stale_refresh = _weak(breakdown.content_change_quality)
    stale = _weak(breakdown.freshness)

    if cadence and stale_refresh and stale:
        recommendations.append(
            "This job refreshes in a predictable pattern with no significant content changes, "
            "and it is a stale posting. These three signals combined strongly indicate automated "
            "efforts to make a ghost job appear active."
        )
    elif cadence and stale_refresh:
        recommendations.append(
            "This job refreshes in a predictable pattern with no significant content changes. "
            "These two signals combined indicate automated efforts to make a ghost job appear active."
        )
    elif cadence and stale:
        recommendations.append(
            "This job is both stale and refreshes in a predictable pattern. These two signals "
            "combined are a stronger signal of automated efforts to make a ghost job appear active."
        )
    elif stale_refresh and stale:
        recommendations.append(
            "This job refreshes without significant content changes and is a stale posting. "
            "This pattern suggests the job may be reposted to appear active without real updates."
        )
    else:
        if stale:
            recommendations.append(
                "This posting may be stale. Verify the position is still actively hiring."
            )
        if cadence:
            recommendations.append(
                "This job refreshes in a predictable pattern, which could indicate automated "
                "efforts to make a ghost job appear active."
            )
        if stale_refresh:
            recommendations.append(
                "This job refreshes without significant content changes, which could indicate "
                "automated reposting to make a ghost job appear active."
            )

    return recommendations
