"""
One analysis request, end to end.

    admission -> (trackable) cache lookup or re-ingest -> snapshot -> NLP
              -> cadence / change history -> score -> release

Untrackable pages are validated and scored without touching the cache.
"""

import uuid
from dataclasses import dataclass
from typing import List, Optional, Union

from sqlalchemy.orm import sessionmaker

from .admission import AdmissionController
from .cache import CacheResult, JobCache, features_from_row, job_from_record
from .cadence import MIN_TIMESTAMPS
from .config import Settings
from .errors import AdmissionDenied, FetchFailed, ValidationFailed
from .logger import get_logger
from .nlp import KeywordAnalyzer, NlpAnalysis, NlpAnalyzer, prepare_text
from .normalize import host_of
from .schema import validate_job_posting
from .scoring import (
    DEFAULT_WEIGHTS,
    ScoreBreakdown,
    ScoreWeights,
    ScoringInput,
    SnapshotFingerprint,
    generate_recommendations,
    red_flags,
    risk_tier,
    score_job,
)
from .snapshots import SnapshotEngine
from .sources import SourceRegistry, is_trackable
from .sources.base import AdapterJob, PostingFeatures

logger = get_logger()

MIN_SNAPSHOTS = 2


@dataclass
class AnalysisResult:
    job_id: Union[int, str]  # int for stored jobs, "web-..." for ephemeral ones
    score: float
    tier: str
    red_flags: List[str]
    recommendations: List[str]
    breakdown: ScoreBreakdown
    features: PostingFeatures
    nlp: Optional[NlpAnalysis]
    cache_hit: bool = False
    trackable: bool = False
    title: Optional[str] = None
    company: Optional[str] = None
    url: Optional[str] = None
    tokens_remaining: Optional[int] = None
    snapshot_id: Optional[int] = None


class GhostJobAnalyzer:
    """
    Runs analyses against shared storage.

    Args:
        admission: Per-user lock and token gate
        cache: Composite-key job store
        snapshots: Snapshot engine for trackable jobs
        registry: Routes URLs to source adapters
        nlp: Text analyzer (defaults to the keyword analyzer)
        weights: Scoring weights
        nlp_max_chars: Description length handed to the analyzer
    """

    def __init__(
        self,
        admission: AdmissionController,
        cache: JobCache,
        snapshots: SnapshotEngine,
        registry: SourceRegistry,
        nlp: Optional[NlpAnalyzer] = None,
        weights: ScoreWeights = DEFAULT_WEIGHTS,
        nlp_max_chars: int = 20_000,
    ):
        self.admission = admission
        self.cache = cache
        self.snapshots = snapshots
        self.registry = registry
        self.nlp = nlp or KeywordAnalyzer()
        self.weights = weights
        self.nlp_max_chars = nlp_max_chars

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: sessionmaker,
        registry: Optional[SourceRegistry] = None,
        nlp: Optional[NlpAnalyzer] = None,
    ) -> "GhostJobAnalyzer":
        return cls(
            admission=AdmissionController(
                session_factory,
                initial_tokens=settings.initial_tokens,
                atomic=settings.atomic_admission,
            ),
            cache=JobCache(
                session_factory,
                fresh_within_hours=settings.fresh_within_hours,
                history_limit=settings.update_history_limit,
            ),
            snapshots=SnapshotEngine(session_factory, threshold=settings.simhash_threshold),
            registry=registry or SourceRegistry.default(timeout=settings.request_timeout),
            nlp=nlp,
            nlp_max_chars=settings.nlp_max_chars,
        )

    def analyze(self, url: str, user_id: str) -> AnalysisResult:
        """
        Score the posting at ``url`` on behalf of ``user_id``.

        Raises:
            AdmissionDenied: No tokens left or a request is already running
            FetchFailed: The posting could not be retrieved
            ValidationFailed: The page does not look like a job posting
            PersistenceError: The posting row could not be stored
        """
        logger.record_analysis()
        admission = self.admission.acquire(user_id)
        if not admission.granted:
            raise AdmissionDenied(admission.tokens_remaining, admission.reason)

        try:
            result = self._run(url)
            result.tokens_remaining = admission.tokens_remaining
            return result
        finally:
            self.admission.release(user_id)

    def _run(self, url: str) -> AnalysisResult:
        key = self.registry.composite_key(url)
        if key is not None:
            cached = self.cache.lookup_or_refresh(key, lambda: self.registry.fetch(url))
            return self._analyze_tracked(cached)

        job = self.registry.fetch(url)
        if job is None:
            raise FetchFailed(url)

        if is_trackable(job.provider):
            cached = self.cache.lookup_or_refresh(job.key, lambda: job)
            return self._analyze_tracked(cached)

        return self._analyze_ephemeral(job)

    def _analyze_tracked(self, cached: CacheResult) -> AnalysisResult:
        record = cached.record

        snapshot_id = None
        if not cached.cache_hit:
            snapshot_id = self.snapshots.capture(record.id, cached.job, is_new=cached.created)
            job = cached.job
            # the stored features row may be missing if its write failed
            features = job.features
        else:
            job = job_from_record(record, cached.features)
            features = features_from_row(cached.features)

        nlp = self._run_nlp(job.content, features)

        timestamps = self.cache.update_timestamps(record.id)
        history = self.snapshots.all_snapshots(record.id)
        fingerprints = [SnapshotFingerprint(s.content_simhash, s.metadata_simhash) for s in history]

        data = ScoringInput(
            url=record.url,
            first_published=record.first_published,
            updated_at=record.updated_at,
            features=features,
            host_hint=host_of(record.url),
            link_ok=True,
            link_loop=False,
            nlp=nlp,
            update_timestamps=timestamps if len(timestamps) >= MIN_TIMESTAMPS else None,
            snapshots=fingerprints if len(fingerprints) >= MIN_SNAPSHOTS else None,
        )
        result = self._score(record.id, data, nlp, trackable=True, cache_hit=cached.cache_hit)
        result.title = record.title
        result.company = record.company
        result.url = record.url
        result.snapshot_id = snapshot_id
        return result

    def _analyze_ephemeral(self, job: AdapterJob) -> AnalysisResult:
        error = validate_job_posting(job)
        if error:
            logger.warning("Rejected page as not a job posting", url=job.url, reason=error)
            logger.record_error("ValidationFailed")
            raise ValidationFailed(error)

        nlp = self._run_nlp(job.content, job.features)
        data = ScoringInput(
            url=job.url,
            first_published=job.first_published,
            updated_at=job.updated_at,
            features=job.features,
            host_hint=host_of(job.url),
            link_ok=job.link_ok,
            link_loop=job.redirect_loop,
            nlp=nlp,
        )
        result = self._score(f"web-{uuid.uuid4().hex[:12]}", data, nlp, trackable=False, cache_hit=False)
        result.title = job.title
        result.company = job.company
        result.url = job.url
        return result

    def _run_nlp(self, content: Optional[str], features: PostingFeatures) -> NlpAnalysis:
        text = prepare_text(content, self.nlp_max_chars)
        return self.nlp.analyze(text, {"time_type": features.time_type, "currency": features.currency})

    def _score(
        self,
        job_id: Union[int, str],
        data: ScoringInput,
        nlp: Optional[NlpAnalysis],
        trackable: bool,
        cache_hit: bool,
    ) -> AnalysisResult:
        scored = score_job(data, self.weights, now=self.cache.now(), change_threshold=self.snapshots.threshold)
        tier = risk_tier(scored.score)
        logger.info("Analysis complete", job_id=job_id, score=round(scored.score, 3), tier=tier)
        return AnalysisResult(
            job_id=job_id,
            score=scored.score,
            tier=tier,
            red_flags=red_flags(scored.breakdown),
            recommendations=generate_recommendations(scored.breakdown),
            breakdown=scored.breakdown,
            features=data.features,
            nlp=nlp,
            cache_hit=cache_hit,
            trackable=trackable,
        )
