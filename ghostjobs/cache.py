"""
Job cache and dedup layer.

Postings from trackable providers are stored once per composite key
(provider, tenant, external id). A lookup reuses the stored row while it is
fresh and re-ingests it otherwise; re-ingest upserts by composite key so the
same posting never gets a second row.
"""

from dataclasses import dataclass, fields
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .database import Job, JobFeatures, JobUpdateEvent
from .errors import FetchFailed, PersistenceError
from .logger import get_logger
from .normalize import utcnow
from .sources.base import AdapterJob, CompositeKey, PostingFeatures

logger = get_logger()

DEFAULT_FRESH_WITHIN_HOURS = 24.0
DEFAULT_HISTORY_LIMIT = 50


@dataclass
class CacheResult:
    record: Job
    features: Optional[JobFeatures]
    cache_hit: bool
    created: bool = False
    job: Optional[AdapterJob] = None  # freshly fetched posting on re-ingest


def features_from_row(row: Optional[JobFeatures]) -> PostingFeatures:
    if row is None:
        return PostingFeatures()
    return PostingFeatures(**{f.name: getattr(row, f.name) for f in fields(PostingFeatures)})


def job_from_record(record: Job, features: Optional[JobFeatures]) -> AdapterJob:
    """Rebuild the posting from its stored row (used on cache hits)."""
    return AdapterJob(
        provider=record.provider,
        tenant=record.tenant_slug,
        external_id=record.external_job_id,
        title=record.title,
        company=record.company,
        location=record.location,
        url=record.url,
        first_published=record.first_published,
        updated_at=record.updated_at,
        requisition_id=record.requisition_id,
        content=record.content,
        raw_payload=record.raw_payload or {},
        features=features_from_row(features),
    )


class JobCache:
    """
    Composite-key store for trackable postings.

    Args:
        session_factory: Session factory bound to the shared engine
        fresh_within_hours: Default freshness window for cache hits
        history_limit: Maximum number of update events returned for cadence
        clock: Returns the current naive UTC time
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        fresh_within_hours: float = DEFAULT_FRESH_WITHIN_HOURS,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self.fresh_within_hours = fresh_within_hours
        self.history_limit = history_limit
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # Reads

    def lookup(self, key: CompositeKey) -> Optional[Job]:
        with self._session_factory() as session:
            return (
                session.query(Job)
                .filter_by(provider=key.provider, tenant_slug=key.tenant, external_job_id=key.external_id)
                .first()
            )

    def get_record(self, job_id: int) -> Optional[Job]:
        with self._session_factory() as session:
            return session.get(Job, job_id)

    def get_features(self, job_id: int) -> Optional[JobFeatures]:
        with self._session_factory() as session:
            return session.get(JobFeatures, job_id)

    def update_timestamps(self, job_id: int, limit: Optional[int] = None) -> List[datetime]:
        """Most recent source update times for a job, oldest first."""
        limit = limit or self.history_limit
        try:
            with self._session_factory() as session:
                rows = (
                    session.query(JobUpdateEvent.source_updated_at)
                    .filter(JobUpdateEvent.job_id == job_id)
                    .order_by(JobUpdateEvent.source_updated_at.desc())
                    .limit(limit)
                    .all()
                )
        except SQLAlchemyError as e:
            logger.error("Failed to read update history", job_id=job_id, error=str(e))
            return []
        return [row[0] for row in reversed(rows) if row[0] is not None]

    def is_fresh(self, record: Job, fresh_within_hours: Optional[float] = None, now: Optional[datetime] = None) -> bool:
        if record.last_seen is None:
            return False
        hours = self.fresh_within_hours if fresh_within_hours is None else fresh_within_hours
        now = now or self._clock()
        return now - record.last_seen < timedelta(hours=hours)

    # Lookup / refresh

    def lookup_or_refresh(
        self,
        key: CompositeKey,
        fetch: Callable[[], Optional[AdapterJob]],
        fresh_within_hours: Optional[float] = None,
    ) -> CacheResult:
        """
        Return the stored posting if it is fresh, otherwise re-ingest it.

        Args:
            key: Composite key of the posting
            fetch: Collaborator call returning the current posting or None
            fresh_within_hours: Override of the default freshness window

        Raises:
            FetchFailed: The source returned nothing (an existing row is
                marked inactive first)
            PersistenceError: The posting row could not be written
        """
        now = self._clock()
        existing = self.lookup(key)
        if existing is not None:
            features = self.get_features(existing.id)
            if features is not None and self.is_fresh(existing, fresh_within_hours, now):
                logger.record_cache(True)
                logger.info("Using cached job", job_id=existing.id, key=str(key))
                return CacheResult(record=existing, features=features, cache_hit=True)

        logger.record_cache(False)
        job = fetch()
        if job is None:
            if existing is not None:
                self.mark_inactive(existing.id, now)
            raise FetchFailed(key.external_id)

        if job.key != key:
            existing = self.lookup(job.key)

        # The update event must compare against the stored value before the upsert overwrites it
        if existing is not None:
            self.record_update_event(existing.id, job.updated_at)

        job_id = self.upsert_job(job, now)

        if existing is None and job.updated_at is not None:
            self._insert_update_event(job_id, job.updated_at)

        features = self.upsert_features(job_id, job.features)
        record = self.get_record(job_id)

        if existing is None:
            logger.info("Saved new job", job_id=job_id, key=str(job.key))
        else:
            logger.info("Refreshed stale job", job_id=job_id, key=str(job.key))
        return CacheResult(record=record, features=features, cache_hit=False, created=existing is None, job=job)

    # Writes

    def upsert_job(self, job: AdapterJob, seen_at: Optional[datetime] = None) -> int:
        """Insert or update the posting row by composite key and return its id."""
        seen_at = seen_at or self._clock()
        values = {
            "title": job.title,
            "company": job.company,
            "location": job.location,
            "url": job.url,
            "requisition_id": job.requisition_id,
            "content": job.content,
            "raw_payload": job.raw_payload,
            "first_published": job.first_published,
            "updated_at": job.updated_at,
            "last_seen": seen_at,
            "is_active": True,
        }
        stmt = sqlite_insert(Job).values(
            provider=job.provider,
            tenant_slug=job.tenant,
            external_job_id=job.external_id,
            created_at=seen_at,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Job.provider, Job.tenant_slug, Job.external_job_id],
            set_=values,
        )
        try:
            with self._session_factory() as session:
                session.execute(stmt)
                job_id = (
                    session.query(Job.id)
                    .filter_by(provider=job.provider, tenant_slug=job.tenant, external_job_id=job.external_id)
                    .scalar()
                )
                session.commit()
        except SQLAlchemyError as e:
            logger.error("Job upsert failed", key=str(job.key), error=str(e))
            logger.record_error("JobUpsertFailed")
            raise PersistenceError("Failed to save job to database") from e

        if job_id is None:
            logger.error("Job upsert returned no id", key=str(job.key))
            raise PersistenceError("Failed to save job to database")
        return job_id

    def record_update_event(self, job_id: int, incoming: Optional[datetime]) -> bool:
        """
        Log ``incoming`` as an update event if it is newer than the stored
        source `updated_at`. Returns True when a row was inserted.
        """
        if incoming is None:
            return False
        try:
            with self._session_factory() as session:
                stored = session.query(Job.updated_at).filter(Job.id == job_id).scalar()
        except SQLAlchemyError as e:
            logger.error("Failed to read stored updated_at", job_id=job_id, error=str(e))
            return False
        if stored is not None and incoming <= stored:
            return False
        return self._insert_update_event(job_id, incoming)

    def _insert_update_event(self, job_id: int, source_updated_at: datetime) -> bool:
        try:
            with self._session_factory() as session:
                session.add(JobUpdateEvent(
                    job_id=job_id,
                    source_updated_at=source_updated_at,
                    recorded_at=self._clock(),
                ))
                session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to insert job update", job_id=job_id, error=str(e))
            logger.record_error("UpdateEventFailed")
            return False
        logger.debug("Recorded job update", job_id=job_id, source_updated_at=source_updated_at)
        return True

    def upsert_features(self, job_id: int, features: PostingFeatures) -> Optional[JobFeatures]:
        """Replace the structured features of a job."""
        row = JobFeatures(job_id=job_id, **{f.name: getattr(features, f.name) for f in fields(PostingFeatures)})
        try:
            with self._session_factory() as session:
                row = session.merge(row)
                session.commit()
                return row
        except SQLAlchemyError as e:
            logger.error("Failed to upsert job features", job_id=job_id, error=str(e))
            logger.record_error("FeaturesUpsertFailed")
            return None

    def mark_inactive(self, job_id: int, seen_at: Optional[datetime] = None) -> None:
        try:
            with self._session_factory() as session:
                session.query(Job).filter(Job.id == job_id).update(
                    {Job.is_active: False, Job.last_seen: seen_at or self._clock()},
                    synchronize_session=False,
                )
                session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to mark job inactive", job_id=job_id, error=str(e))
            logger.record_error("MarkInactiveFailed")
            return
        logger.warning("Job source unreachable, marked inactive", job_id=job_id)
