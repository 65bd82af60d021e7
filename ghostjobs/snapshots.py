"""
Snapshot and change-detection engine.

A snapshot fingerprints one observation of a posting: exact SHA-256 hashes of
the content and of its metadata, plus simhashes of both for near-duplicate
comparison. Snapshots are gated on the source's own `updated_at`; hashes only
classify what changed between gated snapshots.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from . import hashing
from .database import JobSnapshot
from .logger import get_logger
from .normalize import utcnow
from .sources.base import AdapterJob

logger = get_logger()


@dataclass
class SnapshotData:
    """Hashes and payload of one observation, before it is stored."""

    source_updated_at: Optional[datetime]
    content_hash: str
    metadata_hash: str
    content_simhash: str
    metadata_simhash: str
    raw_payload: dict


def build_snapshot(job: AdapterJob) -> SnapshotData:
    metadata = job.metadata()
    return SnapshotData(
        source_updated_at=job.updated_at,
        content_hash=hashing.content_hash(job.content),
        metadata_hash=hashing.metadata_hash(metadata),
        content_simhash=str(hashing.simhash(job.content or "")),
        metadata_simhash=str(hashing.metadata_simhash(metadata)),
        raw_payload=job.raw_payload,
    )


def has_content_changed(old, new) -> bool:
    """True if either exact hash differs between two snapshots."""
    return old.content_hash != new.content_hash or old.metadata_hash != new.metadata_hash


def source_updated_at_changed(latest: Optional[JobSnapshot], incoming: Optional[datetime]) -> bool:
    """True when the source `updated_at` differs from the latest snapshot's.

    No previous snapshot counts as a change, as does a transition between a
    value and null in either direction.
    """
    if latest is None:
        return True
    previous = latest.source_updated_at
    if previous is None and incoming is None:
        return False
    if previous is None or incoming is None:
        return True
    return previous != incoming


class SnapshotEngine:
    """
    Stores and reads snapshots for trackable jobs.

    Args:
        session_factory: Session factory bound to the shared engine
        threshold: Hamming distance above which a simhash change is significant
        clock: Returns the current naive UTC time
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        threshold: int = hashing.DEFAULT_CHANGE_THRESHOLD,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self.threshold = threshold
        self._clock = clock

    def record_snapshot(self, job_id: int, job: AdapterJob) -> Optional[int]:
        """Store a snapshot of ``job``; returns its id, or None if the write failed."""
        return self._store(job_id, build_snapshot(job))

    def _store(self, job_id: int, data: SnapshotData) -> Optional[int]:
        row = JobSnapshot(job_id=job_id, taken_at=self._clock(), **asdict(data))
        try:
            with self._session_factory() as session:
                session.add(row)
                session.commit()
                return row.id
        except SQLAlchemyError as e:
            logger.error("Failed to create snapshot", job_id=job_id, error=str(e))
            logger.record_error("SnapshotWriteFailed")
            return None

    def latest_snapshot(self, job_id: int) -> Optional[JobSnapshot]:
        with self._session_factory() as session:
            return (
                session.query(JobSnapshot)
                .filter(JobSnapshot.job_id == job_id)
                .order_by(JobSnapshot.taken_at.desc(), JobSnapshot.id.desc())
                .first()
            )

    def all_snapshots(self, job_id: int) -> List[JobSnapshot]:
        """Every snapshot of a job, oldest first."""
        with self._session_factory() as session:
            return (
                session.query(JobSnapshot)
                .filter(JobSnapshot.job_id == job_id)
                .order_by(JobSnapshot.taken_at.asc(), JobSnapshot.id.asc())
                .all()
            )

    def is_significant_change(self, a: hashing.Fingerprint, b: hashing.Fingerprint) -> bool:
        return hashing.is_significant_change(a, b, self.threshold)

    def capture(self, job_id: int, job: AdapterJob, is_new: bool) -> Optional[int]:
        """
        Apply the snapshot policy after an ingest.

        New jobs, and existing jobs without any snapshot, are always
        snapshotted. Otherwise a snapshot is taken only when the source
        `updated_at` moved; content edits without it are not captured.

        Returns the new snapshot id, or None when no snapshot was stored.
        """
        if is_new:
            snapshot_id = self.record_snapshot(job_id, job)
            logger.record_snapshot(snapshot_id is not None)
            logger.info("Created first snapshot for new job", job_id=job_id, snapshot_id=snapshot_id)
            return snapshot_id

        latest = self.latest_snapshot(job_id)
        if latest is None:
            snapshot_id = self.record_snapshot(job_id, job)
            logger.record_snapshot(snapshot_id is not None)
            logger.info("Created first snapshot for existing job", job_id=job_id, snapshot_id=snapshot_id)
            return snapshot_id

        if not source_updated_at_changed(latest, job.updated_at):
            logger.record_snapshot(False)
            logger.info("Source updated_at unchanged, skipping snapshot", job_id=job_id)
            return None

        new = build_snapshot(job)
        snapshot_id = self._store(job_id, new)
        logger.record_snapshot(snapshot_id is not None)
        logger.info(
            "Source updated_at changed, created snapshot",
            job_id=job_id,
            snapshot_id=snapshot_id,
            content_changed=has_content_changed(latest, new),
            significant=self.is_significant_change(latest.content_simhash, new.content_simhash),
        )
        return snapshot_id
