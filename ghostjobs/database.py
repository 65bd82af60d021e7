"""
Database schema and connection management.

Uses SQLite with SQLAlchemy. The engine and session factory are built once at
startup by `init_database` and handed to each component explicitly.
"""

from pathlib import Path
from typing import Union

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .normalize import utcnow

Base = declarative_base()


class Job(Base):
    """Job posting from a trackable source, keyed by (provider, tenant, external id)."""

    __tablename__ = "jobs"
    __table_args__ = (
        UniqueConstraint("provider", "tenant_slug", "external_job_id", name="uq_jobs_composite_key"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String, nullable=False)  # greenhouse
    tenant_slug = Column(String, nullable=False)
    external_job_id = Column(String, nullable=False)
    title = Column(String, nullable=False)
    company = Column(String)
    location = Column(String)
    url = Column(String)
    requisition_id = Column(String)
    content = Column(Text)
    raw_payload = Column(JSON)
    first_published = Column(DateTime)
    updated_at = Column(DateTime)  # source-reported
    last_seen = Column(DateTime)  # system-observed
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class JobFeatures(Base):
    """Normalized structured attributes, replaced wholesale on every re-ingest."""

    __tablename__ = "job_features"

    job_id = Column(Integer, ForeignKey("jobs.id"), primary_key=True)
    salary_min = Column(Float)
    salary_mid = Column(Float)
    salary_max = Column(Float)
    currency = Column(String)
    comp_period = Column(String)
    time_type = Column(String)
    department = Column(String)
    salary_source = Column(String)  # metadata, content, jsonld, text, both, unknown


class JobUpdateEvent(Base):
    """One row per newer source `updated_at` observed for a job."""

    __tablename__ = "job_updates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    source_updated_at = Column(DateTime, nullable=False)
    recorded_at = Column(DateTime, nullable=False, default=utcnow)


class JobSnapshot(Base):
    """Fingerprint of one observation of a job."""

    __tablename__ = "job_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    taken_at = Column(DateTime, nullable=False, default=utcnow)
    source_updated_at = Column(DateTime)
    content_hash = Column(String(64), nullable=False)
    metadata_hash = Column(String(64), nullable=False)
    # Unsigned 64-bit values, stored as decimal strings
    content_simhash = Column(String(20), nullable=False)
    metadata_simhash = Column(String(20), nullable=False)
    raw_payload = Column(JSON)


class RequestLock(Base):
    """Per-user single-flight flag plus remaining analysis tokens."""

    __tablename__ = "request_locks"

    user_id = Column(String, primary_key=True)
    is_available = Column(Boolean, nullable=False, default=True)
    tokens_remaining = Column(Integer, nullable=False, default=3)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


def create_db_engine(db_path: Union[Path, str]) -> Engine:
    """
    Create an engine for a SQLite database file.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy engine
    """
    return create_engine(f"sqlite:///{db_path}")


def init_database(db_path: Path) -> Engine:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file

    Returns:
        The engine, to be shared by every component of the process
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_db_engine(db_path)
    Base.metadata.create_all(engine)
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to the process-wide engine."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    return make_session_factory(create_db_engine(db_path))()
