"""
Pytest configuration and shared fixtures.
"""

import os

os.environ.setdefault("GHOSTJOBS_LOG_FILE", "0")

import pytest
from datetime import datetime, timedelta
from typing import List, Optional

from ghostjobs.database import init_database, make_session_factory
from ghostjobs.sources import SourceRegistry
from ghostjobs.sources.base import AdapterJob, CompositeKey, PostingFeatures, SourceAdapter
from ghostjobs.sources.greenhouse import BOARD_HOSTS, parse_tenant_and_job
from ghostjobs.normalize import host_of


GREENHOUSE_URL = "https://boards.greenhouse.io/acme/jobs/12345"
WEB_URL = "https://www.example.com/careers/backend-engineer"

SAMPLE_DESCRIPTION = """
<h2>About the role</h2>
<p>We are hiring a backend engineer to build our data platform with Python,
PostgreSQL, Kafka, Docker and Kubernetes on AWS.</p>
<p>The salary range for this role is $120,000 - $150,000 per year.</p>
"""


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 3, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeGreenhouseAdapter(SourceAdapter):
    """Greenhouse URL routing without the network; serves ``self.job``."""

    provider = "greenhouse"
    trackable = True

    def __init__(self, job: Optional[AdapterJob] = None):
        self.job = job
        self.calls = 0

    def handles(self, url: str) -> bool:
        return host_of(url) in BOARD_HOSTS

    def composite_key(self, url: str) -> Optional[CompositeKey]:
        return parse_tenant_and_job(url)

    def fetch(self, url: str) -> Optional[AdapterJob]:
        self.calls += 1
        return self.job


class FakeWebAdapter(SourceAdapter):
    provider = "web"
    trackable = False

    def __init__(self, job: Optional[AdapterJob] = None):
        self.job = job
        self.calls = 0

    def handles(self, url: str) -> bool:
        return url.startswith("http")

    def fetch(self, url: str) -> Optional[AdapterJob]:
        self.calls += 1
        return self.job


def make_job(
    external_id: str = "12345",
    title: str = "Backend Engineer",
    updated_at: Optional[datetime] = datetime(2025, 2, 20, 9, 0, 0),
    content: str = SAMPLE_DESCRIPTION,
    **overrides,
) -> AdapterJob:
    """A Greenhouse posting with salary metadata."""
    fields = dict(
        provider="greenhouse",
        tenant="acme",
        external_id=external_id,
        title=title,
        company="Acme Corp",
        location="Remote - US",
        url=f"https://boards.greenhouse.io/acme/jobs/{external_id}",
        first_published=datetime(2025, 2, 15, 9, 0, 0),
        updated_at=updated_at,
        requisition_id="REQ-77",
        content=content,
        raw_payload={"id": int(external_id), "title": title},
        features=PostingFeatures(
            salary_min=120000.0,
            salary_mid=135000.0,
            salary_max=150000.0,
            currency="USD",
            comp_period="year",
            time_type="Full-time",
            department="Engineering",
            salary_source="metadata",
        ),
    )
    fields.update(overrides)
    return AdapterJob(**fields)


def make_web_job(**overrides) -> AdapterJob:
    fields = dict(
        provider="web",
        tenant="www.example.com",
        external_id=WEB_URL,
        title="Backend Engineer",
        company="Example Inc",
        location="Berlin, Germany",
        url=WEB_URL,
        first_published=None,
        content=SAMPLE_DESCRIPTION,
        features=PostingFeatures(time_type="FULL_TIME", salary_source="unknown"),
    )
    fields.update(overrides)
    return AdapterJob(**fields)


@pytest.fixture
def session_factory(tmp_path):
    """Session factory over a fresh SQLite database."""
    engine = init_database(tmp_path / "ghostjobs.db")
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def greenhouse_job() -> AdapterJob:
    return make_job()


@pytest.fixture
def web_job() -> AdapterJob:
    return make_web_job()


@pytest.fixture
def greenhouse_adapter(greenhouse_job) -> FakeGreenhouseAdapter:
    return FakeGreenhouseAdapter(greenhouse_job)


@pytest.fixture
def web_adapter(web_job) -> FakeWebAdapter:
    return FakeWebAdapter(web_job)


@pytest.fixture
def registry(greenhouse_adapter, web_adapter) -> SourceRegistry:
    return SourceRegistry([greenhouse_adapter, web_adapter])


@pytest.fixture
def update_series() -> List[datetime]:
    """Weekly refreshes, the shape of automated keep-alive reposting."""
    start = datetime(2025, 1, 1, 8, 0, 0)
    return [start + timedelta(days=7 * i) for i in range(6)]
