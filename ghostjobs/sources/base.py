"""Data passed between source adapters and the analysis core."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional

from ..normalize import isoformat_or_none


class CompositeKey(NamedTuple):
    provider: str
    tenant: str
    external_id: str

    def __str__(self) -> str:
        return f"{self.provider}:{self.tenant}:{self.external_id}"


@dataclass
class PostingFeatures:
    salary_min: Optional[float] = None
    salary_mid: Optional[float] = None
    salary_max: Optional[float] = None
    currency: Optional[str] = None
    comp_period: Optional[str] = None  # hour, day, week, month, year, unknown
    time_type: Optional[str] = None
    department: Optional[str] = None
    salary_source: Optional[str] = None  # metadata, content, jsonld, text, both, unknown


@dataclass
class AdapterJob:
    """A posting as returned by a source adapter."""

    provider: str
    tenant: str
    external_id: str
    title: str
    company: Optional[str] = None
    location: Optional[str] = None
    url: Optional[str] = None
    first_published: Optional[datetime] = None
    updated_at: Optional[datetime] = None  # source-reported
    requisition_id: Optional[str] = None
    content: Optional[str] = None
    raw_payload: Dict[str, Any] = field(default_factory=dict)
    features: PostingFeatures = field(default_factory=PostingFeatures)
    link_ok: bool = True
    redirect_loop: bool = False

    @property
    def key(self) -> CompositeKey:
        return CompositeKey(self.provider, self.tenant, self.external_id)

    def metadata(self) -> Dict[str, Any]:
        """Fields fingerprinted by the snapshot engine."""
        return {
            "title": self.title,
            "company": self.company,
            "location": self.location,
            "first_published": isoformat_or_none(self.first_published),
            "requisition_id": self.requisition_id,
        }


class SourceAdapter(ABC):
    """Fetches postings for one kind of source."""

    provider: str = "unknown"
    trackable: bool = False

    @abstractmethod
    def handles(self, url: str) -> bool:
        pass

    @abstractmethod
    def fetch(self, url: str) -> Optional[AdapterJob]:
        """Return the posting at ``url``, or None if it cannot be retrieved or parsed."""

    def composite_key(self, url: str) -> Optional[CompositeKey]:
        """Composite key derivable from the URL alone, without fetching."""
        return None
