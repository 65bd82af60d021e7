import html
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlparse

from ..normalize import canonical_url, host_of, parse_timestamp
from .base import AdapterJob, CompositeKey, PostingFeatures, SourceAdapter
from .common import fetch_with_error_handling, logger

BOARD_HOSTS = {"boards.greenhouse.io", "job-boards.greenhouse.io"}
BOARDS_API = "https://boards-api.greenhouse.io/v1/boards/{tenant}/jobs/{job_id}?pay_transparency=true"


def parse_tenant_and_job(url: str) -> Optional[CompositeKey]:
    """Extract (tenant, job id) from a Greenhouse board URL.

    Supports ``/<tenant>/jobs/<id>`` paths and the embedded
    ``/embed/job_app?for=<tenant>&token=<id>`` form.
    """
    host = host_of(url)
    if host not in BOARD_HOSTS:
        return None
    parsed = urlparse(url)
    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) >= 3 and parts[1] == "jobs" and parts[2].isdigit():
        return CompositeKey("greenhouse", parts[0].lower(), parts[2])
    if parts[:2] == ["embed", "job_app"]:
        query = parse_qs(parsed.query)
        tenant = (query.get("for") or [None])[0]
        token = (query.get("token") or [None])[0]
        if tenant and token and token.isdigit():
            return CompositeKey("greenhouse", tenant.lower(), token)
    return None


def _time_type(payload: Dict[str, Any]) -> Optional[str]:
    for item in payload.get("metadata") or []:
        name = (item.get("name") or "").lower()
        if "time type" in name or "employment type" in name:
            value = item.get("value")
            if isinstance(value, list):
                value = ", ".join(str(v) for v in value)
            return str(value) if value else None
    return None


def _features(payload: Dict[str, Any]) -> PostingFeatures:
    features = PostingFeatures(time_type=_time_type(payload))
    departments = payload.get("departments") or []
    if departments:
        features.department = departments[0].get("name")

    ranges = payload.get("pay_input_ranges") or []
    if ranges:
        pay = ranges[0]
        if pay.get("min_cents") is not None:
            features.salary_min = pay["min_cents"] / 100
        if pay.get("max_cents") is not None:
            features.salary_max = pay["max_cents"] / 100
        if features.salary_min is not None and features.salary_max is not None:
            features.salary_mid = (features.salary_min + features.salary_max) / 2
        features.currency = pay.get("currency_type")
        features.salary_source = "metadata"
    else:
        features.salary_source = "unknown"
    return features


def job_from_payload(key: CompositeKey, payload: Dict[str, Any], url: Optional[str] = None) -> AdapterJob:
    """Map a boards-API job document onto an AdapterJob."""
    location = payload.get("location") or {}
    return AdapterJob(
        provider=key.provider,
        tenant=key.tenant,
        external_id=key.external_id,
        title=(payload.get("title") or "").strip(),
        company=payload.get("company_name") or key.tenant,
        location=location.get("name") if isinstance(location, dict) else location,
        url=payload.get("absolute_url") or url,
        first_published=parse_timestamp(payload.get("first_published")),
        updated_at=parse_timestamp(payload.get("updated_at")),
        requisition_id=payload.get("requisition_id"),
        content=html.unescape(payload.get("content") or ""),
        raw_payload=payload,
        features=_features(payload),
    )


class GreenhouseAdapter(SourceAdapter):
    """Greenhouse job boards, read through the public boards API."""

    provider = "greenhouse"
    trackable = True

    def __init__(self, timeout: int = 15):
        self.timeout = timeout

    def handles(self, url: str) -> bool:
        return host_of(url) in BOARD_HOSTS

    def composite_key(self, url: str) -> Optional[CompositeKey]:
        return parse_tenant_and_job(url)

    def fetch(self, url: str) -> Optional[AdapterJob]:
        key = parse_tenant_and_job(url)
        if key is None:
            logger.warning("Not a Greenhouse job URL", url=url)
            return None
        api_url = BOARDS_API.format(tenant=key.tenant, job_id=key.external_id)
        resp = fetch_with_error_handling(api_url, self.provider, timeout=self.timeout)
        if resp is None:
            return None
        try:
            payload = resp.json()
        except ValueError:
            logger.warning("Greenhouse response is not JSON", url=api_url)
            return None
        if not isinstance(payload, dict) or not payload.get("title"):
            logger.warning("Greenhouse response has no job title", url=api_url)
            return None
        return job_from_payload(key, payload, url=canonical_url(url))
