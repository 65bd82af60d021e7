"""
Generic career-page adapter.

Reads schema.org JobPosting JSON-LD when the page has it and falls back to
title/location heuristics otherwise. Postings found this way are never
cached: the provider is "web" and the tenant is the page host.
"""

import json
import re
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup

from ..normalize import canonical_url, host_of, parse_timestamp
from .base import AdapterJob, PostingFeatures, SourceAdapter
from .common import fetch_with_error_handling, has_redirect_loop, logger

_PERIODS = {"HOUR": "hour", "DAY": "day", "WEEK": "week", "MONTH": "month", "YEAR": "year"}


def _find_job_posting(soup: BeautifulSoup) -> Optional[Dict[str, Any]]:
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except (json.JSONDecodeError, TypeError):
            continue
        if isinstance(data, dict):
            candidates = data.get("@graph", [data])
        elif isinstance(data, list):
            candidates = data
        else:
            continue
        for item in candidates:
            if isinstance(item, dict) and item.get("@type") == "JobPosting":
                return item
    return None


def _ld_location(posting: Dict[str, Any]) -> Optional[str]:
    loc = posting.get("jobLocation")
    if isinstance(loc, list):
        loc = loc[0] if loc else None
    if not isinstance(loc, dict):
        return None
    address = loc.get("address") or {}
    if isinstance(address, str):
        return address
    parts = [address.get(k) for k in ("addressLocality", "addressRegion", "addressCountry")]
    return ", ".join(p for p in parts if isinstance(p, str) and p) or None


def _ld_features(posting: Dict[str, Any]) -> PostingFeatures:
    features = PostingFeatures(salary_source="unknown")
    employment = posting.get("employmentType")
    if isinstance(employment, list):
        employment = ", ".join(employment)
    features.time_type = employment or None
    salary = posting.get("baseSalary")
    if isinstance(salary, dict):
        value = salary.get("value") or {}
        features.currency = salary.get("currency")
        if isinstance(value, dict):
            features.salary_min = value.get("minValue") if value.get("minValue") is not None else value.get("value")
            features.salary_max = value.get("maxValue")
            features.comp_period = _PERIODS.get(str(value.get("unitText", "")).upper())
        elif isinstance(value, (int, float)):
            features.salary_min = value
        if features.salary_min is not None or features.salary_max is not None:
            features.salary_source = "jsonld"
    return features


def parse_page(url: str, page_html: str) -> Optional[AdapterJob]:
    """Build an AdapterJob from a career page, or None if no title is found."""
    soup = BeautifulSoup(page_html, "html.parser")
    host = host_of(url) or ""
    canonical = canonical_url(url)

    posting = _find_job_posting(soup)
    if posting:
        org = posting.get("hiringOrganization")
        company = org.get("name") if isinstance(org, dict) else org
        return AdapterJob(
            provider="web",
            tenant=host,
            external_id=canonical,
            title=(posting.get("title") or "").strip(),
            company=company or host,
            location=_ld_location(posting),
            url=canonical,
            first_published=parse_timestamp(posting.get("datePosted")),
            content=posting.get("description") or str(soup.body or ""),
            raw_payload=posting,
            features=_ld_features(posting),
        )

    title = None
    h1 = soup.find("h1")
    if h1 and h1.get_text(strip=True):
        title = h1.get_text(strip=True)
    if not title:
        t = soup.find("title")
        if t and t.get_text(strip=True):
            title = t.get_text(strip=True)
            # Often includes company name suffix; trim after ' - ' if present
            if " - " in title:
                title = title.split(" - ")[0].strip()
    if not title:
        return None

    loc = None
    loc_el = soup.find(class_=re.compile("location"))
    if loc_el and loc_el.get_text(strip=True):
        loc = loc_el.get_text(strip=True)

    return AdapterJob(
        provider="web",
        tenant=host,
        external_id=canonical,
        title=title,
        company=host,
        location=loc,
        url=canonical,
        content=str(soup.body or soup),
        raw_payload={"url": url},
        features=PostingFeatures(salary_source="unknown"),
    )


class WebPageAdapter(SourceAdapter):
    """Any http(s) page; used when no trackable adapter claims the URL."""

    provider = "web"
    trackable = False

    def __init__(self, timeout: int = 15):
        self.timeout = timeout

    def handles(self, url: str) -> bool:
        return url.startswith(("http://", "https://")) and host_of(url) is not None

    def fetch(self, url: str) -> Optional[AdapterJob]:
        resp = fetch_with_error_handling(url, self.provider, timeout=self.timeout)
        if resp is None:
            return None
        job = parse_page(resp.url or url, resp.text)
        if job is None:
            logger.warning("No job posting found on page", url=url)
            return None
        job.link_ok = resp.ok
        job.redirect_loop = has_redirect_loop(resp)
        return job
