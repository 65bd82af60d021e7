"""
Tests for source adapters - URL parsing, payload mapping and HTTP handling.
"""

import json
import pytest
from datetime import datetime
from unittest.mock import Mock, patch

import requests

from ghostjobs.sources import SourceRegistry, is_trackable
from ghostjobs.sources.base import CompositeKey
from ghostjobs.sources.common import fetch_with_error_handling, has_redirect_loop
from ghostjobs.sources.greenhouse import GreenhouseAdapter, job_from_payload, parse_tenant_and_job
from ghostjobs.sources.web import WebPageAdapter, parse_page


GREENHOUSE_PAYLOAD = {
    "id": 4012345,
    "title": "Data Engineer ",
    "company_name": "Acme Corp",
    "absolute_url": "https://boards.greenhouse.io/acme/jobs/4012345",
    "location": {"name": "New York, NY"},
    "first_published": "2025-02-01T10:00:00-05:00",
    "updated_at": "2025-02-20T12:30:00Z",
    "requisition_id": "R-100",
    "content": "&lt;p&gt;Build pipelines in Python and SQL.&lt;/p&gt;",
    "departments": [{"id": 1, "name": "Data"}],
    "metadata": [{"name": "Time Type", "value": "Full time"}],
    "pay_input_ranges": [
        {"min_cents": 15000000, "max_cents": 18000000, "currency_type": "USD"}
    ],
}


class TestGreenhouseUrls:
    """Test Greenhouse URL recognition."""

    @pytest.mark.parametrize("url,expected", [
        ("https://boards.greenhouse.io/acme/jobs/123", CompositeKey("greenhouse", "acme", "123")),
        ("https://job-boards.greenhouse.io/Acme/jobs/123?gh_src=x", CompositeKey("greenhouse", "acme", "123")),
        ("https://boards.greenhouse.io/embed/job_app?for=acme&token=456", CompositeKey("greenhouse", "acme", "456")),
        ("https://boards.greenhouse.io/acme", None),
        ("https://boards.greenhouse.io/acme/jobs/not-a-number", None),
        ("https://example.com/acme/jobs/123", None),
    ])
    def test_parse_tenant_and_job(self, url, expected):
        assert parse_tenant_and_job(url) == expected

    def test_composite_key_str(self):
        assert str(CompositeKey("greenhouse", "acme", "1")) == "greenhouse:acme:1"


class TestGreenhousePayload:
    """Test mapping of the boards API document."""

    def test_job_from_payload(self):
        key = CompositeKey("greenhouse", "acme", "4012345")
        job = job_from_payload(key, GREENHOUSE_PAYLOAD)

        assert job.title == "Data Engineer"
        assert job.company == "Acme Corp"
        assert job.location == "New York, NY"
        assert job.first_published == datetime(2025, 2, 1, 15, 0, 0)
        assert job.updated_at == datetime(2025, 2, 20, 12, 30, 0)
        assert job.content == "<p>Build pipelines in Python and SQL.</p>"
        assert job.requisition_id == "R-100"

    def test_pay_ranges_become_features(self):
        job = job_from_payload(CompositeKey("greenhouse", "acme", "1"), GREENHOUSE_PAYLOAD)
        f = job.features

        assert f.salary_min == 150000.0
        assert f.salary_max == 180000.0
        assert f.salary_mid == 165000.0
        assert f.currency == "USD"
        assert f.salary_source == "metadata"
        assert f.department == "Data"
        assert f.time_type == "Full time"

    def test_no_pay_ranges(self):
        payload = {**GREENHOUSE_PAYLOAD, "pay_input_ranges": []}
        job = job_from_payload(CompositeKey("greenhouse", "acme", "1"), payload)
        assert job.features.salary_min is None
        assert job.features.salary_source == "unknown"

    def test_fetch_uses_boards_api(self):
        resp = Mock()
        resp.json.return_value = GREENHOUSE_PAYLOAD
        with patch("ghostjobs.sources.greenhouse.fetch_with_error_handling", return_value=resp) as fetch:
            job = GreenhouseAdapter().fetch("https://boards.greenhouse.io/acme/jobs/4012345")

        api_url = fetch.call_args[0][0]
        assert api_url.startswith("https://boards-api.greenhouse.io/v1/boards/acme/jobs/4012345")
        assert job.key == CompositeKey("greenhouse", "acme", "4012345")

    def test_fetch_failure_returns_none(self):
        with patch("ghostjobs.sources.greenhouse.fetch_with_error_handling", return_value=None):
            assert GreenhouseAdapter().fetch("https://boards.greenhouse.io/acme/jobs/1") is None

    def test_fetch_without_title_returns_none(self):
        resp = Mock()
        resp.json.return_value = {"id": 1}
        with patch("ghostjobs.sources.greenhouse.fetch_with_error_handling", return_value=resp):
            assert GreenhouseAdapter().fetch("https://boards.greenhouse.io/acme/jobs/1") is None


class TestWebPage:
    """Test generic career page parsing."""

    def test_json_ld_posting(self):
        posting = {
            "@context": "https://schema.org",
            "@type": "JobPosting",
            "title": "Platform Engineer",
            "datePosted": "2025-02-10",
            "description": "<p>Run Kubernetes clusters.</p>",
            "hiringOrganization": {"@type": "Organization", "name": "Example Inc"},
            "jobLocation": {"@type": "Place", "address": {"addressLocality": "Berlin", "addressCountry": "DE"}},
            "employmentType": "FULL_TIME",
            "baseSalary": {
                "@type": "MonetaryAmount",
                "currency": "EUR",
                "value": {"@type": "QuantitativeValue", "minValue": 70000, "maxValue": 90000, "unitText": "YEAR"},
            },
        }
        page = f'<html><head><script type="application/ld+json">{json.dumps(posting)}</script></head><body></body></html>'

        job = parse_page("https://www.example.com/jobs/42?ref=x", page)

        assert job.provider == "web"
        assert job.tenant == "www.example.com"
        assert job.external_id == "https://www.example.com/jobs/42"
        assert job.title == "Platform Engineer"
        assert job.company == "Example Inc"
        assert job.location == "Berlin, DE"
        assert job.first_published == datetime(2025, 2, 10)
        assert job.features.salary_min == 70000
        assert job.features.comp_period == "year"
        assert job.features.salary_source == "jsonld"

    def test_json_ld_graph(self):
        graph = {"@graph": [{"@type": "WebPage"}, {"@type": "JobPosting", "title": "Analyst"}]}
        page = f'<script type="application/ld+json">{json.dumps(graph)}</script>'
        assert parse_page("https://example.com/a", page).title == "Analyst"

    def test_heuristic_fallback(self):
        page = """
        <html><head><title>Designer - Example</title></head>
        <body><h1>Product Designer</h1><div class="job-location">Remote</div></body></html>
        """
        job = parse_page("https://example.com/careers/designer", page)

        assert job.title == "Product Designer"
        assert job.location == "Remote"
        assert job.company == "example.com"

    def test_title_tag_suffix_trimmed(self):
        page = "<html><head><title>Designer - Example</title></head><body></body></html>"
        assert parse_page("https://example.com/x", page).title == "Designer"

    def test_no_title_returns_none(self):
        assert parse_page("https://example.com/x", "<html><body><p>hi</p></body></html>") is None


class TestHttpHandling:
    """Test shared HTTP error handling."""

    def test_404_returns_none(self):
        resp = Mock(status_code=404)
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(response=resp)
        with patch("ghostjobs.sources.common.requests.get", return_value=resp):
            assert fetch_with_error_handling("https://example.com/gone", "web") is None

    def test_redirect_loop_returns_none(self):
        with patch(
            "ghostjobs.sources.common.requests.get",
            side_effect=requests.exceptions.TooManyRedirects("loop"),
        ):
            assert fetch_with_error_handling("https://example.com/loop", "web") is None

    def test_success_returns_response(self):
        resp = Mock(status_code=200)
        with patch("ghostjobs.sources.common.requests.get", return_value=resp):
            assert fetch_with_error_handling("https://example.com/ok", "web") is resp

    def test_has_redirect_loop(self):
        hops = [Mock(url="https://a.example/1"), Mock(url="https://a.example/2")]
        looping = Mock(url="https://a.example/1", history=hops)
        straight = Mock(url="https://a.example/3", history=hops)
        assert has_redirect_loop(looping)
        assert not has_redirect_loop(straight)

    def test_web_adapter_sets_link_flags(self):
        resp = Mock(url="https://example.com/jobs/1", text="<h1>Engineer</h1>", ok=True, history=[])
        with patch("ghostjobs.sources.web.fetch_with_error_handling", return_value=resp):
            job = WebPageAdapter().fetch("https://example.com/jobs/1")

        assert job.link_ok is True
        assert job.redirect_loop is False


class TestRegistry:
    """Test URL routing."""

    def test_greenhouse_is_trackable(self):
        registry = SourceRegistry.default()
        assert registry.composite_key("https://boards.greenhouse.io/acme/jobs/1") == CompositeKey(
            "greenhouse", "acme", "1"
        )
        assert isinstance(registry.adapter_for("https://boards.greenhouse.io/acme/jobs/1"), GreenhouseAdapter)

    def test_other_pages_are_not(self):
        registry = SourceRegistry.default()
        assert registry.composite_key("https://example.com/jobs/1") is None
        assert isinstance(registry.adapter_for("https://example.com/jobs/1"), WebPageAdapter)

    def test_unsupported_scheme(self):
        registry = SourceRegistry.default()
        assert registry.adapter_for("ftp://example.com/jobs") is None
        assert registry.fetch("ftp://example.com/jobs") is None

    def test_is_trackable(self):
        assert is_trackable("greenhouse")
        assert not is_trackable("web")
