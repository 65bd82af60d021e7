"""Shared HTTP helpers for source adapters."""

from typing import Optional

import requests

from ..logger import get_logger
from ..retry import RetryError, exponential_backoff, should_retry_http_status

logger = get_logger()

USER_AGENT = "Mozilla/5.0 (compatible; ghostjobs/0.1; +https://github.com/ghostjobs)"


class TransientHTTPError(Exception):
    """Retryable HTTP status (rate limit, gateway errors)."""


@exponential_backoff(
    max_retries=2,
    base_delay=1.0,
    exceptions=(requests.exceptions.Timeout, requests.exceptions.ConnectionError, TransientHTTPError),
)
def _fetch_with_retry(url: str, timeout: int):
    """Fetch URL with automatic retry on transient errors."""
    resp = requests.get(url, timeout=timeout, headers={"User-Agent": USER_AGENT})
    if should_retry_http_status(resp.status_code):
        raise TransientHTTPError(f"HTTP {resp.status_code}")
    return resp


def fetch_with_error_handling(url: str, provider: str, timeout: int = 15) -> Optional[requests.Response]:
    """Fetch URL with standardized error handling and logging.

    Args:
        url: The URL to fetch
        provider: The provider name for logging (e.g., 'greenhouse', 'web')
        timeout: Per-request timeout in seconds

    Returns:
        Response object on success, None on any HTTP error, redirect loop,
        timeout or request failure
    """
    logger.record_fetch_attempt(provider)
    try:
        resp = _fetch_with_retry(url, timeout)
        resp.raise_for_status()
    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else "HTTPError"
        logger.record_error(f"HTTPError_{status}")
        if status == 404:
            logger.warning(f"{provider.capitalize()} URL not found", url=url, status=404)
        else:
            logger.error(f"{provider.capitalize()} request failed", url=url, status=status)
        return None
    except requests.exceptions.TooManyRedirects:
        logger.record_error("RedirectLoop")
        logger.warning(f"{provider.capitalize()} redirect loop", url=url)
        return None
    except RetryError as e:
        logger.record_error("RetryExhausted")
        logger.warning(f"{provider.capitalize()} request gave up after retries", url=url, error=str(e))
        return None
    except requests.exceptions.RequestException as e:
        logger.record_error("RequestException")
        logger.error(f"{provider.capitalize()} request error", url=url, error=str(e))
        return None

    logger.record_fetch_success(provider)
    return resp


def has_redirect_loop(resp: requests.Response) -> bool:
    """True when the redirect chain visits the same URL twice."""
    seen = set()
    for hop in list(resp.history) + [resp]:
        if hop.url in seen:
            return True
        seen.add(hop.url)
    return False
