from typing import Optional

from .normalize import host_of
from .sources.base import AdapterJob

NO_TITLE = "No job title found. This doesn't appear to be a job posting page."
NO_LOCATION_OR_SALARY = (
    "No job location or salary information found. This doesn't appear to be a job posting page."
)
INSUFFICIENT = (
    "Insufficient job information found. This doesn't appear to be a job posting page. "
    "Please provide a direct link to a job posting."
)
NOT_EXTRACTED = (
    "Unable to extract job information from this page. Please provide a direct link to a job posting."
)

MIN_COMPLETENESS = 30
MIN_COMPLETENESS_HOSTNAME_COMPANY = 40


def _is_non_empty_str(v) -> bool:
    return isinstance(v, str) and v.strip() != ""


def company_is_hostname(job: AdapterJob) -> bool:
    """True when the company name is just the page host, i.e. nothing was extracted."""
    host = host_of(job.url)
    if host is None:
        return False
    return job.company in (host, host.replace("www.", "", 1))


def completeness_score(job: AdapterJob) -> int:
    """Rough 0-100 measure of how much posting data was extracted."""
    f = job.features
    score = 0
    if _is_non_empty_str(job.title):
        score += 25
    if _is_non_empty_str(job.location):
        score += 20
    if f.salary_min or f.salary_max:
        score += 20
    if f.time_type:
        score += 10
    if f.currency:
        score += 10
    if f.department:
        score += 5
    if not company_is_hostname(job):
        score += 10
    return score


def validate_job_posting(job: AdapterJob) -> Optional[str]:
    """
    Returns a user-facing error message, or None if the page looks like a
    job posting. Only applied to postings from untrackable sources.
    """
    if not _is_non_empty_str(job.title):
        return NO_TITLE

    has_salary = bool(job.features.salary_min or job.features.salary_max)
    if not _is_non_empty_str(job.location) and not has_salary:
        return NO_LOCATION_OR_SALARY

    score = completeness_score(job)
    if score < MIN_COMPLETENESS:
        return INSUFFICIENT
    if company_is_hostname(job) and score < MIN_COMPLETENESS_HOSTNAME_COMPANY:
        return NOT_EXTRACTED
    return None
