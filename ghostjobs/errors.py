"""Exceptions raised by the analysis pipeline.

Each carries a user-facing ``message`` that the request handler (or the CLI)
can show as-is.
"""

from typing import Optional


class GhostJobError(Exception):
    """Base class for analysis failures surfaced to the caller."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AdmissionDenied(GhostJobError):
    """No tokens left or another request for the user is still in flight."""

    def __init__(self, tokens_remaining: int, reason: str):
        if reason == "no_tokens":
            message = "You have no analysis requests remaining. Please try again later."
        else:
            message = "Another analysis is already running for your account. Please try again later."
        super().__init__(message)
        self.tokens_remaining = tokens_remaining
        self.reason = reason


class FetchFailed(GhostJobError):
    """The source page could not be retrieved or parsed as a job posting."""

    DEFAULT_MESSAGE = (
        "Unable to access this job posting. The website may be blocking automated access, "
        "or the URL may be invalid. Please try using the 'Apply Now' link from the "
        "company's careers page instead."
    )

    def __init__(self, url: str, message: Optional[str] = None):
        super().__init__(message or self.DEFAULT_MESSAGE)
        self.url = url


class ValidationFailed(GhostJobError):
    """Fetched content does not look like a job posting."""


class PersistenceError(GhostJobError):
    """A storage write that the request cannot continue without failed."""
