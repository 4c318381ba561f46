from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    TRANSPORT_FAILURE = "transport_failure"
    PROVIDER_REJECTED = "provider_rejected"
    TIMEOUT = "timeout"
    JOB_FAILED = "job_failed"
    CANCELLED = "cancelled"
    MALFORMED_PAYLOAD = "malformed_payload"


class CiteScrapeError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(CiteScrapeError):
    pass


class MissingCredentialsError(ConfigurationError):
    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        names = " and ".join(self.missing)
        noun = "variable is" if len(self.missing) == 1 else "variables are"
        super().__init__(f"{names} environment {noun} required")


class ScrapeJobError(CiteScrapeError):
    """A phase of a scrape job could not complete."""

    kind: FailureKind = FailureKind.JOB_FAILED


class TransportFailure(ScrapeJobError):
    kind = FailureKind.TRANSPORT_FAILURE


class NetworkExhausted(TransportFailure):
    """Every attempt raised before a response was obtained."""

    def __init__(self, attempts: int, last_error: BaseException | None):
        self.attempts = attempts
        self.last_error = last_error
        detail = str(last_error) if last_error else "Unknown error"
        super().__init__(f"Network request failed after {attempts} attempts: {detail}")


class ProviderRejected(ScrapeJobError):
    kind = FailureKind.PROVIDER_REJECTED

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class JobTimeout(ScrapeJobError):
    kind = FailureKind.TIMEOUT


class JobFailed(ScrapeJobError):
    kind = FailureKind.JOB_FAILED


class Cancelled(ScrapeJobError):
    kind = FailureKind.CANCELLED


class MalformedPayload(ScrapeJobError):
    kind = FailureKind.MALFORMED_PAYLOAD
