"""Provider contract for asynchronous LLM-answer scraping jobs.

A provider implements one vendor's three network phases (trigger, a single
status check, download) plus a pure transform of the downloaded payload.
The poll loop, timeout and failure bookkeeping live in the orchestrator.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Iterable, Mapping

import httpx

from citescrape.config import settings
from citescrape.exceptions import MalformedPayload, ProviderRejected
from citescrape.models.schemas import ModelResult, SearchSource, Source
from citescrape.services.env_safety import sanitize_ssl_keylogfile
from citescrape.tools.retry import CancellationToken, RetryPolicy, execute_with_retry
from citescrape.tools.web_utils import extract_domain


class JobStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class ScrapeProvider(ABC):
    name: str = ""
    max_concurrency: int = 1
    max_prompts_per_request: int = 1

    submit_policy: RetryPolicy = RetryPolicy()
    poll_policy: RetryPolicy = RetryPolicy()
    download_policy: RetryPolicy = RetryPolicy()

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self._http_client = http_client
        self._timeout = timeout if timeout is not None else settings.http_timeout_seconds

    @abstractmethod
    async def trigger_job(
        self,
        prompt: str,
        use_search: bool = False,
        country_code: str | None = None,
        *,
        cancel: CancellationToken | None = None,
    ) -> str | None:
        """Submit a prompt and return the provider's job id (None if it gave none)."""

    @abstractmethod
    async def check_status(
        self,
        job_id: str,
        *,
        cancel: CancellationToken | None = None,
    ) -> JobStatus:
        """Issue one status request for ``job_id``."""

    @abstractmethod
    async def download_job(
        self,
        job_id: str,
        *,
        cancel: CancellationToken | None = None,
    ) -> Any:
        """Download the raw payload of a finished job."""

    @abstractmethod
    def transform_response(self, raw: Any) -> ModelResult:
        """Map a raw payload to a ModelResult.

        Missing optional fields degrade to empty values; only a structurally
        absent payload raises ``MalformedPayload``.
        """

    def _request_kwargs(self) -> dict[str, Any]:
        return {}

    async def _send(
        self,
        method: str,
        url: str,
        policy: RetryPolicy,
        *,
        cancel: CancellationToken | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        request_kwargs = {**self._request_kwargs(), **kwargs}

        async def _do_request(client: httpx.AsyncClient) -> httpx.Response:
            return await execute_with_retry(
                lambda: client.request(method, url, **request_kwargs),
                policy,
                cancel=cancel,
            )

        if self._http_client is not None:
            return await _do_request(self._http_client)

        sanitize_ssl_keylogfile()
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await _do_request(client)

    def _ensure_success(self, response: httpx.Response, phase: str, policy: RetryPolicy) -> None:
        if response.is_success and response.status_code not in policy.retryable_status_codes:
            return
        raise ProviderRejected(
            f"[{self.name}] {phase} error: {response.status_code}",
            status_code=response.status_code,
        )

    @staticmethod
    def _json(response: httpx.Response, phase: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedPayload(f"{phase} returned invalid JSON: {exc}") from exc


# --- Shared payload builders ---

_MARKDOWN_IMAGE = re.compile(r"!\[([^\]]*)\]\([^)]+\)")
_IMAGE_LINE = re.compile(r"\n\s*Image\s*\n")
_EXTRA_NEWLINES = re.compile(r"\n{3,}")


def clean_answer(answer: str) -> str:
    """Strip markdown images and stray "Image" captions, collapse blank lines."""
    answer = _MARKDOWN_IMAGE.sub("", answer or "")
    answer = _IMAGE_LINE.sub("\n", answer)
    answer = _EXTRA_NEWLINES.sub("\n\n", answer)
    return answer.strip()


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def build_sources(
    citations: Iterable[Any],
    link_positions: Mapping[str, list[int]] | None = None,
) -> list[Source]:
    sources: list[Source] = []
    for citation in citations or []:
        if not isinstance(citation, Mapping):
            continue
        url = _text(citation.get("url")).strip()
        if not url:
            continue
        cited = citation.get("cited")
        sources.append(
            Source(
                url=url,
                title=_text(citation.get("title"))
                or _text(citation.get("description"))
                or _text(citation.get("text")),
                domain=extract_domain(url),
                cited=cited if isinstance(cited, bool) else None,
                positions=(link_positions or {}).get(url),
            )
        )
    return sources


def build_search_sources(entries: Iterable[Any]) -> list[SearchSource]:
    search_sources: list[SearchSource] = []
    for entry in entries or []:
        if not isinstance(entry, Mapping):
            continue
        url = _text(entry.get("url")).strip()
        snippet = _text(entry.get("snippet"))
        rank = entry.get("rank")
        search_sources.append(
            SearchSource(
                url=url,
                title=_text(entry.get("title")) or snippet,
                domain=extract_domain(url) if url else "",
                snippet=snippet or None,
                rank=rank if isinstance(rank, int) and not isinstance(rank, bool) else 0,
                date_published=_text(entry.get("date_published")) or None,
            )
        )
    return search_sources
