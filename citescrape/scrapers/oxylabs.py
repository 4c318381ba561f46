"""Oxylabs ChatGPT scraper (push-pull API).

1. Trigger: POST /v1/queries -> job id
2. Monitor: GET /v1/queries/{id} until status is 'done'
3. Download: GET /v1/queries/{id}/results
"""

from __future__ import annotations

from typing import Any, Mapping

import httpx

from citescrape.config import settings
from citescrape.exceptions import MalformedPayload, ProviderRejected
from citescrape.models.schemas import ModelResult
from citescrape.scrapers.base import JobStatus, ScrapeProvider, build_sources, clean_answer
from citescrape.services.env_safety import require_credentials
from citescrape.tools.retry import CancellationToken, RetryPolicy

API_BASE = "https://data.oxylabs.io/v1"
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504, 524, 612, 613})

READY_STATUSES = {"done"}
FAILED_STATUSES = {"faulted", "failed"}


class OxylabsProvider(ScrapeProvider):
    name = "Oxylabs"
    max_concurrency = 10
    max_prompts_per_request = 1

    submit_policy = RetryPolicy(max_retries=3, initial_delay=1.0, retryable_status_codes=RETRYABLE_STATUS_CODES)
    # The orchestrator's poll loop already repeats, so each status check retries once.
    poll_policy = RetryPolicy(max_retries=1, initial_delay=1.0, retryable_status_codes=RETRYABLE_STATUS_CODES)
    download_policy = submit_policy

    def __init__(
        self,
        *,
        username: str | None = None,
        password: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        super().__init__(http_client=http_client, timeout=timeout)
        credentials = require_credentials(
            {
                "OXYLABS_USERNAME": username if username is not None else settings.oxylabs_username,
                "OXYLABS_PASSWORD": password if password is not None else settings.oxylabs_password,
            }
        )
        self._auth = httpx.BasicAuth(credentials["OXYLABS_USERNAME"], credentials["OXYLABS_PASSWORD"])

    def _request_kwargs(self) -> dict[str, Any]:
        return {"auth": self._auth}

    async def trigger_job(
        self,
        prompt: str,
        use_search: bool = False,
        country_code: str | None = None,
        *,
        cancel: CancellationToken | None = None,
    ) -> str | None:
        # Oxylabs rejects search=false, so use_search is not forwarded.
        body: dict[str, Any] = {
            "source": "chatgpt",
            "prompt": prompt,
            "parse": True,
            "search": True,
        }
        if country_code:
            body["geo_location"] = country_code

        response = await self._send(
            "POST",
            f"{API_BASE}/queries",
            self.submit_policy,
            cancel=cancel,
            json=body,
        )
        self._ensure_success(response, "Trigger", self.submit_policy)
        data = self._json(response, "Trigger")
        job_id = data.get("id") if isinstance(data, Mapping) else None
        return str(job_id) if job_id else None

    async def check_status(
        self,
        job_id: str,
        *,
        cancel: CancellationToken | None = None,
    ) -> JobStatus:
        response = await self._send(
            "GET",
            f"{API_BASE}/queries/{job_id}",
            self.poll_policy,
            cancel=cancel,
        )
        # 204 = job not completed yet
        if response.status_code == 204:
            return JobStatus.PENDING
        if not response.is_success:
            if response.status_code in self.poll_policy.retryable_status_codes:
                return JobStatus.PENDING
            raise ProviderRejected(
                f"[{self.name}] Monitor error: {response.status_code}",
                status_code=response.status_code,
            )

        data = self._json(response, "Monitor")
        status = str(data.get("status") or "").lower() if isinstance(data, Mapping) else ""
        if status in READY_STATUSES:
            return JobStatus.READY
        if status in FAILED_STATUSES:
            return JobStatus.FAILED
        return JobStatus.PENDING

    async def download_job(
        self,
        job_id: str,
        *,
        cancel: CancellationToken | None = None,
    ) -> Any:
        response = await self._send(
            "GET",
            f"{API_BASE}/queries/{job_id}/results",
            self.download_policy,
            cancel=cancel,
        )
        self._ensure_success(response, "Download", self.download_policy)
        return self._json(response, "Download")

    def transform_response(self, raw: Any) -> ModelResult:
        results = raw.get("results") if isinstance(raw, Mapping) else None
        first = results[0] if isinstance(results, list) and results else None
        content = first.get("content") if isinstance(first, Mapping) else None
        if not isinstance(content, Mapping):
            raise MalformedPayload(f"[{self.name}] Results payload has no content")

        answer = clean_answer(_str(content.get("markdown_text")) or _str(content.get("response_text")))

        raw_citations = content.get("citations")
        citations = []
        for citation in raw_citations if isinstance(raw_citations, list) else []:
            if isinstance(citation, Mapping):
                citations.append(
                    {
                        "url": citation.get("url"),
                        "title": citation.get("title"),
                        "description": citation.get("description"),
                        "text": citation.get("text"),
                        "cited": citation.get("section") == "citations",
                    }
                )

        return ModelResult(
            prompt=_str(content.get("prompt")),
            answer=answer,
            sources=build_sources(citations),
            search_queries=[],
            search_sources=[],
        )


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""
