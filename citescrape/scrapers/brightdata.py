"""Brightdata ChatGPT scraper (dataset API).

1. Trigger: POST /datasets/v3/trigger -> snapshot_id
2. Monitor: GET /datasets/v3/progress/{snapshot_id} until ready
3. Download: GET /datasets/v3/snapshot/{snapshot_id}
"""

from __future__ import annotations

from typing import Any, Mapping

import httpx

from citescrape.config import settings
from citescrape.exceptions import MalformedPayload, ProviderRejected
from citescrape.models.schemas import ModelResult
from citescrape.scrapers.base import (
    JobStatus,
    ScrapeProvider,
    build_search_sources,
    build_sources,
    clean_answer,
)
from citescrape.services.env_safety import require_credentials
from citescrape.tools.retry import CancellationToken, RetryPolicy

API_BASE = "https://api.brightdata.com"
OUTPUT_FIELDS = (
    "url|prompt|answer_text|answer_text_markdown|citations|links_attached|"
    "search_sources|country|model|web_search_triggered|web_search_query|index"
)

READY_STATUSES = {"ready", "complete"}
FAILED_STATUSES = {"failed", "error"}


class BrightdataProvider(ScrapeProvider):
    name = "Brightdata"
    max_concurrency = 50
    max_prompts_per_request = 1

    submit_policy = RetryPolicy(
        max_retries=3,
        initial_delay=0.0,
        retryable_status_codes=frozenset({429, 500, 502, 503, 504}),
    )
    poll_policy = RetryPolicy(
        max_retries=4,
        initial_delay=1.0,
        retryable_status_codes=frozenset({408, 425, 429, 500, 502, 503, 504}),
    )
    download_policy = RetryPolicy(
        max_retries=5,
        initial_delay=2.0,
        retryable_status_codes=frozenset({202, 500, 502, 503, 504}),
    )

    def __init__(
        self,
        *,
        api_key: str | None = None,
        dataset_id: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        super().__init__(http_client=http_client, timeout=timeout)
        credentials = require_credentials(
            {"BRIGHTDATA_API_KEY": api_key if api_key is not None else settings.brightdata_api_key}
        )
        self._api_key = credentials["BRIGHTDATA_API_KEY"]
        self.dataset_id = dataset_id or settings.brightdata_dataset_id

    def _request_kwargs(self) -> dict[str, Any]:
        return {"headers": {"Authorization": f"Bearer {self._api_key}"}}

    async def trigger_job(
        self,
        prompt: str,
        use_search: bool = False,
        country_code: str | None = None,
        *,
        cancel: CancellationToken | None = None,
    ) -> str | None:
        body = {
            "custom_output_fields": OUTPUT_FIELDS,
            "input": [
                {
                    "url": "http://chatgpt.com/",
                    "prompt": prompt,
                    "web_search": use_search,
                    "country": country_code or "",
                    "index": 0,
                }
            ],
        }
        response = await self._send(
            "POST",
            f"{API_BASE}/datasets/v3/trigger",
            self.submit_policy,
            cancel=cancel,
            params={"dataset_id": self.dataset_id, "include_errors": "true"},
            json=body,
        )
        self._ensure_success(response, "Trigger", self.submit_policy)
        data = self._json(response, "Trigger")
        snapshot_id = data.get("snapshot_id") if isinstance(data, Mapping) else None
        return str(snapshot_id) if snapshot_id else None

    async def check_status(
        self,
        job_id: str,
        *,
        cancel: CancellationToken | None = None,
    ) -> JobStatus:
        response = await self._send(
            "GET",
            f"{API_BASE}/datasets/v3/progress/{job_id}",
            self.poll_policy,
            cancel=cancel,
        )
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
    ) -> list[Any]:
        response = await self._send(
            "GET",
            f"{API_BASE}/datasets/v3/snapshot/{job_id}",
            self.download_policy,
            cancel=cancel,
            params={"format": "json"},
        )
        self._ensure_success(response, "Download", self.download_policy)
        data = self._json(response, "Download")
        if not isinstance(data, list):
            raise MalformedPayload(f"[{self.name}] Download returned {type(data).__name__}, expected a list")
        return data

    def transform_response(self, raw: Any) -> ModelResult:
        if not isinstance(raw, list) or not raw or not isinstance(raw[0], Mapping):
            raise MalformedPayload(f"[{self.name}] Snapshot payload is empty")

        response = raw[0]
        answer = clean_answer(
            _str(response.get("answer_text_markdown")) or _str(response.get("answer_text"))
        )

        link_positions: dict[str, list[int]] = {}
        for link in _list(response.get("links_attached")):
            if not isinstance(link, Mapping):
                continue
            url = _str(link.get("url"))
            position = link.get("position")
            if url and position is not None:
                link_positions.setdefault(url, []).append(position)

        queries = response.get("web_search_query")
        if isinstance(queries, str):
            queries = [queries]

        return ModelResult(
            prompt=_str(response.get("prompt")),
            answer=answer,
            sources=build_sources(_list(response.get("citations")), link_positions),
            search_queries=[q for q in _list(queries) if isinstance(q, str) and q],
            search_sources=build_search_sources(_list(response.get("search_sources"))),
        )


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []
