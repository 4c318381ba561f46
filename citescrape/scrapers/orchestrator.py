from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from loguru import logger

from citescrape.config import settings
from citescrape.exceptions import (
    FailureKind,
    JobFailed,
    JobTimeout,
    MalformedPayload,
    ScrapeJobError,
    TransportFailure,
)
from citescrape.models.schemas import BatchOptions, ModelResult
from citescrape.scrapers.base import JobStatus, ScrapeProvider
from citescrape.services.logger import log_job_event
from citescrape.tools.async_utils import map_parallel
from citescrape.tools.retry import CancellationToken


class JobState(str, Enum):
    SUBMITTING = "submitting"
    POLLING = "polling"
    DOWNLOADING = "downloading"
    TRANSFORMED = "transformed"
    FAILED = "failed"


@dataclass(slots=True)
class JobOutcome:
    job_id: str | None
    state: JobState
    result: ModelResult | None = None
    failure: FailureKind | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.state == JobState.TRANSFORMED and self.result is not None


class ScrapeJobOrchestrator:
    """Drives one provider's submit -> poll -> download -> transform lifecycle.

    Phase failures become a FAILED ``JobOutcome`` so a batch keeps going when
    some jobs fail. ``MalformedPayload`` raised by ``transform`` propagates
    from ``run`` and ``complete``; the batch API records ``None`` instead.
    """

    def __init__(
        self,
        provider: ScrapeProvider,
        *,
        poll_interval: float | None = None,
        max_wait: float | None = None,
        cancel: CancellationToken | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.poll_interval = settings.job_poll_interval_seconds if poll_interval is None else poll_interval
        self.max_wait = settings.job_max_wait_seconds if max_wait is None else max_wait
        self.cancel = cancel or CancellationToken()
        self._clock = clock

    @property
    def max_concurrency(self) -> int:
        return self.provider.max_concurrency

    @property
    def max_prompts_per_request(self) -> int:
        return self.provider.max_prompts_per_request

    # --- Phases ---

    async def submit(
        self,
        prompt: str,
        use_search: bool = False,
        country_code: str | None = None,
    ) -> str | None:
        log_job_event(self.provider.name, None, JobState.SUBMITTING.value, "started")
        job_id = await self.provider.trigger_job(prompt, use_search, country_code, cancel=self.cancel)
        return job_id or None

    async def await_completion(self, job_id: str, *, started: float | None = None) -> None:
        """Poll until the job is ready.

        Raises ``JobTimeout`` once ``max_wait`` seconds have passed since
        ``started``, ``JobFailed`` when the provider reports failure, and
        ``ProviderRejected`` on a non-retryable status (no further polling).
        """
        started = self._clock() if started is None else started
        log_job_event(self.provider.name, job_id, JobState.POLLING.value, "started")

        while True:
            self.cancel.raise_if_cancelled()
            elapsed = self._clock() - started
            if elapsed >= self.max_wait:
                raise JobTimeout(f"[{self.provider.name}] Monitor timeout after {self.max_wait:.0f}s")

            try:
                status = await self.provider.check_status(job_id, cancel=self.cancel)
            except (TransportFailure, MalformedPayload) as exc:
                logger.warning(f"[{self.provider.name}] Monitor error for {job_id}: {exc}")
                status = JobStatus.PENDING

            if status == JobStatus.READY:
                return
            if status == JobStatus.FAILED:
                raise JobFailed(f"[{self.provider.name}] Job {job_id} reported failure")

            logger.debug(f"[{self.provider.name}] Job {job_id} pending after {elapsed:.1f}s")
            await self.cancel.sleep(self.poll_interval)

    async def monitor_job(self, job_id: str) -> bool:
        try:
            await self.await_completion(job_id)
        except ScrapeJobError as exc:
            logger.warning(f"[{self.provider.name}] Job {job_id} not ready: {exc}")
            return False
        return True

    async def fetch(self, job_id: str) -> Any:
        log_job_event(self.provider.name, job_id, JobState.DOWNLOADING.value, "started")
        return await self.provider.download_job(job_id, cancel=self.cancel)

    def transform(self, raw: Any) -> ModelResult:
        return self.provider.transform_response(raw)

    # --- Single job ---

    async def run(
        self,
        prompt: str,
        use_search: bool = False,
        country_code: str | None = None,
    ) -> JobOutcome:
        started = self._clock()
        try:
            job_id = await self.submit(prompt, use_search, country_code)
        except ScrapeJobError as exc:
            return self._failed(None, JobState.SUBMITTING, exc)
        if not job_id:
            return self._failed(None, JobState.SUBMITTING, JobFailed("Provider returned no job id"))
        return await self.complete(job_id, started=started)

    async def complete(self, job_id: str, *, started: float | None = None) -> JobOutcome:
        """Poll, download and transform an already submitted job."""
        phase = JobState.POLLING
        try:
            await self.await_completion(job_id, started=started)
            phase = JobState.DOWNLOADING
            raw = await self.fetch(job_id)
        except ScrapeJobError as exc:
            return self._failed(job_id, phase, exc)

        result = self.transform(raw)
        log_job_event(
            self.provider.name,
            job_id,
            JobState.TRANSFORMED.value,
            "completed",
            sources=len(result.sources),
        )
        return JobOutcome(job_id=job_id, state=JobState.TRANSFORMED, result=result)

    def _failed(self, job_id: str | None, phase: JobState, exc: ScrapeJobError) -> JobOutcome:
        log_job_event(
            self.provider.name,
            job_id,
            phase.value,
            JobState.FAILED.value,
            error=str(exc),
            failure=exc.kind.value,
        )
        return JobOutcome(
            job_id=job_id,
            state=JobState.FAILED,
            failure=exc.kind,
            error=str(exc),
        )

    # --- Batch API ---

    async def trigger_batch(self, options: BatchOptions) -> list[str | None]:
        async def trigger_one(prompt: str, _index: int) -> str | None:
            try:
                return await self.submit(prompt, options.use_search, options.country_iso_code)
            except ScrapeJobError as exc:
                logger.error(f"[{self.provider.name}] Trigger failed: {exc}")
                return None

        job_ids = await map_parallel(options.prompts, self.max_concurrency, trigger_one)
        triggered = sum(1 for job_id in job_ids if job_id)
        logger.info(f"[{self.provider.name}] Triggered {triggered} jobs for {len(options.prompts)} prompts")
        return job_ids

    async def download_snapshots(self, job_ids: list[str | None]) -> list[ModelResult | None]:
        results: list[ModelResult | None] = []
        for job_id in job_ids:
            if not job_id:
                logger.error(f"[{self.provider.name}] No job ID provided")
                results.append(None)
                continue
            try:
                outcome = await self.complete(job_id)
            except MalformedPayload as exc:
                logger.error(f"[{self.provider.name}] Could not transform snapshot {job_id}: {exc}")
                results.append(None)
                continue
            results.append(outcome.result if outcome.ok else None)
        return results

    async def scrape_batch(self, options: BatchOptions) -> list[ModelResult | None]:
        job_ids = await self.trigger_batch(options)
        return await self.download_snapshots(job_ids)
