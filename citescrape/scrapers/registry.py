from __future__ import annotations

import httpx

from citescrape.config import settings
from citescrape.scrapers.base import ScrapeProvider
from citescrape.scrapers.brightdata import BrightdataProvider
from citescrape.scrapers.oxylabs import OxylabsProvider
from citescrape.scrapers.orchestrator import ScrapeJobOrchestrator
from citescrape.tools.retry import CancellationToken

PROVIDERS: dict[str, type[ScrapeProvider]] = {
    "brightdata": BrightdataProvider,
    "oxylabs": OxylabsProvider,
}


def get_provider(
    name: str | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> ScrapeProvider:
    provider_name = (name or settings.chatgpt_scraper_provider or "oxylabs").lower().strip()
    provider_cls = PROVIDERS.get(provider_name)
    if provider_cls is None:
        raise ValueError(f"Unsupported CHATGPT_SCRAPER_PROVIDER: {provider_name}")
    return provider_cls(http_client=http_client)


def create_orchestrator(
    name: str | None = None,
    *,
    cancel: CancellationToken | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ScrapeJobOrchestrator:
    return ScrapeJobOrchestrator(get_provider(name, http_client=http_client), cancel=cancel)
