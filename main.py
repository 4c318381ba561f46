"""CiteScrape - LLM answer scraping

Simple CLI for scraping ChatGPT answers and resolving their citations.
"""

import argparse
import asyncio
import signal
import sys

import citescrape.services.logger  # noqa: F401  configures loguru sinks
from citescrape.citations.resolver import extract_sources_from_text
from citescrape.models.schemas import BatchOptions
from citescrape.scrapers.registry import create_orchestrator
from citescrape.tools.retry import CancellationToken


async def run_scrape(prompts: list[str], provider: str | None, use_search: bool, country: str | None) -> int:
    """Scrape every prompt and print the answers with their cited sources."""
    cancel = CancellationToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.cancel)
    except NotImplementedError:
        pass  # Windows event loops

    orchestrator = create_orchestrator(provider, cancel=cancel)
    print(f"Provider: {orchestrator.provider.name}")
    print("-" * 50)

    results = await orchestrator.scrape_batch(
        BatchOptions(prompts=prompts, use_search=use_search, country_iso_code=country)
    )

    for prompt, result in zip(prompts, results):
        print(f"\n[*] Prompt: {prompt}")
        if result is None:
            print("[!] Job failed")
            continue

        print(f"{'='*50}")
        print(result.answer)
        cited = extract_sources_from_text(result.answer, result.sources)
        print(f"\n[+] {len(cited)} cited of {len(result.sources)} sources:")
        for source in cited:
            positions = ", ".join(str(p) for p in source.positions or [])
            print(f"  [{positions or '-'}] {source.domain} - {source.url}")

    return 0 if any(result is not None for result in results) else 1


def main():
    parser = argparse.ArgumentParser(description="CiteScrape LLM answer scraper")
    parser.add_argument("--prompt", "-p", action="append", required=True, help="Prompt to scrape (repeatable)")
    parser.add_argument("--provider", choices=["oxylabs", "brightdata"], help="Scraper provider (default: from config)")
    parser.add_argument("--search", action="store_true", help="Ask the provider to enable web search")
    parser.add_argument("--country", help="ISO country code for geo-located answers")

    args = parser.parse_args()

    sys.exit(asyncio.run(run_scrape(args.prompt, args.provider, args.search, args.country)))


if __name__ == "__main__":
    main()
