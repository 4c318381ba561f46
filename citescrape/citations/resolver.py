"""Resolve inline citation markers in an answer to provider sources.

Markers look like ``[3]`` or, after markdown escaping, ``\\[3\\]``. A number
is matched against each source's ``positions`` first; sources without
position metadata fall back to the older convention where ``[n]`` is
``sources[n - 1]``. Both payload shapes are still in circulation.
"""

from __future__ import annotations

import re
from typing import Iterable

from citescrape.models.schemas import SearchSource, Source

CITATION_PATTERN = re.compile(r"\\?\[(\d+)\\?\]")


def extract_inline_citations(text: str) -> list[int]:
    """Return the distinct positive citation numbers in ``text``, ascending."""
    if not text:
        return []
    numbers = {int(match.group(1)) for match in CITATION_PATTERN.finditer(text)}
    return sorted(n for n in numbers if n > 0)


def map_citations_to_sources(citation_numbers: Iterable[int], sources: list[Source]) -> list[Source]:
    """Map citation numbers to sources, deduplicated by URL.

    Numbers that match neither a ``positions`` entry nor a valid index are
    dropped.
    """
    result: list[Source] = []
    seen_urls: set[str] = set()

    for number in citation_numbers:
        with_position = next(
            (s for s in sources if s.positions is not None and number in s.positions),
            None,
        )
        if with_position is not None and with_position.url not in seen_urls:
            result.append(with_position)
            seen_urls.add(with_position.url)
            continue

        index = number - 1
        if 0 <= index < len(sources):
            source = sources[index]
            if source.url not in seen_urls:
                result.append(source)
                seen_urls.add(source.url)

    return result


def extract_sources_from_text(text: str, sources: list[Source]) -> list[Source]:
    return map_citations_to_sources(extract_inline_citations(text), sources)


def enrich_statement_with_citations(text: str, sources: list[Source]) -> dict:
    citation_numbers = extract_inline_citations(text)
    return {
        "text": text,
        "citation_numbers": citation_numbers,
        "sources_from_citations": map_citations_to_sources(citation_numbers, sources),
    }


def merge_sources(citations: list[Source], search_sources: list[SearchSource]) -> list[Source]:
    """Combine cited sources and search-step sources into one URL-unique list.

    Citations come first and keep their positions; search sources bring
    their rank, snippet and publish date.
    """
    merged: list[Source] = []
    seen_urls: set[str] = set()

    for citation in citations:
        if citation.url in seen_urls:
            continue
        merged.append(citation.model_copy(update={"cited": citation.cited or False}))
        seen_urls.add(citation.url)

    for search_source in search_sources:
        if not search_source.url or search_source.url in seen_urls:
            continue
        merged.append(
            Source(
                url=search_source.url,
                title=search_source.title,
                domain=search_source.domain,
                snippet=search_source.snippet,
                rank=search_source.rank,
                date_published=search_source.date_published,
            )
        )
        seen_urls.add(search_source.url)

    return merged
