"""Link sources to statements taken from an LLM answer.

Inline citations are used whenever a statement carries them. Otherwise each
source is scored on three signals: company name against the source domain
or title, statement words against the title, and statement words against
the search snippet.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from citescrape.citations.normalizers import normalize_for_matching, strip_accents
from citescrape.citations.resolver import extract_inline_citations, map_citations_to_sources
from citescrape.models.schemas import InfluencingSource, MatchScore, Source, StatementMatch

MIN_SIGNAL_SCORE = 0.1
MIN_WORD_LENGTH = 3

COMPANY_STOP_WORDS = frozenset(
    {
        "academia",
        "centro",
        "escuela",
        "english",
        "language",
        "school",
        "centre",
        "center",
        "de",
        "en",
        "para",
        "the",
        "and",
        "y",
        "la",
        "el",
        "los",
        "las",
    }
)

_DOMAIN_PREFIX = re.compile(r"^(www\.|m\.)", re.IGNORECASE)
_DOMAIN_SUFFIX = re.compile(r"\.(com|es|org|net|co|io|eu)(\.[a-z]{2})?$", re.IGNORECASE)


@dataclass(frozen=True)
class LinkingOptions:
    min_match_score: float = 0.3
    max_sources_per_statement: int = 5
    domain_match_weight: float = 0.5
    text_match_weight: float = 0.3
    snippet_match_weight: float = 0.2


DEFAULT_OPTIONS = LinkingOptions()


def normalize_text(text: str) -> str:
    text = strip_accents((text or "").lower())
    text = re.sub(r"[^a-z0-9\s]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def _words(text: str) -> set[str]:
    return {word for word in normalize_text(text).split(" ") if len(word) >= MIN_WORD_LENGTH}


def extract_brand_from_domain(domain: str) -> list[str]:
    """Brand candidates for a domain: www.kids-and-us.es gives kids-and-us and kids and us."""
    cleaned = _DOMAIN_SUFFIX.sub("", _DOMAIN_PREFIX.sub("", domain or ""))
    if not cleaned:
        return []

    brands = [cleaned.lower()]
    with_spaces = re.sub(r"([a-z])([A-Z])", r"\1 \2", cleaned)
    with_spaces = re.sub(r"[-_]", " ", with_spaces).lower()
    if with_spaces != brands[0]:
        brands.append(with_spaces)
    return brands


def word_overlap_score(text1: str, text2: str) -> float:
    """Jaccard similarity of the two texts' normalized word sets."""
    words1 = _words(text1)
    words2 = _words(text2)
    if not words1 or not words2:
        return 0.0
    return len(words1 & words2) / len(words1 | words2)


def company_domain_match(company_name: str, source: Source) -> float:
    normalized_company = normalize_text(company_name)
    compact_company = normalized_company.replace(" ", "")
    company_words = [w for w in normalized_company.split(" ") if len(w) >= MIN_WORD_LENGTH]

    for brand in extract_brand_from_domain(source.domain):
        if compact_company and brand == compact_company:
            return 1.0
        brand_words = [w for w in brand.split(" ") if w]
        matching = [w for w in company_words if any(bw in w or w in bw for bw in brand_words)]
        if matching:
            return len(matching) / max(len(company_words), len(brand_words))

    if source.title:
        title = normalize_text(source.title)
        if normalized_company and normalized_company in title:
            return 0.8
        matching = [w for w in company_words if w in title]
        if matching:
            return (len(matching) / len(company_words)) * 0.6

    return 0.0


def calculate_match_score(
    statement_text: str,
    company_name: str | None,
    source: Source,
    options: LinkingOptions = DEFAULT_OPTIONS,
) -> tuple[float, list[str]]:
    """Weighted score in [0, 1] plus the reasons that contributed.

    Only the signals a source can provide (title, snippet, company name)
    count toward the denominator.
    """
    reasons: list[str] = []
    total = 0.0
    applicable = 0.0

    if company_name is not None:
        applicable += options.domain_match_weight
        domain_score = company_domain_match(company_name, source)
        if domain_score > 0:
            total += domain_score * options.domain_match_weight
            reasons.append(f"company-domain match: {domain_score * 100:.0f}%")

    if source.title:
        applicable += options.text_match_weight
        title_score = word_overlap_score(statement_text, source.title)
        if title_score > MIN_SIGNAL_SCORE:
            total += title_score * options.text_match_weight
            reasons.append(f"title overlap: {title_score * 100:.0f}%")

    if source.snippet:
        applicable += options.snippet_match_weight
        snippet_score = word_overlap_score(statement_text, source.snippet)
        if snippet_score > MIN_SIGNAL_SCORE:
            total += snippet_score * options.snippet_match_weight
            reasons.append(f"snippet overlap: {snippet_score * 100:.0f}%")

    if applicable <= 0:
        return 0.0, reasons
    return min(total / applicable, 1.0), reasons


def link_sources_to_statement(
    statement_text: str,
    company_name: str | None,
    sources: list[Source],
    options: LinkingOptions = DEFAULT_OPTIONS,
) -> StatementMatch:
    citation_numbers = extract_inline_citations(statement_text)

    if citation_numbers:
        cited = map_citations_to_sources(citation_numbers, sources)
        scores = []
        for source in cited:
            numbers = [
                n
                for n in citation_numbers
                if (source.positions and n in source.positions)
                or (0 < n <= len(sources) and sources[n - 1].url == source.url)
            ]
            scores.append(
                MatchScore(
                    source_url=source.url,
                    score=1.0,
                    reasons=[f"inline citation [{n}]" for n in numbers],
                )
            )
        return StatementMatch(text=statement_text, supporting_sources=cited, match_scores=scores)

    scored = []
    for source in sources:
        score, reasons = calculate_match_score(statement_text, company_name, source, options)
        scored.append((source, score, reasons))
    scored.sort(key=lambda item: item[1], reverse=True)

    kept = [item for item in scored if item[1] >= options.min_match_score]
    kept = kept[: options.max_sources_per_statement]

    return StatementMatch(
        text=statement_text,
        supporting_sources=[source for source, _, _ in kept],
        match_scores=[
            MatchScore(source_url=source.url, score=score, reasons=reasons)
            for source, score, reasons in kept
        ],
    )


def company_name_variations(company_name: str) -> list[str]:
    """Full normalized name plus each non-stop-word token, e.g. britishcouncilcastellon, british, council, castellon."""
    variations = [normalize_for_matching(company_name)]
    for word in company_name.lower().split():
        if len(word) > 2 and normalize_for_matching(word) not in COMPANY_STOP_WORDS:
            variations.append(normalize_for_matching(word))

    unique: list[str] = []
    for variation in variations:
        if len(variation) >= MIN_WORD_LENGTH and variation not in unique:
            unique.append(variation)
    return unique


def find_sources_for_company(
    company_name: str,
    sources: list[Source],
    max_sources: int = 3,
) -> list[InfluencingSource]:
    variations = company_name_variations(company_name)
    matched: list[Source] = []
    seen_urls: set[str] = set()

    for source in sources:
        if source.url in seen_urls:
            continue
        haystacks = (
            normalize_for_matching(source.domain),
            normalize_for_matching(source.title),
            normalize_for_matching(source.url),
        )
        if any(variation in haystack for variation in variations for haystack in haystacks):
            matched.append(source)
            seen_urls.add(source.url)

    matched.sort(key=lambda s: (bool(s.positions), bool(s.cited)), reverse=True)

    return [
        InfluencingSource(
            url=source.url,
            domain=source.domain or "",
            title=source.title or None,
            positions=source.positions,
        )
        for source in matched[:max_sources]
    ]


def aggregate_sources_by_topic(statements: Iterable[StatementMatch]) -> dict[str, dict[str, list[Source]]]:
    topic_map: dict[str, dict[str, list[Source]]] = {}
    for statement in statements:
        subtopics = topic_map.setdefault(statement.inferred_topic, {})
        subtopics.setdefault(statement.inferred_subtopic, []).extend(statement.supporting_sources)
    return topic_map


def get_top_sources_for_topic(
    topic_map: dict[str, dict[str, list[Source]]],
    topic: str,
    subtopic: str | None = None,
    limit: int = 5,
) -> list[tuple[Source, int]]:
    """Most frequently linked sources for a topic (optionally one subtopic)."""
    subtopics = topic_map.get(topic)
    if subtopics is None:
        return []

    if subtopic is not None:
        groups = [subtopics[subtopic]] if subtopic in subtopics else []
    else:
        groups = list(subtopics.values())

    counts: dict[str, list] = {}
    for group in groups:
        for source in group:
            if source.url in counts:
                counts[source.url][1] += 1
            else:
                counts[source.url] = [source, 1]

    ranked = sorted(counts.values(), key=lambda item: item[1], reverse=True)
    return [(source, count) for source, count in ranked[:limit]]
