from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from typing import Iterable, Pattern

from citescrape.models.schemas import Source
from citescrape.tools.web_utils import extract_domain

DOMAIN_LIKE_PATTERN = re.compile(r"^[a-z0-9.-]+$", re.IGNORECASE)

# A name is never stripped down to just one of these.
GENERIC_SINGLE_WORDS = frozenset(
    {
        "academia",
        "academy",
        "english",
        "language",
        "school",
        "centro",
        "center",
        "centre",
        "idiomas",
        "ingles",
        "escuela",
        "instituto",
        "colegio",
    }
)


@dataclass(frozen=True)
class AliasRule:
    canonical: str
    patterns: tuple[Pattern[str], ...] = field(default_factory=tuple)
    starts_with: tuple[str, ...] = field(default_factory=tuple)


def strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_for_matching(value: str) -> str:
    """Lowercase, drop accents and keep only ``[a-z0-9]``."""
    return re.sub(r"[^a-z0-9]", "", strip_accents((value or "").lower()))


def _tokenize(value: str) -> list[str]:
    value = re.sub(r"[()\[\]{}]", " ", value)
    value = re.sub(r"[,/|]", " ", value)
    value = re.sub(r"[-–—]", " ", value)
    return [part for part in value.split() if part]


def build_location_hints(place: str | None) -> list[str]:
    """Expand a place field into location hints.

    "Madrid - Aluche, Spain" yields the whole string, each comma/slash/pipe
    part and every hyphen-separated sub-part.
    """
    if not place:
        return []

    cleaned = re.sub(r"[–—]", "-", place).strip()
    if not cleaned:
        return []

    direct_splits = [part.strip() for part in re.split(r"[,/|]", cleaned) if part.strip()]
    hints: list[str] = []
    for value in [cleaned, *direct_splits]:
        if value not in hints:
            hints.append(value)

    queue = list(hints)
    for value in queue:
        hyphen_parts = [part.strip() for part in re.split(r"\s*-\s*", value) if part.strip()]
        if len(hyphen_parts) > 1:
            for part in hyphen_parts:
                if part not in hints:
                    hints.append(part)
                    queue.append(part)

    return hints


def _location_groups(hints: Iterable[str] | None) -> list[list[str]]:
    groups: list[list[str]] = []
    seen: set[str] = set()
    for hint in hints or []:
        if not hint:
            continue
        tokens = _tokenize(hint)
        if not tokens:
            continue
        key = "|".join(normalize_for_matching(t) for t in tokens)
        if not key.strip("|") or key in seen:
            continue
        seen.add(key)
        groups.append(tokens)
    # Longest hints first so "San Sebastian" wins over "Sebastian".
    return sorted(groups, key=len, reverse=True)


def _strip_suffix(tokens: list[str], candidate: list[str]) -> list[str] | None:
    if not candidate or len(candidate) > len(tokens):
        return None
    start = len(tokens) - len(candidate)
    for offset, hint_token in enumerate(candidate):
        if normalize_for_matching(tokens[start + offset]) != normalize_for_matching(hint_token):
            return None
    return tokens[:start]


def _is_single_generic_token(tokens: list[str]) -> bool:
    return len(tokens) == 1 and normalize_for_matching(tokens[0]) in GENERIC_SINGLE_WORDS


def _apply_alias_rules(tokens: list[str], alias_rules: Iterable[AliasRule] | None) -> str | None:
    rules = list(alias_rules or [])
    if not rules:
        return None
    normalized = normalize_for_matching("".join(tokens))
    if not normalized:
        return None
    for rule in rules:
        if any(pattern.search(normalized) for pattern in rule.patterns):
            return rule.canonical
        if any(normalized.startswith(prefix) for prefix in rule.starts_with):
            return rule.canonical
    return None


def normalize_company_name(
    name: str,
    *,
    location_hints: Iterable[str] | None = None,
    alias_rules: Iterable[AliasRule] | None = None,
) -> str:
    """Strip trailing location words from a company name and apply aliases.

    "Kids&Us Madrid Aluche" with hints ["Madrid", "Aluche"] becomes
    "Kids&Us". A matching alias rule wins over the stripped form.
    """
    if not name or not name.strip():
        return name

    standardized = " ".join(name.split())
    tokens = _tokenize(standardized)
    if not tokens:
        return standardized

    alias_rules = list(alias_rules or [])
    alias_from_original = _apply_alias_rules(tokens, alias_rules)

    groups = _location_groups(location_hints)
    if not groups:
        return alias_from_original or standardized

    working = tokens
    modified = False
    keep_stripping = True
    while keep_stripping:
        keep_stripping = False
        for group in groups:
            stripped = _strip_suffix(working, group)
            if not stripped or len(stripped) == len(working):
                continue
            if _is_single_generic_token(stripped):
                continue
            working = stripped
            modified = True
            keep_stripping = True
            break

    alias_resolved = _apply_alias_rules(working, alias_rules)
    if alias_resolved:
        return alias_resolved
    if not modified:
        return alias_from_original or standardized

    rebuilt = " ".join(working).strip()
    return rebuilt or alias_from_original or standardized


def _resolve_domain(source: Source) -> str:
    if source.url and source.url.strip():
        return extract_domain(source.url)
    domain = (source.domain or "").strip()
    if domain and DOMAIN_LIKE_PATTERN.match(domain):
        return extract_domain(domain)
    return domain


def normalize_sources(sources: Iterable[Source] | None) -> list[Source]:
    """Return copies of ``sources`` with ``domain`` recomputed from the URL."""
    if sources is None:
        return []
    return [source.model_copy(update={"domain": _resolve_domain(source)}) for source in sources]
