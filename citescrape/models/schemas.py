from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _clean_positions(value: Any) -> tuple[int, ...] | None:
    if value is None:
        return None
    if isinstance(value, (int, str)):
        value = [value]
    positions: list[int] = []
    for item in value:
        if isinstance(item, bool):
            continue
        try:
            number = int(item)
        except (TypeError, ValueError):
            continue
        if number > 0 and number not in positions:
            positions.append(number)
    return tuple(positions) if positions else None


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Sources ---


class Source(_Frozen):
    """A URL-keyed record reported by a provider.

    ``positions`` holds the 1-based citation numbers under which the source
    appears in the answer text. Sources merged in from the search step also
    carry ``snippet``, ``rank`` and ``date_published``.
    """

    url: str
    title: str = ""
    domain: str = ""
    cited: bool | None = None
    positions: tuple[int, ...] | None = None
    snippet: str | None = None
    rank: int | None = None
    date_published: str | None = None

    @field_validator("positions", mode="before")
    @classmethod
    def _validate_positions(cls, value: Any) -> tuple[int, ...] | None:
        return _clean_positions(value)


class SearchSource(_Frozen):
    url: str
    title: str = ""
    domain: str = ""
    snippet: str | None = None
    rank: int | None = None
    date_published: str | None = None


class InfluencingSource(_Frozen):
    url: str
    domain: str = ""
    title: str | None = None
    positions: tuple[int, ...] | None = None


# --- Results ---


class ModelResult(_Frozen):
    prompt: str = ""
    answer: str = ""
    sources: list[Source] = Field(default_factory=list)
    search_queries: list[str] = Field(default_factory=list)
    search_sources: list[SearchSource] = Field(default_factory=list)


class MatchScore(_Frozen):
    source_url: str
    score: float = Field(ge=0.0, le=1.0)
    reasons: list[str] = Field(default_factory=list)


class StatementMatch(_Frozen):
    text: str
    inferred_topic: str = ""
    inferred_subtopic: str = ""
    supporting_sources: list[Source] = Field(default_factory=list)
    match_scores: list[MatchScore] = Field(default_factory=list)


# --- Requests ---


class BatchOptions(_Frozen):
    prompts: list[str]
    use_search: bool = False
    country_iso_code: str | None = None
