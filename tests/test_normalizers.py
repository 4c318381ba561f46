from __future__ import annotations

import re

import pytest

from citescrape.citations.normalizers import (
    AliasRule,
    build_location_hints,
    normalize_company_name,
    normalize_for_matching,
    normalize_sources,
)
from citescrape.models.schemas import Source


def test_strips_trailing_location_hints_repeatedly():
    assert normalize_company_name("Kids&Us Madrid Aluche", location_hints=["Madrid", "Aluche"]) == "Kids&Us"


def test_location_match_ignores_case_and_accents():
    assert normalize_company_name("British Council Castellón", location_hints=["castellon"]) == "British Council"


def test_multi_word_hint_stripped_as_a_unit():
    assert (
        normalize_company_name("Helen Doron San Sebastián de los Reyes", location_hints=["San Sebastian de los Reyes"])
        == "Helen Doron"
    )


def test_never_strips_down_to_a_generic_word():
    assert normalize_company_name("Academy Madrid", location_hints=["Madrid"]) == "Academy Madrid"
    assert normalize_company_name("Escuela Inglés Madrid", location_hints=["Madrid"]) == "Escuela Inglés"


def test_hint_only_in_the_middle_is_kept():
    assert normalize_company_name("Madrid English Club", location_hints=["Madrid"]) == "Madrid English Club"


def test_alias_rule_takes_priority():
    rules = [AliasRule(canonical="Kids&Us", starts_with=("kidsus", "kidsandus"))]
    assert normalize_company_name("Kids and Us Aluche", location_hints=["Aluche"], alias_rules=rules) == "Kids&Us"
    assert normalize_company_name("KIDS&US", alias_rules=rules) == "Kids&Us"


def test_alias_pattern_rule():
    rules = [AliasRule(canonical="British Council", patterns=(re.compile(r"^britishcouncil"),))]
    assert normalize_company_name("The British Council", alias_rules=rules) == "The British Council"
    assert normalize_company_name("British Council Valencia", alias_rules=rules) == "British Council"


def test_whitespace_is_standardized_and_empty_input_returned():
    assert normalize_company_name("  Kids&Us   Madrid ") == "Kids&Us Madrid"
    assert normalize_company_name("") == ""
    assert normalize_company_name("   ") == "   "


@pytest.mark.parametrize(
    "name",
    ["Kids&Us", "British Council", "  Helen   Doron  ", "Academia Inglés", "Wall Street English"],
)
def test_normalization_is_idempotent(name):
    hints = ["Madrid", "Aluche"]
    once = normalize_company_name(name, location_hints=hints)
    assert normalize_company_name(once, location_hints=hints) == once


def test_build_location_hints_splits_recursively():
    hints = build_location_hints("Madrid – Aluche, Spain")
    assert hints[0] == "Madrid - Aluche, Spain"
    assert set(hints) == {"Madrid - Aluche, Spain", "Madrid - Aluche", "Spain", "Madrid", "Aluche, Spain", "Aluche"}
    assert build_location_hints(None) == []
    assert build_location_hints("  ") == []


def test_hints_from_place_field_feed_normalizer():
    hints = build_location_hints("Madrid - Aluche")
    assert normalize_company_name("Kids&Us Madrid Aluche", location_hints=hints) == "Kids&Us"


def test_normalize_for_matching():
    assert normalize_for_matching("Castellón de la Plana!") == "castellondelaplana"


def test_normalize_sources_recomputes_domain_without_mutation():
    original = [
        Source(url="https://www.Kidsandus.es/madrid", domain="wrong"),
        Source(url="", domain="www.example.org"),
        Source(url="", domain="Some Publisher"),
    ]
    normalized = normalize_sources(original)

    assert [s.domain for s in normalized] == ["kidsandus.es", "example.org", "Some Publisher"]
    assert original[0].domain == "wrong"
    assert normalize_sources(None) == []
