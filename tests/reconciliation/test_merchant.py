"""Tests for merchant normalization."""

import pytest

from budgetmate.services.merchant import normalize_merchant


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("COUNTDOWN AUCKLAND 123", "countdown"),
        ("EFTPOS Countdown", "countdown"),
        ("Countdown EFTPOS", "countdown"),
        ("Direct Debit Spark NZ", "spark nz"),
        ("VISA  New   World  ", "new world"),
        ("Pak n Save Wellington Central", "pak n save central"),
        ("BP Connect 4021", "bp connect"),
        ("Countdown", "countdown"),
    ],
)
def test_normalize_merchant(raw: str, expected: str) -> None:
    assert normalize_merchant(raw) == expected


def test_normalize_empty_string() -> None:
    assert normalize_merchant("") == ""
    assert normalize_merchant("   ") == ""


def test_prefix_must_be_a_separate_word() -> None:
    """GIVEN: A merchant starting with letters of a payment word
    WHEN: Normalizing
    THEN: Only whole payment words followed by whitespace are stripped"""
    assert normalize_merchant("Autobahn Cafe") == "autobahn cafe"
    assert normalize_merchant("DDS Dental") == "dds dental"


def test_location_at_end_is_kept() -> None:
    """Towns are only removed when surrounded by whitespace."""
    assert normalize_merchant("Dunedin") == "dunedin"
    assert normalize_merchant("Warehouse Dunedin") == "warehouse dunedin"


@pytest.mark.parametrize(
    "raw",
    [
        "EFTPOS ONLINE COUNTDOWN",
        "visa paywave countdown auckland hamilton 12 34",
        "Countdown EFTPOS 123",
        "  online  ",
        "dd dd dd",
        "Kmart Rotorua 55 Online",
        "",
    ],
)
def test_normalization_is_idempotent(raw: str) -> None:
    """GIVEN: Inputs where one pass exposes another strippable token
    WHEN: Normalizing twice
    THEN: The second pass changes nothing"""
    once = normalize_merchant(raw)
    assert normalize_merchant(once) == once


def test_stacked_payment_words_are_all_removed() -> None:
    assert normalize_merchant("EFTPOS ONLINE COUNTDOWN") == "countdown"
    assert normalize_merchant("Countdown EFTPOS 123") == "countdown"
