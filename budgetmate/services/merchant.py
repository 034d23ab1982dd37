"""Merchant name canonicalisation for duplicate matching."""

import re

PAYMENT_PREFIXES = (
    "eftpos",
    "online",
    "internet",
    "auto",
    "direct debit",
    "dd",
    "visa",
    "mastercard",
    "paywave",
)
PAYMENT_SUFFIXES = ("eftpos", "online", "internet", "auto", "visa", "mastercard", "paywave")

# NZ towns and regions that banks append to card merchant names
LOCATIONS = (
    "auckland",
    "wellington",
    "christchurch",
    "hamilton",
    "tauranga",
    "dunedin",
    "palmerston north",
    "hastings",
    "rotorua",
    "napier",
    "new plymouth",
    "whangarei",
    "invercargill",
    "nelson",
    "whanganui",
    "gisborne",
)

_PREFIX_RE = re.compile(rf"^({'|'.join(PAYMENT_PREFIXES)})\s+", re.IGNORECASE)
_SUFFIX_RE = re.compile(rf"\s+({'|'.join(PAYMENT_SUFFIXES)})$", re.IGNORECASE)
_LOCATION_RE = re.compile(rf"\s+({'|'.join(LOCATIONS)})\s+", re.IGNORECASE)
_STORE_NUMBER_RE = re.compile(r"\s+[0-9]+$")
_WHITESPACE_RE = re.compile(r"\s+")


def _normalize_once(value: str) -> str:
    value = value.lower().strip()
    value = _PREFIX_RE.sub("", value, count=1)
    value = _SUFFIX_RE.sub("", value, count=1)
    value = _LOCATION_RE.sub(" ", value, count=1)
    value = _STORE_NUMBER_RE.sub("", value, count=1)
    return _WHITESPACE_RE.sub(" ", value).strip()


def normalize_merchant(merchant: str) -> str:
    """Canonical merchant name: lowercase, no payment-method words, towns or store numbers.

    One pass can expose another strippable token (``"eftpos online countdown"``),
    so passes repeat until the value is stable. This makes the function idempotent.
    """
    current = merchant or ""
    while True:
        normalized = _normalize_once(current)
        if normalized == current:
            return normalized
        current = normalized
