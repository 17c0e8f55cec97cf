"""Payee name normalization shared by classification and matching."""

import re

_DISALLOWED = re.compile(r"[^A-Z0-9&' \-]")
_WHITESPACE = re.compile(r"\s+")

# Legal-entity suffixes ignored when comparing names
BUSINESS_SUFFIXES = frozenset({
    "LLC", "INC", "INCORPORATED", "CORP", "CORPORATION", "CO", "COMPANY",
    "LTD", "LIMITED", "LLP", "LP", "PLLC", "PC", "PA", "GROUP", "HOLDINGS",
})


def normalize_name(name: str) -> str:
    """Upper-case, strip punctuation (keeping & ' -) and collapse whitespace.

    >>> normalize_name("  Acme,  Supply Co. ")
    'ACME SUPPLY CO'
    """
    cleaned = _DISALLOWED.sub(" ", (name or "").upper().replace(".", ""))
    return _WHITESPACE.sub(" ", cleaned).strip()


def matching_key(name: str) -> str:
    """Comparison key: normalized, lower-cased, without trailing legal suffixes."""
    tokens = normalize_name(name).replace("-", " ").replace("'", "").split()
    while len(tokens) > 1 and tokens[-1] in BUSINESS_SUFFIXES:
        tokens.pop()
    return " ".join(tokens).lower()
