"""Keyword classifier for payee type.

Rule order: government markers, then business markers, then person-shaped
names. Anything else is Unknown with low confidence.
"""

import re

from clarity.models import PayeeType

from .base import ClassificationResult
from .normalize import BUSINESS_SUFFIXES, normalize_name

GOVERNMENT_MARKERS = (
    "CITY OF", "COUNTY OF", "STATE OF", "TOWN OF", "VILLAGE OF", "DEPARTMENT OF",
    "DEPT OF", "INTERNAL REVENUE", "IRS", "TREASURER", "TAX COLLECTOR",
    "SCHOOL DISTRICT", "MUNICIPAL", "UNITED STATES",
)

BUSINESS_MARKERS = frozenset(BUSINESS_SUFFIXES | {
    "SERVICES", "SUPPLY", "SOLUTIONS", "SYSTEMS", "TECHNOLOGIES", "ENTERPRISES",
    "INDUSTRIES", "ASSOCIATES", "PARTNERS", "BANK", "INSURANCE", "HOSPITAL",
    "CLINIC", "UNIVERSITY", "FOUNDATION", "TRUST", "&",
})

_PERSON_TOKEN = re.compile(r"^[A-Z][A-Z'\-]*$")


class KeywordClassifier:
    """Classifier capability backed by keyword rules."""

    async def classify(self, name: str) -> ClassificationResult:
        return classify_name(name)


def classify_name(name: str) -> ClassificationResult:
    normalized = normalize_name(name)
    if not normalized:
        return ClassificationResult(
            payee_type=PayeeType.UNKNOWN, confidence=0.0, reasoning="Empty name"
        )

    padded = f" {normalized} "
    for marker in GOVERNMENT_MARKERS:
        if f" {marker} " in padded:
            return ClassificationResult(
                payee_type=PayeeType.GOVERNMENT,
                confidence=0.95,
                reasoning=f"Contains government marker '{marker}'",
            )

    tokens = normalized.split()
    hits = [t for t in tokens if t in BUSINESS_MARKERS]
    if hits:
        return ClassificationResult(
            payee_type=PayeeType.BUSINESS,
            confidence=0.9 if len(hits) == 1 else 0.97,
            reasoning=f"Business markers: {', '.join(hits)}",
        )

    if 2 <= len(tokens) <= 4 and all(_PERSON_TOKEN.match(t) for t in tokens):
        return ClassificationResult(
            payee_type=PayeeType.INDIVIDUAL,
            confidence=0.75,
            reasoning="Short alphabetic name without business markers",
        )

    return ClassificationResult(
        payee_type=PayeeType.UNKNOWN,
        confidence=0.3,
        reasoning="No classification rule applied",
    )
