"""Matching, classification and lookup capabilities."""

from .base import (
    ClassificationResult,
    Classifier,
    ExternalLookup,
    LocationHints,
    LookupResult,
    Matcher,
    MatcherUnavailableError,
    MatchResult,
)
from .classifier import KeywordClassifier, classify_name
from .normalize import matching_key, normalize_name
from .reference_matcher import ReferenceMatcher

__all__ = [
    # Contracts
    "Matcher",
    "Classifier",
    "ExternalLookup",
    "LocationHints",
    "MatchResult",
    "ClassificationResult",
    "LookupResult",
    "MatcherUnavailableError",
    # Implementations
    "ReferenceMatcher",
    "KeywordClassifier",
    "classify_name",
    "normalize_name",
    "matching_key",
]
