"""Capability contracts consumed by the enrichment stages."""

from typing import Any, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from clarity.models import PayeeType


class MatcherUnavailableError(Exception):
    """Transient capability failure (timeout, rate limit, backend down).

    Callers treat it as "no result" for the one record involved.
    """


LocationHints = dict[str, Optional[str]]


class MatchResult(BaseModel):
    """Outcome of matching one payee name against the reference dataset."""

    matched: bool
    candidate_id: Optional[str] = Field(None, description="Reference supplier id")
    candidate_name: Optional[str] = Field(None, description="Reference supplier name")
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    method: str = Field(default="none", description="How the decision was made")
    reasoning: str = Field(default="")


class ClassificationResult(BaseModel):
    """Payee type decision for one name."""

    payee_type: PayeeType
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""


class LookupResult(BaseModel):
    """Outcome of an external enrichment lookup."""

    found: bool
    reference_id: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)


@runtime_checkable
class Matcher(Protocol):
    async def match(self, name: str, hints: LocationHints) -> MatchResult:
        ...


@runtime_checkable
class Classifier(Protocol):
    async def classify(self, name: str) -> ClassificationResult:
        ...


@runtime_checkable
class ExternalLookup(Protocol):
    async def lookup(self, name: str, hints: LocationHints) -> LookupResult:
        ...
