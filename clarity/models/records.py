"""Payee record model - one row of an uploaded batch."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from .enums import ClassificationStatus, LookupStatus, PayeeType


class PayeeRecord(BaseModel):
    """A payee plus the enrichment outputs written by each stage."""

    id: int | str = Field(description="Opaque record id assigned by the store")
    batch_id: int | str
    original_name: str = Field(description="Name exactly as uploaded")
    cleaned_name: Optional[str] = Field(
        None, description="Normalized name written by classification"
    )
    city: Optional[str] = None
    state: Optional[str] = None

    # Classification
    payee_type: Optional[PayeeType] = None
    classification_confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    classification_reasoning: Optional[str] = None
    classification_status: ClassificationStatus = ClassificationStatus.PENDING

    # Supplier matching
    supplier_id: Optional[str] = None
    supplier_name: Optional[str] = None
    supplier_confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    supplier_match_reasoning: Optional[str] = None
    supplier_matched_at: Optional[datetime] = None

    # External lookup
    lookup_status: Optional[LookupStatus] = None
    lookup_reference: Optional[str] = None
    lookup_details: Optional[dict[str, Any]] = None

    @property
    def match_name(self) -> str:
        """Name used for matching: cleaned when available, else the original."""
        return self.cleaned_name or self.original_name

    @property
    def location_hints(self) -> dict[str, Optional[str]]:
        return {"city": self.city, "state": self.state}
