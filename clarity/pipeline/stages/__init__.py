"""Enrichment stages - each stage owns one set of record fields.

Stage order:
1. classification   → cleaned_name, payee_type, classification_*
2. supplier_match   → supplier_*
3. external_lookup  → lookup_* (business payees, optional)
"""

from clarity.pipeline.stages.base import ChunkedStage, Stage
from clarity.pipeline.stages.classification import ClassificationStage
from clarity.pipeline.stages.supplier_match import SupplierMatchStage
from clarity.pipeline.stages.external_lookup import ExternalLookupStage

__all__ = [
    "Stage",
    "ChunkedStage",
    "ClassificationStage",
    "SupplierMatchStage",
    "ExternalLookupStage",
]
