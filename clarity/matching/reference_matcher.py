"""Reference supplier matcher: exact key lookup, then fuzzy fallback.

The matcher holds the cached supplier snapshot in memory. Scoring is done
with rapidfuzz in the default executor so a chunk of concurrent matches does
not block the event loop.
"""

import asyncio
from typing import Optional, Sequence

import structlog
from rapidfuzz import fuzz, process

from clarity.storage.reference import SupplierRow

from .base import LocationHints, MatchResult
from .normalize import matching_key

logger = structlog.get_logger(__name__)

# Penalty applied when the supplier's state contradicts the payee's state
STATE_MISMATCH_PENALTY = 0.10


class ReferenceMatcher:
    """Matcher over an in-memory copy of the reference supplier table."""

    def __init__(self, suppliers: Sequence[SupplierRow], threshold: float = 0.85):
        self.threshold = threshold
        self._by_key: dict[str, SupplierRow] = {}
        for supplier in suppliers:
            key = matching_key(supplier.payee_name)
            if key:
                self._by_key.setdefault(key, supplier)
        self._keys = list(self._by_key)
        logger.info("reference_matcher_ready", suppliers=len(self._keys))

    async def match(self, name: str, hints: LocationHints) -> MatchResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.match_sync, name, hints)

    def match_sync(self, name: str, hints: Optional[LocationHints] = None) -> MatchResult:
        key = matching_key(name)
        if not key:
            return MatchResult(matched=False, method="none", reasoning="Empty name after normalization")

        supplier = self._by_key.get(key)
        if supplier is not None:
            return self._result(supplier, 1.0, "exact", "Normalized names are identical", hints)

        best = process.extractOne(
            key,
            self._keys,
            scorer=fuzz.token_sort_ratio,
            score_cutoff=self.threshold * 100,
        )
        if best is None:
            return MatchResult(
                matched=False,
                method="fuzzy",
                reasoning=f"No supplier scored above {self.threshold:.2f}",
            )

        choice, score, _ = best
        return self._result(
            self._by_key[choice],
            round(score / 100, 4),
            "fuzzy",
            f"token_sort_ratio {score:.1f} against '{choice}'",
            hints,
        )

    def _result(
        self,
        supplier: SupplierRow,
        confidence: float,
        method: str,
        reasoning: str,
        hints: Optional[LocationHints],
    ) -> MatchResult:
        state = (hints or {}).get("state")
        if state and supplier.state:
            if state.strip().upper() == supplier.state.strip().upper():
                reasoning += f"; state {supplier.state} agrees"
            else:
                confidence = max(0.0, confidence - STATE_MISMATCH_PENALTY)
                reasoning += f"; state {state} differs from supplier state {supplier.state}"

        if confidence < self.threshold:
            return MatchResult(
                matched=False,
                candidate_id=supplier.payee_id,
                candidate_name=supplier.payee_name,
                confidence=confidence,
                method=method,
                reasoning=reasoning,
            )

        return MatchResult(
            matched=True,
            candidate_id=supplier.payee_id,
            candidate_name=supplier.payee_name,
            confidence=confidence,
            method=method,
            reasoning=reasoning,
        )
