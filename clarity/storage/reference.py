"""
Reference supplier dataset.

The matcher works against a local cache of the supplier master list. A reload
clears the cache and bulk-inserts the new snapshot in batches, keeping one
row per case-insensitive name (lowest id wins, as in the upstream export).
"""

import csv
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.orm import sessionmaker

from clarity.models import utcnow

from .tables import CachedSupplier

logger = structlog.get_logger(__name__)

RELOAD_BATCH_SIZE = 1000


@dataclass(frozen=True)
class SupplierRow:
    """One supplier of the reference snapshot."""

    payee_id: str
    payee_name: str
    payment_method: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None


@dataclass
class ReloadResult:
    previous_count: int
    loaded: int
    skipped: int

    @property
    def change(self) -> int:
        return self.loaded - self.previous_count


def read_supplier_csv(path: Path) -> Iterator[SupplierRow]:
    """Read ``id,name[,payment_method,city,state]`` rows from a CSV export."""
    with open(path, "r", encoding="utf-8", newline="") as f:
        for row in csv.DictReader(f):
            yield SupplierRow(
                payee_id=(row.get("id") or "").strip(),
                payee_name=(row.get("name") or "").strip(),
                payment_method=(row.get("payment_method") or "").strip() or None,
                city=(row.get("city") or "").strip() or None,
                state=(row.get("state") or "").strip() or None,
            )


def dedupe_suppliers(rows: Iterable[SupplierRow]) -> tuple[list[SupplierRow], int]:
    """Drop blank names and keep the lowest id per lower-cased name."""
    by_name: dict[str, SupplierRow] = {}
    skipped = 0
    for row in rows:
        if not row.payee_id or not row.payee_name:
            skipped += 1
            continue
        key = row.payee_name.lower()
        current = by_name.get(key)
        if current is None:
            by_name[key] = row
            continue
        skipped += 1
        if _id_sort_key(row.payee_id) < _id_sort_key(current.payee_id):
            by_name[key] = row

    return sorted(by_name.values(), key=lambda r: r.payee_name), skipped


def _id_sort_key(payee_id: str) -> tuple[int, int | str]:
    return (0, int(payee_id)) if payee_id.isdigit() else (1, payee_id)


def reload_reference_suppliers(
    session_factory: sessionmaker,
    rows: Iterable[SupplierRow],
    batch_size: int = RELOAD_BATCH_SIZE,
) -> ReloadResult:
    """Replace the cached supplier table with a new snapshot."""
    suppliers, skipped = dedupe_suppliers(rows)

    with session_factory() as session:
        previous = session.query(func.count(CachedSupplier.payee_id)).scalar() or 0
        logger.info("supplier_reload_start", previous_count=previous, incoming=len(suppliers))

        session.query(CachedSupplier).delete(synchronize_session=False)

        now = utcnow()
        for start in range(0, len(suppliers), batch_size):
            chunk = suppliers[start:start + batch_size]
            session.bulk_insert_mappings(
                CachedSupplier,
                [
                    {
                        "payee_id": s.payee_id,
                        "payee_name": s.payee_name,
                        "payment_method_default": s.payment_method,
                        "city": s.city,
                        "state": s.state,
                        "created_at": now,
                    }
                    for s in chunk
                ],
            )
            logger.debug(
                "supplier_reload_progress",
                inserted=start + len(chunk),
                total=len(suppliers),
            )

        session.commit()

    result = ReloadResult(previous_count=previous, loaded=len(suppliers), skipped=skipped)
    logger.info(
        "supplier_reload_complete",
        loaded=result.loaded,
        skipped=result.skipped,
        change=result.change,
    )
    return result


def load_reference_suppliers(session_factory: sessionmaker) -> list[SupplierRow]:
    """Read the cached supplier table for in-memory matching."""
    with session_factory() as session:
        rows = session.query(CachedSupplier).order_by(CachedSupplier.payee_name).all()
        return [
            SupplierRow(
                payee_id=r.payee_id,
                payee_name=r.payee_name,
                payment_method=r.payment_method_default,
                city=r.city,
                state=r.state,
            )
            for r in rows
        ]
