"""Chunked concurrency runner.

Records are split into fixed-size chunks processed strictly in order. Inside
a chunk, at most ``concurrency_limit`` record operations are in flight; the
next group starts only after the previous one has settled. This keeps the
number of open connections and outstanding API calls bounded by one group
at a time, whatever the batch size.

Failure containment:
- A record operation that raises becomes a failed RecordOutcome for that
  record only.
- A chunk whose orchestration raises (e.g. the progress write) is logged and
  skipped; its records are not counted, so the final summary shows the gap.
"""

import asyncio
from typing import Awaitable, Callable, Iterable, Optional, Sequence, TypeVar

import structlog

from clarity.config import StageOptions
from clarity.pipeline.models import ChunkResult, FaultKind, RecordOutcome, RunSummary

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RecordOperation = Callable[[T], Awaitable["RecordOutcome | bool"]]
ProgressCallback = Callable[[int, int, int], Awaitable[None]]


def partition(items: Sequence[T], size: int) -> list[Sequence[T]]:
    """Split into ordered slices of at most ``size`` items."""
    if size <= 0:
        raise ValueError(f"Partition size must be positive, got {size}")
    return [items[i:i + size] for i in range(0, len(items), size)]


def _record_id(record, fallback: int) -> int | str:
    return getattr(record, "id", fallback)


async def _settle(operation: RecordOperation, record, position: int) -> RecordOutcome:
    """Run one record operation, converting any failure into an outcome."""
    record_id = _record_id(record, position)
    try:
        result = await operation(record)
    except Exception as e:
        logger.warning(
            "record_operation_failed",
            record_id=record_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return RecordOutcome(
            record_id=record_id,
            fault=FaultKind.RECORD,
            error=f"{type(e).__name__}: {e}",
        )

    if isinstance(result, RecordOutcome):
        return result
    return RecordOutcome(record_id=record_id, succeeded=bool(result))


async def _run_chunk(
    index: int,
    chunk: Sequence[T],
    operation: RecordOperation,
    concurrency_limit: int,
    offset: int,
) -> ChunkResult:
    outcomes: list[RecordOutcome] = []
    for group_start in range(0, len(chunk), concurrency_limit):
        group = chunk[group_start:group_start + concurrency_limit]
        settled = await asyncio.gather(*(
            _settle(operation, record, offset + group_start + i)
            for i, record in enumerate(group)
        ))
        outcomes.extend(settled)

    return ChunkResult(
        index=index,
        processed=len(chunk),
        succeeded=sum(1 for o in outcomes if o.succeeded),
        failed=sum(1 for o in outcomes if o.failed),
    )


async def run_chunked(
    records: Iterable[T],
    operation: RecordOperation,
    options: Optional[StageOptions] = None,
    on_progress: Optional[ProgressCallback] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> RunSummary:
    """Apply ``operation`` to every record, chunk by chunk.

    Args:
        records: Records in processing order.
        operation: Async per-record operation returning a RecordOutcome
            (or a bool meaning "succeeded").
        options: Chunk size, concurrency limit and inter-chunk pause.
        on_progress: Awaited after each chunk with
            ``(processed, succeeded, total)``. If it raises, the chunk is
            treated as a chunk-level fault.
        sleep: Pause implementation (injectable for tests).

    Returns:
        RunSummary with totals and one ChunkResult per chunk.
    """
    options = options or StageOptions()
    records = list(records)
    summary = RunSummary(total=len(records))
    chunks = partition(records, options.chunk_size)

    logger.info(
        "chunked_run_start",
        total=summary.total,
        chunks=len(chunks),
        chunk_size=options.chunk_size,
        concurrency_limit=options.concurrency_limit,
    )

    for index, chunk in enumerate(chunks):
        try:
            result = await _run_chunk(
                index,
                chunk,
                operation,
                options.concurrency_limit,
                offset=index * options.chunk_size,
            )
            processed = summary.processed + result.processed
            succeeded = summary.succeeded + result.succeeded
            if on_progress is not None:
                await on_progress(processed, succeeded, summary.total)

        except Exception as e:
            logger.exception(
                "chunk_failed",
                chunk=index + 1,
                chunks=len(chunks),
                size=len(chunk),
                error=str(e),
            )
            summary.chunks.append(ChunkResult(
                index=index,
                fault=FaultKind.CHUNK,
                error=str(e),
            ))

        else:
            summary.processed = processed
            summary.succeeded = succeeded
            summary.failed += result.failed
            summary.chunks.append(result)
            logger.info(
                "chunk_complete",
                chunk=index + 1,
                chunks=len(chunks),
                succeeded=result.succeeded,
                size=result.processed,
                failed=result.failed,
                progress=summary.progress,
            )

        if index < len(chunks) - 1 and options.inter_chunk_delay_ms:
            await sleep(options.inter_chunk_delay_seconds)

    logger.info(
        "chunked_run_complete",
        total=summary.total,
        processed=summary.processed,
        succeeded=summary.succeeded,
        failed=summary.failed,
        chunk_faults=len(summary.chunk_faults),
    )
    return summary
