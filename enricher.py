"""Concurrent summary enrichment across a batch of records."""

from __future__ import annotations

import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Callable

from models import Record
from providers import EnrichError, EnrichErrorKind, SummaryProvider

# Default pool size; the ENRICH_MAX_WORKERS environment variable overrides it per call.
ENRICH_MAX_WORKERS = 8

LOGGER = logging.getLogger(__name__)


def enrich_records(
    records: list[Record],
    provider: SummaryProvider,
    max_workers: int | None = None,
    on_failure: Callable[[EnrichError], None] | None = None,
) -> list[Record]:
    """Enrich every record concurrently and return the ones that succeeded.

    Each record is one task. A failed task is logged, reported to
    ``on_failure`` and dropped; it never raises out of this function. The
    result keeps the input order of the surviving records.

    Args:
        records: Batch to enrich.
        provider: Shared provider; it is only read from inside tasks.
        max_workers: Thread pool size, at least 1. Defaults to the
            ENRICH_MAX_WORKERS environment variable (else 8), capped
            to the batch size.
        on_failure: Optional callback invoked once per failed record.

    Raises:
        ValueError: if the pool size is below 1.
    """
    if max_workers is None:
        max_workers = _workers_from_env()
    if max_workers < 1:
        raise ValueError(f"max_workers must be >= 1, got {max_workers}")
    if not records:
        return []

    workers = min(max_workers, len(records))
    enriched: list[tuple[int, Record]] = []
    failed = 0

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="enrich") as executor:
        futures: dict[Future[Record], tuple[int, Record]] = {
            executor.submit(provider.enrich, record): (index, record)
            for index, record in enumerate(records)
        }

        for future in as_completed(futures):
            index, record = futures[future]
            try:
                enriched.append((index, future.result()))
            except EnrichError as exc:
                failed += 1
                _report_failure(exc, on_failure)
            except Exception as exc:  # any task crash is isolated to its record
                failed += 1
                _report_failure(
                    EnrichError(EnrichErrorKind.TASK_FAILURE, record.id, repr(exc)),
                    on_failure,
                )

    enriched.sort(key=lambda item: item[0])
    LOGGER.info(
        "Enrichment complete: total=%s enriched=%s failed=%s workers=%s",
        len(records),
        len(enriched),
        failed,
        workers,
    )
    return [record for _, record in enriched]


def _workers_from_env() -> int:
    raw = os.getenv("ENRICH_MAX_WORKERS")
    if raw is None or not raw.strip():
        return ENRICH_MAX_WORKERS
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"ENRICH_MAX_WORKERS must be an integer, got {raw!r}") from exc


def _report_failure(error: EnrichError, on_failure: Callable[[EnrichError], None] | None) -> None:
    LOGGER.warning("Enrichment failed for record id=%s: %s", error.record_id, error)
    if on_failure is not None:
        on_failure(error)
