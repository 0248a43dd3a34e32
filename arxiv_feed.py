"""arXiv search API harvesting helpers."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum

import requests

from arxiv_parser import XmlDecodeError, decode_document, normalize_entry
from models import QueryParameters, RawDocument, Record

# Defaults; ARXIV_API_URL and ARXIV_TIMEOUT_SECONDS are read from the
# environment on each harvest so a .env file loaded after import applies.
ARXIV_API_URL = "https://export.arxiv.org/api/query/"
REQUEST_TIMEOUT_SECONDS = 30.0

LOGGER = logging.getLogger(__name__)


class HarvestState(Enum):
    FETCHING = "fetching"
    EXHAUSTED = "exhausted"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class HarvestResult:
    """Outcome of one harvest run.

    ``degraded`` is True when the run stopped on a page that failed to fetch or
    decode, as opposed to a well-formed feed with no entries. Both stop the loop
    the same way; the flag lets the caller decide whether that is an outage.
    """

    records: list[Record] = field(default_factory=list)
    state: HarvestState = HarvestState.DONE
    pages_harvested: int = 0
    degraded: bool = False


def load_query_parameters() -> QueryParameters:
    """Build QueryParameters from NUM_ENTRIES, NUM_PAGES, DATE_OFFSET and CATEGORIES.

    Unset variables fall back to QueryParameters.default().
    """
    defaults = QueryParameters.default()
    categories_raw = os.getenv("CATEGORIES")
    categories = tuple(categories_raw.split()) if categories_raw else defaults.categories

    return QueryParameters(
        categories=categories,
        date_offset=_int_from_env("DATE_OFFSET", defaults.date_offset, minimum=0),
        page_size=_int_from_env("NUM_ENTRIES", defaults.page_size, minimum=1),
        max_pages=_int_from_env("NUM_PAGES", defaults.max_pages, minimum=1),
    )


def _int_from_env(key: str, default: int, minimum: int) -> int:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {value}")
    return value


def _timeout_from_env() -> float:
    raw = os.getenv("ARXIV_TIMEOUT_SECONDS")
    if raw is None or not raw.strip():
        return REQUEST_TIMEOUT_SECONDS
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"ARXIV_TIMEOUT_SECONDS must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"ARXIV_TIMEOUT_SECONDS must be positive, got {value}")
    return value


def build_query_url(
    params: QueryParameters,
    now: datetime,
    start: int,
    base_url: str = ARXIV_API_URL,
) -> str:
    """Build the search URL for one page of results.

    The submission window is the whole UTC day ``date_offset + 1`` days before
    ``now`` up to the start of the UTC day ``date_offset`` days before ``now``.
    A naive ``now`` is taken as UTC.
    """
    now = now.replace(tzinfo=UTC) if now.tzinfo is None else now.astimezone(UTC)
    categories = "+OR+".join(f"cat:{category}" for category in params.categories)
    window_start = (now - timedelta(days=params.date_offset + 1)).strftime("%Y%m%d") + "0000"
    window_end = (now - timedelta(days=params.date_offset)).strftime("%Y%m%d") + "0000"

    return (
        f"{base_url}?search_query=%28{categories}%29"
        f"+AND+submittedDate:[{window_start}+TO+{window_end}]"
        f"&start={start}&max_results={params.page_size}"
    )


def fetch_page(url: str, timeout: float | None = None) -> str:
    """GET one page and return its body, or "" if it could not be retrieved."""
    if timeout is None:
        timeout = _timeout_from_env()
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        LOGGER.warning("arXiv fetch: request failed for url=%s: %s", url, exc)
        return ""

    try:
        return response.content.decode(response.encoding or "utf-8")
    except (UnicodeDecodeError, LookupError) as exc:
        LOGGER.warning("arXiv fetch: could not decode body for url=%s: %s", url, exc)
        return ""


def harvest(params: QueryParameters, now: datetime | None = None) -> HarvestResult:
    """Fetch, decode and normalize result pages until one comes back empty.

    Pages are processed strictly in order so record ids continue across page
    boundaries. An empty page ends the run even before ``max_pages`` is
    reached, which assumes the API returns pages without gaps.
    """
    if now is None:
        now = datetime.now(UTC)
    base_url = os.getenv("ARXIV_API_URL") or ARXIV_API_URL
    timeout = _timeout_from_env()

    records: list[Record] = []
    next_id = 0
    degraded = False
    state = HarvestState.FETCHING
    page = 0

    LOGGER.info("arXiv harvest: first query url=%s", build_query_url(params, now, 0, base_url))

    while state is HarvestState.FETCHING:
        if page >= params.max_pages:
            state = HarvestState.DONE
            break

        url = build_query_url(params, now, page * params.page_size, base_url)
        body = fetch_page(url, timeout=timeout)
        document, failed = _decode_page(body, page)

        page_records = [
            normalize_entry(entry, record_id)
            for record_id, entry in enumerate(document.entries, start=next_id)
        ]
        if not page_records:
            degraded = failed
            state = HarvestState.EXHAUSTED
            break

        next_id += len(page_records)
        records.extend(page_records)
        LOGGER.info("arXiv harvest: page=%s documents=%s", page, len(page_records))
        page += 1

    LOGGER.info(
        "arXiv harvest: state=%s pages=%s records=%s degraded=%s",
        state.value,
        page,
        len(records),
        degraded,
    )
    return HarvestResult(records=records, state=state, pages_harvested=page, degraded=degraded)


def _decode_page(body: str, page: int) -> tuple[RawDocument, bool]:
    """Return the decoded page and whether it failed to fetch or decode."""
    if not body:
        return RawDocument(), True

    try:
        return decode_document(body), False
    except XmlDecodeError as exc:
        LOGGER.warning("arXiv harvest: page=%s could not be decoded, treating as empty: %s", page, exc)
        return RawDocument(), True
