"""Local file sink for harvested and enriched records."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable

from formatters import to_json_line, to_markdown
from models import Record

# Default; main reads the OUTPUT_DIR environment variable after loading .env.
OUTPUT_DIR = "output"
RAW_PREFIX = "raw"
PROCESSED_PREFIX = "processed"

LOGGER = logging.getLogger(__name__)


def output_paths(output_dir: str | Path, now: datetime) -> dict[str, Path]:
    """Return the raw/processed JSONL and markdown paths for one run.

    Files are keyed by the run timestamp so repeated runs never collide.
    """
    key = now.strftime("%y%m%d%H%M%S")
    base = Path(output_dir)
    return {
        "raw_jsonl": base / RAW_PREFIX / f"{RAW_PREFIX}_{key}.jsonl",
        "raw_markdown": base / RAW_PREFIX / f"{RAW_PREFIX}_{key}.md",
        "processed_jsonl": base / PROCESSED_PREFIX / f"{PROCESSED_PREFIX}_{key}.jsonl",
        "processed_markdown": base / PROCESSED_PREFIX / f"{PROCESSED_PREFIX}_{key}.md",
    }


def write_jsonl(path: str | Path, records: list[Record]) -> None:
    """Write records one JSON object per line, replacing any existing file."""
    _write_lines(Path(path), (to_json_line(record) for record in records))
    LOGGER.info("Wrote %s JSONL records to %s", len(records), path)


def write_markdown(path: str | Path, records: list[Record]) -> None:
    _write_lines(Path(path), (to_markdown(record) for record in records))
    LOGGER.info("Wrote %s markdown blocks to %s", len(records), path)


def _write_lines(path: Path, chunks: Iterable[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as fh:
        for chunk in chunks:
            fh.write(chunk)
