"""CLI entrypoint for the daily arXiv paper digest."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import UTC, datetime

from dotenv import load_dotenv

from arxiv_feed import harvest, load_query_parameters
from enricher import enrich_records
from file_sink import OUTPUT_DIR, output_paths, write_jsonl, write_markdown
from providers import EnrichError, build_provider


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(description="Harvest arXiv papers and summarize their abstracts")
    parser.add_argument(
        "--provider",
        choices=["openai", "bedrock"],
        default="openai",
        help="Summarization provider used for the enrichment stage",
    )
    parser.add_argument("--skip-enrich", action="store_true", help="Only harvest and write the raw files")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Harvest and log what would be written, without provider calls or file writes",
    )
    parser.add_argument("--output-dir", default=None, help="Directory for output files (default: OUTPUT_DIR or ./output)")
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with status 1 when harvesting stopped on a fetch or decode failure",
    )
    parser.add_argument("--env-file", default=None, help="Optional .env file to load before reading configuration")
    return parser.parse_args(argv)


def run(
    provider_name: str,
    output_dir: str,
    skip_enrich: bool = False,
    dry_run: bool = False,
    strict: bool = False,
    now: datetime | None = None,
) -> int:
    """Run one harvest and enrichment cycle and return the process exit code."""
    now = now or datetime.now(UTC)
    params = load_query_parameters()
    result = harvest(params, now=now)
    records = result.records
    logging.info("Harvested %s records (state=%s)", len(records), result.state.value)

    if result.degraded:
        logging.warning("Harvest stopped on a failed page; results may be incomplete")
        if strict:
            logging.error("Strict mode: aborting after degraded harvest")
            return 1

    if not records:
        logging.info("No results. Exiting.")
        return 0

    paths = output_paths(output_dir, now)

    if dry_run:
        logging.info("[dry-run] Would write %s raw records to %s", len(records), paths["raw_jsonl"])
        if not skip_enrich:
            logging.info("[dry-run] Would enrich %s records with provider=%s", len(records), provider_name)
        return 0

    write_jsonl(paths["raw_jsonl"], records)
    write_markdown(paths["raw_markdown"], records)

    if skip_enrich:
        return 0

    failures: list[EnrichError] = []
    try:
        provider = build_provider(provider_name)
        enriched = enrich_records(records, provider, on_failure=failures.append)
        write_jsonl(paths["processed_jsonl"], enriched)
        write_markdown(paths["processed_markdown"], enriched)
    except Exception as exc:  # raw files are already written; report and exit non-zero
        logging.exception("Enrichment stage failed with provider=%s: %s", provider_name, exc)
        return 1

    logging.info(
        "Run complete. harvested=%s enriched=%s failed=%s",
        len(records),
        len(enriched),
        len(failures),
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    """Initialize config and execute the pipeline."""
    args = parse_args(argv)
    load_dotenv(args.env_file)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    # Settings are read only after load_dotenv so values from the env file apply.
    output_dir = args.output_dir or os.getenv("OUTPUT_DIR") or OUTPUT_DIR
    try:
        return run(
            provider_name=args.provider,
            output_dir=output_dir,
            skip_enrich=args.skip_enrich,
            dry_run=args.dry_run,
            strict=args.strict,
        )
    except Exception as exc:  # invalid configuration or an unexpected harvest error
        logging.exception("Pipeline run failed: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
