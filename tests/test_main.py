"""Tests for the CLI pipeline cycle (main.run)."""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import patch

import pytest

import main
from arxiv_feed import HarvestResult, HarvestState
from models import Record
from providers import EnrichError, EnrichErrorKind

_NOW = datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC)


def _record(record_id: int) -> Record:
    return Record(
        id=record_id,
        title=f"Paper {record_id}",
        summary="abstract",
        authors=("Alice",),
        published=datetime(2025, 1, 1, tzinfo=UTC),
        link=f"http://arxiv.org/abs/{record_id}",
    )


class _UpperProvider:
    def enrich(self, record: Record) -> Record:
        if record.id == 1:
            raise EnrichError(EnrichErrorKind.EMPTY_OUTPUT, record.id, "empty")
        return replace(record, summary=record.summary.upper())


def _harvest(records: list[Record], degraded: bool = False) -> HarvestResult:
    return HarvestResult(
        records=records,
        state=HarvestState.EXHAUSTED,
        pages_harvested=1 if records else 0,
        degraded=degraded,
    )


def test_run_writes_raw_and_processed_files(tmp_path: Path) -> None:
    records = [_record(0), _record(1), _record(2)]

    with patch("main.harvest", return_value=_harvest(records)), \
         patch("main.build_provider", return_value=_UpperProvider()):
        code = main.run(provider_name="openai", output_dir=str(tmp_path), now=_NOW)

    assert code == 0
    raw_lines = (tmp_path / "raw" / "raw_250102030405.jsonl").read_text(encoding="utf-8").splitlines()
    processed_lines = (
        (tmp_path / "processed" / "processed_250102030405.jsonl").read_text(encoding="utf-8").splitlines()
    )
    assert [json.loads(line)["id"] for line in raw_lines] == [0, 1, 2]
    assert [json.loads(line)["id"] for line in processed_lines] == [0, 2]
    assert all(json.loads(line)["summary"] == "ABSTRACT" for line in processed_lines)
    assert (tmp_path / "raw" / "raw_250102030405.md").exists()
    assert (tmp_path / "processed" / "processed_250102030405.md").exists()


def test_run_no_results_writes_nothing(tmp_path: Path) -> None:
    with patch("main.harvest", return_value=_harvest([])), \
         patch("main.build_provider") as mock_build:
        code = main.run(provider_name="openai", output_dir=str(tmp_path), now=_NOW)

    assert code == 0
    mock_build.assert_not_called()
    assert list(tmp_path.iterdir()) == []


def test_run_skip_enrich_only_writes_raw(tmp_path: Path) -> None:
    with patch("main.harvest", return_value=_harvest([_record(0)])), \
         patch("main.build_provider") as mock_build:
        main.run(provider_name="bedrock", output_dir=str(tmp_path), skip_enrich=True, now=_NOW)

    mock_build.assert_not_called()
    assert (tmp_path / "raw" / "raw_250102030405.jsonl").exists()
    assert not (tmp_path / "processed").exists()


def test_run_dry_run_makes_no_calls_or_writes(tmp_path: Path) -> None:
    with patch("main.harvest", return_value=_harvest([_record(0)])), \
         patch("main.build_provider") as mock_build:
        code = main.run(provider_name="openai", output_dir=str(tmp_path), dry_run=True, now=_NOW)

    assert code == 0
    mock_build.assert_not_called()
    assert list(tmp_path.iterdir()) == []


def test_run_degraded_harvest_continues_by_default(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    with patch("main.harvest", return_value=_harvest([_record(0)], degraded=True)), \
         caplog.at_level("WARNING"):
        code = main.run(provider_name="openai", output_dir=str(tmp_path), skip_enrich=True, now=_NOW)

    assert code == 0
    assert "results may be incomplete" in caplog.text
    assert (tmp_path / "raw" / "raw_250102030405.jsonl").exists()


def test_run_degraded_harvest_fails_in_strict_mode(tmp_path: Path) -> None:
    with patch("main.harvest", return_value=_harvest([_record(0)], degraded=True)):
        code = main.run(provider_name="openai", output_dir=str(tmp_path), strict=True, now=_NOW)

    assert code == 1
    assert list(tmp_path.iterdir()) == []


def test_parse_args_defaults() -> None:
    args = main.parse_args([])

    assert args.provider == "openai"
    assert args.skip_enrich is False
    assert args.dry_run is False
    assert args.strict is False
    assert args.output_dir is None


def test_parse_args_rejects_unknown_provider() -> None:
    with pytest.raises(SystemExit):
        main.parse_args(["--provider", "ollama"])


def test_run_enrichment_setup_failure_exits_non_zero_after_raw_files(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    with patch.dict("os.environ", {}, clear=True), \
         patch("main.harvest", return_value=_harvest([_record(0)])), \
         caplog.at_level("ERROR"):
        code = main.run(provider_name="openai", output_dir=str(tmp_path), now=_NOW)

    assert code == 1
    assert "Enrichment stage failed" in caplog.text
    assert "OPENAI_API_KEY" in caplog.text
    assert (tmp_path / "raw" / "raw_250102030405.jsonl").exists()
    assert not (tmp_path / "processed").exists()


def test_main_reads_output_dir_from_env_file(tmp_path: Path) -> None:
    env_path = tmp_path / "pipeline.env"
    env_path.write_text(f"OUTPUT_DIR={tmp_path / 'fromenv'}\n", encoding="utf-8")

    with patch.dict("os.environ", {}, clear=True), \
         patch("main.harvest", return_value=_harvest([_record(0)])):
        code = main.main(["--env-file", str(env_path), "--skip-enrich"])

    assert code == 0
    assert len(list((tmp_path / "fromenv" / "raw").glob("raw_*.jsonl"))) == 1


def test_main_invalid_configuration_exits_non_zero(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    with patch.dict("os.environ", {"NUM_ENTRIES": "fifty"}, clear=True), \
         patch("main.harvest") as mock_harvest, \
         caplog.at_level("ERROR"):
        code = main.main(["--output-dir", str(tmp_path), "--skip-enrich"])

    assert code == 1
    mock_harvest.assert_not_called()
    assert "Pipeline run failed" in caplog.text
    assert list(tmp_path.iterdir()) == []
