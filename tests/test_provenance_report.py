"""
Provenance report CLI tests.
"""

import importlib.util
import json
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import REGULATOR, run_full_chain

SCRIPT = Path(__file__).parent.parent / "scripts" / "provenance_report.py"


@pytest.fixture
def report_module():
    spec = importlib.util.spec_from_file_location("provenance_report", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def run_report(module, *args):
    with patch("sys.argv", ["provenance_report.py", *args]):
        return module.main()


def test_text_report(service, db_path, report_module, capsys):
    _, _, _, batch = run_full_chain(service)

    assert run_report(report_module, batch.batch_id, "--db-path", db_path, "--verify") == 0
    out = capsys.readouterr().out
    assert f"Batch: {batch.batch_id}" in out
    assert "1. Collection - FarmersCoop" in out
    assert "location: 27.0, 75.9" in out
    assert "Snapshot matches the live records" in out
    assert "RECALLED" not in out


def test_json_report_includes_recalls(service, db_path, report_module, capsys):
    _, _, _, batch = run_full_chain(service)
    service.initiate_recall(REGULATOR, batch.batch_id, "Mislabelled", "2024-12-01T00:00:00Z")

    assert run_report(report_module, batch.batch_id, "--db-path", db_path, "--json") == 0
    report = json.loads(capsys.readouterr().out)
    assert report["batch"]["batch_id"] == batch.batch_id
    assert [r["reason"] for r in report["recalls"]] == ["Mislabelled"]


def test_unknown_batch(service, db_path, report_module, capsys):
    assert run_report(report_module, "BATCH_missing", "--db-path", db_path) == 1
    assert "BATCH_NOT_FOUND" in capsys.readouterr().out


def test_missing_ledger_is_not_created(tmp_path, report_module, capsys):
    missing = tmp_path / "typo.db"

    assert run_report(report_module, "BATCH_000001_abcd1234", "--db-path", str(missing)) == 1
    assert "Ledger not found" in capsys.readouterr().out
    assert not missing.exists()
