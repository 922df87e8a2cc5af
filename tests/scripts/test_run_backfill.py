"""Tests for the run_backfill command-line entry point."""

import json

import pytest

from scripts.run_backfill import main


@pytest.fixture
def snapshot_file(tmp_path, documents):
    path = tmp_path / "export.json"
    path.write_text(json.dumps(documents), encoding="utf-8")
    return path


class TestRunBackfill:
    def test_dry_run_report(self, snapshot_file, capsys):
        assert main(["--snapshot", str(snapshot_file)]) == 0

        report = json.loads(capsys.readouterr().out)
        assert report["profile"] is None
        assert [r["task_type"] for r in report["runs"]] == ["summaries.backfill", "contracts.overdue"]
        assert all(r["failed"] == 0 for r in report["runs"])
        assert {s["supplierId"] for s in report["summaries"]} == {"sup-1"}
        assert len(report["summaries"]) == 3

    def test_skip_overdue(self, snapshot_file, capsys):
        assert main(["--snapshot", str(snapshot_file), "--skip-overdue"]) == 0
        report = json.loads(capsys.readouterr().out)
        assert [r["task_type"] for r in report["runs"]] == ["summaries.backfill"]

    def test_profile(self, snapshot_file, capsys):
        assert main(["--snapshot", str(snapshot_file), "--profile", "proportional"]) == 0
        assert json.loads(capsys.readouterr().out)["profile"] == "proportional"

    def test_missing_snapshot(self, tmp_path, capsys):
        assert main(["--snapshot", str(tmp_path / "nope.json")]) == 1
        assert "Snapshot not found" in capsys.readouterr().err

    def test_unknown_profile(self, snapshot_file, capsys):
        assert main(["--snapshot", str(snapshot_file), "--profile", "nope"]) == 1
        assert "Failed to load config" in capsys.readouterr().err

    def test_malformed_snapshot(self, tmp_path, capsys):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        assert main(["--snapshot", str(path)]) == 1
        assert "Failed to read snapshot" in capsys.readouterr().err

    def test_database_target(self, snapshot_file, tmp_path, capsys):
        from spend_kernel.db.engine import reset_engine

        url = f"sqlite:///{tmp_path / 'spend.db'}"
        try:
            assert main(["--snapshot", str(snapshot_file), "--database-url", url, "--create-tables", "--workers", "1"]) == 0
        finally:
            reset_engine()
        assert "summaries" not in json.loads(capsys.readouterr().out)
