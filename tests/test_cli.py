"""Tests for the command-line viewer."""
import json

import pytest
from unittest.mock import patch

from src.cli import main

RECORDS = [
    {"_id": "w1", "trainNumber": 5, "compartmentNumber": 1, "wheelNumber": 1,
     "wheel_diameter": 640, "status": "NO FLAW", "timestamp": "2024-05-01T12:00:00Z",
     "image_path": "/uploads/w1.jpg", "name": "Depot check"},
    {"_id": "w2", "trainNumber": 5, "compartmentNumber": 1, "wheelNumber": 2,
     "wheel_diameter": 600, "status": "NO FLAW", "timestamp": "2024-05-01T12:00:00Z"},
    {"_id": "w3", "trainNumber": 5, "compartmentNumber": 2, "wheelNumber": 1,
     "wheel_diameter": 650, "status": "FLAW DETECTED", "timestamp": "2024-05-01T12:00:00Z"},
]


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("WHEEL_API_BASE_URL", raising=False)
    (tmp_path / "engine.yaml").write_text("display:\n  timezone: UTC\n")
    return tmp_path


@pytest.fixture
def snapshot(workdir):
    path = workdir / "reports.json"
    path.write_text(json.dumps(RECORDS))
    return str(path)


def run(*argv):
    return main(["--config", "engine.yaml", *argv])


class TestViews:
    """Tests for the read-only view commands."""

    def test_trains(self, snapshot, capsys):
        assert run("trains", "--snapshot", snapshot) == 0
        out = capsys.readouterr().out
        assert "Train 5" in out
        assert "2024-05-01" in out
        assert "3 wheel(s)" in out

    def test_trains_json(self, snapshot, capsys):
        assert run("trains", "--snapshot", snapshot, "--json") == 0
        data = json.loads(capsys.readouterr().out)

        assert data[0]["trainNumber"] == 5
        assert data[0]["needs_attention"] is True
        assert data[0]["recommendation"] == "For Repair/Replacement (Flaws and Wheel Wear)"

    def test_compartments(self, snapshot, capsys):
        assert run("compartments", "--snapshot", snapshot, "--train", "5", "--date", "2024-05-01") == 0
        lines = capsys.readouterr().out.strip().splitlines()

        assert len(lines) == 2
        assert "For Wheel Replacement (Excessive Wear)" in lines[0]
        assert "For Repair/Replacement (Surface Flaws)" in lines[1]

    def test_unknown_train_day_is_error(self, snapshot, capsys):
        assert run("compartments", "--snapshot", snapshot, "--train", "9", "--date", "2024-05-01") == 1
        assert "Error" in capsys.readouterr().err

    def test_wheels_json(self, snapshot, capsys):
        assert run("wheels", "--snapshot", snapshot, "--train", "5", "--date", "2024-05-01",
                   "--compartment", "1", "--json") == 0
        data = json.loads(capsys.readouterr().out)

        assert [w["wheelNumber"] for w in data] == [1, 2]
        assert data[1]["condition"] == "BAD"

    def test_summary(self, snapshot, capsys):
        assert run("summary", "--snapshot", snapshot) == 0
        out = capsys.readouterr().out

        assert "Train 5 - 2024-05-01" in out
        assert "FLAW DETECTED" in out
        assert "/uploads/w1.jpg" in out

    def test_summary_of_empty_snapshot(self, workdir, capsys):
        path = workdir / "empty.json"
        path.write_text("[]")

        assert run("summary", "--snapshot", str(path)) == 0
        assert "No reports." in capsys.readouterr().out

    def test_search(self, snapshot, capsys):
        assert run("search", "wheel 2", "--snapshot", snapshot, "--json") == 0
        data = json.loads(capsys.readouterr().out)
        assert [r["_id"] for r in data] == ["w2"]

    def test_search_flawed_only(self, snapshot, capsys):
        assert run("search", "", "--snapshot", snapshot, "--flawed", "--json") == 0
        data = json.loads(capsys.readouterr().out)
        assert [r["_id"] for r in data] == ["w3"]

    def test_search_by_condition(self, snapshot, capsys):
        assert run("search", "train 5", "--snapshot", snapshot, "--condition", "BAD", "--json") == 0
        data = json.loads(capsys.readouterr().out)
        assert [r["_id"] for r in data] == ["w2"]

    def test_search_filters_combine(self, snapshot, capsys):
        assert run("search", "", "--snapshot", snapshot, "--flawed", "--condition", "BAD") == 0
        assert "No matching reports." in capsys.readouterr().out

    def test_search_rejects_unknown_condition(self, snapshot):
        with pytest.raises(SystemExit):
            run("search", "", "--snapshot", snapshot, "--condition", "WORN")

    def test_search_dates_in_display_zone(self, workdir, capsys):
        """A late-evening UTC report lands on the next day in Tokyo, matching the trains view."""
        (workdir / "engine.yaml").write_text("display:\n  timezone: Asia/Tokyo\n")
        path = workdir / "late.json"
        path.write_text(json.dumps([{**RECORDS[0], "timestamp": "2024-05-01T20:00:00Z"}]))

        assert run("search", "", "--snapshot", str(path)) == 0
        assert capsys.readouterr().out.startswith("2024-05-02  T5 C1 W1")

        assert run("trains", "--snapshot", str(path), "--json") == 0
        assert json.loads(capsys.readouterr().out)[0]["date"] == "2024-05-02"

    def test_wrapped_snapshot(self, workdir, capsys):
        path = workdir / "wrapped.json"
        path.write_text(json.dumps({"data": RECORDS}))

        assert run("trains", "--snapshot", str(path), "--json") == 0
        assert len(json.loads(capsys.readouterr().out)) == 1


class TestEventReplay:

    def test_events_applied_in_order(self, snapshot, workdir, capsys):
        events = workdir / "events.jsonl"
        events.write_text("\n".join([
            json.dumps({"type": "deleted_report", "data": {"_id": "w3"}}),
            "{broken",
            json.dumps({"type": "report_updated", "data": {**RECORDS[1], "wheel_diameter": 700}}),
        ]))

        assert run("trains", "--snapshot", snapshot, "--events", str(events), "--json") == 0
        captured = capsys.readouterr()
        data = json.loads(captured.out)

        assert data[0]["needs_attention"] is False
        assert data[0]["wheel_count"] == 2
        assert "1 event(s) rejected" in captured.err


class TestErrors:

    def test_no_command(self, workdir):
        assert run() == 1

    def test_source_required(self, workdir, capsys):
        assert run("trains") == 1
        assert "--snapshot" in capsys.readouterr().err

    def test_malformed_snapshot(self, workdir, capsys):
        path = workdir / "bad.json"
        path.write_text(json.dumps([{"_id": "x"}]))

        assert run("trains", "--snapshot", str(path)) == 1
        assert "Error" in capsys.readouterr().err

    def test_missing_snapshot_file(self, workdir):
        assert run("trains", "--snapshot", "does-not-exist.json") == 1


class TestFetch:

    def test_fetch_writes_snapshot(self, workdir, capsys):
        with patch('src.cli.ReportsFetcher') as fetcher_cls:
            fetcher_cls.return_value.fetch_records.return_value = RECORDS
            assert run("fetch", "--output", "out/reports.json") == 0

        written = json.loads((workdir / "out" / "reports.json").read_text())
        assert [r["_id"] for r in written] == ["w1", "w2", "w3"]
        assert "Wrote 3 report(s)" in capsys.readouterr().out

    def test_fetch_as_snapshot_source(self, workdir, capsys):
        with patch('src.cli.ReportsFetcher') as fetcher_cls:
            fetcher_cls.return_value.fetch_records.return_value = RECORDS
            assert run("trains", "--fetch", "--json") == 0
        assert json.loads(capsys.readouterr().out)[0]["wheel_count"] == 3
