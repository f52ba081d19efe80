"""Tests for the link store maintenance CLI."""
from __future__ import annotations

import json

from linkkeeper.state import LinkStore
from linkkeeper.telemetry import TelemetryCollector
from linkkeeper.tools.manage_links import import_links, main


def test_import_links_skips_blanks_and_comments(tmp_path):
    store = LinkStore(tmp_path / "links.db")
    imported = import_links(store, ["http://a\n", "\n", "# comment\n", "  http://b  \n"])

    assert imported == 2
    assert sorted(store.list_all()) == ["http://a", "http://b"]


def test_cli_import_list_count_pick(tmp_path, capsys):
    db_path = tmp_path / "links.db"
    source = tmp_path / "links.txt"
    source.write_text("http://one\nhttp://two\n", encoding="utf-8")

    assert main(["--db", str(db_path), "import", str(source)]) == 0
    assert "Imported 2 links" in capsys.readouterr().out

    assert main(["--db", str(db_path), "count"]) == 0
    assert capsys.readouterr().out.strip() == "2"

    assert main(["--db", str(db_path), "list", "--json"]) == 0
    assert sorted(json.loads(capsys.readouterr().out)) == ["http://one", "http://two"]

    assert main(["--db", str(db_path), "pick"]) == 0
    picked = capsys.readouterr().out.strip()
    assert picked in {"http://one", "http://two"}
    assert LinkStore(db_path).list_all() == [u for u in ["http://one", "http://two"] if u != picked]


def test_cli_pick_on_empty_store(tmp_path, capsys):
    assert main(["--db", str(tmp_path / "links.db"), "pick"]) == 0
    assert capsys.readouterr().out.strip() == "No hyperlinks available"


def test_cli_reports_store_errors(tmp_path, capsys):
    db_path = tmp_path / "missing" / "links.db"
    assert main(["--db", str(db_path), "count"]) == 1
    assert "Store error" in capsys.readouterr().err


def test_cli_telemetry_report(tmp_path, capsys):
    db_path = tmp_path / "telemetry.db"
    collector = TelemetryCollector(db_path)
    collector.track_command("save", "alice", "C1", success=True)
    collector.track_command("save", "bob", "C1", success=False)
    collector.track_error("FetchError", command="feed_fetch")
    collector.flush()

    assert main(["telemetry", "--telemetry-db", str(db_path), "--json"]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["commands"]["save"]["usage_count"] == 2
    assert report["errors"] == {"FetchError": 1}

    assert main(["telemetry", "--telemetry-db", str(db_path)]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == ["save: 2 uses, 50% ok, 2 senders", "error FetchError: 1"]


def test_cli_telemetry_prune(tmp_path, capsys):
    db_path = tmp_path / "telemetry.db"
    collector = TelemetryCollector(db_path)
    collector.track_command("list", "alice", "C1")
    collector.flush()

    assert main(["telemetry", "--telemetry-db", str(db_path), "--prune-days", "-1"]) == 0
    assert capsys.readouterr().out.splitlines() == ["Pruned 1 metric events"]
