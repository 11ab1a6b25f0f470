"""Tests for the command-line front end, driven with an in-memory source."""

import io
import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from overview import cli
from overview.adapters.google.gcal.client import GCalClient
from overview.adapters.google.gcal.reader import GCalEventSource
from overview.adapters.memory import InMemoryEventSource
from overview.adapters.sqlite.store import SQLiteEventStore
from overview.config import Settings
from overview.core.intervals import DateInterval, month_interval, year_interval

UTC = timezone.utc


@pytest.fixture
def cfg(tmp_path):
    return Settings(
        timezone="UTC",
        data_dir=tmp_path,
        log_dir=tmp_path / "logs",
        google={"client_secrets_path": tmp_path / "creds" / "credentials.json", "token_path": tmp_path / "creds" / "token.json"},
        first_year=2019,
        last_year=2021,
    )


def run(argv, source, cfg):
    out = io.StringIO()
    code = cli.main(argv, source=source, config=cfg, out=out)
    return code, out.getvalue()


class TestSummaryCommand:
    def test_outline(self, source, cfg):
        code, text = run(["summary", "--calendar", "work", "--year", "2021"], source, cfg)
        assert code == cli.EXIT_OK
        assert text.splitlines() == [
            "Work · 2021 (3)",
            "  March 2021 (3)",
            "    Tue 02 Mar (2)",
            "      Standup ×1",
            "      Review ×1",
            "    Tue 09 Mar (1)",
            "      Standup ×1",
        ]

    def test_buckets_without_events_are_hidden(self, source, cfg):
        _, text = run(["summary", "--calendar", "work", "--year", "2021"], source, cfg)
        # months of empty days count as empty too
        assert not [line for line in text.splitlines() if line.endswith("(0)")]

    def test_show_empty_lists_every_bucket(self, source, cfg):
        _, text = run(["summary", "--calendar", "work", "--year", "2021", "--show-empty"], source, cfg)
        # root + 12 months + 365 days + 3 title groups
        assert len(text.splitlines()) == 1 + 12 + 365 + 3

    def test_custom_granularities(self, source, cfg):
        _, text = run(
            ["summary", "--calendar", "work", "--year", "2021", "--top", "1 year", "--leaf", "1 month"],
            source,
            cfg,
        )
        assert text.splitlines()[:3] == ["Work · 2021 (3)", "  2021 (3)", "    March 2021 (3)"]

    def test_json(self, source, cfg):
        code, text = run(["summary", "--calendar", "work", "--calendar", "home", "--year", "2021", "--json"], source, cfg)
        assert code == cli.EXIT_OK
        roots = json.loads(text)
        assert [r["context"]["name"] for r in roots] == ["Work", "Home"]
        work = roots[0]
        assert work["interval"]["start"] == "2021-01-01T00:00:00+00:00"
        assert len(work["items"]) == 12
        march_2 = work["items"][2]["items"][1]
        assert [g["context"] for g in march_2["items"]] == ["Standup", "Review"]
        assert march_2["items"][0]["items"][0]["id"] == "s1"

    def test_year_without_events(self, source, cfg):
        code, text = run(["summary", "--calendar", "work", "--year", "2020"], source, cfg)
        assert code == cli.EXIT_OK
        assert text == "No events in 2020 for the selected calendars.\n"

    def test_unknown_calendar(self, source, cfg, capsys):
        code, text = run(["summary", "--calendar", "nope", "--year", "2021"], source, cfg)
        assert code == cli.EXIT_ERROR
        assert text == ""
        assert "unknown calendar: 'nope'" in capsys.readouterr().err

    def test_bad_granularity_is_a_usage_error(self, source, cfg):
        with pytest.raises(SystemExit) as exc:
            run(["summary", "--calendar", "work", "--top", "1 fortnight"], source, cfg)
        assert exc.value.code == 2


class TestListingCommands:
    def test_calendars(self, source, cfg):
        _, text = run(["calendars"], source, cfg)
        assert text == "* work\tWork\n  home\tHome\n"

    def test_no_calendars(self, cfg):
        _, text = run(["calendars"], InMemoryEventSource(), cfg)
        assert text == "No calendars.\n"

    def test_years(self, source, cfg):
        _, text = run(["years"], source, cfg)
        assert text == "2019\n2020\n2021\n"


class TestAdapterFailures:
    """Failures below the event source exit with the hard-error code."""

    def test_network_timeout(self, cfg, capsys):
        service = MagicMock(name="calendar_service")
        service.calendarList.return_value.list.return_value.execute.side_effect = TimeoutError("timed out")
        code, text = run(["calendars"], GCalEventSource(GCalClient.for_service(service, cfg)), cfg)
        assert code == cli.EXIT_ERROR
        assert text == ""
        assert "error: listing calendars failed" in capsys.readouterr().err

    def test_missing_client_secrets(self, cfg, capsys):
        client = MagicMock(name="gcal_client")
        client.get_service.side_effect = FileNotFoundError("Client secrets not found")
        code, _ = run(["calendars"], GCalEventSource(client), cfg)
        assert code == cli.EXIT_ERROR
        assert "Client secrets not found" in capsys.readouterr().err

    def test_sync_with_unreachable_remote(self, monkeypatch, cfg, tmp_path):
        client = MagicMock(name="gcal_client")
        client.get_service.side_effect = FileNotFoundError("Client secrets not found")
        monkeypatch.setattr(cli, "build_source", lambda kind, config: GCalEventSource(client))
        store = SQLiteEventStore(tmp_path / "sync.db")
        try:
            code, _ = run(["sync", "--calendar", "work", "--year", "2021"], store, cfg)
            assert code == cli.EXIT_ERROR
        finally:
            store.close()


class TestSyncCommand:
    def test_copies_a_year_into_the_store(self, monkeypatch, source, cfg, tmp_path):
        monkeypatch.setattr(cli, "build_source", lambda kind, config: source)
        store = SQLiteEventStore(tmp_path / "sync.db")
        try:
            code, text = run(["sync", "--calendar", "work", "--year", "2021"], store, cfg)
            assert code == cli.EXIT_OK
            assert text == "Work: 3 items\n"
            assert [it.id for it in store.query_items(month_interval(2021, 3, UTC))] == ["s1", "r1", "s2"]
        finally:
            store.close()

    def test_unknown_remote_calendar(self, monkeypatch, source, cfg, tmp_path):
        monkeypatch.setattr(cli, "build_source", lambda kind, config: source)
        store = SQLiteEventStore(tmp_path / "sync.db")
        try:
            code, _ = run(["sync", "--calendar", "nope", "--year", "2021"], store, cfg)
            assert code == cli.EXIT_ERROR
            assert list(store.query_items(year_interval(2021, UTC))) == []
        finally:
            store.close()


class TestIntervalLabel:
    @pytest.mark.parametrize(
        "interval, label",
        [
            (year_interval(2021, UTC), "2021"),
            (month_interval(2021, 3, UTC), "March 2021"),
        ],
    )
    def test_calendar_units(self, interval, label):
        assert cli.interval_label(interval) == label

    def test_other_ranges(self):
        iv = DateInterval(datetime(2021, 3, 1, tzinfo=UTC), datetime(2021, 3, 8, tzinfo=UTC))
        assert cli.interval_label(iv) == "2021-03-01 – 2021-03-08"
