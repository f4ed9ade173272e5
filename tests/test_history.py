"""Tests for the history store and its JSON persistence."""

from __future__ import annotations

import json

from conftest import NOW_MS, make_result
from mcpdd.history.persistence import load_history_file, save_history_file
from mcpdd.history.store import HistoryStore, history_key
from mcpdd.probe.models import HealthStatus

HOUR_MS = 3_600_000
WEATHER = ("io.github.acme/weather", "https://weather.acme.dev/mcp")


class TestHistoryStore:
    def test_initialize_is_idempotent(self, store):
        store.append(*WEATHER, make_result())
        store.initialize(*WEATHER)
        assert len(store.series(*WEATHER)) == 1
        assert history_key(*WEATHER) in store
        assert len(store) == 4

    def test_append_unknown_endpoint_is_ignored(self, store):
        assert store.append("nope", "https://nope.example.com", make_result()) is False
        assert history_key("nope", "https://nope.example.com") not in store

    def test_append_keeps_order_and_latest(self, store):
        store.append(*WEATHER, make_result(timestamp=NOW_MS - 2000))
        store.append(*WEATHER, make_result(HealthStatus.DOWN, timestamp=NOW_MS - 1000))
        assert [r.health for r in store.series(*WEATHER)] == [HealthStatus.HEALTHY, HealthStatus.DOWN]
        assert store.latest(*WEATHER).health == HealthStatus.DOWN

    def test_late_result_is_inserted_in_order(self, store):
        store.append(*WEATHER, make_result(HealthStatus.HEALTHY, timestamp=NOW_MS))
        store.append(*WEATHER, make_result(HealthStatus.DOWN, timestamp=NOW_MS - 60_000))
        timestamps = [r.timestamp for r in store.series(*WEATHER)]
        assert timestamps == sorted(timestamps)
        assert store.latest(*WEATHER).health == HealthStatus.HEALTHY

    def test_latest_empty(self, store):
        assert store.latest(*WEATHER) is None
        assert store.series("nope", "x") == []

    def test_append_trims_expired_entries(self, store, clock):
        store.append(*WEATHER, make_result(timestamp=NOW_MS - 25 * HOUR_MS))
        store.append(*WEATHER, make_result(timestamp=NOW_MS - 23 * HOUR_MS))
        assert len(store.series(*WEATHER)) == 1

        clock.advance(2 * 3600)
        store.append(*WEATHER, make_result(timestamp=NOW_MS + 2 * HOUR_MS))
        assert [r.timestamp for r in store.series(*WEATHER)] == [NOW_MS + 2 * HOUR_MS]

    def test_entry_exactly_at_cutoff_is_kept(self, store):
        store.append(*WEATHER, make_result(timestamp=NOW_MS - 24 * HOUR_MS))
        store.append(*WEATHER, make_result())
        assert len(store.series(*WEATHER)) == 2

    def test_retention_ms(self):
        assert HistoryStore(retention_seconds=3600).retention_ms == HOUR_MS


class TestLoadAndDump:
    def test_dump_then_load_into_fresh_store(self, store, clock):
        store.append(*WEATHER, make_result(latency_ms=120, tool_count=3))
        blob = json.loads(json.dumps(store.dump()))

        fresh = HistoryStore(clock=clock)
        fresh.initialize(*WEATHER)
        assert fresh.load(blob) == 1
        restored = fresh.latest(*WEATHER)
        assert restored.latency_ms == 120
        assert restored.tool_count == 3

    def test_load_ignores_unknown_keys(self, clock):
        fresh = HistoryStore(clock=clock)
        fresh.initialize(*WEATHER)
        blob = {"gone|https://gone.example.com": [make_result().to_dict()]}
        assert fresh.load(blob) == 0
        assert "gone|https://gone.example.com" not in fresh

    def test_load_drops_expired_and_malformed(self, clock):
        fresh = HistoryStore(clock=clock)
        fresh.initialize(*WEATHER)
        blob = {
            history_key(*WEATHER): [
                make_result(timestamp=NOW_MS - 30 * HOUR_MS).to_dict(),
                {"timestamp": NOW_MS, "health": "sideways"},
                {"health": "healthy"},
                make_result(timestamp=NOW_MS - 1000).to_dict(),
            ]
        }
        assert fresh.load(blob) == 1
        assert [r.timestamp for r in fresh.series(*WEATHER)] == [NOW_MS - 1000]

    def test_load_merges_in_timestamp_order(self, store):
        store.append(*WEATHER, make_result(timestamp=NOW_MS))
        blob = {history_key(*WEATHER): [make_result(timestamp=NOW_MS - 5000).to_dict()]}
        store.load(blob)
        assert [r.timestamp for r in store.series(*WEATHER)] == [NOW_MS - 5000, NOW_MS]

    def test_load_trims_entries_already_held(self, store, clock):
        store.append(*WEATHER, make_result(timestamp=NOW_MS))
        clock.advance(25 * 3600)
        store.load({history_key(*WEATHER): []})
        assert store.series(*WEATHER) == []

    def test_load_skips_non_list_series(self, store):
        assert store.load({history_key(*WEATHER): "oops"}) == 0


class TestPersistenceFile:
    def test_save_and_load(self, tmp_path, store):
        store.append(*WEATHER, make_result())
        path = tmp_path / "nested" / "history.json"
        assert save_history_file(path, store.dump()) is True
        assert path.exists()
        assert not path.with_name("history.json.tmp").exists()
        assert load_history_file(path) == store.dump()

    def test_missing_file(self, tmp_path):
        assert load_history_file(tmp_path / "missing.json") is None

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text("{not json")
        assert load_history_file(path) is None

    def test_non_object_file(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text("[1, 2]")
        assert load_history_file(path) is None

    def test_save_failure_returns_false(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory")
        assert save_history_file(blocker / "history.json", {}) is False
