"""Tests for the log engine: filtering, search and follow appends."""

import datetime

from sysdash.core.logs import LogEngine, find_matches
from sysdash.core.models import LogEntry, TimeRange

from helpers import NOW, make_entry


def engine_with(*entries):
    engine = LogEngine(now=lambda: NOW)
    engine.load(entries)
    return engine


class TestFiltering:
    def test_priority_ceiling_keeps_more_severe(self):
        engine = engine_with(
            make_entry("crit", priority=2),
            make_entry("info", priority=6),
            make_entry("debug", priority=7),
        )
        engine.set_priority_ceiling(4)
        assert [e.message for e in engine.visible_entries] == ["crit"]
        engine.set_priority_ceiling(None)
        assert len(engine.visible_entries) == 3

    def test_time_window(self):
        engine = engine_with(make_entry("old", minutes_ago=30), make_entry("new", minutes_ago=1))
        engine.set_time_range(TimeRange.FIFTEEN_MINUTES)
        assert [e.message for e in engine.visible_entries] == ["new"]
        engine.set_time_range(TimeRange.ONE_HOUR)
        assert len(engine.visible_entries) == 2

    def test_today_starts_at_midnight(self):
        engine = engine_with(make_entry("yesterday", minutes_ago=13 * 60), make_entry("morning", minutes_ago=60))
        engine.set_time_range(TimeRange.TODAY)
        assert [e.message for e in engine.visible_entries] == ["morning"]

    def test_reset_filters(self):
        engine = engine_with(make_entry("a", priority=7))
        engine.set_priority_ceiling(3)
        assert engine.visible_entries == []
        engine.reset_filters()
        assert engine.filter.priority_ceiling is None
        assert len(engine.visible_entries) == 1


class TestSearch:
    def test_find_matches_positions(self):
        entries = [
            LogEntry(timestamp=1, priority=6, message="Error one error"),
            LogEntry(timestamp=2, priority=6, message="fine"),
            LogEntry(timestamp=3, priority=6, message="ERROR"),
        ]
        assert find_matches(entries, "error") == [(0, 0), (0, 10), (2, 0)]
        assert find_matches(entries, "") == []

    def test_search_sets_first_match(self):
        engine = engine_with(make_entry("foo bar"), make_entry("bar"))
        engine.search("bar")
        assert engine.matches == [(0, 4), (1, 0)]
        assert engine.current_match == 0
        assert engine.current_entry_index == 0

    def test_next_and_prev_wrap(self):
        engine = engine_with(make_entry("x"), make_entry("x"), make_entry("x"))
        engine.search("x")
        assert engine.next_match() == 1
        assert engine.next_match() == 2
        assert engine.next_match() == 0
        assert engine.prev_match() == 2

    def test_no_matches(self):
        engine = engine_with(make_entry("abc"))
        engine.search("zzz")
        assert engine.matches == []
        assert engine.current_match is None
        assert engine.next_match() is None
        assert engine.highlights() == {}

    def test_highlights_group_offsets_by_entry(self):
        engine = engine_with(make_entry("aXaXa"), make_entry("b"))
        engine.search("a")
        assert engine.highlights() == {0: (0, 2, 4)}

    def test_filter_change_rederives_matches(self):
        engine = engine_with(make_entry("x warn", priority=4), make_entry("x debug", priority=7))
        engine.search("x")
        assert len(engine.matches) == 2
        engine.set_priority_ceiling(4)
        assert engine.matches == [(0, 0)]
        assert engine.current_match == 0

    def test_clear_keeps_filters(self):
        engine = engine_with(make_entry("x"))
        engine.set_priority_ceiling(3)
        engine.search("x")
        engine.clear()
        assert engine.entries == []
        assert engine.filter.search_text == ""
        assert engine.filter.priority_ceiling == 3


class TestFollowAppend:
    def test_append_deduplicates_and_keeps_order(self):
        a, b = make_entry("a", minutes_ago=3), make_entry("b", minutes_ago=2)
        engine = engine_with(a, b)
        c = make_entry("c", minutes_ago=1)
        assert engine.append([b, c]) == 1
        assert [e.message for e in engine.entries] == ["a", "b", "c"]

    def test_append_keeps_current_match(self):
        engine = engine_with(make_entry("hit", minutes_ago=5), make_entry("hit", minutes_ago=4))
        engine.search("hit")
        engine.next_match()
        engine.append([make_entry("hit", minutes_ago=1)])
        assert engine.current_match == 1
        assert len(engine.matches) == 3

    def test_append_keeps_window_from_filter_time(self):
        clock = [NOW]
        engine = LogEngine(now=lambda: clock[0])
        engine.load([make_entry("shown", minutes_ago=10)])
        engine.set_time_range(TimeRange.FIFTEEN_MINUTES)
        engine.search("shown")
        clock[0] = NOW + datetime.timedelta(minutes=10)
        engine.append([make_entry("fresh", minutes_ago=-10)])
        assert [e.message for e in engine.visible_entries] == ["shown", "fresh"]
        assert engine.current_entry_index == 0

        engine.set_time_range(TimeRange.FIFTEEN_MINUTES)
        assert [e.message for e in engine.visible_entries] == ["fresh"]

    def test_last_cursor(self):
        engine = engine_with(make_entry("a", cursor="c1"), make_entry("b", minutes_ago=0))
        assert engine.last_cursor == "c1"
