import pytest

from songaday.core.ingest import ingest
from songaday.errors import FetchError
from songaday.models.spotify import HistoryPage
from songaday.utils.calendar import year_bounds

from conftest import YEAR, FakeHistory, ms, page, play


def totals_match_daily(aggregate):
    return all(sum(t.daily.values()) == t.total for t in aggregate.tracks.values())


def test_empty_history_is_a_noop(aggregate, store):
    result = ingest(aggregate, FakeHistory({None: HistoryPage()}), store=store)

    assert result.merged == 0
    assert result.pages == 1
    assert not result.terminal
    assert result.aggregate.tracks == {}
    assert result.aggregate.watermark == 0
    assert store.load(aggregate.user_id, YEAR) is not None


def test_merges_plays_by_day(aggregate):
    history = FakeHistory({None: page([
        play(ms(1, 1, 9), "spotify:track:a", "A"),
        play(ms(1, 1, 10), "spotify:track:a", "A"),
        play(ms(1, 2, 9), "spotify:track:a", "A"),
        play(ms(1, 2, 11), "spotify:track:b", "B"),
    ])})

    result = ingest(aggregate, history)
    tracks = result.aggregate.tracks

    assert result.merged == 4
    assert tracks["spotify:track:a"].total == 3
    assert tracks["spotify:track:a"].daily == {1: 2, 2: 1}
    assert tracks["spotify:track:a"].name == "A"
    assert tracks["spotify:track:b"].daily == {2: 1}
    assert result.aggregate.watermark == ms(1, 2, 11)
    assert totals_match_daily(result.aggregate)


def test_input_aggregate_is_not_mutated(aggregate):
    history = FakeHistory({None: page([play(ms(2, 1), "t")])})
    ingest(aggregate, history)
    assert aggregate.tracks == {}
    assert aggregate.watermark == 0


def test_reingesting_the_same_page_changes_nothing(aggregate):
    history = FakeHistory({None: page([
        play(ms(3, 1, 8), "x"),
        play(ms(3, 1, 9), "y"),
        play(ms(3, 2, 9), "x"),
    ])})

    first = ingest(aggregate, history).aggregate
    second = ingest(first, history).aggregate

    assert second.tracks == first.tracks
    assert second.watermark == first.watermark


def test_events_at_or_before_watermark_are_ignored(aggregate):
    aggregate.watermark = ms(3, 10)
    history = FakeHistory({None: page([
        play(ms(3, 5), "old"),
        play(ms(3, 10), "edge"),
        play(ms(3, 11), "new"),
    ])})

    result = ingest(aggregate, history)

    assert set(result.aggregate.tracks) == {"new"}
    assert result.aggregate.watermark == ms(3, 11)


def test_name_kept_from_first_observation(aggregate):
    first = ingest(aggregate, FakeHistory({None: page([play(ms(1, 5), "t", "Original")])})).aggregate
    second = ingest(first, FakeHistory({None: page([play(ms(1, 6), "t", "Renamed")])})).aggregate
    assert second.tracks["t"].name == "Original"
    assert second.tracks["t"].total == 2


def test_paginates_until_no_next_page(aggregate):
    history = FakeHistory({
        None: page([play(ms(5, 3), "c")], next_cursor="p2"),
        "p2": page([play(ms(5, 2), "b")], next_cursor="p3"),
        "p3": page([play(ms(5, 1), "a")]),
    })

    result = ingest(aggregate, history)

    assert history.calls == [None, "p2", "p3"]
    assert result.pages == 3
    assert set(result.aggregate.tracks) == {"a", "b", "c"}
    assert result.aggregate.watermark == ms(5, 3)


def test_stops_paginating_once_boundary_passed(aggregate):
    aggregate.watermark = ms(5, 2)
    history = FakeHistory({
        None: page([play(ms(5, 2), "seen"), play(ms(5, 3), "new")], next_cursor="p2"),
        "p2": page([play(ms(5, 1), "older")]),
    })

    result = ingest(aggregate, history)

    assert history.calls == [None]
    assert set(result.aggregate.tracks) == {"new"}


def five_single_play_pages():
    pages = {None: page([play(ms(6, 30), "t0")], next_cursor="c1")}
    for i in range(1, 5):
        cursor = f"c{i + 1}" if i < 4 else None
        pages[f"c{i}"] = page([play(ms(6, 30 - i), f"t{i}")], next_cursor=cursor)
    return pages


def test_page_limit_abandons_the_run(aggregate, store):
    store.save(aggregate)
    history = FakeHistory(five_single_play_pages())

    with pytest.raises(FetchError):
        ingest(aggregate, history, store=store, max_pages=2)

    assert history.calls == [None, "c1"]
    stored = store.load(aggregate.user_id, YEAR)
    assert stored.tracks == {}
    assert stored.watermark == 0


def test_no_play_lost_when_history_is_long(aggregate, store):
    store.save(aggregate)
    history = FakeHistory(five_single_play_pages())

    for _ in range(2):
        with pytest.raises(FetchError):
            ingest(store.load(aggregate.user_id, YEAR), history, store=store, max_pages=2)
    result = ingest(store.load(aggregate.user_id, YEAR), history, store=store)

    assert result.pages == 5
    assert sorted(result.aggregate.tracks) == ["t0", "t1", "t2", "t3", "t4"]
    assert all(t.total == 1 for t in result.aggregate.tracks.values())


def test_events_outside_the_year_are_not_merged(aggregate):
    history = FakeHistory({None: page([
        play(ms(12, 31, 23, year=YEAR - 1), "last-year"),
        play(ms(6, 1), "this-year"),
    ])})

    result = ingest(aggregate, history)

    assert set(result.aggregate.tracks) == {"this-year"}
    assert result.aggregate.watermark == ms(6, 1)
    assert not result.terminal


def test_play_after_year_end_makes_aggregate_terminal(aggregate):
    _, year_end = year_bounds(YEAR)
    history = FakeHistory({None: page([
        play(ms(12, 31, 22), "late"),
        play(ms(1, 1, 0, 30, year=YEAR + 1), "next-year"),
    ])})

    result = ingest(aggregate, history)

    assert result.terminal
    assert result.aggregate.terminal
    assert result.aggregate.watermark == year_end
    assert set(result.aggregate.tracks) == {"late"}
    assert result.aggregate.tracks["late"].daily == {366: 1}


def test_terminal_watermark_skips_fetch(aggregate):
    _, year_end = year_bounds(YEAR)
    aggregate.watermark = year_end
    history = FakeHistory({})

    result = ingest(aggregate, history)

    assert result.terminal
    assert history.calls == []


def test_fetch_failure_persists_nothing(aggregate, store):
    store.save(aggregate)
    history = FakeHistory({
        None: page([play(ms(4, 2), "b")], next_cursor="p2"),
    }, fail_on="p2")

    with pytest.raises(FetchError):
        ingest(aggregate, history, store=store)

    stored = store.load(aggregate.user_id, YEAR)
    assert stored.tracks == {}
    assert stored.watermark == 0


def test_restart_after_failure_counts_each_play_once(aggregate, store):
    events_page1 = [play(ms(4, 3), "c"), play(ms(4, 4), "d")]
    events_page2 = [play(ms(4, 1), "a"), play(ms(4, 2), "b")]

    failing = FakeHistory({None: page(events_page1, next_cursor="p2")}, fail_on="p2")
    with pytest.raises(FetchError):
        ingest(aggregate, failing, store=store)

    healthy = FakeHistory({
        None: page(events_page1, next_cursor="p2"),
        "p2": page(events_page2),
    })
    result = ingest(aggregate, healthy, store=store)

    assert {k: v.total for k, v in result.aggregate.tracks.items()} == {"a": 1, "b": 1, "c": 1, "d": 1}
    assert totals_match_daily(store.load(aggregate.user_id, YEAR))


def test_watermark_never_decreases(aggregate):
    aggregate.watermark = ms(8, 1)
    history = FakeHistory({None: page([play(ms(7, 1), "old")])})
    result = ingest(aggregate, history)
    assert result.aggregate.watermark == ms(8, 1)
