import pytest

from songaday.core.curation import curate, first_listen_day, peak_day, score_track
from songaday.models.aggregate import TrackStat


def track(daily):
    return TrackStat(total=sum(daily.values()), daily=dict(daily))


def test_first_listen_day_is_zero_based():
    assert first_listen_day(track({1: 5, 2: 5})) == 0
    assert first_listen_day(track({50: 3, 70: 1})) == 49
    assert first_listen_day(TrackStat()) == 0


def test_scores_for_two_track_scenario():
    a = track({1: 5, 2: 5})
    b = track({50: 3})

    assert score_track(a, 60, 366) == pytest.approx(30.5)
    assert score_track(b, 60, 366) == pytest.approx(317 * 3 / 71)


def test_two_track_scenario_order():
    tracks = {"B": track({50: 3}), "A": track({1: 5, 2: 5})}
    assert curate(tracks, 60, 366) == ["A", "B"]


def test_denominator_floor_of_one():
    # first listen on day 100 while today is 10: 2*10 - 99 < 1
    t = track({100: 2})
    assert score_track(t, 10, 366) == pytest.approx((366 - 99) * 2 / 1)


def test_peak_day_middle_of_ties():
    assert peak_day({10: 4, 12: 4, 15: 4}) == 12
    assert peak_day({15: 4, 10: 4}) == 15
    assert peak_day({3: 1, 9: 7, 4: 2}) == 9
    assert peak_day({}) is None


def test_selection_bounded_by_today():
    tracks = {f"t{i}": track({1: 10 - i}) for i in range(10)}
    selected = curate(tracks, 3, 365)
    assert len(selected) == 3
    assert set(selected) == {"t0", "t1", "t2"}


def test_selection_bounded_by_track_count():
    tracks = {"only": track({5: 1})}
    assert curate(tracks, 200, 366) == ["only"]


def test_selected_tracks_ordered_by_peak_day():
    tracks = {
        "summer": track({180: 6, 2: 1}),
        "spring": track({90: 6, 3: 1}),
        "winter": track({1: 6, 4: 1}),
    }
    assert curate(tracks, 200, 366) == ["winter", "spring", "summer"]


def test_track_without_days_sorts_last():
    tracks = {"empty": TrackStat(total=50), "plain": track({10: 1})}
    assert curate(tracks, 100, 366) == ["plain", "empty"]


def test_equal_scores_ranked_by_track_id():
    tracks = {"b": track({5: 2}), "a": track({5: 2}), "c": track({5: 2})}
    assert curate(tracks, 2, 366) == ["a", "b"]


def test_empty_tracks():
    assert curate({}, 100, 366) == []
