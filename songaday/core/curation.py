"""Scoring and ordering of tracks for the year playlist

One playlist slot opens per elapsed day of the year. Tracks compete for the
slots by score, and the winners are laid out by the day each was played most,
so the playlist reads as the year in order.
"""

import math
from typing import Dict, List, Mapping, Optional

from songaday.models.aggregate import TrackStat


def first_listen_day(track: TrackStat) -> int:
    """0-based day the track was first played, 0 when it has no days."""
    if not track.daily:
        return 0
    return min(track.daily) - 1


def score_track(track: TrackStat, today: int, days_in_year: int) -> float:
    """Plays normalised by how long the track has had to collect them.

    Earlier discoveries get a larger share of the remaining year; the
    ``2 * today`` denominator keeps very recent discoveries from winning on a
    handful of plays.
    """
    first = first_listen_day(track)
    return (days_in_year - first) * track.total / max(2 * today - first, 1)


def peak_day(daily: Mapping[int, int]) -> Optional[int]:
    """Day with the most plays.

    Ties resolve to the middle of the tied days in ascending order
    (index ``len(tied) // 2``). Returns None for a track with no days.
    """
    if not daily:
        return None
    best = max(daily.values())
    tied = sorted(day for day, count in daily.items() if count == best)
    return tied[len(tied) // 2]


def curate(tracks: Dict[str, TrackStat], today: int, days_in_year: int) -> List[str]:
    """Pick at most ``today`` tracks and order them by peak day.

    Args:
        tracks: track_id -> TrackStat
        today: 1-based day of year, also the playlist length budget
        days_in_year: Days in the target year

    Returns:
        Ordered track ids, ``min(today, len(tracks))`` long
    """
    ranked = sorted(
        tracks.items(),
        key=lambda item: (-score_track(item[1], today, days_in_year), item[0]),
    )
    selected = ranked[:max(today, 0)]

    def peak_key(item):
        day = peak_day(item[1].daily)
        return math.inf if day is None else day

    return [track_id for track_id, _ in sorted(selected, key=peak_key)]
