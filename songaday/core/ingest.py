"""Incremental merge of listening history into a user's aggregate

Pages come from the provider newest first. They are walked until the
provider runs out of pages or until an already incorporated play shows up,
which means everything older has been counted by an earlier run. The
watermark is the only record of what has been counted, so a run either
finishes and persists, or leaves the stored aggregate untouched.
"""

import logging
from dataclasses import dataclass
from datetime import tzinfo
from typing import Callable, Optional

from songaday.errors import FetchError
from songaday.models.aggregate import UserAggregate
from songaday.models.spotify import HistoryPage
from songaday.monitoring.metrics import record_plays_merged
from songaday.utils.calendar import day_of_year, year_bounds


logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGES = 50

FetchPage = Callable[[Optional[str]], HistoryPage]


@dataclass
class IngestResult:
    """Outcome of one ingest run"""
    aggregate: UserAggregate
    merged: int = 0
    pages: int = 0
    terminal: bool = False


def ingest(
    aggregate: UserAggregate,
    fetch_page: FetchPage,
    store=None,
    tz: Optional[tzinfo] = None,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> IngestResult:
    """Pull new plays since the watermark and merge them.

    Args:
        aggregate: Current aggregate; never mutated
        fetch_page: Returns the page for a cursor (None for the newest page)
        store: Optional object with save(), usually an AggregateStore
        tz: Timezone the target year is observed in
        max_pages: Pages a run may walk before it is abandoned

    Returns:
        IngestResult holding the updated copy of the aggregate

    Raises:
        FetchError: A page could not be fetched or the page limit was hit;
            nothing was persisted
    """
    year_start, year_end = year_bounds(aggregate.year, tz)

    if aggregate.terminal or aggregate.watermark >= year_end:
        logger.info("%s: year %d already complete, nothing to ingest",
                    aggregate.user_id, aggregate.year)
        updated = aggregate.model_copy(deep=True)
        updated.watermark = year_end
        updated.terminal = True
        return IngestResult(aggregate=updated, terminal=True)

    updated = aggregate.model_copy(deep=True)
    boundary_passed = False
    last_time = 0
    merged = 0
    pages = 0
    cursor: Optional[str] = None

    while True:
        try:
            page = fetch_page(cursor)
        except FetchError:
            logger.error("%s: history fetch failed on page %d, abandoning run",
                         aggregate.user_id, pages + 1)
            raise
        pages += 1

        for event in reversed(page.items):
            played_at = event.played_at
            last_time = max(last_time, played_at)

            if played_at >= year_end:
                continue
            if played_at < year_start:
                continue
            if played_at <= aggregate.watermark:
                boundary_passed = True
                continue

            updated.merge_play(
                event.track_id,
                event.track_name,
                day_of_year(played_at, aggregate.year, tz),
            )
            merged += 1

        if boundary_passed or page.next_cursor is None:
            break
        if pages >= max_pages:
            # older plays on unfetched pages would fall under the new watermark
            logger.error("%s: watermark not reached within %d history pages, abandoning run",
                         aggregate.user_id, pages)
            raise FetchError(f"History exceeded {max_pages} pages without reaching the watermark")
        cursor = page.next_cursor

    updated.watermark = max(updated.watermark, last_time)
    if updated.watermark >= year_end:
        updated.watermark = year_end
        updated.terminal = True

    if store is not None:
        store.save(updated)

    record_plays_merged(merged)
    logger.info("%s: merged %d plays from %d pages (%d tracks)",
                aggregate.user_id, merged, pages, len(updated.tracks))

    return IngestResult(
        aggregate=updated,
        merged=merged,
        pages=pages,
        terminal=updated.terminal,
    )
