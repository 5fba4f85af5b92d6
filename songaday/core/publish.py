"""Sequential, batched sync of the curated list to the user's playlist"""

import logging
from dataclasses import dataclass
from typing import Sequence

from songaday.errors import PublishError
from songaday.models.aggregate import Credentials
from songaday.monitoring.metrics import record_playlist_batch
from songaday.utils.batch import chunked, PLAYLIST_BATCH_SIZE


logger = logging.getLogger(__name__)


@dataclass
class PublishResult:
    batches: int = 0
    tracks: int = 0


class PlaylistPublisher:
    """Writes an ordered track list to a playlist in batches of 100.

    The first batch replaces the whole playlist, so every run starts from a
    clean slate; later batches append at their offset. Batches go out one at
    a time because each append position assumes the previous batch landed.
    """

    def __init__(self, client, batch_size: int = PLAYLIST_BATCH_SIZE):
        """Initialize publisher.

        Args:
            client: Object with replace_playlist_items/append_playlist_items
            batch_size: Maximum URIs per write
        """
        self.client = client
        self.batch_size = batch_size

    def publish(self, playlist_id: str, track_ids: Sequence[str],
                credentials: Credentials) -> PublishResult:
        """Sync ``track_ids`` to ``playlist_id``.

        A failed batch aborts the rest of the run. Batches already written
        stay; the next run's replace corrects them.

        Raises:
            PublishError: A batch was rejected
        """
        result = PublishResult()

        for offset, batch in chunked(track_ids, self.batch_size):
            try:
                if offset == 0:
                    self.client.replace_playlist_items(
                        playlist_id, credentials.access_token, batch
                    )
                    record_playlist_batch("replace")
                else:
                    self.client.append_playlist_items(
                        playlist_id, credentials.access_token, batch, offset
                    )
                    record_playlist_batch("append")
            except PublishError:
                logger.error("Playlist %s: batch at offset %d failed, %d of %d tracks written",
                             playlist_id, offset, result.tracks, len(track_ids))
                raise

            result.batches += 1
            result.tracks += len(batch)

        logger.info("Playlist %s: published %d tracks in %d batches",
                    playlist_id, result.tracks, result.batches)
        return result
