"""Shared fixtures and fakes for the Spotify capabilities"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from songaday.errors import AuthError, FetchError, PublishError
from songaday.main import SongADayEngine
from songaday.models.aggregate import Credentials, UserAggregate
from songaday.models.config_models import CurationConfig, SongADayConfig, SpotifyConfig
from songaday.models.spotify import HistoryPage, PlayEvent
from songaday.notify import MessageBuilder, Notifier
from songaday.storage.aggregates import AggregateStore
from songaday.utils.calendar import to_millis


YEAR = 2024


def ms(month: int, day: int, hour: int = 12, minute: int = 0, year: int = YEAR) -> int:
    return to_millis(datetime(year, month, day, hour, minute, tzinfo=timezone.utc))


def play(ts: int, track_id: str, name: Optional[str] = None) -> PlayEvent:
    return PlayEvent(played_at=ts, track_id=track_id, track_name=name or track_id)


def page(events: List[PlayEvent], next_cursor: Optional[str] = None) -> HistoryPage:
    """Build a page; events are given oldest first and served newest first."""
    ordered = sorted(events, key=lambda e: e.played_at, reverse=True)
    return HistoryPage(items=ordered, next_cursor=next_cursor)


class FakeHistory:
    """fetch_page stand-in serving pages by cursor."""

    def __init__(self, pages: Dict[Optional[str], HistoryPage], fail_on: Optional[str] = "never"):
        self.pages = pages
        self.fail_on = fail_on
        self.calls: List[Optional[str]] = []

    def __call__(self, cursor: Optional[str]) -> HistoryPage:
        self.calls.append(cursor)
        if cursor == self.fail_on:
            raise FetchError("history unavailable")
        return self.pages[cursor]


class FakeAuth:
    def __init__(self, fail: bool = False, rotate: bool = False):
        self.fail = fail
        self.rotate = rotate
        self.refreshed = 0

    def refresh(self, refresh_token: str) -> Credentials:
        if self.fail:
            raise AuthError("refresh rejected")
        self.refreshed += 1
        new_refresh = f"refresh-{self.refreshed}" if self.rotate else refresh_token
        return Credentials(access_token=f"access-{self.refreshed}", refresh_token=new_refresh)

    def exchange_code(self, code: str) -> Credentials:
        if self.fail or code == "bad":
            raise AuthError("code rejected")
        return Credentials(access_token="access-0", refresh_token="refresh-0")

    def authorize_url(self, state: str) -> str:
        return f"https://accounts.example/authorize?state={state}"


class FakeSpotify:
    """History fetch and playlist writes, recording every call."""

    def __init__(self, history: Optional[FakeHistory] = None):
        self.history = history or FakeHistory({None: HistoryPage()})
        self.writes: List[tuple] = []
        self.fail_publish_at: Optional[int] = None
        self.fail_create = False
        self.user_id = "listener"
        self.tokens: List[str] = []

    def fetch_recent_plays(self, access_token: str, cursor: Optional[str] = None) -> HistoryPage:
        self.tokens.append(access_token)
        return self.history(cursor)

    def get_current_user(self, access_token: str) -> str:
        return self.user_id

    def create_playlist(self, user_id, access_token, name, description) -> str:
        if self.fail_create:
            raise PublishError("create rejected")
        self.writes.append(("create", name))
        return "playlist-1"

    def _maybe_fail(self, offset: int) -> None:
        if self.fail_publish_at is not None and offset == self.fail_publish_at:
            raise PublishError("write rejected")

    def replace_playlist_items(self, playlist_id, access_token, uris) -> None:
        self._maybe_fail(0)
        self.writes.append(("replace", playlist_id, list(uris)))

    def append_playlist_items(self, playlist_id, access_token, uris, position) -> None:
        self._maybe_fail(position)
        self.writes.append(("append", playlist_id, list(uris), position))


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent = []

    def notify(self, notification) -> None:
        self.sent.append(notification)


@pytest.fixture
def aggregate() -> UserAggregate:
    return UserAggregate(
        user_id="listener",
        playlist_id="playlist-1",
        year=YEAR,
        credentials=Credentials(access_token="stale", refresh_token="refresh-0"),
        notify_ref="42",
    )


@pytest.fixture
def store(tmp_path) -> AggregateStore:
    return AggregateStore(tmp_path / "songaday.db")


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def messages() -> MessageBuilder:
    return MessageBuilder("https://songaday.example", YEAR)


@pytest.fixture
def config(tmp_path):
    return SongADayConfig(
        spotify=SpotifyConfig(
            client_id="client",
            client_secret="secret",
            redirect_uri="https://songaday.example/callback",
        ),
        curation=CurationConfig(year=YEAR, host_url="https://songaday.example"),
        data_dir=str(tmp_path),
    )


@pytest.fixture
def engine(config, store, notifier):
    engine = SongADayEngine(
        config,
        store=store,
        api=FakeSpotify(),
        auth=FakeAuth(),
        notifier=notifier,
    )
    yield engine
    engine.shutdown()
