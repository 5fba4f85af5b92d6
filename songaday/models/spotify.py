"""Decoded Spotify Web API responses

Responses are validated up front so a changed payload surfaces as a
FetchError/AuthError at the client boundary instead of a KeyError deep in
the ingestor.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from songaday.utils.calendar import to_millis


class TrackRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uri: str
    name: Optional[str] = None


class PlayHistoryItem(BaseModel):
    """One entry of ``me/player/recently-played``"""
    model_config = ConfigDict(extra="ignore")

    played_at: datetime
    track: TrackRef


class PlayEvent(BaseModel):
    """A play flattened for the ingestor"""
    played_at: int = Field(..., description="Epoch milliseconds")
    track_id: str
    track_name: Optional[str] = None

    @classmethod
    def from_item(cls, item: PlayHistoryItem) -> "PlayEvent":
        return cls(
            played_at=to_millis(item.played_at),
            track_id=item.track.uri,
            track_name=item.track.name,
        )


class RecentlyPlayedResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    items: List[PlayHistoryItem]
    next: Optional[str] = None


class HistoryPage(BaseModel):
    """A page of plays, newest first, plus the cursor for the next page"""
    items: List[PlayEvent] = Field(default_factory=list)
    next_cursor: Optional[str] = None

    @classmethod
    def from_response(cls, response: RecentlyPlayedResponse) -> "HistoryPage":
        return cls(
            items=[PlayEvent.from_item(item) for item in response.items],
            next_cursor=response.next,
        )


class TokenResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None


class UserProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    display_name: Optional[str] = None


class PlaylistCreated(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
