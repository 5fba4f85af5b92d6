"""Per-user listening aggregate and its parts"""

from typing import Dict, Optional

from pydantic import BaseModel, Field


class Credentials(BaseModel):
    """Spotify token pair.

    The refresh token survives restarts; the access token is only a
    best-effort cache and is replaced on every cycle.
    """
    access_token: str = Field("", description="Short-lived bearer token")
    refresh_token: str = Field(..., description="Long-lived refresh token")


class TrackStat(BaseModel):
    """Plays of one track within the target year"""
    name: Optional[str] = Field(None, description="Track name at first observation")
    total: int = Field(0, ge=0, description="Qualifying plays")
    daily: Dict[int, int] = Field(default_factory=dict, description="Day of year -> plays")

    def record_play(self, day: int) -> None:
        self.total += 1
        self.daily[day] = self.daily.get(day, 0) + 1


class UserAggregate(BaseModel):
    """Durable record for one listener and one calendar year."""
    user_id: str
    playlist_id: str
    year: int
    credentials: Credentials
    notify_ref: Optional[str] = None
    tracks: Dict[str, TrackStat] = Field(default_factory=dict)
    watermark: int = Field(0, description="Latest incorporated play time (epoch ms)")
    terminal: bool = Field(False, description="Year complete, nothing left to ingest")

    def merge_play(self, track_id: str, name: Optional[str], day: int) -> TrackStat:
        """Count one play of ``track_id`` on ``day``.

        Args:
            track_id: Track URI
            name: Display name, only kept on first observation
            day: 1-based day of year

        Returns:
            The updated TrackStat
        """
        track = self.tracks.get(track_id)
        if track is None:
            track = TrackStat(name=name)
            self.tracks[track_id] = track
        track.record_play(day)
        return track
