"""Data passed between the Last.fm client, the art resolver and the formatter."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

UNKNOWN_ALBUM = "Unknown Album"


@dataclass
class TrackSnapshot:
    """Most recent (or current) track for a Last.fm user."""
    track_name: str
    artist_name: str
    album_name: str = UNKNOWN_ALBUM
    is_now_playing: bool = False
    played_at: Optional[datetime] = None  # tz-aware UTC, only when not now playing
    url: Optional[str] = None


@dataclass
class TrackStats:
    user_play_count: Optional[int] = None
    listeners: Optional[int] = None


@dataclass
class TopItem:
    name: str
    play_count: Optional[int] = None
    artist_name: Optional[str] = None  # set for top tracks


@dataclass
class AlbumArt:
    """An image reference: either a remote URL or a local file."""
    source: str  # "spotify" | "youtube" | "default"
    url: Optional[str] = None
    path: Optional[str] = None
    link: Optional[str] = None  # page the image came from, shown as a button


@dataclass
class StatusReply:
    """Formatted /status body, cached per Last.fm username."""
    body: str
    is_now_playing: bool
    art: Optional[AlbumArt] = None
    buttons: List[Tuple[str, str]] = field(default_factory=list)  # (label, url)
