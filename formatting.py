"""Turn track data into Telegram HTML replies."""
from html import escape
from typing import Optional

import pytz

from models import UNKNOWN_ALBUM, AlbumArt, StatusReply, TopItem, TrackSnapshot, TrackStats

TIME_FORMAT = "%d %b %Y, %H:%M %Z"


def display_name(first_name: Optional[str], last_name: Optional[str] = None) -> str:
    return " ".join(part for part in (first_name, last_name) if part) or "Someone"


def format_played_at(snapshot: TrackSnapshot, tz: pytz.BaseTzInfo) -> Optional[str]:
    if snapshot.is_now_playing or snapshot.played_at is None:
        return None
    return snapshot.played_at.astimezone(tz).strftime(TIME_FORMAT)


def format_status(
    snapshot: TrackSnapshot,
    art: Optional[AlbumArt],
    stats: Optional[TrackStats],
    tz: pytz.BaseTzInfo = pytz.UTC,
) -> StatusReply:
    """Body of a /status reply, without the per-requester header line."""
    lines = [
        f"🎵 <b>Song:</b> {escape(snapshot.track_name)}",
        f"🎤 <b>Artist:</b> {escape(snapshot.artist_name)}",
        f"💿 <b>Album:</b> {escape(snapshot.album_name or UNKNOWN_ALBUM)}",
    ]
    if stats and stats.user_play_count is not None:
        lines.append(f"🔁 <b>Plays:</b> {stats.user_play_count}")
    played_at = format_played_at(snapshot, tz)
    if played_at:
        lines.append(f"🕒 <b>Last played:</b> {played_at}")

    buttons = []
    if snapshot.url:
        buttons.append(("Last.fm", snapshot.url))
    if art and art.link:
        buttons.append(("Spotify" if art.source == "spotify" else "YouTube", art.link))

    return StatusReply(
        body="\n".join(lines),
        is_now_playing=snapshot.is_now_playing,
        art=art,
        buttons=buttons,
    )


def render_status(requester: str, reply: StatusReply) -> str:
    verb = "is listening to" if reply.is_now_playing else "was last listening to"
    return f"<b>{escape(requester)}</b> {verb}:\n\n{reply.body}"


def format_flex(requester: str, top_artist: TopItem, top_track: TopItem) -> str:
    artist_line = f"🏆 <b>Top Artist:</b> {escape(top_artist.name)}"
    if top_artist.play_count is not None:
        artist_line += f" ({top_artist.play_count} plays)"
    track_line = f"🔥 <b>Top Track:</b> {escape(top_track.name)}"
    if top_track.artist_name:
        track_line += f" by {escape(top_track.artist_name)}"
    if top_track.play_count is not None:
        track_line += f" ({top_track.play_count} plays)"
    return f"<b>{escape(requester)}</b> flexing:\n\n{artist_line}\n{track_line}"
