from datetime import datetime

import pytz

from formatting import display_name, format_flex, format_status, render_status
from models import UNKNOWN_ALBUM, AlbumArt, TopItem, TrackSnapshot, TrackStats


def test_now_playing_reply():
    snapshot = TrackSnapshot("Reckoner", "Radiohead", "In Rainbows", is_now_playing=True,
                             url="https://www.last.fm/music/Radiohead/_/Reckoner")
    art = AlbumArt(source="spotify", url="https://img", link="https://open.spotify.com/album/x")

    reply = format_status(snapshot, art, TrackStats(user_play_count=42))
    text = render_status("Ada Lovelace", reply)

    assert text.startswith("<b>Ada Lovelace</b> is listening to:")
    assert "<b>Song:</b> Reckoner" in text
    assert "<b>Album:</b> In Rainbows" in text
    assert "<b>Plays:</b> 42" in text
    assert "Last played" not in text
    assert reply.buttons == [
        ("Last.fm", "https://www.last.fm/music/Radiohead/_/Reckoner"),
        ("Spotify", "https://open.spotify.com/album/x"),
    ]
    assert reply.art is art


def test_paused_track_renders_time_in_configured_zone():
    played_at = datetime(2023, 11, 14, 22, 13, 20, tzinfo=pytz.UTC)
    snapshot = TrackSnapshot("Jóga", "Björk", played_at=played_at)

    reply = format_status(snapshot, None, None, pytz.timezone("Europe/Berlin"))
    text = render_status("Ada", reply)

    assert "was last listening to:" in text
    assert f"<b>Album:</b> {UNKNOWN_ALBUM}" in text
    assert "<b>Last played:</b> 14 Nov 2023, 23:13 CET" in text
    assert "Plays" not in text
    assert reply.buttons == []


def test_html_is_escaped():
    snapshot = TrackSnapshot("<Intro>", "Simon & Garfunkel", "A & B", is_now_playing=True)

    text = render_status("<script>", format_status(snapshot, None, None))

    assert "&lt;Intro&gt;" in text
    assert "Simon &amp; Garfunkel" in text
    assert "&lt;script&gt;" in text


def test_youtube_art_button():
    snapshot = TrackSnapshot("T", "A", is_now_playing=True)
    art = AlbumArt(source="youtube", url="https://i.ytimg.com/x.jpg", link="https://youtu.be/x")

    assert format_status(snapshot, art, None).buttons == [("YouTube", "https://youtu.be/x")]


def test_display_name():
    assert display_name("Ada", "Lovelace") == "Ada Lovelace"
    assert display_name("Ada", None) == "Ada"
    assert display_name(None, None) == "Someone"


def test_flex():
    text = format_flex("Ada", TopItem("Radiohead", 1500), TopItem("Reckoner", 90, "Radiohead"))

    assert text == (
        "<b>Ada</b> flexing:\n\n"
        "🏆 <b>Top Artist:</b> Radiohead (1500 plays)\n"
        "🔥 <b>Top Track:</b> Reckoner by Radiohead (90 plays)"
    )
