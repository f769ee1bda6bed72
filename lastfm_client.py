"""Thin async wrapper over the Last.fm 2.0 JSON API (read-only methods)."""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp
import pytz
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from errors import NotFound, PrivateProfile, ProviderUnavailable, TrackLookupError
from models import UNKNOWN_ALBUM, TopItem, TrackSnapshot, TrackStats

logger = logging.getLogger(__name__)

LASTFM_API_URL = "https://ws.audioscrobbler.com/2.0/"
# 6 = invalid parameters, which Last.fm also uses for "User not found" / "Track not found"
LASTFM_NOT_FOUND_CODES = {6}
# 8 = operation failed, 11 = service offline, 16 = temporarily unavailable
LASTFM_TRANSIENT_CODES = {8, 11, 16}
LASTFM_PRIVATE_CODE = 17


class _TransientHTTPError(Exception):
    def __init__(self, status: int):
        self.status = status
        super().__init__(f"HTTP {status}")


class _TransientAPIError(Exception):
    def __init__(self, code: int, message: str):
        self.code = code
        super().__init__(f"Last.fm API error {code}: {message}")


TRANSIENT_ERRORS = (aiohttp.ClientConnectionError, asyncio.TimeoutError, _TransientHTTPError, _TransientAPIError)


def _as_list(value: Any) -> List[Dict]:
    # Last.fm collapses one-element lists into a bare object
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return [value]
    return []


def _text(value: Any) -> str:
    if isinstance(value, dict):
        return (value.get("#text") or value.get("name") or "").strip()
    return (value or "").strip() if isinstance(value, str) else ""


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_recent_track(item: Dict) -> TrackSnapshot:
    """Build a TrackSnapshot from one entry of user.getRecentTracks."""
    now_playing = (item.get("@attr") or {}).get("nowplaying") == "true"
    played_at = None
    if not now_playing:
        uts = _to_int((item.get("date") or {}).get("uts"))
        if uts is not None:
            played_at = datetime.fromtimestamp(uts, tz=pytz.UTC)
    return TrackSnapshot(
        track_name=(item.get("name") or "").strip() or "Unknown Track",
        artist_name=_text(item.get("artist")) or "Unknown Artist",
        album_name=_text(item.get("album")) or UNKNOWN_ALBUM,
        is_now_playing=now_playing,
        played_at=played_at,
        url=item.get("url") or None,
    )


class LastFMClient:
    def __init__(self, api_key: str, timeout_seconds: float = 15.0):
        if not api_key:
            raise ValueError("Missing Last.fm API key")
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True,
    )
    async def _request(self, params: Dict[str, Any]) -> Dict:
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.get(LASTFM_API_URL, params=params) as response:
                if response.status >= 500:
                    raise _TransientHTTPError(response.status)
                # Last.fm sends its JSON error envelope with 4xx statuses too
                data = await response.json(content_type=None)
        if isinstance(data, dict) and data.get("error") in LASTFM_TRANSIENT_CODES:
            raise _TransientAPIError(data["error"], data.get("message", ""))
        return data

    async def _call(self, method: str, **params: Any) -> Dict:
        query = {"method": method, "api_key": self.api_key, "format": "json", **params}
        try:
            data = await self._request(query)
        except TRANSIENT_ERRORS as e:
            logger.error(f"Last.fm '{method}' failed after retries: {e!r}")
            raise ProviderUnavailable(f"Last.fm {method} unavailable") from e
        except (aiohttp.ClientError, ValueError) as e:
            logger.error(f"Last.fm '{method}' returned an unusable response: {e!r}")
            raise ProviderUnavailable(f"Last.fm {method} unusable response") from e

        if not isinstance(data, dict):
            raise ProviderUnavailable(f"Last.fm {method} returned {type(data).__name__}")
        if "error" in data:
            code, message = data.get("error"), data.get("message", "")
            if code in LASTFM_NOT_FOUND_CODES:
                raise NotFound(message or "Not found")
            if code == LASTFM_PRIVATE_CODE:
                raise PrivateProfile(message or "Private profile")
            logger.warning(f"Last.fm API error {code} on '{method}': {message}")
            raise ProviderUnavailable(f"Last.fm API error {code}: {message}")
        return data

    async def fetch_recent_track(self, username: str) -> TrackSnapshot:
        data = await self._call("user.getrecenttracks", user=username, limit=1)
        tracks = _as_list((data.get("recenttracks") or {}).get("track"))
        if not tracks:
            raise NotFound(f"No recent tracks for {username}")
        return parse_recent_track(tracks[0])

    async def fetch_track_stats(self, artist: str, track: str, username: str) -> TrackStats:
        try:
            data = await self._call(
                "track.getInfo", artist=artist, track=track, username=username, autocorrect=1
            )
        except NotFound as e:
            raise TrackLookupError(f"No track info for {artist} - {track}") from e
        info = data.get("track")
        if not isinstance(info, dict):
            raise TrackLookupError(f"No track info for {artist} - {track}")
        return TrackStats(
            user_play_count=_to_int(info.get("userplaycount")),
            listeners=_to_int(info.get("listeners")),
        )

    async def fetch_top_artist(self, username: str, period: str = "overall") -> TopItem:
        data = await self._call("user.gettopartists", user=username, period=period, limit=1)
        artists = _as_list((data.get("topartists") or {}).get("artist"))
        if not artists:
            raise NotFound(f"No top artists for {username}")
        top = artists[0]
        return TopItem(name=top.get("name") or "Unknown Artist", play_count=_to_int(top.get("playcount")))

    async def fetch_top_track(self, username: str, period: str = "overall") -> TopItem:
        data = await self._call("user.gettoptracks", user=username, period=period, limit=1)
        tracks = _as_list((data.get("toptracks") or {}).get("track"))
        if not tracks:
            raise NotFound(f"No top tracks for {username}")
        top = tracks[0]
        return TopItem(
            name=top.get("name") or "Unknown Track",
            play_count=_to_int(top.get("playcount")),
            artist_name=_text(top.get("artist")) or None,
        )
