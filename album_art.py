"""Album art lookup: Spotify first, then a YouTube thumbnail, then a static default."""
import asyncio
import base64
import logging
import os
from typing import Dict, List, Optional, Sequence

import aiohttp
import yt_dlp
from async_lru import alru_cache

from models import UNKNOWN_ALBUM, AlbumArt

logger = logging.getLogger(__name__)

SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_SEARCH_URL = "https://api.spotify.com/v1/search"


class SpotifyAuthError(Exception):
    """Spotify rejected our bearer token (HTTP 401)."""


# ==================== SPOTIFY ====================

@alru_cache(maxsize=100, ttl=3600)
async def search_spotify(token: str, query: str, search_type: str, timeout_seconds: float = 15.0) -> List[Dict]:
    """Search Spotify for albums or tracks. Cached; errors are raised, never cached."""
    headers = {"Authorization": f"Bearer {token}"}
    params = {"q": query, "type": search_type, "limit": 5}
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout_seconds)) as session:
        async with session.get(SPOTIFY_SEARCH_URL, headers=headers, params=params) as response:
            if response.status == 401:
                raise SpotifyAuthError("Spotify token rejected")
            response.raise_for_status()
            data = await response.json()
    return (data.get(f"{search_type}s") or {}).get("items") or []


def pick_album(candidates: List[Dict], album_name: str) -> Optional[Dict]:
    """Prefer an exact name match, then a case-insensitive one, then the first result."""
    if not candidates:
        return None
    for candidate in candidates:
        if candidate.get("name") == album_name:
            return candidate
    folded = album_name.casefold()
    for candidate in candidates:
        if (candidate.get("name") or "").casefold() == folded:
            return candidate
    return candidates[0]


def _album_to_art(album: Optional[Dict]) -> Optional[AlbumArt]:
    images = (album or {}).get("images") or []
    if not images:
        return None
    return AlbumArt(
        source="spotify",
        url=images[0]["url"],
        link=((album.get("external_urls") or {}).get("spotify")),
    )


class SpotifyArtProvider:
    name = "spotify"

    def __init__(self, client_id: str, client_secret: str, timeout_seconds: float = 15.0):
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout_seconds = timeout_seconds
        self._token: Optional[str] = None

    async def _get_token(self) -> str:
        """Client-credentials token, acquired once and reused until Spotify rejects it."""
        if self._token:
            return self._token

        auth_base64 = base64.b64encode(f"{self.client_id}:{self.client_secret}".encode("utf-8")).decode("utf-8")
        headers = {
            "Authorization": f"Basic {auth_base64}",
            "Content-Type": "application/x-www-form-urlencoded"
        }
        data = {"grant_type": "client_credentials"}

        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)) as session:
            async with session.post(SPOTIFY_TOKEN_URL, headers=headers, data=data) as response:
                response.raise_for_status()
                token = (await response.json()).get("access_token")
        if not token:
            raise SpotifyAuthError("Spotify token response had no access_token")
        logger.info("Acquired Spotify client-credentials token.")
        self._token = token
        return token

    async def _search(self, token: str, artist: str, track: str, album: str) -> Optional[AlbumArt]:
        if album == UNKNOWN_ALBUM:
            items = await search_spotify(token, f"track:{track} artist:{artist}", "track", self.timeout_seconds)
            return _album_to_art(items[0].get("album") if items else None)
        items = await search_spotify(token, f"album:{album} artist:{artist}", "album", self.timeout_seconds)
        return _album_to_art(pick_album(items, album))

    async def lookup(self, artist: str, track: str, album: str) -> Optional[AlbumArt]:
        token = await self._get_token()
        try:
            return await self._search(token, artist, track, album)
        except SpotifyAuthError:
            # Expired token: fetch a fresh one and retry once
            logger.info("Spotify token rejected, re-acquiring.")
            self._token = None
        token = await self._get_token()
        try:
            return await self._search(token, artist, track, album)
        except SpotifyAuthError:
            self._token = None
            raise


# ==================== YOUTUBE ====================

def search_youtube_thumbnail_sync(query: str, timeout_seconds: float = 15.0) -> Optional[Dict]:
    """Return {'thumbnail', 'url'} for the top YouTube hit. This is a BLOCKING function."""
    ydl_opts = {
        'quiet': True,
        'no_warnings': True,
        'extract_flat': 'discard_in_playlist',
        'noplaylist': True,
        'skip_download': True,
        'socket_timeout': timeout_seconds,
    }
    with yt_dlp.YoutubeDL(ydl_opts) as ydl:
        info = ydl.extract_info(f"ytsearch1:{query}", download=False)

    for entry in (info or {}).get('entries') or []:
        if not entry or not entry.get('id'):
            continue
        video_id = entry['id']
        thumbnails = [t for t in entry.get('thumbnails') or [] if t.get('url')]
        # yt-dlp lists thumbnails from worst to best
        thumbnail = (thumbnails[-1]['url'] if thumbnails else None) or entry.get('thumbnail') \
            or f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"
        return {
            'thumbnail': thumbnail,
            'url': entry.get('webpage_url') or f"https://www.youtube.com/watch?v={video_id}",
        }
    return None


class YouTubeArtProvider:
    name = "youtube"

    def __init__(self, timeout_seconds: float = 15.0):
        self.timeout_seconds = timeout_seconds

    async def lookup(self, artist: str, track: str, album: str) -> Optional[AlbumArt]:
        # The worker thread can't be cancelled; wait_for only stops us waiting on it
        result = await asyncio.wait_for(
            asyncio.to_thread(search_youtube_thumbnail_sync, f"{artist} {track}", self.timeout_seconds),
            timeout=self.timeout_seconds,
        )
        if not result:
            return None
        return AlbumArt(source="youtube", url=result['thumbnail'], link=result['url'])


# ==================== RESOLVER ====================

def default_art(reference: Optional[str]) -> Optional[AlbumArt]:
    """Static placeholder: an http(s) URL, an existing local file, or nothing."""
    if not reference:
        return None
    if reference.startswith(("http://", "https://")):
        return AlbumArt(source="default", url=reference)
    if os.path.isfile(reference):
        return AlbumArt(source="default", path=reference)
    logger.warning(f"Default album art '{reference}' does not exist; replying without art.")
    return None


class AlbumArtResolver:
    """Tries each provider in order; the first usable image wins."""

    def __init__(self, providers: Sequence, default_reference: Optional[str] = None):
        self.providers = list(providers)
        self.default_reference = default_reference

    async def resolve(self, artist: str, track: str, album: str) -> Optional[AlbumArt]:
        for provider in self.providers:
            try:
                art = await provider.lookup(artist, track, album)
            except Exception as e:
                logger.warning(f"Album art provider '{provider.name}' failed for {artist} - {track} [{album}]: {e!r}")
                continue
            if art and (art.url or art.path):
                logger.debug(f"Album art for {artist} - {track} from {provider.name}")
                return art
            logger.info(f"No album art from '{provider.name}' for {artist} - {track} [{album}]")
        return default_art(self.default_reference)
