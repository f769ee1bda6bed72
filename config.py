import os
from typing import Optional

from dotenv import load_dotenv

from errors import ConfigurationMissing

# Load environment variables
load_dotenv()
TOKEN = os.getenv("TELEGRAM_TOKEN")
LASTFM_API_KEY = os.getenv("LASTFM_API_KEY")
LASTFM_API_SECRET = os.getenv("LASTFM_API_SECRET") # Not needed for read-only calls
SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID")
SPOTIFY_CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET")
ADMIN_CHAT_ID = os.getenv("ADMIN_CHAT_ID")

USERS_FILE = os.getenv("USERS_FILE", "users.json")
# Last.fm's own "no artwork" star
LASTFM_PLACEHOLDER_ART = "https://lastfm.freetls.fastly.net/i/u/300x300/2a96cbd8b46e442fc41c2b86b821562f.png"
DEFAULT_ALBUM_ART = os.getenv("DEFAULT_ALBUM_ART") or LASTFM_PLACEHOLDER_ART # URL or local file path
BOT_TIMEZONE = os.getenv("BOT_TIMEZONE", "UTC")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

COOLDOWN_SECONDS = float(os.getenv("COOLDOWN_SECONDS", "10"))
CACHE_TTL_SECONDS = float(os.getenv("CACHE_TTL_SECONDS", "15"))
CACHE_MAX_ENTRIES = int(os.getenv("CACHE_MAX_ENTRIES", "128"))
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "15"))


def require(name: str, value: Optional[str]) -> str:
    """Return value or fail loudly at startup."""
    if not value:
        raise ConfigurationMissing(f"{name} is not set in the environment.")
    return value
