import asyncio
import logging
import math
import re
import sys
import time
from typing import Any, Dict, Optional

import pytz
from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.constants import ParseMode
from telegram.error import BadRequest, NetworkError, TimedOut
from telegram.ext import AIORateLimiter, Application, CommandHandler, ContextTypes

import config
from album_art import AlbumArtResolver, SpotifyArtProvider, YouTubeArtProvider
from errors import (
    ConfigurationMissing, NotFound, PersistenceError, PrivateProfile, ProviderUnavailable, Throttled, TrackLookupError
)
from formatting import display_name, format_flex, format_status, render_status
from lastfm_client import LastFMClient
from link_store import LinkStore
from models import StatusReply
from reply_cache import ResponseCache
from throttle import ThrottleGate

# Enable logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, config.LOG_LEVEL, logging.INFO)
)
logging.getLogger("httpx").setLevel(logging.WARNING) # PTB logs every poll otherwise
logger = logging.getLogger(__name__)

# bot_data keys for shared services
STORE = "link_store"
THROTTLE = "throttle"
CACHE = "reply_cache"
LASTFM = "lastfm"
RESOLVER = "album_art"
TIMEZONE = "timezone"

# Last.fm usernames: 2-15 chars, starting with a letter
LASTFM_USERNAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_-]{1,14}$")

NO_LINK_MSG = "You need to set your Last.fm username first using /set."
NO_TRACKS_MSG = "No recent tracks found."
LASTFM_DOWN_MSG = "📡 I couldn't reach Last.fm right now. Please try again in a bit."
STORAGE_ERROR_MSG = "🗄️ I couldn't access my user list right now. Please try again later."
PRIVATE_PROFILE_MSG = "🔒 That Last.fm profile keeps its listening history private. Turn it public in your Last.fm privacy settings."


# ==================== SERVICES ====================

def load_timezone(name: str) -> pytz.BaseTzInfo:
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown BOT_TIMEZONE '{name}', falling back to UTC.")
        return pytz.UTC


def build_services() -> Dict[str, Any]:
    """Create the shared services from config. Raises ConfigurationMissing for absent credentials."""
    providers = []
    if config.SPOTIFY_CLIENT_ID and config.SPOTIFY_CLIENT_SECRET:
        providers.append(SpotifyArtProvider(
            config.SPOTIFY_CLIENT_ID, config.SPOTIFY_CLIENT_SECRET, config.HTTP_TIMEOUT_SECONDS
        ))
    else:
        logger.warning("SPOTIFY_CLIENT_ID or SPOTIFY_CLIENT_SECRET not set. Album art will come from YouTube only.")
    providers.append(YouTubeArtProvider(config.HTTP_TIMEOUT_SECONDS))

    return {
        STORE: LinkStore(config.USERS_FILE),
        THROTTLE: ThrottleGate(config.COOLDOWN_SECONDS),
        CACHE: ResponseCache(config.CACHE_TTL_SECONDS, config.CACHE_MAX_ENTRIES),
        LASTFM: LastFMClient(config.require("LASTFM_API_KEY", config.LASTFM_API_KEY), config.HTTP_TIMEOUT_SECONDS),
        RESOLVER: AlbumArtResolver(providers, config.DEFAULT_ALBUM_ART),
        TIMEZONE: load_timezone(config.BOT_TIMEZONE),
    }


async def build_status_reply(services: Dict[str, Any], username: str) -> StatusReply:
    """Fetch the latest track, its play count and album art, and format them."""
    lastfm: LastFMClient = services[LASTFM]
    snapshot = await lastfm.fetch_recent_track(username)

    stats = None
    try:
        stats = await lastfm.fetch_track_stats(snapshot.artist_name, snapshot.track_name, username)
    except (TrackLookupError, PrivateProfile, ProviderUnavailable) as e:
        logger.info(f"No play count for {snapshot.artist_name} - {snapshot.track_name} ({username}): {e}")

    art = await services[RESOLVER].resolve(snapshot.artist_name, snapshot.track_name, snapshot.album_name)
    return format_status(snapshot, art, stats, services[TIMEZONE])


async def _check_throttle(update: Update, services: Dict[str, Any]) -> bool:
    """Arm the user's cooldown. Replies and returns False while they are still cooling down."""
    try:
        services[THROTTLE].check_and_arm(update.effective_user.id, time.monotonic())
    except Throttled as e:
        await update.message.reply_text(f"⏳ Slow down! Try again in {math.ceil(e.seconds_remaining)} seconds.")
        return False
    return True


async def _linked_username(update: Update, services: Dict[str, Any]) -> Optional[str]:
    """Look up the caller's Last.fm username, replying with the reason when there is none."""
    try:
        username = await asyncio.to_thread(services[STORE].get, update.effective_user.id)
    except PersistenceError:
        await update.message.reply_text(STORAGE_ERROR_MSG)
        return None
    if not username:
        await update.message.reply_text(NO_LINK_MSG)
        return None
    return username


async def send_status(update: Update, requester: str, reply: StatusReply) -> None:
    text = render_status(requester, reply)
    markup = None
    if reply.buttons:
        markup = InlineKeyboardMarkup([[InlineKeyboardButton(label, url=url) for label, url in reply.buttons]])
    message_id = update.message.message_id

    art = reply.art
    if art:
        try:
            if art.path:
                with open(art.path, 'rb') as photo:
                    await update.message.reply_photo(
                        photo=photo, caption=text, parse_mode=ParseMode.HTML,
                        reply_markup=markup, reply_to_message_id=message_id
                    )
            else:
                await update.message.reply_photo(
                    photo=art.url, caption=text, parse_mode=ParseMode.HTML,
                    reply_markup=markup, reply_to_message_id=message_id
                )
            return
        except (BadRequest, OSError) as e:
            logger.warning(f"Could not send album art from {art.source} ({art.url or art.path}): {e}. Sending text only.")

    await update.message.reply_text(
        text, parse_mode=ParseMode.HTML, reply_markup=markup, reply_to_message_id=message_id
    )


# ==================== COMMAND HANDLERS ====================

async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Send a welcome message."""
    user = update.effective_user
    welcome_msg = (
        f"Hi {user.first_name}! 👋 I show what you're listening to on Last.fm.\n\n"
        "1️⃣ Link your account: <code>/set your_lastfm_username</code>\n"
        "2️⃣ Show off your current track: /status\n\n"
        "Type /help for all commands."
    )
    await update.message.reply_text(welcome_msg, parse_mode=ParseMode.HTML)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Send a help message."""
    help_text = (
        "🎶 <b>Now Playing Bot</b> 🎶\n\n"
        "<b>Commands:</b>\n"
        "/set <code>&lt;username&gt;</code> - Link your Last.fm account\n"
        "/unset - Unlink your Last.fm account\n"
        "/status - Show your current or last played track\n"
        "/flex - Show your all-time top artist and track\n"
        "/help - This help guide"
    )
    await update.message.reply_text(help_text, parse_mode=ParseMode.HTML)


async def set_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not update.message or not update.effective_user: return
    if not context.args:
        await update.message.reply_text("Please provide a Last.fm username. Example: /set rj")
        return

    username = context.args[0].strip()
    if not LASTFM_USERNAME_RE.match(username):
        await update.message.reply_text("❌ That doesn't look like a valid Last.fm username.")
        return

    try:
        await asyncio.to_thread(context.bot_data[STORE].set, update.effective_user.id, username)
    except PersistenceError:
        await update.message.reply_text(STORAGE_ERROR_MSG)
        return
    await update.message.reply_text(f"Username set to {username}")


async def unset_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not update.message or not update.effective_user: return
    try:
        await asyncio.to_thread(context.bot_data[STORE].unset, update.effective_user.id)
    except PersistenceError:
        await update.message.reply_text(STORAGE_ERROR_MSG)
        return
    await update.message.reply_text("Username unlinked.")


async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Reply with the caller's now-playing (or last played) track and its album art."""
    if not update.message or not update.effective_user: return
    services = context.bot_data
    user = update.effective_user

    if not await _check_throttle(update, services):
        return
    username = await _linked_username(update, services)
    if not username:
        return

    cache: ResponseCache = services[CACHE]
    reply = cache.get(username, time.monotonic())
    if reply is None:
        try:
            reply = await build_status_reply(services, username)
        except NotFound as e:
            logger.info(f"/status for {username} (user {user.id}): {e}")
            await update.message.reply_text(NO_TRACKS_MSG)
            return
        except PrivateProfile:
            await update.message.reply_text(PRIVATE_PROFILE_MSG)
            return
        except ProviderUnavailable as e:
            logger.error(f"/status for {username} (user {user.id}) failed: {e}")
            await update.message.reply_text(LASTFM_DOWN_MSG)
            return
        cache.put(username, reply, time.monotonic())
    else:
        logger.debug(f"/status cache hit for {username}")

    await send_status(update, display_name(user.first_name, user.last_name), reply)


async def flex_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Reply with the caller's all-time top artist and top track."""
    if not update.message or not update.effective_user: return
    services = context.bot_data
    user = update.effective_user

    if not await _check_throttle(update, services):
        return
    username = await _linked_username(update, services)
    if not username:
        return

    lastfm: LastFMClient = services[LASTFM]
    try:
        top_artist = await lastfm.fetch_top_artist(username)
        top_track = await lastfm.fetch_top_track(username)
    except NotFound:
        await update.message.reply_text("Not enough listening history to flex yet. Go scrobble something! 🎧")
        return
    except PrivateProfile:
        await update.message.reply_text(PRIVATE_PROFILE_MSG)
        return
    except ProviderUnavailable as e:
        logger.error(f"/flex for {username} (user {user.id}) failed: {e}")
        await update.message.reply_text(LASTFM_DOWN_MSG)
        return

    await update.message.reply_text(
        format_flex(display_name(user.first_name, user.last_name), top_artist, top_track),
        parse_mode=ParseMode.HTML,
        reply_to_message_id=update.message.message_id
    )


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log Errors caused by Updates, tell the user, and alert the admin chat if configured."""
    logger.error(msg="Exception while handling an update:", exc_info=context.error)

    error_message_text = "😓 Oops! Something went sideways on my end. Please try again in a moment!"
    if isinstance(context.error, TimedOut):
        error_message_text = "🐢 Things are a bit slow right now and the request timed out. Please try again."
    elif isinstance(context.error, NetworkError):
        error_message_text = "📡 I'm having trouble reaching Telegram. Please try again in a bit."

    if isinstance(update, Update) and update.effective_message:
        try:
            await update.effective_message.reply_text(error_message_text)
        except Exception as e_reply:
            logger.error(f"Failed to send error reply to user via effective_message: {e_reply}")

    if config.ADMIN_CHAT_ID:
        try:
            await context.bot.send_message(
                chat_id=config.ADMIN_CHAT_ID,
                text=f"⚠️ Handler error: {type(context.error).__name__}: {str(context.error)[:300]}"
            )
        except Exception as e_alert:
            logger.error(f"Failed to alert admin chat {config.ADMIN_CHAT_ID}: {e_alert}")


def build_application(token: str) -> Application:
    application = (
        Application.builder()
        .token(token)
        .connect_timeout(20.0)
        .read_timeout(40.0)
        .write_timeout(60.0)
        .pool_timeout(180.0)
        .rate_limiter(AIORateLimiter(overall_max_rate=20, max_retries=3))
        .build()
    )
    application.bot_data.update(build_services())

    application.add_handler(CommandHandler("start", start))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("set", set_command))
    application.add_handler(CommandHandler("unset", unset_command))
    application.add_handler(CommandHandler("status", status_command))
    application.add_handler(CommandHandler("flex", flex_command))
    application.add_error_handler(error_handler)
    return application


def main() -> None:
    """Start the bot."""
    try:
        application = build_application(config.require("TELEGRAM_TOKEN", config.TOKEN))
    except ConfigurationMissing as e:
        logger.critical(f"FATAL: {e} Bot cannot start.")
        sys.exit(1)

    logger.info("🚀 Starting Now Playing Bot... Attempting to connect to Telegram.")
    try:
        application.run_polling(allowed_updates=Update.ALL_TYPES, drop_pending_updates=True)
    except TimedOut:
        logger.critical("Bot timed out connecting to Telegram. Check network or token.", exc_info=True)
    except NetworkError as ne:
        logger.critical(f"Network error starting bot: {ne}. Check network.", exc_info=True)
    finally:
        logger.info("Now Playing Bot has shut down.")


if __name__ == "__main__":
    main()
