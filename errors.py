"""Errors raised by the bot's services and mapped to replies in the handlers."""


class BotError(Exception):
    pass


class ConfigurationMissing(BotError):
    """A required credential is absent. Fatal at startup."""


class NotFound(BotError):
    """No linked account, no recent track, or an unknown Last.fm user."""


class TrackLookupError(NotFound):
    """Last.fm has no info for the requested artist/track pair."""


class Throttled(BotError):
    def __init__(self, seconds_remaining: float):
        self.seconds_remaining = seconds_remaining
        super().__init__(f"Cooling down, {seconds_remaining:.1f}s remaining")


class ProviderUnavailable(BotError):
    """An external API failed or returned something unusable."""


class PersistenceError(BotError):
    """The user-link file could not be read, parsed or written."""


class PrivateProfile(BotError):
    """The Last.fm user hides their listening history (API error 17)."""
