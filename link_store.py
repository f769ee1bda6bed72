"""Telegram user id -> Last.fm username, persisted as one JSON object."""
import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional, Union

from errors import PersistenceError

logger = logging.getLogger(__name__)


class LinkStore:
    """Whole-file load/mutate/save store. Not safe across processes."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read user links from {self.path}: {e}")
            raise PersistenceError(f"Unreadable user file {self.path}") from e
        if not isinstance(data, dict):
            logger.error(f"User links file {self.path} does not hold a JSON object.")
            raise PersistenceError(f"Malformed user file {self.path}")
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save(self, users: Dict[str, str]) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            if self.path.parent != Path("."):
                self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(users, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            logger.error(f"Failed to write user links to {self.path}: {e}")
            raise PersistenceError(f"Could not write user file {self.path}") from e

    def get(self, chat_user_id: int) -> Optional[str]:
        return self._load().get(str(chat_user_id))

    def set(self, chat_user_id: int, username: str) -> None:
        users = self._load()
        users[str(chat_user_id)] = username
        self._save(users)
        logger.info(f"Linked Telegram user {chat_user_id} to Last.fm user '{username}'")

    def unset(self, chat_user_id: int) -> bool:
        """Remove the link. Returns False (and writes nothing) if there was none."""
        users = self._load()
        if users.pop(str(chat_user_id), None) is None:
            return False
        self._save(users)
        logger.info(f"Unlinked Telegram user {chat_user_id}")
        return True
