"""User lookup: resolve user reference keys to display name / username pairs."""

from __future__ import annotations

import logging
import threading

from .config import SETTINGS
from .jira_client import JiraAPI
from .models import INVALID_USER, User

logger = logging.getLogger(__name__)


def user_from_raw(raw: dict | None) -> User | None:
    """Build a User from a Jira user object (issue field, author, or lookup payload)."""
    if not raw:
        return None
    key = raw.get("accountId") or raw.get("key") or raw.get("name") or ""
    display_name = raw.get("displayName") or raw.get("name") or key
    name = raw.get("name") or raw.get("emailAddress") or key
    return User(key=key, display_name=display_name, name=name)


class UserLookupService:
    """Resolve reference keys through Jira, caching answers per key.

    Absent keys and keys Jira reports as unknown resolve to ``INVALID_USER``.
    Any other lookup failure propagates as ``UserLookupError``.
    """

    def __init__(self, api: JiraAPI, *, cache_size: int | None = None):
        self.api = api
        self._cache: dict[str, User] = {}
        self._cache_size = cache_size if cache_size is not None else SETTINGS.user_cache_size
        self._lock = threading.Lock()

    def get_user(self, key: str | None) -> User:
        if not key:
            return INVALID_USER
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached
        raw = self.api.fetch_user_raw(key)
        user = user_from_raw(raw)
        if user is None:
            logger.debug("Unknown user reference %s", key)
            user = INVALID_USER
        with self._lock:
            if len(self._cache) >= self._cache_size:
                self._cache.clear()
            self._cache[key] = user
        return user
