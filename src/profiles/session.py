from __future__ import annotations

from typing import Optional

from profiles.stores import LocalCache
from utils.pure import make_token

SESSION_KEY = "session_id"
GUEST_PROFILE_PREFIX = "guest_profile_"


def guest_profile_key(session_id: str) -> str:
    """Local cache key holding the guest profile of a browser session."""
    return f"{GUEST_PROFILE_PREFIX}{session_id}"


def guest_profile_id(session_id: str) -> str:
    return f"guest_{session_id}"


class BrowserSession:
    """
    Per-browser-session identifier, generated once and kept in session storage.

    Guest profile ids and their cache keys are both derived from this value;
    losing it loses the link to the guest profile.
    """

    def __init__(self, storage: LocalCache):
        self.storage = storage
        self._session_id: Optional[str] = None

    async def session_id(self) -> str:
        if self._session_id is None:
            stored = await self.storage.get_item(SESSION_KEY)
            if not stored:
                stored = make_token("session")
                await self.storage.set_item(SESSION_KEY, stored)
            self._session_id = stored
        return self._session_id

    async def guest_key(self) -> str:
        return guest_profile_key(await self.session_id())
