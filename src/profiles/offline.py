from __future__ import annotations

from typing import Optional

from profiles.errors import ConversionError
from profiles.identity import Identity
from profiles.manager import ProfileManager
from profiles.merge import SignupDetails
from profiles.model import Profile, ProfileType
from utils.logger import get_logger
from utils.pure import make_token, utc_now_iso

_logger = get_logger(__name__)


class OfflineProfileManager(ProfileManager):
    """
    Profile manager used when the remote profile store is unreachable.

    Same field-level behaviour as the remote variant, but every mutation is
    written straight to the local cache under a single key.
    """

    variant = "offline"
    storage_key = "offline_profile"

    async def initialize_profile(self) -> Profile:
        try:
            stored = self._decode(await self.local_cache.get_item(self.storage_key), self.storage_key)
            if stored is not None:
                now = utc_now_iso()
                stored.metadata["visit_count"] = int(stored.metadata.get("visit_count", 0) or 0) + 1
                stored.browsing.last_active = now
                stored.touch(now)
                self.current_profile = stored
            else:
                session_id = await self._session_id_or_new()
                self.current_profile = Profile.create(
                    make_token("profile"), ProfileType.GUEST, session_id, self.client
                )
            await self._persist()
        except Exception:
            _logger.exception("Failed to initialize offline profile")
            self.current_profile = Profile.create(
                make_token("profile"), ProfileType.GUEST, make_token("session"), self.client
            )
        _logger.info(f"Offline profile ready: {self.current_profile.id}")
        return self.current_profile

    async def _persist(self) -> None:
        if self.current_profile is None:
            return
        try:
            await self.local_cache.set_item(self.storage_key, self._encode(self.current_profile))
        except Exception as exc:
            _logger.error(f"Failed to save offline profile: {exc}")

    async def handle_auth_change(self, identity: Optional[Identity]) -> None:
        _logger.info("Auth change detected in offline mode - profile will remain local")

    async def convert_guest_to_registered(self, details: SignupDetails, password: str) -> Profile:
        raise ConversionError("Creating an account needs the remote profile store, which is offline")
