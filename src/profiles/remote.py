from __future__ import annotations

from dataclasses import asdict
from typing import Optional, Set

from profiles.catalog import Catalog
from profiles.errors import ConversionError
from profiles.identity import Identity, IdentityProvider
from profiles.manager import ProfileManager
from profiles.merge import SignupDetails, build_registered_from_guest, cart_stats, merge_guest_data
from profiles.model import ClientContext, Profile, ProfileType
from profiles.session import guest_profile_id, guest_profile_key
from profiles.stores import LocalCache, RemoteProfileStore
from profiles.writeback import DEFAULT_DEBOUNCE_SECONDS, DebouncedWriter
from utils.logger import get_logger
from utils.pure import utc_now_iso

_logger = get_logger(__name__)


class RemoteProfileManager(ProfileManager):
    """
    Profile manager backed by the remote profile store.

    Mutations are batched into one trailing-edge remote write per debounce
    window. Guest profiles are also written through to the local cache on
    every mutation so a reload never loses the guest session.
    """

    variant = "remote"

    def __init__(
        self,
        remote: RemoteProfileStore,
        identity: IdentityProvider,
        catalog: Catalog,
        local_cache: LocalCache,
        session_storage: Optional[LocalCache] = None,
        client: Optional[ClientContext] = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        super().__init__(catalog, local_cache, session_storage=session_storage, client=client)
        self.remote = remote
        self.identity = identity
        self.writer = DebouncedWriter(self._write_current, delay=debounce_seconds, name="profile")
        # documents deleted during conversion; batched writes must not bring them back
        self._retired_ids: Set[str] = set()

    async def initialize_profile(self) -> Profile:
        try:
            identity = self.identity.current_identity
            if identity is not None:
                self.current_profile = await self.load_registered_profile(identity)
            else:
                self.current_profile = await self.load_guest_profile()
        except Exception:
            _logger.exception("Failed to initialize profile")
            self.current_profile = await self.create_fallback_profile()
        _logger.info(f"Profile ready: {self.current_profile.type.value} {self.current_profile.id}")
        return self.current_profile

    # ---------------------------
    # Registered profiles
    # ---------------------------

    async def load_registered_profile(self, identity: Identity) -> Profile:
        doc = await self.remote.get(identity.identifier)
        if doc is None:
            return await self.create_registered_profile(identity)

        profile = Profile.from_dict(doc)
        await self.merge_guest_data(profile)
        await self.update_last_active(profile)
        return profile

    async def create_registered_profile(self, identity: Identity) -> Profile:
        session_id = await self.session.session_id()
        profile = Profile.create(identity.identifier, ProfileType.REGISTERED, session_id, self.client)
        profile.personal_info.email = identity.email
        profile.personal_info.name = identity.display_name

        await self.merge_guest_data(profile, write_back=False)
        await self.remote.set(profile.id, profile.to_dict())
        _logger.info(f"Created new registered profile: {profile.id}")
        return profile

    async def merge_guest_data(self, profile: Profile, write_back: bool = True) -> bool:
        """
        Fold this session's cached guest profile into `profile`.

        Returns False when there was no readable guest data. Cache cleanup
        and the write-back are best-effort.
        """
        try:
            key = await self.session.guest_key()
            raw = await self.local_cache.get_item(key)
        except Exception as exc:
            _logger.warning(f"Could not read guest data to merge: {exc}")
            return False
        guest = self._decode(raw, key)
        if guest is None:
            return False

        merge_guest_data(profile, guest)

        try:
            await self.local_cache.remove_item(key)
        except Exception as exc:
            _logger.warning(f"Failed to remove merged guest data {key}: {exc}")

        if write_back:
            try:
                await self.remote.set(profile.id, profile.to_dict())
            except Exception as exc:
                _logger.warning(f"Failed to store merged profile {profile.id}: {exc}")

        _logger.info(f"Merged guest {guest.id} into registered profile {profile.id}")
        return True

    async def update_last_active(self, profile: Profile) -> None:
        now = utc_now_iso()
        profile.browsing.last_active = now
        profile.metadata["visit_count"] = int(profile.metadata.get("visit_count", 0) or 0) + 1
        try:
            await self.remote.update(
                profile.id,
                {
                    "browsing.last_active": now,
                    "metadata.visit_count": profile.metadata["visit_count"],
                },
            )
        except Exception as exc:
            _logger.warning(f"Failed to update last active for {profile.id}: {exc}")

    # ---------------------------
    # Guest profiles
    # ---------------------------

    async def load_guest_profile(self) -> Profile:
        try:
            session_id = await self.session.session_id()
            key = guest_profile_key(session_id)

            cached = self._decode(await self.local_cache.get_item(key), key)
            if cached is not None:
                self._retired_ids.discard(cached.id)
                await self.sync_guest_profile(cached)
                return cached

            profile = Profile.create(guest_profile_id(session_id), ProfileType.GUEST, session_id, self.client)
            self._retired_ids.discard(profile.id)
            await self.local_cache.set_item(key, self._encode(profile))
            try:
                await self.remote.set(profile.id, profile.to_dict())
            except Exception as exc:
                _logger.warning(f"Failed to save guest profile {profile.id} remotely: {exc}")
            return profile
        except Exception:
            _logger.exception("Failed to load guest profile")
            return await self.create_fallback_profile()

    async def sync_guest_profile(self, profile: Profile) -> None:
        try:
            await self.remote.set(profile.id, profile.to_dict(), merge=True)
        except Exception as exc:
            _logger.warning(f"Failed to sync guest profile {profile.id} remotely: {exc}")

    # ---------------------------
    # Identity transitions
    # ---------------------------

    async def convert_guest_to_registered(self, details: SignupDetails, password: str) -> Profile:
        async with self._lock:
            guest = self.current_profile
            if guest is None or guest.type != ProfileType.GUEST:
                raise ConversionError("No guest profile to convert")

            # nothing has changed if the account cannot be created
            identity = await self.identity.create_account(details.email, password)

            if details.name:
                try:
                    await self.identity.set_display_name(details.name)
                except Exception as exc:
                    _logger.warning(f"Failed to set display name for {identity.identifier}: {exc}")

            registered = build_registered_from_guest(guest, identity, details, guest.session_id)
            before_items, before_value = cart_stats(guest)

            await self.writer.flush()
            self._retired_ids.add(guest.id)
            try:
                await self.remote.delete(guest.id)
                _logger.info(f"Deleted old guest profile: {guest.id}")
            except Exception as exc:
                _logger.warning(f"Failed to delete old guest profile {guest.id}: {exc}")

            try:
                await self.remote.set(registered.id, registered.to_dict())
            except Exception as exc:
                self._retired_ids.discard(guest.id)
                raise ConversionError(f"Could not store registered profile {registered.id}") from exc

            try:
                await self.local_cache.remove_item(guest_profile_key(guest.session_id))
            except Exception as exc:
                _logger.warning(f"Failed to clear cached guest profile: {exc}")

            self.current_profile = registered
            _logger.info(f"Converted guest {guest.id} to registered profile {registered.id}")

        after_items, after_value = cart_stats(registered)
        await self.track_action(
            "guest_converted_to_registered",
            {
                "original_guest_id": guest.id,
                "new_user_id": registered.id,
                "cart_items_before": before_items,
                "cart_value_before": before_value,
                "cart_items": after_items,
                "cart_value": after_value,
            },
        )
        return registered

    async def handle_auth_change(self, identity: Optional[Identity]) -> None:
        async with self._lock:
            current = self.current_profile
            if identity is not None:
                if current is None or current.is_guest or current.id != identity.identifier:
                    await self.writer.flush()
                    self.current_profile = await self.load_registered_profile(identity)
                    _logger.info(f"Signed in, active profile {self.current_profile.id}")
            elif current is not None and not current.is_guest:
                # signing out never carries registered activity into the guest session
                await self.writer.flush()
                self.current_profile = await self.load_guest_profile()
                _logger.info(f"Signed out, active guest profile {self.current_profile.id}")

    # ---------------------------
    # Persistence
    # ---------------------------

    async def _write_through(self, profile: Profile) -> None:
        try:
            await self.local_cache.set_item(guest_profile_key(profile.session_id), self._encode(profile))
        except Exception as exc:
            _logger.warning(f"Failed to cache guest profile {profile.id}: {exc}")

    async def _persist(self) -> None:
        profile = self.current_profile
        if profile is None:
            return
        if profile.is_guest:
            await self._write_through(profile)
        self.writer.schedule()

    async def _persist_update(self) -> None:
        profile = self.current_profile
        if profile is None:
            return
        try:
            await self.remote.set(
                profile.id,
                {
                    "personal_info": asdict(profile.personal_info),
                    "preferences": profile.preferences,
                    "updated_at": profile.updated_at,
                },
                merge=True,
            )
        except Exception as exc:
            _logger.warning(f"Failed to save profile update for {profile.id}, will retry in batch: {exc}")
            self.writer.schedule()
        if profile.is_guest:
            await self._write_through(profile)

    async def _write_current(self) -> None:
        profile = self.current_profile
        if profile is None or profile.id in self._retired_ids:
            return
        await self.remote.set(profile.id, profile.to_dict(), merge=True)
        _logger.debug(f"Batched write of profile {profile.id}")

    async def flush(self) -> None:
        await self.writer.flush()

    async def close(self) -> None:
        await self.writer.close()
