"""
Startup and identity wiring for the storefront.

Storefront is built once at startup and owns the single profile manager,
the catalog handle and the cart projection; everything else gets them from
here instead of from module globals.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, Mapping, Optional

from profiles.cart import CartProjection
from profiles.catalog import Catalog
from profiles.checkout import CheckoutGateway, run_checkout
from profiles.events import EventShipper, EventSink
from profiles.identity import Identity, IdentityProvider
from profiles.manager import ProfileManager
from profiles.merge import SignupDetails
from profiles.model import ClientContext, Profile
from profiles.offline import OfflineProfileManager
from profiles.remote import RemoteProfileManager
from profiles.stores import LocalCache, RemoteProfileStore
from profiles.writeback import DEFAULT_DEBOUNCE_SECONDS
from utils.logger import get_logger
from utils.pure import utc_now_iso

_logger = get_logger(__name__)

AUTH_WAIT_TIMEOUT_SECONDS = 5.0
EXPORT_VERSION = "1.0"


class Storefront:
    def __init__(
        self,
        identity: IdentityProvider,
        remote: RemoteProfileStore,
        local_cache: LocalCache,
        catalog: Catalog,
        session_storage: Optional[LocalCache] = None,
        sink: Optional[EventSink] = None,
        client: Optional[ClientContext] = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        auth_timeout_seconds: float = AUTH_WAIT_TIMEOUT_SECONDS,
    ):
        self.identity = identity
        self.remote = remote
        self.local_cache = local_cache
        self.session_storage = session_storage
        self.catalog = catalog
        self.client = client or ClientContext()
        self.debounce_seconds = debounce_seconds
        self.auth_timeout_seconds = auth_timeout_seconds
        self.events = EventShipper(sink)

        self.profiles: Optional[ProfileManager] = None
        self.cart: Optional[CartProjection] = None
        self.is_initialized = False
        self.database_available = False
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def current_profile(self) -> Optional[Profile]:
        return self.profiles.get_current_profile() if self.profiles else None

    # ---------------------------
    # Startup
    # ---------------------------

    async def wait_for_initial_identity(self) -> Optional[Identity]:
        """First identity notification from the provider, or None after the timeout."""
        first: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_first(identity: Optional[Identity]) -> None:
            if not first.done():
                first.set_result(identity)

        unsubscribe = self.identity.on_identity_change(on_first)
        try:
            identity = await asyncio.wait_for(first, timeout=self.auth_timeout_seconds)
        except asyncio.TimeoutError:
            _logger.warning("Auth state determination timed out, proceeding as anonymous")
            return None
        finally:
            unsubscribe()
        _logger.info(
            f"Initial auth state determined: {'logged in as ' + str(identity.email) if identity else 'anonymous user'}"
        )
        return identity

    async def initialize(self) -> Profile:
        """
        Pick the manager variant and load the profile.

        Falls back to the offline manager when the remote store cannot be
        reached or anything else fails; a storefront always ends up with a
        profile.
        """
        try:
            await self.wait_for_initial_identity()
            await self.remote.ping()
            self.database_available = True
            manager = RemoteProfileManager(
                self.remote,
                self.identity,
                self.catalog,
                self.local_cache,
                session_storage=self.session_storage,
                client=self.client,
                debounce_seconds=self.debounce_seconds,
            )
            await manager.initialize_profile()
            self.profiles = manager
            self.is_initialized = True
        except Exception:
            _logger.exception("Storefront initialization failed, falling back to offline profile manager")
            self.is_initialized = False
            manager = OfflineProfileManager(
                self.catalog,
                self.local_cache,
                session_storage=self.session_storage,
                client=self.client,
            )
            await manager.initialize_profile()
            self.profiles = manager

        self.cart = CartProjection(self.profiles, self.catalog)
        self.cart.sync_with_profile()
        self._unsubscribe = self.identity.on_identity_change(self._on_identity_change)
        return self.profiles.get_current_profile()

    async def _on_identity_change(self, identity: Optional[Identity]) -> None:
        try:
            await self.profiles.handle_auth_change(identity)
            self.cart.sync_with_profile()
        except Exception:
            _logger.exception("Error handling auth state change")

    # ---------------------------
    # Accounts
    # ---------------------------

    async def sign_up(
        self,
        email: str,
        password: str,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        marketing_emails: bool = False,
    ) -> Profile:
        """Guests are converted in place; anyone else gets a plain new account."""
        details = SignupDetails(email=email, name=name, phone=phone, marketing_emails=marketing_emails)
        profile = self.current_profile
        try:
            if profile is not None and profile.is_guest:
                registered = await self.profiles.convert_guest_to_registered(details, password)
                self.cart.sync_with_profile()
                self.events.ship(
                    "guest_converted_to_registered",
                    {
                        "uid": registered.id,
                        "email": email,
                        "converted_from_guest": True,
                        "cart_items": len(registered.shopping.cart.items),
                    },
                )
                return registered

            identity = await self.identity.create_account(email, password)
            if name:
                await self.identity.set_display_name(name)
            await self.profiles.handle_auth_change(identity)
            await self.profiles.update_profile(
                {"personal_info": {"email": identity.email, "name": name, "phone": phone}}
            )
            self.cart.sync_with_profile()
            self.events.ship(
                "user_signed_up",
                {"uid": identity.identifier, "email": identity.email, "converted_from_guest": False},
            )
            return self.current_profile
        except Exception as exc:
            _logger.error(f"Sign up failed: {exc}")
            raise

    async def sign_in(self, email: str, password: str) -> Profile:
        identity = await self.identity.sign_in(email, password)
        await self.profiles.handle_auth_change(identity)
        self.cart.sync_with_profile()
        self.events.ship("user_signed_in", {"uid": identity.identifier, "email": identity.email})
        return self.current_profile

    async def sign_out(self) -> Profile:
        await self.identity.sign_out()
        await self.profiles.handle_auth_change(None)
        self.cart.sync_with_profile()
        self.events.ship("user_signed_out")
        return self.current_profile

    # ---------------------------
    # Checkout, export, status
    # ---------------------------

    async def checkout(
        self, gateway: CheckoutGateway, customer_info: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        if customer_info is None:
            info = self.current_profile.personal_info if self.current_profile else None
            customer_info = {"email": info.email, "name": info.name} if info else {}
        return await run_checkout(self.profiles, self.cart, gateway, customer_info, self.events)

    async def export_profile_data(self) -> Optional[Dict[str, Any]]:
        profile = self.current_profile
        if profile is None:
            return None
        export = {
            "profile": profile.to_dict(),
            "export_timestamp": utc_now_iso(),
            "export_version": EXPORT_VERSION,
        }
        self.events.ship(
            "profile_data_exported",
            {"profile_id": profile.id, "export_size": len(json.dumps(export))},
        )
        return export

    def profile_status(self) -> Dict[str, Any]:
        profile = self.current_profile
        identity = self.identity.current_identity
        return {
            "storefront_initialized": self.is_initialized,
            "profile_manager": self.profiles.variant if self.profiles else None,
            "current_profile_exists": profile is not None,
            "current_profile_type": profile.type.value if profile else None,
            "current_profile_id": profile.id if profile else None,
            "auth_user": identity.email if identity else "none",
            "database_available": self.database_available,
        }

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self.profiles is not None:
            await self.profiles.close()
        await self.events.drain()
