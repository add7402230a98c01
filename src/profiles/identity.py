"""Identity provider contract and the account-table implementation used by the storefront."""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, replace
from typing import Any, Callable, List, Optional, Protocol, Set

from db import crud
from db.models import Account
from profiles.errors import AccountExistsError, IdentityError, InvalidCredentialsError
from profiles.stores import LocalCache
from utils.logger import get_logger

_logger = get_logger(__name__)

AUTH_CACHE_KEY = "auth_uid"


@dataclass(frozen=True)
class Identity:
    identifier: str
    email: Optional[str] = None
    display_name: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "Identity":
        return cls(
            identifier=account.uid,
            email=account.email,
            display_name=account.display_name,
        )


IdentityCallback = Callable[[Optional[Identity]], Any]


class IdentityProvider(Protocol):
    @property
    def current_identity(self) -> Optional[Identity]: ...

    def on_identity_change(self, callback: IdentityCallback) -> Callable[[], None]: ...

    async def create_account(self, email: str, password: str) -> Identity: ...

    async def set_display_name(self, name: str) -> None: ...

    async def sign_in(self, email: str, password: str) -> Identity: ...

    async def sign_out(self) -> None: ...


class LocalIdentityProvider:
    """
    IdentityProvider backed by the `accounts` table.

    The signed-in uid is remembered in `auth_cache` (when given) so a restart
    restores the session. Subscribers are called once with the current state
    after `start()` has determined it, and again on every sign-in/sign-out.
    Callbacks run as separate tasks on the event loop, never inline with the
    call that caused the change.
    """

    def __init__(self, db_path: Optional[str] = None, auth_cache: Optional[LocalCache] = None):
        self.db_path = db_path
        self.auth_cache = auth_cache
        self._current: Optional[Identity] = None
        self._ready = False
        self._listeners: List[IdentityCallback] = []
        self._tasks: Set[asyncio.Task] = set()

    @property
    def current_identity(self) -> Optional[Identity]:
        return self._current

    @property
    def ready(self) -> bool:
        return self._ready

    async def start(self) -> Optional[Identity]:
        """Restore a remembered sign-in, then announce the initial state to subscribers."""
        if self.auth_cache is not None:
            uid = await self.auth_cache.get_item(AUTH_CACHE_KEY)
            if uid:
                account = await crud.get_account(uid, self.db_path)
                if account is None:
                    _logger.warning(f"Remembered account {uid} no longer exists")
                    await self.auth_cache.remove_item(AUTH_CACHE_KEY)
                else:
                    self._current = Identity.from_account(account)
        self._ready = True
        self._notify(self._listeners)
        return self._current

    def on_identity_change(self, callback: IdentityCallback) -> Callable[[], None]:
        self._listeners.append(callback)
        if self._ready:
            self._notify([callback])

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def create_account(self, email: str, password: str) -> Identity:
        try:
            account = await crud.register_account(email, password, db_path=self.db_path)
        except ValueError as exc:
            if "already registered" in str(exc):
                raise AccountExistsError(str(exc)) from exc
            raise InvalidCredentialsError(str(exc)) from exc
        _logger.info(f"Created account {account.uid} for {account.email}")
        await self._set_current(Identity.from_account(account))
        return self._current

    async def set_display_name(self, name: str) -> None:
        if self._current is None:
            raise IdentityError("No signed-in account to rename")
        await crud.set_display_name(self._current.identifier, name, self.db_path)
        self._current = replace(self._current, display_name=name)

    async def sign_in(self, email: str, password: str) -> Identity:
        account = await crud.login(email, password, self.db_path)
        if account is None:
            raise InvalidCredentialsError("Invalid email or password")
        await self._set_current(Identity.from_account(account))
        return self._current

    async def sign_out(self) -> None:
        if self._current is None:
            return
        await self._set_current(None)

    async def wait_idle(self) -> None:
        """Wait for every scheduled subscriber callback to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _set_current(self, identity: Optional[Identity]) -> None:
        self._current = identity
        if self.auth_cache is not None:
            if identity is None:
                await self.auth_cache.remove_item(AUTH_CACHE_KEY)
            else:
                await self.auth_cache.set_item(AUTH_CACHE_KEY, identity.identifier)
        self._ready = True
        self._notify(self._listeners)

    def _notify(self, listeners: List[IdentityCallback]) -> None:
        loop = asyncio.get_running_loop()
        for callback in list(listeners):
            task = loop.create_task(self._deliver(callback, self._current))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _deliver(self, callback: IdentityCallback, identity: Optional[Identity]) -> None:
        try:
            result = callback(identity)
            if inspect.isawaitable(result):
                await result
        except Exception:
            _logger.exception("Identity change subscriber failed")
