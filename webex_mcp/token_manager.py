"""Token lifecycle manager.

Owns the in-memory token record for one credential source, consults the
secure store before asking the interactive fetcher for a new token, and
keeps a single background task that renews the token ahead of expiry.

Every token change flows through ``force_refresh``; everything else reads.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Protocol

from webex_mcp.errors import AuthUnavailable, WebexMCPError
from webex_mcp.keychain import TokenStore
from webex_mcp.models import TokenRecord, TokenStatus
from webex_mcp.utils import format_iso, format_minutes, utcnow

logger = logging.getLogger(__name__)

# Lead time before expiry at which a refresh is scheduled
REFRESH_BEFORE_EXPIRY = timedelta(minutes=30)
# Delay used when the token is already inside the refresh window
IMMEDIATE_REFRESH_DELAY = 1.0
# Backoff before the single retry of a failed scheduled refresh
REFRESH_RETRY_DELAY = 5 * 60.0

RefreshListener = Callable[[str], None]


class CredentialFetcher(Protocol):
    async def fetch(self) -> TokenRecord: ...


class TokenLifecycleManager:
    """Caches, persists and proactively refreshes one bearer token.

    Usage:
        manager = TokenLifecycleManager(store, fetcher)
        token = await manager.get_valid_token()
        ...
        await manager.shutdown()

    Args:
        store: Secure credential store used across process restarts.
        fetcher: Interactive credential fetcher producing fresh records.
        clock: Returns the current aware UTC datetime.
        sleep: Coroutine function used to wait before scheduled refreshes.
    """

    def __init__(
        self,
        store: TokenStore,
        fetcher: CredentialFetcher,
        *,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.fetcher = fetcher
        self._clock = clock
        self._sleep = sleep
        self._record: TokenRecord | None = None
        self._refresh_task: asyncio.Task | None = None
        self._listeners: list[RefreshListener] = []
        self._lock = asyncio.Lock()
        # Bumped by clear_cached_token to invalidate in-flight fetches
        self._generation = 0

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_refresh_listener(self, listener: RefreshListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_refresh_listener(self, listener: RefreshListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_refresh_callback(self, callback: RefreshListener) -> None:
        """Replace every listener with a single callback."""
        self._listeners = [callback]

    def _notify(self, token: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(token)
            except Exception:
                logger.exception("Token refresh listener %r failed", listener)

    # ------------------------------------------------------------------
    # Read paths
    # ------------------------------------------------------------------

    def get_cached_token(self) -> str | None:
        """Return the cached token if it has not expired. Never fetches."""
        if self._record and self._record.is_valid(self._clock()):
            return self._record.token
        return None

    async def get_valid_token(self) -> str:
        """Return a usable token: memory, then secure store, then a fresh fetch.

        Raises:
            AuthUnavailable: If a fetch was needed and failed.
        """
        cached = self.get_cached_token()
        if cached:
            return cached

        async with self._lock:
            # A concurrent caller may have refreshed while we waited.
            cached = self.get_cached_token()
            if cached:
                return cached

            stored = self.store.load()
            if stored and stored.is_valid(self._clock()):
                self._record = stored
                self._schedule_refresh(stored.expires_at)
                logger.info("Using valid token from secure store")
                return stored.token

            logger.info("Token expired or missing, fetching a new one...")
            return await self._refresh_locked()

    @property
    def has_pending_refresh(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    def get_token_status(self) -> TokenStatus:
        """Describe the persisted (or, failing that, cached) token."""
        record = self.store.load() or self._record
        if record is None:
            return {
                "has_token": False,
                "is_valid": False,
                "expires_at": None,
                "expires_in": None,
            }
        now = self._clock()
        is_valid = record.is_valid(now)
        return {
            "has_token": True,
            "is_valid": is_valid,
            "expires_at": format_iso(record.expires_at),
            "expires_in": (
                format_minutes(record.expires_in(now).total_seconds()) if is_valid else "expired"
            ),
        }

    # ------------------------------------------------------------------
    # Write paths
    # ------------------------------------------------------------------

    async def force_refresh(self) -> str:
        """Fetch a new token, persist it, cache it and reschedule renewal.

        Raises:
            AuthUnavailable: If the fetcher fails, or the token was cleared
                while the fetch was in progress.
        """
        async with self._lock:
            return await self._refresh_locked()

    async def _refresh_locked(self) -> str:
        generation = self._generation
        logger.info("Starting token fetch via %s...", type(self.fetcher).__name__)
        try:
            record = await self.fetcher.fetch()
        except AuthUnavailable:
            raise
        except Exception as e:
            raise AuthUnavailable(
                f"Could not obtain a new token: {e}",
                details=type(e).__name__,
            ) from e

        if generation != self._generation:
            logger.info("Token cache was cleared during the fetch, discarding the new token")
            raise AuthUnavailable("Credentials were cleared while a new token was being fetched")

        try:
            self.store.store(record)
        except WebexMCPError as e:
            logger.warning("Token not persisted, keeping it in memory only: %s", e)

        self._record = record
        self._schedule_refresh(record.expires_at)
        self._notify(record.token)

        logger.info("Token refreshed, expires at %s", format_iso(record.expires_at))
        return record.token

    def clear_cached_token(self) -> None:
        """Cancel the pending refresh and forget the token everywhere.

        A fetch already in flight is discarded when it completes.
        """
        self._generation += 1
        self._cancel_refresh()
        self._record = None
        self.store.clear()
        logger.info("Token cache cleared")

    async def shutdown(self) -> None:
        """Cancel the pending refresh task and wait for it to finish."""
        task = self._refresh_task
        self._refresh_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _cancel_refresh(self) -> None:
        task = self._refresh_task
        self._refresh_task = None
        # The running refresh reschedules its successor; it must not cancel itself.
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _schedule_refresh(self, expires_at: datetime) -> None:
        self._cancel_refresh()

        refresh_at = expires_at - REFRESH_BEFORE_EXPIRY
        delay = (refresh_at - self._clock()).total_seconds()

        if delay <= 0:
            logger.info("Token expiring soon, scheduling immediate refresh")
            delay = IMMEDIATE_REFRESH_DELAY
        else:
            logger.info("Scheduling token refresh in %s", format_minutes(delay))

        self._refresh_task = asyncio.create_task(self._scheduled_refresh(delay))

    async def _scheduled_refresh(self, delay: float) -> None:
        await self._sleep(delay)
        try:
            logger.info("Executing scheduled token refresh...")
            await self.force_refresh()
            return
        except Exception as e:
            logger.error(
                "Scheduled refresh failed: %s. Retrying in %s",
                e,
                format_minutes(REFRESH_RETRY_DELAY),
            )

        await self._sleep(REFRESH_RETRY_DELAY)
        try:
            await self.force_refresh()
        except Exception as e:
            logger.error(
                "Refresh retry failed: %s. The token will be renewed on next use", e
            )
