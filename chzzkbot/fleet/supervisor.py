"""
Per-owner connection lifecycle.

A TenantSupervisor turns one owner's stored refresh credential into a live
chat session, answers chat commands from that owner's command table, and
reconnects after unexpected connection loss. Every failure is contained
here so one owner can never disturb another.
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, Callable, Awaitable

from ..auth.refresher import CredentialRefresher
from ..chat.session import ChatSession, ChatMessage
from ..errors import AuthFailure, ConnectFailure, StoreReadFailure
from ..processing.router import CommandRouter
from ..store.commands import CommandStore
from ..store.models import Owner

logger = logging.getLogger(__name__)

OwnerLookup = Callable[[str], Awaitable[Optional[Owner]]]
SessionFactory = Callable[[str], ChatSession]


class SupervisorState(Enum):
    """Tenant lifecycle states."""
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    DISCONNECTED = "disconnected"
    ABORTED = "aborted"
    STOPPED = "stopped"


class TenantSupervisor:
    """
    Binds one owner's credential refresh, command store and chat session.

    Idle -> Starting -> Running -> Disconnected -> Starting -> ...
    Starting -> Aborted when the owner is disabled, has no refresh
    credential, or auth/connect fails. Aborted supervisors wait for the
    fleet manager's next scan to call ``start`` again.
    """

    def __init__(self,
                 owner: Owner,
                 refresher: CredentialRefresher,
                 command_store: CommandStore,
                 session_factory: SessionFactory,
                 router: Optional[CommandRouter] = None,
                 owner_lookup: Optional[OwnerLookup] = None,
                 reconnect_delay: float = 5.0):
        """
        Initialize TenantSupervisor.

        Args:
            owner: Owner record as discovered
            refresher: Credential refresher shared by all tenants
            command_store: This owner's command store
            session_factory: Creates a fresh ChatSession for an owner id
            router: Message router (defaults to the built-in commands)
            owner_lookup: Re-reads the owner record before reconnecting;
                None keeps using the record given here
            reconnect_delay: Seconds between connection loss and reconnect
        """
        self.owner = owner
        self.owner_id = owner.owner_id
        self.refresher = refresher
        self.command_store = command_store
        self.session_factory = session_factory
        self.router = router or CommandRouter()
        self.owner_lookup = owner_lookup
        self.reconnect_delay = reconnect_delay

        self.state = SupervisorState.IDLE
        self.session: Optional[ChatSession] = None

        self._start_lock = asyncio.Lock()
        self._reconnect_task: Optional[asyncio.Task] = None
        self._stopped = False

        # Status counters
        self.start_attempts = 0
        self.reconnects = 0
        self.messages_handled = 0
        self.replies_sent = 0
        self.last_error: Optional[str] = None
        self.running_since: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self.state == SupervisorState.RUNNING and self.session is not None and self.session.is_connected

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    async def start(self, owner: Optional[Owner] = None) -> bool:
        """
        Enter Starting and try to reach Running.

        Calls are serialised, so overlapping triggers (a fleet scan and a
        reconnect) cannot open two sessions.

        Args:
            owner: Fresh owner record, if the caller just read one

        Returns:
            bool: True if the supervisor is running afterwards
        """
        async with self._start_lock:
            if self._stopped:
                return False
            if self.is_running:
                return True

            try:
                return await self._start_locked(owner)
            except Exception as e:
                logger.exception(f"Unexpected error while starting bot: {e}", extra={'owner_id': self.owner_id})
                await self._abort(f"unexpected error: {e}")
                return False

    async def _start_locked(self, fresh_owner: Optional[Owner]) -> bool:
        self.state = SupervisorState.STARTING
        self.start_attempts += 1

        owner = await self._resolve_owner(fresh_owner)

        if not owner.enabled:
            logger.info("botEnabled=false, skipping", extra={'owner_id': self.owner_id})
            await self._abort("owner disabled")
            return False

        if not owner.refresh_credential:
            logger.warning("No refresh token on owner record, skipping", extra={'owner_id': self.owner_id})
            await self._abort("refresh credential missing")
            return False

        try:
            credential = await self.refresher.refresh(owner.refresh_credential, owner_id=self.owner_id)
        except AuthFailure as e:
            logger.error(f"Access token request failed: {e}", extra={'owner_id': self.owner_id})
            await self._abort(f"auth failure: {e}")
            return False

        # At most one live session per owner
        await self._teardown_session()

        await self.command_store.load()

        session = self.session_factory(self.owner_id)
        session.on_message(self._handle_message)
        session.on_disconnect(lambda reason: self._on_disconnect(session, reason))

        try:
            await session.connect(credential.access_token)
        except ConnectFailure as e:
            logger.error(f"Chat connection failed: {e}", extra={'owner_id': self.owner_id})
            await session.disconnect()
            await self._abort(f"connect failure: {e}")
            return False

        self.session = session
        # Polling also starts after a failed first load
        self.command_store.start_refresh()
        self.state = SupervisorState.RUNNING
        self.running_since = datetime.now()
        self.last_error = None

        logger.info("Bot chat connection established", extra={'owner_id': self.owner_id})
        return True

    async def _resolve_owner(self, fresh_owner: Optional[Owner]) -> Owner:
        """Pick the owner record for this start attempt."""
        if fresh_owner is not None:
            self.owner = fresh_owner
            return fresh_owner

        # The record given at construction is fresh for the first attempt only
        if self.owner_lookup is None or self.start_attempts == 1:
            return self.owner

        try:
            owner = await self.owner_lookup(self.owner_id)
        except StoreReadFailure as e:
            logger.warning(f"Owner re-read failed, using last known record: {e}", extra={'owner_id': self.owner_id})
            return self.owner

        if owner is None:
            # Record deleted: treat as disabled
            owner = Owner(owner_id=self.owner_id, enabled=False)
        self.owner = owner
        return owner

    async def _abort(self, reason: str) -> None:
        await self._teardown_session()
        self.state = SupervisorState.ABORTED
        self.last_error = reason
        self.running_since = None

    async def _teardown_session(self) -> None:
        """Stop command polling and close the current session, best-effort."""
        self.command_store.stop_refresh()

        session, self.session = self.session, None
        if session is None:
            return

        try:
            await session.disconnect()
        except Exception as e:
            logger.error(f"Error while closing previous session: {e}", extra={'owner_id': self.owner_id})

    def _on_disconnect(self, session: ChatSession, reason: str) -> None:
        # Losses reported by a session we already replaced are stale
        if self._stopped or session is not self.session:
            return

        self.state = SupervisorState.DISCONNECTED
        self.last_error = reason
        self.running_since = None
        self.command_store.stop_refresh()

        if self.reconnect_pending:
            return

        logger.warning(
            f"Chat connection lost, reconnecting in {self.reconnect_delay}s",
            extra={'owner_id': self.owner_id, 'reason': reason}
        )
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after_delay(), name=f"reconnect-{self.owner_id}"
        )

    async def _reconnect_after_delay(self) -> None:
        await asyncio.sleep(self.reconnect_delay)
        self.reconnects += 1
        await self.start()

    async def _handle_message(self, message: ChatMessage) -> None:
        self.messages_handled += 1
        logger.info(f"{message.nickname}: {message.content}", extra={'owner_id': self.owner_id})

        reply = self.router.route(message, self.command_store.snapshot)
        if reply is None:
            return

        session = self.session
        if session is None:
            return

        if await session.send(reply):
            self.replies_sent += 1

    async def stop(self) -> None:
        """Stop the supervisor for good: no reconnects, session closed intentionally."""
        self._stopped = True

        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        async with self._start_lock:
            await self._teardown_session()
            self.state = SupervisorState.STOPPED
            self.running_since = None

        logger.info("Bot stopped", extra={'owner_id': self.owner_id})

    def get_status(self) -> Dict[str, Any]:
        """
        Get supervisor status information.

        Returns:
            Dict containing lifecycle state and counters
        """
        status = {
            'owner_id': self.owner_id,
            'state': self.state.value,
            'start_attempts': self.start_attempts,
            'reconnects': self.reconnects,
            'reconnect_pending': self.reconnect_pending,
            'messages_handled': self.messages_handled,
            'replies_sent': self.replies_sent,
            'command_count': len(self.command_store.snapshot),
            'last_error': self.last_error,
        }
        if self.running_since:
            status['running_since'] = self.running_since.isoformat()
        if self.session is not None:
            status['session'] = self.session.get_status()
        return status
