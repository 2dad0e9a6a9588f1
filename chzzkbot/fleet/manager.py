"""
Fleet discovery and supervision.

The FleetManager periodically asks the document store which owners have
the bot enabled and makes sure each of them has a TenantSupervisor.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Any, Optional, Callable, List, Union

from .supervisor import TenantSupervisor, SupervisorState
from ..errors import StoreReadFailure
from ..store.firestore import FirestoreDocumentStore
from ..store.models import Owner

logger = logging.getLogger(__name__)

SupervisorFactory = Callable[[Owner], TenantSupervisor]


class StaticOwnerSource:
    """Owner source for single-tenant mode: always the one configured owner."""

    def __init__(self, owner: Owner):
        self.owner = owner

    async def list_enabled_owners(self) -> List[Owner]:
        return [self.owner]


class FleetManager:
    """
    Tracks one TenantSupervisor per owner.

    A scan starts supervisors for newly enabled owners and retries aborted
    ones. Running supervisors are left alone, and owners that drop out of
    the enabled set are not torn down by a scan.
    """

    def __init__(self, document_store: Union[FirestoreDocumentStore, StaticOwnerSource],
                 supervisor_factory: SupervisorFactory,
                 scan_interval: float = 60.0):
        """
        Initialize FleetManager.

        Args:
            document_store: Source of enabled owners (the store, or a fixed owner)
            supervisor_factory: Builds a supervisor for a newly seen owner
            scan_interval: Seconds between discovery scans
        """
        self.document_store = document_store
        self.supervisor_factory = supervisor_factory
        self.scan_interval = scan_interval

        self.tenants: Dict[str, TenantSupervisor] = {}

        self._scan_lock = asyncio.Lock()
        self._scan_task: Optional[asyncio.Task] = None

        self.scans_completed = 0
        self.scans_failed = 0
        self.last_scan_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._scan_task is not None and not self._scan_task.done()

    async def scan(self) -> List[str]:
        """
        Run one discovery pass.

        Store failures are logged and the pass is skipped; they never
        propagate to the caller.

        Returns:
            List of owner ids whose supervisors were started or retried
        """
        async with self._scan_lock:
            try:
                owners = await self.document_store.list_enabled_owners()
            except StoreReadFailure as e:
                self.scans_failed += 1
                logger.error(f"Owner scan failed, retrying next interval: {e}")
                return []

            self.last_scan_at = datetime.now()
            self.scans_completed += 1

            if not owners:
                logger.info("No owners with botEnabled=true")
                return []

            triggered = []
            starts = []
            for owner in owners:
                supervisor = self.tenants.get(owner.owner_id)

                if supervisor is None:
                    supervisor = self.supervisor_factory(owner)
                    self.tenants[owner.owner_id] = supervisor
                    logger.info("Starting bot for newly enabled owner", extra={'owner_id': owner.owner_id})
                    starts.append(supervisor.start())
                elif supervisor.state == SupervisorState.ABORTED:
                    logger.info("Retrying aborted bot", extra={'owner_id': owner.owner_id})
                    starts.append(supervisor.start(owner))
                else:
                    continue

                triggered.append(owner.owner_id)

            # Owners start concurrently; one slow handshake does not hold up the rest
            results = await asyncio.gather(*starts, return_exceptions=True)
            for owner_id, result in zip(triggered, results):
                if isinstance(result, Exception):
                    logger.error(f"Bot start raised: {result}", extra={'owner_id': owner_id})

            return triggered

    async def _scan_loop(self) -> None:
        while True:
            await asyncio.sleep(self.scan_interval)
            try:
                await self.scan()
            except Exception as e:
                logger.exception(f"Unexpected error during owner scan: {e}")

    async def start(self) -> None:
        """Run an initial scan, then keep scanning on the interval."""
        if self.is_running:
            return

        logger.info(f"Starting fleet manager (scan every {self.scan_interval}s)")
        try:
            await self.scan()
        except Exception as e:
            logger.exception(f"Unexpected error during initial owner scan: {e}")

        self._scan_task = asyncio.create_task(self._scan_loop(), name="fleet-scan")

    async def stop(self) -> None:
        """Stop scanning and stop every supervisor."""
        task, self._scan_task = self._scan_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        supervisors = list(self.tenants.values())
        if supervisors:
            results = await asyncio.gather(*(s.stop() for s in supervisors), return_exceptions=True)
            for supervisor, result in zip(supervisors, results):
                if isinstance(result, Exception):
                    logger.error(f"Error stopping bot: {result}", extra={'owner_id': supervisor.owner_id})

        logger.info("Fleet manager stopped")

    def get_status(self) -> Dict[str, Any]:
        """
        Get fleet status information.

        Returns:
            Dict containing scan counters and per-owner supervisor states
        """
        states: Dict[str, int] = {}
        for supervisor in self.tenants.values():
            states[supervisor.state.value] = states.get(supervisor.state.value, 0) + 1

        return {
            'scanning': self.is_running,
            'scan_interval': self.scan_interval,
            'scans_completed': self.scans_completed,
            'scans_failed': self.scans_failed,
            'last_scan_at': self.last_scan_at.isoformat() if self.last_scan_at else None,
            'tenant_count': len(self.tenants),
            'states': states,
            'tenants': {owner_id: s.get_status() for owner_id, s in self.tenants.items()},
        }
