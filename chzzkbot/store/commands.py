"""
Per-owner command table snapshots.

The store has no change notification, so commands are polled on a fixed
interval. Lookups always see the most recently successful load.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from .firestore import FirestoreDocumentStore
from .models import CommandTable
from ..errors import StoreReadFailure

logger = logging.getLogger(__name__)


class CommandStore:
    """
    Holds the latest command table for one owner and keeps it fresh.

    ``load`` and ``refresh`` never raise. A failed first load yields an empty
    table; a failed later load leaves the previous snapshot in place.
    """

    def __init__(self, document_store: FirestoreDocumentStore, owner_id: str,
                 refresh_interval: float = 30.0):
        """
        Initialize CommandStore.

        Args:
            document_store: Store to read command tables from
            owner_id: Owner whose commands are tracked
            refresh_interval: Seconds between polls
        """
        self.document_store = document_store
        self.owner_id = owner_id
        self.refresh_interval = refresh_interval

        self._snapshot = CommandTable.empty(owner_id)
        self._has_loaded = False
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def snapshot(self) -> CommandTable:
        """The most recently successfully loaded command table."""
        return self._snapshot

    @property
    def is_refreshing(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    async def _fetch(self) -> Optional[CommandTable]:
        try:
            commands = await self.document_store.get_commands(self.owner_id)
        except StoreReadFailure as e:
            logger.warning(f"Command table read failed: {e}", extra={'owner_id': self.owner_id})
            return None
        except Exception as e:
            logger.exception(f"Unexpected error reading command table: {e}", extra={'owner_id': self.owner_id})
            return None

        return CommandTable(owner_id=self.owner_id, commands=commands, loaded_at=datetime.now())

    async def load(self) -> CommandTable:
        """
        Load the command table, replacing the snapshot on success.

        Returns:
            CommandTable: The snapshot now in effect
        """
        table = await self._fetch()

        if table is not None:
            self._snapshot = table
            self._has_loaded = True
            logger.info(
                f"Loaded {len(table)} commands",
                extra={'owner_id': self.owner_id, 'triggers': list(table.commands)}
            )
        elif not self._has_loaded:
            logger.warning("Using empty command table after failed first load", extra={'owner_id': self.owner_id})
            self._snapshot = CommandTable.empty(self.owner_id)
        else:
            logger.warning("Keeping previous command table", extra={'owner_id': self.owner_id})

        return self._snapshot

    async def refresh(self) -> bool:
        """
        Poll the store once.

        Returns:
            bool: True if the snapshot was replaced, False if the previous one was kept
        """
        table = await self._fetch()
        if table is None:
            logger.warning("Command refresh failed, keeping previous table", extra={'owner_id': self.owner_id})
            return False

        self._snapshot = table
        self._has_loaded = True
        logger.debug(f"Refreshed {len(table)} commands", extra={'owner_id': self.owner_id})
        return True

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            await self.refresh()

    def start_refresh(self) -> asyncio.Task:
        """
        Start periodic polling, replacing any schedule already running.

        Returns:
            asyncio.Task: Handle of the polling task
        """
        self.stop_refresh()
        self._refresh_task = asyncio.create_task(
            self._refresh_loop(), name=f"commands-refresh-{self.owner_id}"
        )
        return self._refresh_task

    def stop_refresh(self) -> None:
        """Cancel periodic polling if it is running."""
        if self._refresh_task and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = None
