"""
Firestore document store access.

This module reads owner records and command tables from Cloud Firestore
with the async Firestore client, authenticating as a Google service
account. Client, auth and transport errors are translated into
StoreReadFailure.
"""

import asyncio
import inspect
import logging
from typing import List, Optional, Dict

from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore
from google.oauth2 import service_account

from .models import Owner, OWNER_ENABLED_FIELD, COMMANDS_FIELD
from ..config.settings import GlobalConfig
from ..errors import StoreReadFailure

logger = logging.getLogger(__name__)

STORE_ERRORS = (
    api_exceptions.GoogleAPIError,
    auth_exceptions.GoogleAuthError,
    asyncio.TimeoutError,
    ValueError,
)


class FirestoreDocumentStore:
    """Reads owners and command tables from Firestore collections."""

    def __init__(self,
                 credentials: service_account.Credentials,
                 project_id: str,
                 owners_collection: str = "users",
                 commands_collection: str = "commands",
                 timeout: float = 30.0):
        """
        Initialize FirestoreDocumentStore.

        Args:
            credentials: Service account credentials for the project
            project_id: Google Cloud project holding the database
            owners_collection: Collection holding owner records
            commands_collection: Collection holding command tables
            timeout: Timeout for each read (seconds)
        """
        self.credentials = credentials
        self.project_id = project_id
        self.owners_collection = owners_collection
        self.commands_collection = commands_collection
        self.timeout = timeout

        # Created on first use so the gRPC channel binds to the running loop
        self._client: Optional[firestore.AsyncClient] = None

    def _get_client(self) -> firestore.AsyncClient:
        """Get or create the Firestore client."""
        if self._client is None:
            self._client = firestore.AsyncClient(project=self.project_id, credentials=self.credentials)
        return self._client

    async def close(self):
        """Close the Firestore client."""
        client, self._client = self._client, None
        if client is None:
            return
        result = client.close()
        if inspect.isawaitable(result):
            await result

    async def list_enabled_owners(self) -> List[Owner]:
        """
        Query all owners whose bot is enabled.

        Returns:
            List of enabled owners (refresh credential may still be missing)

        Raises:
            StoreReadFailure: If the query fails
        """
        owners = []
        try:
            query = self._get_client().collection(self.owners_collection).where(
                filter=firestore.FieldFilter(OWNER_ENABLED_FIELD, '==', True)
            )
            async for snapshot in query.stream(timeout=self.timeout):
                owners.append(Owner.from_document(snapshot.id, snapshot.to_dict()))
        except STORE_ERRORS as e:
            raise StoreReadFailure(f"Querying {self.owners_collection} failed: {e!r}")

        logger.debug(f"Enabled owner query returned {len(owners)} owners")
        return owners

    async def get_owner(self, owner_id: str) -> Optional[Owner]:
        """
        Read a single owner record.

        Args:
            owner_id: Owner document id

        Returns:
            Owner or None if the document does not exist

        Raises:
            StoreReadFailure: If the read fails
        """
        snapshot = await self._get_document(self.owners_collection, owner_id)
        if not snapshot.exists:
            return None
        return Owner.from_document(owner_id, snapshot.to_dict())

    async def get_commands(self, owner_id: str) -> Dict[str, str]:
        """
        Read an owner's command mapping.

        A missing document or missing ``commands`` field is an empty mapping.

        Args:
            owner_id: Owner document id

        Returns:
            Dict mapping trigger text to reply text

        Raises:
            StoreReadFailure: If the read fails or the field is not a mapping
        """
        snapshot = await self._get_document(self.commands_collection, owner_id)

        data = (snapshot.to_dict() if snapshot.exists else None) or {}
        raw_commands = data.get(COMMANDS_FIELD)
        if raw_commands is None:
            return {}

        if not isinstance(raw_commands, dict):
            raise StoreReadFailure(
                f"Command table field has type {type(raw_commands).__name__}, expected a mapping",
                owner_id=owner_id
            )

        commands = {}
        for trigger, reply in raw_commands.items():
            if isinstance(reply, str):
                commands[trigger] = reply
            else:
                logger.warning(
                    "Skipping non-text command entry",
                    extra={'owner_id': owner_id, 'trigger': trigger}
                )

        return commands

    async def _get_document(self, collection: str, owner_id: str):
        try:
            return await self._get_client().collection(collection).document(owner_id).get(timeout=self.timeout)
        except STORE_ERRORS as e:
            raise StoreReadFailure(f"Reading {collection}/{owner_id} failed: {e!r}", owner_id=owner_id)


def create_document_store(config: GlobalConfig) -> FirestoreDocumentStore:
    """
    Create the Firestore document store from configuration.

    Args:
        config: Global configuration with service-account credentials

    Returns:
        FirestoreDocumentStore instance
    """
    credentials = service_account.Credentials.from_service_account_info(config.service_account_info())

    return FirestoreDocumentStore(
        credentials,
        project_id=config.firebase_project_id,
        owners_collection=config.owners_collection,
        commands_collection=config.commands_collection,
        timeout=config.http_timeout
    )
