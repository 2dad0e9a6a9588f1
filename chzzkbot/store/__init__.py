"""Document store module for owner records and command tables."""

from .models import Owner, CommandTable
from .firestore import FirestoreDocumentStore, create_document_store
from .commands import CommandStore

__all__ = [
    'Owner',
    'CommandTable',
    'FirestoreDocumentStore',
    'create_document_store',
    'CommandStore'
]
