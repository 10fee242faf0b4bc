"""Local cache and remote store port."""

from .local import LocalStore
from .remote import QueryPage, RemoteStoreClient, matches_field, sort_documents

__all__ = ['LocalStore', 'QueryPage', 'RemoteStoreClient', 'matches_field', 'sort_documents']
