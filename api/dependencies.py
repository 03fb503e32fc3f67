"""
Composition root wiring.

One document store and one active-configuration cache exist per application
instance. They live on `app.state` and reach the routes through these
dependencies, so tests can build an app around an in-memory store.
"""

from fastapi import Request

from repositories.client import Settings, create_supabase_client
from repositories.document_store import DocumentStore, InMemoryDocumentStore
from repositories.supabase_store import SupabaseDocumentStore
from services.configuration_cache import ActiveConfigurationCache


def build_store(settings: Settings) -> DocumentStore:
    if settings.store_backend == "memory":
        return InMemoryDocumentStore()
    return SupabaseDocumentStore.from_settings(create_supabase_client(settings), settings)


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_cache(request: Request) -> ActiveConfigurationCache:
    return request.app.state.cache
