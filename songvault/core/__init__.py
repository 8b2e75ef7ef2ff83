"""Core services: MongoDB stores, object storage, token verification, song operations."""
from songvault.core.catalog_store import CatalogStore
from songvault.core.identity import IdentityVerifier
from songvault.core.object_store import ObjectStore
from songvault.core.user_store import UserStore

__all__ = ["CatalogStore", "IdentityVerifier", "ObjectStore", "UserStore"]
