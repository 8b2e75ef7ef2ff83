"""Shared application state (injected into routes)."""
import logging
from typing import Optional

from pymongo import MongoClient

from songvault.config import (
    EXTERNAL_TIMEOUT_SEC,
    MONGODB_DB,
    MONGODB_SERVER_SELECTION_TIMEOUT_MS,
    MONGODB_SOCKET_TIMEOUT_MS,
    MONGODB_SONGS_COLLECTION,
    MONGODB_URI,
    MONGODB_USERS_COLLECTION,
)
from songvault.core.catalog_store import CatalogStore
from songvault.core.identity import IdentityVerifier
from songvault.core.object_store import ObjectStore
from songvault.core.user_store import UserStore

logger = logging.getLogger(__name__)


class AppState:
    """Holds the external collaborators; each is built from config on first use."""

    def __init__(
        self,
        catalog: Optional[CatalogStore] = None,
        users: Optional[UserStore] = None,
        objects: Optional[ObjectStore] = None,
        verifier: Optional[IdentityVerifier] = None,
    ) -> None:
        self._catalog = catalog
        self._users = users
        self._objects = objects
        self._verifier = verifier
        self._mongo_client: Optional[MongoClient] = None

    def _database(self):
        if self._mongo_client is None:
            self._mongo_client = MongoClient(
                MONGODB_URI,
                serverSelectionTimeoutMS=MONGODB_SERVER_SELECTION_TIMEOUT_MS,
                socketTimeoutMS=MONGODB_SOCKET_TIMEOUT_MS,
                # Per-operation deadline, enforced by the driver and sent to the server
                timeoutMS=int(EXTERNAL_TIMEOUT_SEC * 1000),
            )
            logger.info("MongoDB client created for database %s", MONGODB_DB)
        return self._mongo_client[MONGODB_DB]

    @property
    def catalog(self) -> CatalogStore:
        if self._catalog is None:
            self._catalog = CatalogStore(self._database()[MONGODB_SONGS_COLLECTION])
        return self._catalog

    @property
    def users(self) -> UserStore:
        if self._users is None:
            self._users = UserStore(self._database()[MONGODB_USERS_COLLECTION])
        return self._users

    @property
    def objects(self) -> ObjectStore:
        if self._objects is None:
            self._objects = ObjectStore.from_config()
        return self._objects

    @property
    def verifier(self) -> IdentityVerifier:
        if self._verifier is None:
            self._verifier = IdentityVerifier.from_config()
        return self._verifier

    def close(self) -> None:
        if self._mongo_client is not None:
            self._mongo_client.close()
            self._mongo_client = None
            logger.info("MongoDB client closed")


_state = AppState()


def get_state() -> AppState:
    return _state
