"""Users collection: maps identity-provider subjects to roles."""
from datetime import datetime, timezone
from typing import Optional

from pymongo import ReturnDocument
from pymongo.collection import Collection

from songvault.core.catalog_store import mongo_errors
from songvault.models.user import Role, User


def _doc_to_user(doc: dict) -> User:
    try:
        role = Role(doc.get("role") or Role.USER.value)
    except ValueError:
        role = Role.USER
    created_at = doc.get("created_at") or doc.get("createdAt") or datetime.now(timezone.utc)
    return User(
        uid=doc["uid"],
        username=doc.get("username") or "",
        role=role,
        created_at=created_at,
    )


class UserStore:
    def __init__(self, collection: Collection) -> None:
        self._collection = collection

    def ensure_indexes(self) -> None:
        with mongo_errors("create user indexes"):
            self._collection.create_index("uid", unique=True)

    def get_user(self, uid: str) -> Optional[User]:
        with mongo_errors("load user"):
            doc = self._collection.find_one({"uid": uid})
        return _doc_to_user(doc) if doc else None

    def add_user(self, uid: str, username: str, role: Role) -> User:
        """Register uid with role unless it already exists; returns the stored user."""
        with mongo_errors("save user"):
            doc = self._collection.find_one_and_update(
                {"uid": uid},
                {
                    "$setOnInsert": {
                        "username": username,
                        "role": role.value,
                        "created_at": datetime.now(timezone.utc),
                    }
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        return _doc_to_user(doc)
