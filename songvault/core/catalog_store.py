"""Persist and load songs (MongoDB)."""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from songvault.errors import DependencyFailure
from songvault.models.song import Song, SongChanges, StoredObject

logger = logging.getLogger(__name__)


@contextmanager
def mongo_errors(action: str) -> Iterator[None]:
    """Translate driver errors into DependencyFailure."""
    try:
        yield
    except PyMongoError as e:
        logger.error("MongoDB %s failed: %s", action, e)
        raise DependencyFailure(f"Database error while trying to {action}: {e}") from e


def _object_id(song_id: str) -> Optional[ObjectId]:
    return ObjectId(song_id) if ObjectId.is_valid(song_id) else None


def _doc_to_song(doc: dict) -> Song:
    # Records written before keys were stored use file/cover/uploadDate
    uploaded_at = doc.get("uploaded_at") or doc.get("uploadDate") or datetime.now(timezone.utc)
    if uploaded_at.tzinfo is None:
        uploaded_at = uploaded_at.replace(tzinfo=timezone.utc)
    return Song(
        song_id=str(doc["_id"]),
        title=doc["title"],
        artist=doc["artist"],
        audio_url=doc.get("audio_url") or doc.get("file") or "",
        cover_url=doc.get("cover_url") or doc.get("cover") or "",
        uploaded_at=uploaded_at,
        version=int(doc.get("version") or 1),
        audio_key=doc.get("audio_key"),
        cover_key=doc.get("cover_key"),
    )


# Older records keep their date in uploadDate; sort both kinds on one key
LIST_PIPELINE = [
    {"$addFields": {"_sort_at": {"$ifNull": ["$uploaded_at", "$uploadDate"]}}},
    {"$sort": {"_sort_at": DESCENDING, "_id": DESCENDING}},
    {"$project": {"_sort_at": 0}},
]


class CatalogStore:
    """Songs collection: list, lookup, insert, versioned update, delete."""

    def __init__(self, collection: Collection) -> None:
        self._collection = collection

    def list_songs(self) -> List[Song]:
        """Return all songs, newest upload first."""
        with mongo_errors("list songs"):
            docs = list(self._collection.aggregate(LIST_PIPELINE))
        return [_doc_to_song(d) for d in docs]

    def get_song(self, song_id: str) -> Optional[Song]:
        """Return song by id or None (malformed ids are never found)."""
        oid = _object_id(song_id)
        if oid is None:
            return None
        with mongo_errors("load song"):
            doc = self._collection.find_one({"_id": oid})
        return _doc_to_song(doc) if doc else None

    def insert_song(self, title: str, artist: str, audio: StoredObject, cover: StoredObject) -> Song:
        """Insert a fully resolved song at version 1."""
        doc = {
            "title": title,
            "artist": artist,
            "audio_url": audio.url,
            "audio_key": audio.key,
            "cover_url": cover.url,
            "cover_key": cover.key,
            # Mongo keeps millisecond precision
            "uploaded_at": datetime.now(timezone.utc).replace(microsecond=0),
            "version": 1,
        }
        with mongo_errors("save song"):
            result = self._collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return _doc_to_song(doc)

    def update_song(self, song_id: str, expected_version: int, changes: SongChanges) -> Optional[Song]:
        """Apply changes if the stored version still equals expected_version.

        Returns the updated song, or None when the song is gone or was changed
        by someone else in the meantime.
        """
        oid = _object_id(song_id)
        if oid is None:
            return None
        fields: dict = {}
        if changes.title is not None:
            fields["title"] = changes.title
        if changes.artist is not None:
            fields["artist"] = changes.artist
        if changes.cover is not None:
            fields["cover_url"] = changes.cover.url
            fields["cover_key"] = changes.cover.key
        fields["version"] = expected_version + 1

        query: dict = {"_id": oid, "version": expected_version}
        if expected_version == 1:
            # Older records have no version field yet
            query = {"_id": oid, "$or": [{"version": 1}, {"version": {"$exists": False}}]}
        with mongo_errors("update song"):
            doc = self._collection.find_one_and_update(
                query,
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )
        return _doc_to_song(doc) if doc else None

    def delete_song(self, song_id: str) -> bool:
        """Remove song by id. Returns True if found and removed."""
        oid = _object_id(song_id)
        if oid is None:
            return False
        with mongo_errors("delete song"):
            result = self._collection.delete_one({"_id": oid})
        return result.deleted_count > 0

    def delete_matching(self, title: str, artist: str) -> int:
        """Remove every song with exactly this title and artist; returns the count."""
        with mongo_errors("delete songs"):
            result = self._collection.delete_many({"title": title, "artist": artist})
        return result.deleted_count
