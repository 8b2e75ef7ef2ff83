"""Song record metadata and its remote storage objects."""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class StoredObject:
    """Blob held by the object store: storage key and public URL."""
    key: str
    url: str


@dataclass
class Song:
    """Stored catalog entry: one audio blob plus one cover image."""
    song_id: str
    title: str
    artist: str
    audio_url: str
    cover_url: str
    uploaded_at: datetime
    version: int = 1
    # Older records only carry URLs; keys are then derived from the URL
    audio_key: Optional[str] = None
    cover_key: Optional[str] = None


@dataclass
class SongChanges:
    """Partial update applied to an existing song."""
    title: Optional[str] = None
    artist: Optional[str] = None
    cover: Optional[StoredObject] = None

    def is_empty(self) -> bool:
        return self.title is None and self.artist is None and self.cover is None
