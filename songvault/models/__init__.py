"""Data models for songs, users and identities."""
from songvault.models.song import Song, SongChanges, StoredObject
from songvault.models.user import Identity, Role, User

__all__ = [
    "Identity",
    "Role",
    "Song",
    "SongChanges",
    "StoredObject",
    "User",
]
