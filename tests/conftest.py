import sys
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
from fastapi.testclient import TestClient

from songvault.api.app import app
from songvault.api import state as state_module
from songvault.api.state import AppState
from songvault.core import staging
from songvault.errors import DependencyFailure, Unauthenticated
from songvault.models.song import Song, SongChanges, StoredObject
from songvault.models.user import Identity, Role, User

ADMIN_TOKEN = "admin-token"
USER_TOKEN = "user-token"
ADMIN_EMAIL = "admin@teluguyash.com"


class FakeVerifier:
    def __init__(self) -> None:
        self.tokens = {
            ADMIN_TOKEN: Identity("admin-uid", ADMIN_EMAIL, "Admin"),
            USER_TOKEN: Identity("user-uid", "listener@example.com"),
        }
        self.calls = 0

    def verify(self, token: str) -> Identity:
        self.calls += 1
        known = self.tokens.get(token)
        if known is None:
            raise Unauthenticated("Invalid token")
        return Identity(known.subject_id, known.email, known.name)


class FakeUsers:
    def __init__(self) -> None:
        self.users: Dict[str, User] = {}

    def ensure_indexes(self) -> None:
        pass

    def get_user(self, uid: str) -> Optional[User]:
        return self.users.get(uid)

    def add_user(self, uid: str, username: str, role: Role) -> User:
        return self.users.setdefault(uid, User(uid, username, role, datetime.now(timezone.utc)))


class FakeCatalog:
    def __init__(self) -> None:
        self.songs: Dict[str, Song] = {}
        self.mutations = 0
        self.fail_insert = False

    def add(self, title: str, artist: str, *, uploaded_at: Optional[datetime] = None, **fields) -> Song:
        """Seed a song directly, bypassing the API."""
        song_id = uuid.uuid4().hex[:24]
        song = Song(
            song_id=song_id,
            title=title,
            artist=artist,
            audio_url=fields.pop("audio_url", f"https://cdn.test/songs/{song_id}a"),
            cover_url=fields.pop("cover_url", f"https://cdn.test/covers/{song_id}c"),
            uploaded_at=uploaded_at or datetime.now(timezone.utc),
            **fields,
        )
        self.songs[song_id] = song
        return song

    def list_songs(self) -> List[Song]:
        return sorted(self.songs.values(), key=lambda s: s.uploaded_at, reverse=True)

    def get_song(self, song_id: str) -> Optional[Song]:
        return self.songs.get(song_id)

    def insert_song(self, title: str, artist: str, audio: StoredObject, cover: StoredObject) -> Song:
        if self.fail_insert:
            raise DependencyFailure("Database error while trying to save song: connection reset")
        self.mutations += 1
        return self.add(
            title,
            artist,
            audio_url=audio.url,
            audio_key=audio.key,
            cover_url=cover.url,
            cover_key=cover.key,
        )

    def update_song(self, song_id: str, expected_version: int, changes: SongChanges) -> Optional[Song]:
        song = self.songs.get(song_id)
        if song is None or song.version != expected_version:
            return None
        self.mutations += 1
        updated = replace(song, version=song.version + 1)
        if changes.title is not None:
            updated.title = changes.title
        if changes.artist is not None:
            updated.artist = changes.artist
        if changes.cover is not None:
            updated.cover_url = changes.cover.url
            updated.cover_key = changes.cover.key
        self.songs[song_id] = updated
        return updated

    def delete_song(self, song_id: str) -> bool:
        self.mutations += 1
        return self.songs.pop(song_id, None) is not None

    def delete_matching(self, title: str, artist: str) -> int:
        doomed = [k for k, s in self.songs.items() if s.title == title and s.artist == artist]
        for k in doomed:
            del self.songs[k]
        return len(doomed)


class FakeObjectStore:
    def __init__(self) -> None:
        self.blobs: Dict[str, bytes] = {}
        self.uploads: List[str] = []
        self.deletes: List[str] = []
        self.fail_upload_kinds: set = set()
        self.fail_delete = False

    def upload(self, local_path: str, folder: str, kind: str) -> StoredObject:
        if kind in self.fail_upload_kinds:
            raise DependencyFailure(f"Failed to upload {kind} file: storage unavailable")
        key = f"{folder}/{uuid.uuid4().hex}"
        self.blobs[key] = Path(local_path).read_bytes()
        self.uploads.append(key)
        return StoredObject(key=key, url=f"https://cdn.test/{key}")

    def delete(self, key: str, kind: str) -> None:
        self.deletes.append(key)
        if self.fail_delete:
            raise DependencyFailure(f"Failed to delete {kind} {key}: storage unavailable")
        self.blobs.pop(key, None)


class Fakes:
    def __init__(self) -> None:
        self.verifier = FakeVerifier()
        self.users = FakeUsers()
        self.catalog = FakeCatalog()
        self.objects = FakeObjectStore()
        self.state = AppState(
            catalog=self.catalog,
            users=self.users,
            objects=self.objects,
            verifier=self.verifier,
        )


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    path = tmp_path / "uploads"
    monkeypatch.setattr(staging, "UPLOAD_DIR", path)
    return path


@pytest.fixture
def fakes(upload_dir, monkeypatch):
    fakes = Fakes()
    monkeypatch.setattr(state_module, "_state", fakes.state)
    return fakes


@pytest.fixture
def client(fakes):
    return TestClient(app)


def auth(token: str = ADMIN_TOKEN) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def post_upload(client):
    """POST /api/upload with sensible defaults; pass None to omit a part."""

    def _post(
        token: str = ADMIN_TOKEN,
        title: Optional[str] = "Test Song",
        artist: Optional[str] = "Test Artist",
        song_file: Optional[bytes] = b"ID3 fake mp3 bytes",
        cover_image: Optional[bytes] = b"\x89PNG fake png bytes",
    ):
        data = {k: v for k, v in (("title", title), ("artist", artist)) if v is not None}
        files = {}
        if song_file is not None:
            files["songFile"] = ("track one.mp3", song_file, "audio/mpeg")
        if cover_image is not None:
            files["coverImage"] = ("cover.png", cover_image, "image/png")
        return client.post("/api/upload", data=data, files=files or None, headers=auth(token))

    return _post


def days_ago(n: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=n)
