import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import USER_TOKEN
from songvault.core import external, staging


def test_upload_stores_song_and_blobs(post_upload, fakes, upload_dir):
    response = post_upload()

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Upload successful"
    song = body["song"]
    assert song["title"] == "Test Song"
    assert song["artist"] == "Test Artist"
    assert song["audioUrl"].startswith("https://cdn.test/songs/")
    assert song["coverUrl"].startswith("https://cdn.test/covers/")
    assert song["version"] == 1
    assert song["id"] in fakes.catalog.songs

    assert sorted(fakes.objects.blobs.values()) == sorted([b"ID3 fake mp3 bytes", b"\x89PNG fake png bytes"])
    assert list(upload_dir.iterdir()) == []


def test_uploaded_song_is_listed(post_upload, client):
    post_upload()

    songs = client.get("/api/songs", headers={"Authorization": "Bearer user-token"}).json()

    assert len(songs) == 1
    assert songs[0]["title"] == "Test Song"
    assert songs[0]["artist"] == "Test Artist"
    assert songs[0]["audioUrl"] and songs[0]["coverUrl"]


def test_non_admin_is_forbidden_before_any_work(post_upload, fakes, upload_dir):
    response = post_upload(token=USER_TOKEN)

    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Only admin can upload songs"}
    assert fakes.objects.uploads == []
    assert fakes.catalog.songs == {}
    assert not upload_dir.exists() or list(upload_dir.iterdir()) == []


def test_forbidden_takes_precedence_over_missing_parts(post_upload):
    response = post_upload(token=USER_TOKEN, song_file=None, title=None)

    assert response.status_code == 403


@pytest.mark.parametrize(
    "kwargs,error",
    [
        ({"song_file": None}, "Both song file and cover image are required"),
        ({"cover_image": None}, "Both song file and cover image are required"),
        ({"song_file": None, "cover_image": None}, "Both song file and cover image are required"),
        ({"title": None}, "Title and artist are required"),
        ({"artist": None}, "Title and artist are required"),
        ({"title": "   "}, "Title and artist are required"),
    ],
)
def test_invalid_upload_is_rejected_without_side_effects(post_upload, fakes, kwargs, error):
    response = post_upload(**kwargs)

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": error}
    assert fakes.objects.uploads == []
    assert fakes.catalog.mutations == 0


def test_cover_upload_failure_rolls_back_audio(post_upload, fakes, upload_dir):
    fakes.objects.fail_upload_kinds.add("image")

    response = post_upload()

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert "storage unavailable" in body["error"]
    assert len(fakes.objects.uploads) == 1
    assert fakes.objects.deletes == fakes.objects.uploads
    assert fakes.objects.blobs == {}
    assert fakes.catalog.songs == {}
    assert list(upload_dir.iterdir()) == []


def test_database_failure_rolls_back_both_blobs(post_upload, fakes, upload_dir):
    fakes.catalog.fail_insert = True

    response = post_upload()

    assert response.status_code == 500
    assert "connection reset" in response.json()["error"]
    assert sorted(fakes.objects.deletes) == sorted(fakes.objects.uploads)
    assert fakes.objects.blobs == {}
    assert list(upload_dir.iterdir()) == []



def test_slow_insert_is_awaited_and_keeps_its_blobs(post_upload, fakes, monkeypatch):
    monkeypatch.setattr(external, "EXTERNAL_TIMEOUT_SEC", 0.2)
    insert = fakes.catalog.insert_song

    def slow_insert(*args):
        time.sleep(0.5)
        return insert(*args)

    monkeypatch.setattr(fakes.catalog, "insert_song", slow_insert)

    response = post_upload()

    assert response.status_code == 200
    song_id = response.json()["song"]["id"]
    stored = fakes.catalog.songs[song_id]
    assert fakes.objects.deletes == []
    assert stored.audio_key in fakes.objects.blobs
    assert stored.cover_key in fakes.objects.blobs

def test_rollback_failure_still_reports_original_error(post_upload, fakes):
    fakes.catalog.fail_insert = True
    fakes.objects.fail_delete = True

    response = post_upload()

    assert response.status_code == 500
    assert "connection reset" in response.json()["error"]
    assert len(fakes.objects.deletes) == 2


def test_oversized_file_is_rejected(post_upload, fakes, upload_dir, monkeypatch):
    monkeypatch.setattr(staging, "MAX_UPLOAD_BYTES", 8)

    response = post_upload(song_file=b"x" * 64)

    assert response.status_code == 400
    assert "too large" in response.json()["error"]
    assert fakes.objects.uploads == []
    assert list(upload_dir.iterdir()) == []


def test_identical_uploads_create_distinct_songs(post_upload, fakes, monkeypatch, upload_dir):
    n = 4
    # No request stores its audio until all of them are in flight
    arrived = threading.Barrier(n, timeout=5)
    upload = fakes.objects.upload

    def upload_together(local_path, folder, kind):
        if kind == "audio":
            arrived.wait()
        return upload(local_path, folder, kind)

    monkeypatch.setattr(fakes.objects, "upload", upload_together)

    with ThreadPoolExecutor(max_workers=n) as pool:
        responses = list(pool.map(lambda _: post_upload(), range(n)))

    assert [r.status_code for r in responses] == [200] * n
    songs = [r.json()["song"] for r in responses]
    assert len({s["id"] for s in songs}) == n
    assert len({s["audioUrl"] for s in songs}) == n
    assert len({s["coverUrl"] for s in songs}) == n
    assert len(fakes.catalog.songs) == n
    assert len(fakes.objects.blobs) == 2 * n
    assert list(upload_dir.iterdir()) == []
