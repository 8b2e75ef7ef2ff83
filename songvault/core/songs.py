"""Catalog operations spanning object storage and MongoDB.

Policy for remote blobs: acquiring a new blob is fail-closed (the operation
aborts and any blob it already uploaded is removed again); removing a blob
that no song references any more is fail-open (logged, the operation still
succeeds). Song updates are conditional on the version that was read, so a
concurrent edit or delete surfaces as Conflict instead of being overwritten.
"""
import asyncio
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from fastapi import UploadFile

from songvault.config import COVERS_FOLDER, SONGS_FOLDER, TEST_SONG_ARTIST, TEST_SONG_TITLE
from songvault.core.catalog_store import CatalogStore
from songvault.core.external import call_external, call_write
from songvault.core.object_store import BlobKind, ObjectStore, key_from_url
from songvault.core.staging import discard, has_content, stage_upload
from songvault.errors import (
    Conflict,
    DependencyFailure,
    Forbidden,
    InvalidInput,
    NotFound,
    SongVaultError,
)
from songvault.models.song import Song, SongChanges, StoredObject
from songvault.models.user import Identity

logger = logging.getLogger(__name__)


def _require_catalog_admin(identity: Identity, action: str) -> None:
    if not identity.can_manage_catalog:
        logger.warning("User not authorized to %s songs: %s", action, identity.email or identity.subject_id)
        raise Forbidden(f"Only admin can {action} songs")


def _clean(value: Optional[str]) -> Optional[str]:
    """Strip text fields; blank counts as absent."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def song_object_keys(song: Song) -> Tuple[Optional[str], Optional[str]]:
    """Storage keys for (audio, cover); derived from the URLs when not stored."""
    return (
        song.audio_key or key_from_url(song.audio_url),
        song.cover_key or key_from_url(song.cover_url),
    )


async def _remove_objects(objects: ObjectStore, blobs: Iterable[Tuple[str, BlobKind]]) -> int:
    """Delete blobs concurrently, logging failures. Returns how many could not be deleted."""
    blobs = list(blobs)
    if not blobs:
        return 0
    results = await asyncio.gather(
        *(call_external(f"{kind} delete", objects.delete, key, kind) for key, kind in blobs),
        return_exceptions=True,
    )
    failed = 0
    for (key, kind), result in zip(blobs, results):
        if isinstance(result, Exception):
            failed += 1
            logger.warning("Could not delete %s %s: %s", kind, key, result)
    return failed


async def list_songs(catalog: CatalogStore) -> List[Song]:
    return await call_external("song list", catalog.list_songs)


async def create_song(
    catalog: CatalogStore,
    objects: ObjectStore,
    identity: Identity,
    title: Optional[str],
    artist: Optional[str],
    audio: Optional[UploadFile],
    cover: Optional[UploadFile],
) -> Song:
    """Upload audio and cover, then persist the song.

    Validation happens before anything touches disk or a remote service.
    Staged files are always removed; uploaded blobs are removed again if a
    later step fails, so a song is never stored half-populated and no blob is
    left behind without a song.
    """
    _require_catalog_admin(identity, "upload")
    if not has_content(audio) or not has_content(cover):
        raise InvalidInput("Both song file and cover image are required")
    title, artist = _clean(title), _clean(artist)
    if not title or not artist:
        raise InvalidInput("Title and artist are required")

    staged: List[Path] = []
    uploaded: List[Tuple[str, BlobKind]] = []
    try:
        audio_path = await stage_upload(audio)
        staged.append(audio_path)
        cover_path = await stage_upload(cover)
        staged.append(cover_path)

        audio_obj: StoredObject = await call_write(objects.upload, str(audio_path), SONGS_FOLDER, "audio")
        uploaded.append((audio_obj.key, "audio"))
        cover_obj: StoredObject = await call_write(objects.upload, str(cover_path), COVERS_FOLDER, "image")
        uploaded.append((cover_obj.key, "image"))

        song = await call_write(catalog.insert_song, title, artist, audio_obj, cover_obj)
    except Exception as e:
        logger.error("Upload of %r by %r failed: %s", title, artist, e)
        if uploaded:
            logger.info("Rolling back %d uploaded object(s)", len(uploaded))
            await _remove_objects(objects, uploaded)
        if isinstance(e, (InvalidInput, DependencyFailure)):
            raise
        message = e.message if isinstance(e, SongVaultError) else str(e)
        raise DependencyFailure(message or "Failed to upload song") from e
    finally:
        for path in staged:
            discard(path)

    logger.info("Song %s uploaded: %r by %r", song.song_id, song.title, song.artist)
    return song


async def delete_song(
    catalog: CatalogStore,
    objects: ObjectStore,
    identity: Identity,
    song_id: str,
) -> None:
    """Remove a song and, best effort, both of its blobs."""
    _require_catalog_admin(identity, "delete")
    song = await call_external("song lookup", catalog.get_song, song_id)
    if song is None:
        raise NotFound("Song not found")

    audio_key, cover_key = song_object_keys(song)
    blobs: List[Tuple[str, BlobKind]] = []
    for key, kind, url in ((audio_key, "audio", song.audio_url), (cover_key, "image", song.cover_url)):
        if key:
            blobs.append((key, kind))
        else:
            logger.warning("No storage key for %s of song %s (%s)", kind, song_id, url)
    failed = await _remove_objects(objects, blobs)
    if failed:
        logger.warning("Song %s: %d blob(s) left in storage", song_id, failed)

    if not await call_external("song delete", catalog.delete_song, song_id):
        raise NotFound("Song not found")
    logger.info("Song %s deleted", song_id)


async def update_song(
    catalog: CatalogStore,
    objects: ObjectStore,
    identity: Identity,
    song_id: str,
    title: Optional[str] = None,
    artist: Optional[str] = None,
    cover: Optional[UploadFile] = None,
    expected_version: Optional[int] = None,
) -> Song:
    """Apply title/artist overrides and optionally replace the cover.

    The new cover is uploaded before the song is saved and the old cover is
    removed only after the save succeeded.
    """
    _require_catalog_admin(identity, "edit")
    song = await call_external("song lookup", catalog.get_song, song_id)
    if song is None:
        raise NotFound("Song not found")
    if expected_version is not None and expected_version != song.version:
        raise Conflict(f"Song is at version {song.version}, not {expected_version}; reload and retry")

    changes = SongChanges(title=_clean(title), artist=_clean(artist))
    staged: Optional[Path] = None
    new_cover: Optional[StoredObject] = None
    try:
        if has_content(cover):
            staged = await stage_upload(cover)
            try:
                new_cover = await call_write(objects.upload, str(staged), COVERS_FOLDER, "image")
            except DependencyFailure as e:
                raise DependencyFailure(f"Failed to update cover image: {e.message}") from e
            changes.cover = new_cover

        if changes.is_empty():
            return song

        try:
            updated = await call_write(catalog.update_song, song_id, song.version, changes)
        except SongVaultError:
            if new_cover is not None:
                await _remove_objects(objects, [(new_cover.key, "image")])
            raise
        if updated is None:
            if new_cover is not None:
                await _remove_objects(objects, [(new_cover.key, "image")])
            raise Conflict("Song was changed or deleted by another request; reload and retry")
    finally:
        discard(staged)

    if new_cover is not None:
        _, old_cover_key = song_object_keys(song)
        if old_cover_key and old_cover_key != new_cover.key:
            await _remove_objects(objects, [(old_cover_key, "image")])
    logger.info("Song %s updated to version %d", song_id, updated.version)
    return updated


async def cleanup_test_songs(catalog: CatalogStore) -> int:
    """Delete leftover "Test Song" / "Test Artist" fixtures. Never raises on DB errors."""
    try:
        removed = await call_external(
            "test song cleanup", catalog.delete_matching, TEST_SONG_TITLE, TEST_SONG_ARTIST
        )
    except DependencyFailure as e:
        logger.error("Error cleaning up test songs: %s", e.message)
        return 0
    if removed:
        logger.info("Cleaned up %d test song(s)", removed)
    return removed
