"""Song catalog: list, edit and delete (edits and deletes are admin only)."""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from songvault.api.auth import require_identity
from songvault.api.state import AppState, get_state
from songvault.core import songs
from songvault.models.song import Song
from songvault.models.user import Identity

router = APIRouter()


def song_to_dict(s: Song) -> dict:
    return {
        "id": s.song_id,
        "title": s.title,
        "artist": s.artist,
        "audioUrl": s.audio_url,
        "coverUrl": s.cover_url,
        "uploadedAt": s.uploaded_at.isoformat(),
        "version": s.version,
    }


@router.get("")
async def list_songs(
    identity: Identity = Depends(require_identity),
    state: AppState = Depends(get_state),
):
    """List all songs, newest first."""
    return [song_to_dict(s) for s in await songs.list_songs(state.catalog)]


@router.put("/{song_id}")
async def update_song(
    song_id: str,
    title: Optional[str] = Form(None),
    artist: Optional[str] = Form(None),
    version: Optional[int] = Form(None),
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    identity: Identity = Depends(require_identity),
    state: AppState = Depends(get_state),
):
    """Update title/artist and optionally replace the cover. Blank fields are left unchanged.

    Send ``version`` to reject the edit if the song changed since it was loaded.
    """
    updated = await songs.update_song(
        state.catalog,
        state.objects,
        identity,
        song_id,
        title=title,
        artist=artist,
        cover=cover_image,
        expected_version=version,
    )
    return song_to_dict(updated)


@router.delete("/{song_id}")
async def delete_song(
    song_id: str,
    identity: Identity = Depends(require_identity),
    state: AppState = Depends(get_state),
):
    """Delete a song. Storage cleanup is best effort; the song is removed regardless."""
    await songs.delete_song(state.catalog, state.objects, identity, song_id)
    return {"message": "Song deleted successfully"}
