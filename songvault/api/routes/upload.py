"""Song upload: multipart audio + cover image, admin only."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

from songvault.api.auth import require_identity
from songvault.api.routes.songs import song_to_dict
from songvault.api.state import AppState, get_state
from songvault.core import songs
from songvault.errors import SongVaultError
from songvault.models.user import Identity

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/upload")
async def upload_song(
    title: Optional[str] = Form(None),
    artist: Optional[str] = Form(None),
    song_file: Optional[UploadFile] = File(None, alias="songFile"),
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    identity: Identity = Depends(require_identity),
    state: AppState = Depends(get_state),
):
    """Upload a song file and its cover, then store the song."""
    try:
        song = await songs.create_song(
            state.catalog,
            state.objects,
            identity,
            title,
            artist,
            song_file,
            cover_image,
        )
    except SongVaultError as e:
        return JSONResponse(
            status_code=e.status_code,
            content={"success": False, "error": e.message},
        )
    return {
        "success": True,
        "message": "Upload successful",
        "song": song_to_dict(song),
    }
