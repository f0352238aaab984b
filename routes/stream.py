import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse, Response
from sqlalchemy.orm import Session

from auth import require_stream_token
from config import Settings, get_settings
from database import get_db
from models import Song
from services.storage import BucketClient, ObjectNotFound, StorageError, get_storage
from utils.object_keys import InvalidObjectKey, is_playlist_key, master_object_key, resolve_object_key
from utils.playlist_rewrite import rewrite_playlist

logger = logging.getLogger(__name__)

PLAYLIST_MEDIA_TYPE = "application/vnd.apple.mpegurl"

router = APIRouter(prefix="/stream", tags=["Stream"], dependencies=[Depends(require_stream_token)])


def _playlist_prefix(request: Request, file_id: str, quality: str) -> str:
    # /stream/<id> has no trailing slash, so sibling playlists named in the
    # master would resolve against /stream/ without the id in front of them
    if quality.strip("/") or request.url.path.endswith("/"):
        return ""
    return f"{quote(file_id, safe='')}/"


def serve_stream(
    file_id: str,
    quality: str,
    request: Request,
    db: Session,
    storage: BucketClient,
    settings: Settings,
) -> Response:
    """
    Playlists are fetched and rewritten so every entry carries the caller's
    token; segments redirect to a short-lived signed storage URL.
    """
    if ".." in file_id or ".." in quality:
        raise HTTPException(status_code=403, detail="Forbidden")

    song = db.query(Song).filter(Song.id == file_id).first()
    if not song:
        raise HTTPException(status_code=404, detail="Song not found")

    try:
        master_key = master_object_key(song.bucket_folder, settings.bucket_name)
        object_key = resolve_object_key(master_key, quality)
    except InvalidObjectKey as e:
        logger.warning("Refused object key for song %s: %s", file_id, e)
        raise HTTPException(status_code=403, detail="Forbidden")

    if is_playlist_key(object_key):
        try:
            data = storage.download(object_key, timeout=settings.stream_timeout_seconds)
        except ObjectNotFound:
            raise HTTPException(status_code=404, detail="Object not found")
        except StorageError as e:
            logger.error("Playlist fetch failed for %s: %s", object_key, e)
            raise HTTPException(status_code=502, detail="Upstream storage error")

        body = rewrite_playlist(data, request.url.query, _playlist_prefix(request, file_id, quality))
        return Response(content=body, media_type=PLAYLIST_MEDIA_TYPE, headers={"Cache-Control": "no-store"})

    try:
        signed = storage.signed_url(
            object_key, settings.signed_url_ttl_seconds, timeout=settings.stream_timeout_seconds
        )
    except ObjectNotFound:
        raise HTTPException(status_code=404, detail="Object not found")
    except StorageError as e:
        logger.error("Signed url failed for %s: %s", object_key, e)
        raise HTTPException(status_code=502, detail="Upstream storage error")
    # never cached: the target expires after signed_url_ttl_seconds
    return RedirectResponse(signed, status_code=307, headers={"Cache-Control": "no-store"})


@router.get("/{file_id}")
def stream_master(
    file_id: str,
    request: Request,
    db: Session = Depends(get_db),
    storage: BucketClient = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    return serve_stream(file_id, "", request, db, storage, settings)


@router.get("/{file_id}/{quality:path}")
def stream_quality(
    file_id: str,
    quality: str,
    request: Request,
    db: Session = Depends(get_db),
    storage: BucketClient = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    return serve_stream(file_id, quality, request, db, storage, settings)
