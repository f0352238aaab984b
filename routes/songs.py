import logging
import os
import shutil
import tempfile
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile
from sqlalchemy.orm import Session

from auth import require_api_key
from config import Settings, get_settings
from database import get_db
from models import Song
from schemas import SongOut
from services.storage import BucketClient, StorageError, get_storage
from services.transcode import ResultFile, TranscodeError, generate_hls, probe_duration
from utils.object_keys import InvalidObjectKey, folder_from_bucket_path
from utils.slugs import slugify

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Songs"], dependencies=[Depends(require_api_key)])


# ---------- Upload helpers ----------
def _persist_upload(upload: UploadFile) -> str:
    suffix = os.path.splitext(upload.filename or "")[1]
    with tempfile.NamedTemporaryFile(prefix="tunegate-audio-", suffix=suffix, delete=False) as tmp:
        shutil.copyfileobj(upload.file, tmp)
        return tmp.name


def _transcode_upload(upload: UploadFile, settings: Settings) -> tuple[int, list[ResultFile]]:
    """Probe and transcode an uploaded file; the temp copy is always removed."""
    path = _persist_upload(upload)
    try:
        try:
            duration = probe_duration(path, settings.ffprobe_bin)
        except TranscodeError as e:
            raise HTTPException(status_code=400, detail=f"Could not read audio duration: {e}")
        try:
            files = generate_hls(path, settings.variants, settings.segment_seconds, settings.ffmpeg_bin)
        except TranscodeError as e:
            logger.error("Transcoding failed for %s: %s", upload.filename, e)
            raise HTTPException(status_code=500, detail="Transcoding failed")
    finally:
        os.remove(path)
    return duration, files


def _get_song_or_404(db: Session, song_id: str) -> Song:
    song = db.query(Song).filter(Song.id == song_id).first()
    if not song:
        raise HTTPException(status_code=404, detail="Song not found")
    return song


def _asset_folder(song: Song, settings: Settings) -> str:
    try:
        return folder_from_bucket_path(song.bucket_folder, settings.bucket_name)
    except InvalidObjectKey as e:
        logger.warning("Song %s has an unusable bucket folder, skipping cleanup: %s", song.id, e)
        return ""


# ---------- Routes ----------
@router.post("/songs", response_model=SongOut, status_code=201)
def create_song(
    name: str = Form(...),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: BucketClient = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    slug = slugify(name)
    if not slug:
        raise HTTPException(status_code=400, detail="Invalid name")

    duration, files = _transcode_upload(file, settings)

    try:
        storage.upload_batch(slug, files)
    except StorageError as e:
        logger.error("Upload of %s failed: %s", slug, e)
        raise HTTPException(status_code=502, detail="Upload to storage failed")

    song = Song(id=str(uuid.uuid4()), name=name, duration_seconds=duration, bucket_folder=slug)
    db.add(song)
    db.commit()
    db.refresh(song)
    logger.info("✅ Created song %s in %s/", song.id, slug)
    return song


@router.get("/songs", response_model=list[SongOut])
def list_songs(db: Session = Depends(get_db)):
    return db.query(Song).order_by(Song.name).all()


@router.get("/songs/{song_id}", response_model=SongOut)
def get_song(song_id: str, db: Session = Depends(get_db)):
    return _get_song_or_404(db, song_id)


@router.put("/songs/{song_id}", response_model=SongOut)
def update_song(
    song_id: str,
    name: str = Form(...),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    storage: BucketClient = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    """
    Rename a song. With a new file the HLS assets are regenerated and moved
    to the new slug's folder; without one, existing assets stay where they are.
    """
    song = _get_song_or_404(db, song_id)

    new_slug = slugify(name)
    if not new_slug:
        raise HTTPException(status_code=400, detail="Invalid name")

    existing_folder = _asset_folder(song, settings)

    if file is not None:
        duration, files = _transcode_upload(file, settings)
        # new assets land first; the row keeps pointing at the old folder until they do
        try:
            storage.upload_batch(new_slug, files)
        except StorageError as e:
            logger.error("Uploading new assets of %s failed: %s", song_id, e)
            raise HTTPException(status_code=502, detail="Storage update failed")
        song.duration_seconds = duration
        song.bucket_folder = new_slug
        if existing_folder and existing_folder != new_slug:
            try:
                storage.delete_prefix(existing_folder)
            except StorageError as e:
                logger.warning("Old assets of %s left in %s/: %s", song_id, existing_folder, e)
    elif not existing_folder:
        song.bucket_folder = new_slug

    song.name = name
    db.commit()
    db.refresh(song)
    return song


@router.delete("/songs/{song_id}", status_code=204)
def delete_song(
    song_id: str,
    db: Session = Depends(get_db),
    storage: BucketClient = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    song = _get_song_or_404(db, song_id)

    folder = _asset_folder(song, settings)
    if folder:
        try:
            storage.delete_prefix(folder)
        except StorageError as e:
            logger.error("Deleting assets of %s failed: %s", song_id, e)
            raise HTTPException(status_code=502, detail="Storage delete failed")

    db.delete(song)
    db.commit()
    return Response(status_code=204)
