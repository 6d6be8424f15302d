"""CSV upload routes: ingest, list, preview, delete, and reset."""

import logging
import uuid
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from social_analytics.auth import get_current_user_id
from social_analytics.config import settings
from social_analytics.database import get_session
from social_analytics.ingest import IngestError, PersistenceError, ingest_csv
from social_analytics.uploads import (
    DEFAULT_PREVIEW_LIMIT,
    UploadNotFoundError,
    content_row_to_dict,
    delete_upload,
    list_uploads,
    overview_row_to_dict,
    preview_upload,
    reset_user_data,
    upload_to_dict,
)

# Chunk size for streaming reads (1 MiB)
_CHUNK_SIZE = 1024 * 1024

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/csv", tags=["csv"])


def _save_upload(file: UploadFile) -> Path:
    """Stream the multipart body to a temporary file under uploads_dir.

    Raises:
        HTTPException 400: Body exceeds max_upload_size_mb or cannot be written.
    """
    uploads_dir = settings.uploads_dir
    uploads_dir.mkdir(parents=True, exist_ok=True)

    suffix = Path(file.filename or "upload.csv").suffix.lower() or ".csv"
    dest_path = uploads_dir / f"{uuid.uuid4().hex}{suffix}"
    max_bytes = settings.max_upload_size_mb * 1024 * 1024

    try:
        total_written = 0
        with open(dest_path, "wb") as out:
            while True:
                chunk = file.file.read(_CHUNK_SIZE)
                if not chunk:
                    break
                total_written += len(chunk)
                if total_written > max_bytes:
                    logger.warning(
                        "Upload '%s' rejected: exceeds %d MB limit",
                        file.filename,
                        settings.max_upload_size_mb,
                    )
                    raise HTTPException(status_code=400, detail="file_too_large")
                out.write(chunk)
    except HTTPException:
        dest_path.unlink(missing_ok=True)
        raise
    except OSError as exc:
        logger.error("Failed to save uploaded file: %s", exc)
        dest_path.unlink(missing_ok=True)
        raise HTTPException(status_code=400, detail="upload_failed") from exc

    return dest_path


@router.post("/upload")
def upload_csv(
    file: UploadFile | None = File(None),
    owner_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
) -> dict[str, Any]:
    """Ingest one CSV export for the authenticated user.

    Returns:
        JSON with the detected type, number of rows imported and upload id.
    """
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="no_file")

    original_filename = Path(file.filename).name
    dest_path = _save_upload(file)

    try:
        result = ingest_csv(db, dest_path, original_filename, owner_id)
    except PersistenceError as exc:
        logger.error("Ingest failed for '%s': %s", original_filename, exc)
        raise HTTPException(status_code=500, detail=exc.reason) from exc
    except IngestError as exc:
        logger.warning("Ingest error for '%s': %s", original_filename, exc)
        raise HTTPException(status_code=400, detail=exc.reason) from exc
    finally:
        # ingest_csv removes the file after decoding; this covers early failures
        dest_path.unlink(missing_ok=True)

    return {
        "message": "CSV processed successfully",
        "count": result.rows_imported,
        "type": result.kind,
        "upload_id": result.upload_id,
        "warnings": result.warnings,
    }


@router.get("/uploads")
def get_uploads(
    owner_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
) -> list[dict[str, Any]]:
    """List the caller's uploads, newest first."""
    return [upload_to_dict(u) for u in list_uploads(db, owner_id)]


@router.get("/uploads/{upload_id}/preview")
def get_upload_preview(
    upload_id: int,
    kind: str = Query("content", alias="type", pattern="^(overview|content)$"),
    limit: int = Query(DEFAULT_PREVIEW_LIMIT, ge=1),
    owner_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
) -> list[dict[str, Any]]:
    """Return up to ``limit`` (max 200) rows of one upload, oldest first."""
    try:
        rows = preview_upload(db, owner_id, upload_id, kind=kind, limit=limit)
    except UploadNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.reason) from exc

    serialize = overview_row_to_dict if kind == "overview" else content_row_to_dict
    return [serialize(r) for r in rows]


@router.delete("/uploads/{upload_id}")
def remove_upload(
    upload_id: int,
    owner_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
) -> dict[str, Any]:
    """Delete an upload and the rows in its window."""
    try:
        stats = delete_upload(db, owner_id, upload_id)
    except UploadNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.reason) from exc
    return {"ok": True, "deleted": stats.as_dict()}


@router.delete("/reset")
def reset_data(
    owner_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_session),
) -> dict[str, Any]:
    """Delete all of the caller's rows and uploads."""
    stats = reset_user_data(db, owner_id)
    return {"ok": True, "deleted": stats.as_dict()}
