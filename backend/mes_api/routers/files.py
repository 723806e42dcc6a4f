"""File upload and download endpoints (team-scoped storage on disk)."""

from __future__ import annotations

import logging
import re
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import FileResponse

from ..auth import TeamContext, get_team_context
from ..config import settings
from ..schemas import FileRecord

router = APIRouter(prefix="/files", tags=["files"])
logger = logging.getLogger(__name__)

_SAFE_FILE_ID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
_CHUNK_SIZE = 1024 * 1024  # 1MB
_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}


def _team_upload_dir(team_id) -> Path:
    # Uploads never share a directory across teams.
    team_dir = Path(settings.UPLOAD_DIR) / str(team_id)
    team_dir.mkdir(parents=True, exist_ok=True)
    return team_dir


def _validate_upload(file: UploadFile) -> str:
    if not file.filename:
        raise HTTPException(status_code=400, detail="Filename is required")
    if "." not in file.filename:
        raise HTTPException(status_code=400, detail="File extension is required")

    ext = file.filename.rsplit(".", 1)[-1].lower()
    if ext not in settings.allowed_extensions_list:
        raise HTTPException(
            status_code=400,
            detail=f"File type not allowed. Allowed: {settings.ALLOWED_EXTENSIONS}",
        )
    return ext


def _sanitize_file_id(file_id: str) -> str:
    if not file_id or not _SAFE_FILE_ID_RE.match(file_id):
        raise HTTPException(status_code=404, detail="File not found")
    return file_id


async def _stream_save_upload(*, file: UploadFile, dest_path: Path) -> int:
    """Stream UploadFile to disk with a hard size limit."""
    size = 0
    try:
        with dest_path.open("xb") as out:
            while True:
                chunk = await file.read(_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > settings.MAX_UPLOAD_SIZE:
                    raise HTTPException(
                        status_code=400,
                        detail=f"File too large. Max size: {settings.MAX_UPLOAD_SIZE} bytes",
                    )
                out.write(chunk)
    except HTTPException:
        dest_path.unlink(missing_ok=True)
        raise
    except FileExistsError:
        raise HTTPException(status_code=409, detail="File collision, try again")
    except OSError:
        dest_path.unlink(missing_ok=True)
        logger.exception("Failed to save upload")
        raise HTTPException(status_code=500, detail="Failed to upload file")
    finally:
        await file.close()
    return size


def find_stored_file(team_id, file_id: str) -> Path | None:
    """Locate `<file_id>.<ext>` for any allowed extension in the team directory."""
    team_dir = Path(settings.UPLOAD_DIR) / str(team_id)
    for ext in settings.allowed_extensions_list:
        candidate = team_dir / f"{file_id}.{ext}"
        if candidate.is_file():
            return candidate
    return None


@router.post("/upload", response_model=FileRecord)
async def upload_file(
    file: UploadFile = File(...),
    ctx: TeamContext = Depends(get_team_context),
):
    """Store a file and return the record to attach to an operation."""
    ext = _validate_upload(file)
    file_id = str(uuid.uuid4())
    dest_path = _team_upload_dir(ctx.team_id) / f"{file_id}.{ext}"

    size = await _stream_save_upload(file=file, dest_path=dest_path)

    return FileRecord(
        id=file_id,
        name=file.filename,
        url=f"/api/files/download/{file_id}",
        type="image" if ext in _IMAGE_EXTENSIONS else "file",
        size=size,
        uploaded_at=datetime.now(timezone.utc).isoformat(),
    )


@router.get("/download/{file_id}")
def download_file(
    file_id: str,
    ctx: TeamContext = Depends(get_team_context),
):
    start = time.perf_counter()
    file_id = _sanitize_file_id(file_id)
    path = find_stored_file(ctx.team_id, file_id)
    if path is None:
        raise HTTPException(status_code=404, detail="File not found")

    if settings.DEBUG:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("files.download file_id=%s ms=%.0f", file_id, elapsed_ms)
    return FileResponse(
        path=str(path),
        media_type="application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{file_id}"'},
    )
