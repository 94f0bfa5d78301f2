import logging
import os
import uuid

from errors import QueueFullError, ValidationError
from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from models import EpisodeMetadata
from worker import submit_render

logger = logging.getLogger(__name__)
router = APIRouter()

ALLOWED_EXTENSIONS = {".mp3", ".wav", ".flac", ".m4a", ".ogg", ".opus", ".aac"}
MAX_FILE_SIZE = 250 * 1024 * 1024  # 250MB


def _clean(value: str | None, limit: int) -> str | None:
    if value is None or not value.strip():
        return None
    return value.strip()[:limit]


@router.get("/styles")
def list_styles(request: Request):
    return {"styles": [p.to_dict() for p in request.app.state.styles.presets()]}


@router.post("/upload")
async def upload_audio(
    request: Request,
    audio: UploadFile = File(None),
    stylePreset: str = Form(...),
    title: str | None = Form(None),
    guest: str | None = Form(None),
    sponsor: str | None = Form(None),
    seed: int | None = Form(None),
):
    state = request.app.state

    if audio is None or not audio.filename:
        raise HTTPException(400, "No audio file provided")

    ext = os.path.splitext(audio.filename)[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(400, f"Unsupported file type: {ext or audio.filename}")
    if audio.content_type and not audio.content_type.startswith("audio/") and audio.content_type != "application/octet-stream":
        raise HTTPException(400, "Invalid file type. Please upload an audio file.")

    style_name = stylePreset.strip()
    if style_name not in state.styles:
        raise HTTPException(400, f'Style preset "{style_name}" not found')

    upload_dir = os.path.join(state.orchestrator.media_dir, "uploads")
    os.makedirs(upload_dir, exist_ok=True)
    dest = os.path.join(upload_dir, f"audio_{uuid.uuid4().hex}{ext}")

    size = 0
    with open(dest, "wb") as f_out:
        while chunk := await audio.read(65536):
            size += len(chunk)
            if size > MAX_FILE_SIZE:
                f_out.close()
                os.unlink(dest)
                raise HTTPException(413, "File size exceeds 250MB limit")
            f_out.write(chunk)

    metadata = EpisodeMetadata(
        title=_clean(title, 200) or "Untitled Episode",
        guest=_clean(guest, 200),
        sponsor=_clean(sponsor, 200),
    )

    try:
        job = submit_render(state.pool, state.registry, state.styles, dest, style_name, metadata, seed)
    except ValidationError as e:
        os.unlink(dest)
        raise HTTPException(400, e.message)
    except QueueFullError as e:
        os.unlink(dest)
        raise HTTPException(429, e.message)

    logger.info(f"Upload accepted: job_id={job.id} file={dest} style={style_name!r}")
    return JSONResponse({"success": True, "jobId": job.id}, status_code=202)
