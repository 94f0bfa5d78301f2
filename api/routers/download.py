import os

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import FileResponse

router = APIRouter()


@router.get("/download")
def download(request: Request, file: str | None = None):
    """Serve a rendered video or thumbnail. Only bare file names are honoured."""
    if not file:
        raise HTTPException(400, "Missing file parameter")

    output_dir = request.app.state.orchestrator.output_dir
    path = os.path.join(output_dir, os.path.basename(file))
    if not os.path.isfile(path):
        raise HTTPException(404, "File not found")

    return FileResponse(path, media_type="application/octet-stream", filename=os.path.basename(path))
