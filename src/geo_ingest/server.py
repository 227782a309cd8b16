"""FastAPI server for geometry uploads."""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from . import __version__, config
from .dispatcher import ingest
from .errors import IngestError
from .models import GeometryStats, IngestFailure

logger = logging.getLogger(__name__)

app = FastAPI(title="Geo Ingest", version=__version__)


@app.exception_handler(IngestError)
async def ingest_error_handler(request: Request, exc: IngestError) -> JSONResponse:
    if exc.client_error:
        logger.warning("Rejected upload: %s", exc)
    else:
        logger.error("Geom error: %s", exc)
    status = 400 if exc.client_error else 500
    return JSONResponse(status_code=status, content=IngestFailure(**exc.to_dict()).model_dump())


@app.get("/health")
async def health():
    return {"ok": True, "name": "geo-ingest", "version": __version__}


@app.post("/api/process-shp")
async def process_upload(file: UploadFile | None = None):
    """Summarise an uploaded .zip (Shapefile), .kml or .kmz file.

    The upload is held in memory only; nothing is written to disk.
    """
    if file is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    content = await file.read(config.MAX_UPLOAD_BYTES + 1)
    if len(content) > config.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"Upload exceeds {config.MAX_UPLOAD_BYTES} bytes",
        )

    stats: GeometryStats = ingest(content, file.filename or "")
    return stats.model_dump(by_alias=True)
