"""
Batch Image Upload API
Accepts a batch of images, renames them to <baseName>-<n><ext>, and serves them back
"""
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import List, Optional
import logging
import mimetypes

import uvicorn
from fastapi import FastAPI, Depends, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from . import config
from .batches import clear_storage, store_batch, validate_batch
from .errors import InternalError, NotFound, UploadServiceError
from .schemas import HealthResponse, MessageResponse, UploadResponse
from .storage import CHUNK_SIZE, storage_from_config

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_storage():
    """Storage backend shared by all requests"""
    return storage_from_config()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Creates the upload directory for the local backend
    provider = app.dependency_overrides.get(get_storage, get_storage)
    storage = provider()
    logger.info(f"action=startup backend={type(storage).__name__}")
    yield


# ============== FastAPI APP & MIDDLEWARE ==============

app = FastAPI(title="Batch Image Upload API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(UploadServiceError)
async def service_error_handler(request: Request, exc: UploadServiceError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = errors[0].get("msg") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"message": detail})


# ============== ENDPOINTS ==============

@app.get("/health", response_model=HealthResponse)
def health_check():
    """Heartbeat check"""
    return {"status": "alive"}


@app.post("/upload", response_model=UploadResponse)
def upload_images(
    base_name: Optional[str] = Form(None, alias="baseName"),
    images: Optional[List[UploadFile]] = File(None),
    storage=Depends(get_storage),
):
    """Store a batch of images as <baseName>-1<ext>, <baseName>-2<ext>, ..."""
    parts = validate_batch(base_name, images, config.MAX_FILES, config.MAX_FILE_SIZE)
    try:
        result = store_batch(storage, base_name, parts)
    except Exception as e:
        logger.exception(f"action=upload status=error base_name={base_name}")
        raise InternalError(str(e) or "Failed to upload files")
    return result.to_dict()


@app.delete("/clear-uploads", response_model=MessageResponse)
async def clear_uploads(storage=Depends(get_storage)):
    """Delete every stored file"""
    await clear_storage(storage)
    return {"message": "Uploads cleared successfully"}


@app.get("/uploads/{filename}")
def get_upload(filename: str, storage=Depends(get_storage)):
    """Stream a stored file back"""
    try:
        stream = storage.open(filename)
    except (FileNotFoundError, ValueError):
        raise NotFound("File not found")
    except Exception:
        logger.exception(f"action=download status=error filename={filename}")
        raise InternalError("Failed to read file")
    media_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return StreamingResponse(_iter_chunks(stream), media_type=media_type)


def _iter_chunks(stream):
    try:
        while True:
            chunk = stream.read(CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
    finally:
        stream.close()


def run():
    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
