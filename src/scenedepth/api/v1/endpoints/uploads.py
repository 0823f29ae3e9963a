from fastapi import APIRouter, Depends, File, UploadFile

from scenedepth.api.v1.schemas.schemas import UrlUploadRequest
from scenedepth.core.dependencies import get_session_service
from scenedepth.core.logging import LoggerRegistry
from scenedepth.domain.models import ProcessedResult
from scenedepth.processing.payloads import UploadedFile
from scenedepth.services.session_service import SessionService

router = APIRouter()
logger = LoggerRegistry.get_api_logger("uploads")


@router.post("", response_model=ProcessedResult)
async def upload_file(
    file: UploadFile = File(...),
    session: SessionService = Depends(get_session_service),
):
    """
    Runs the upload pipeline on an image or video file and returns the
    processed result (asset, analysis, depth map and background).
    """
    content = await file.read()
    logger.info("upload.file.received", filename=file.filename, content_type=file.content_type, size=len(content))
    upload = UploadedFile(
        content=content,
        filename=file.filename or "upload",
        content_type=file.content_type or "application/octet-stream",
    )
    return await session.start_upload(upload)


@router.post("/url", response_model=ProcessedResult)
async def upload_url(request: UrlUploadRequest, session: SessionService = Depends(get_session_service)):
    """Runs the upload pipeline on an image referenced by URL."""
    logger.info("upload.url.received", scheme=request.url.split(":", 1)[0])
    return await session.start_upload(request.url)


@router.post("/retry", response_model=ProcessedResult)
async def retry_upload(session: SessionService = Depends(get_session_service)):
    """Resumes the last failed run; stages that already completed are skipped."""
    return await session.retry()
