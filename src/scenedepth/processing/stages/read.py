import asyncio
import os
from typing import Any, Dict

from scenedepth.core.exceptions import InputError
from scenedepth.infrastructure.image_resolver import ImageResolver, data_url_mime_type
from scenedepth.infrastructure.storage.blob_store import BlobStore
from scenedepth.processing.decorators import instrument_stage
from scenedepth.processing.images import analysis_base64, extract_video_frame, image_mime_type, image_size
from scenedepth.processing.payloads import StageInput, UploadedFile
from scenedepth.processing.stages.base import BaseStage

VIDEO_SUFFIXES = {
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    "video/quicktime": ".mov",
    "video/x-matroska": ".mkv",
}


class ReadStage(BaseStage):
    """Normalizes an uploaded file or a URL into an image URL, analysis base64 and metadata."""

    def __init__(self, blob_store: BlobStore, resolver: ImageResolver, analysis_max_size: int = 1024, **kwargs):
        super().__init__(**kwargs)
        self.blob_store = blob_store
        self.resolver = resolver
        self.analysis_max_size = analysis_max_size

    @property
    def name(self) -> str:
        return "read"

    @property
    def order(self) -> int:
        return 0

    def can_skip(self, record: StageInput) -> bool:
        return record.image_url is not None and record.image_base64 is not None

    @instrument_stage
    async def execute(self, record: StageInput) -> StageInput:
        self.check_cancelled(record)

        if record.file is not None:
            return await self._read_file(record, record.file)
        if record.url:
            return await self._read_url(record, record.url)
        raise InputError("No file or URL provided")

    async def _read_file(self, record: StageInput, upload: UploadedFile) -> StageInput:
        if not upload.content:
            raise InputError(f"File '{upload.filename}' is empty")
        if upload.is_video:
            return await self._read_video(record, upload)
        if not upload.is_image:
            raise InputError(f"Unsupported file type: {upload.content_type}")

        width, height = image_size(upload.content)
        base64_data = await asyncio.to_thread(analysis_base64, upload.content, self.analysis_max_size)
        self.check_cancelled(record)

        image_url = self.blob_store.create_object_url(upload.content, upload.content_type)
        self.logger.info("read.file.loaded", filename=upload.filename, width=width, height=height)
        return record.extend(
            image_url=image_url,
            image_base64=base64_data,
            metadata=self._metadata(width, height, upload.content_type, filename=upload.filename),
        )

    async def _read_video(self, record: StageInput, upload: UploadedFile) -> StageInput:
        suffix = VIDEO_SUFFIXES.get(upload.content_type) or os.path.splitext(upload.filename)[1] or ".mp4"
        frame, width, height, duration = await asyncio.to_thread(extract_video_frame, upload.content, suffix)
        base64_data = await asyncio.to_thread(analysis_base64, frame, self.analysis_max_size)
        self.check_cancelled(record)

        video_url = self.blob_store.create_object_url(upload.content, upload.content_type)
        image_url = self.blob_store.create_object_url(frame, "image/jpeg")
        self.logger.info("read.video.loaded", filename=upload.filename, width=width, height=height, duration=duration)
        return record.extend(
            image_url=image_url,
            image_base64=base64_data,
            video_url=video_url,
            metadata=self._metadata(width, height, upload.content_type, filename=upload.filename, duration=duration),
        )

    async def _read_url(self, record: StageInput, url: str) -> StageInput:
        data = await self.resolver.resolve(url)
        width, height = image_size(data)
        base64_data = await asyncio.to_thread(analysis_base64, data, self.analysis_max_size)
        self.check_cancelled(record)

        if url.startswith(("http://", "https://")):
            # Later stages read the blob instead of fetching the URL again.
            content_type = image_mime_type(data)
            image_url = self.blob_store.create_object_url(data, content_type)
            self.logger.info("read.url.fetched", url=url, width=width, height=height)
            return record.extend(
                image_url=image_url,
                image_base64=base64_data,
                metadata=self._metadata(width, height, content_type, source_url=url),
            )

        content_type = data_url_mime_type(url) if url.startswith("data:") else "image/*"
        self.logger.info("read.url.loaded", width=width, height=height)
        return record.extend(
            image_url=url,
            image_base64=base64_data,
            metadata=self._metadata(width, height, content_type),
        )

    @staticmethod
    def _metadata(width: int, height: int, content_type: str, **extra: Any) -> Dict[str, Any]:
        return {
            "width": width,
            "height": height,
            "aspect_ratio": width / height if height else None,
            "content_type": content_type,
            **extra,
        }
