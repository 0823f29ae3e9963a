import base64
import io
import os
import tempfile
from typing import Tuple

import cv2
import numpy as np
from PIL import Image, ImageFilter, UnidentifiedImageError

from scenedepth.core.exceptions import InputError
from scenedepth.processing.depth.pseudo_depth import generate_pseudo_depth

DEPTH_JPEG_QUALITY = 90
ANALYSIS_JPEG_QUALITY = 85
THUMBNAIL_JPEG_QUALITY = 85

BACKGROUND_CANVAS_SIZE = 512
BACKGROUND_BLUR_RADIUS = 20
BACKGROUND_OVERSCAN = 50
BACKGROUND_OVERLAY_ALPHA = 0.3
BACKGROUND_JPEG_QUALITY = 80


def constrain_dimensions(width: int, height: int, max_size: int) -> Tuple[int, int]:
    """Scales (width, height) down so the longest side is at most max_size."""
    if width >= height:
        if width > max_size:
            return max_size, max(1, round(height * max_size / width))
    elif height > max_size:
        return max(1, round(width * max_size / height)), max_size
    return width, height


def open_image(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InputError(f"Unable to decode image: {e}") from e
    return image.convert("RGB")


def decode_image(data: bytes, max_size: int = 0) -> np.ndarray:
    """Decodes image bytes into an HxWx3 uint8 RGB array, optionally downscaled."""
    image = open_image(data)
    if max_size:
        image = _fit(image, max_size)
    return np.asarray(image, dtype=np.uint8)


def image_size(data: bytes) -> Tuple[int, int]:
    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.size
    except (UnidentifiedImageError, OSError) as e:
        raise InputError(f"Unable to decode image: {e}") from e


def image_mime_type(data: bytes) -> str:
    """MIME type of the encoded image, or `image/*` when Pillow has none for its format."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            return Image.MIME.get(image.format or "", "image/*")
    except (UnidentifiedImageError, OSError) as e:
        raise InputError(f"Unable to decode image: {e}") from e


def _fit(image: Image.Image, max_size: int) -> Image.Image:
    size = constrain_dimensions(image.width, image.height, max_size)
    if size == image.size:
        return image
    return image.resize(size, Image.Resampling.LANCZOS)


def encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def to_data_url(data: bytes, mime_type: str = "image/jpeg") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('utf-8')}"


def pixels_to_data_url(pixels: np.ndarray, quality: int = DEPTH_JPEG_QUALITY) -> str:
    return to_data_url(encode_jpeg(Image.fromarray(pixels), quality))


def analysis_base64(data: bytes, max_size: int) -> str:
    """Bare base64 JPEG of the image downscaled for scene analysis."""
    image = _fit(open_image(data), max_size)
    return base64.b64encode(encode_jpeg(image, ANALYSIS_JPEG_QUALITY)).decode("utf-8")


def generate_pseudo_depth_map(data: bytes, max_size: int, soft_blur: float = 0.0) -> str:
    """Decodes, downscales and runs the pseudo-depth algorithm; returns a JPEG data URL."""
    pixels = decode_image(data, max_size)
    depth = generate_pseudo_depth(pixels, soft_blur=soft_blur)
    return pixels_to_data_url(depth)


def generate_blurred_background(data: bytes) -> str:
    """A square, heavily blurred and darkened rendition of the image as a JPEG data URL."""
    image = open_image(data)
    draw_size = BACKGROUND_CANVAS_SIZE + 2 * BACKGROUND_OVERSCAN
    scaled = image.resize((draw_size, draw_size), Image.Resampling.BILINEAR)
    blurred = scaled.filter(ImageFilter.GaussianBlur(BACKGROUND_BLUR_RADIUS))
    cropped = blurred.crop((
        BACKGROUND_OVERSCAN,
        BACKGROUND_OVERSCAN,
        BACKGROUND_OVERSCAN + BACKGROUND_CANVAS_SIZE,
        BACKGROUND_OVERSCAN + BACKGROUND_CANVAS_SIZE,
    ))
    overlay = Image.new("RGB", cropped.size, (0, 0, 0))
    darkened = Image.blend(cropped, overlay, BACKGROUND_OVERLAY_ALPHA)
    return to_data_url(encode_jpeg(darkened, BACKGROUND_JPEG_QUALITY))


def extract_video_frame(data: bytes, suffix: str = ".mp4") -> Tuple[bytes, int, int, float]:
    """
    Reads the first frame of a video.

    Returns:
        (JPEG bytes of the first frame, width, height, duration in seconds)
    """
    fd, path = tempfile.mkstemp(suffix=suffix)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        capture = cv2.VideoCapture(path)
        try:
            if not capture.isOpened():
                raise InputError("Unable to open video")
            ok, frame = capture.read()
            if not ok or frame is None:
                raise InputError("Unable to read the first video frame")
            fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
            frame_count = capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0
        finally:
            capture.release()
    finally:
        os.unlink(path)

    rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
    height, width = rgb.shape[:2]
    duration = float(frame_count / fps) if fps > 0 else 0.0
    return encode_jpeg(Image.fromarray(rgb), THUMBNAIL_JPEG_QUALITY), width, height, duration
