import io

import numpy as np
from PIL import Image


def make_image_bytes(width: int = 32, height: int = 24, color=(120, 80, 40), fmt: str = "PNG") -> bytes:
    """Encodes a solid-color RGB image."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


def make_gradient_bytes(width: int = 32, height: int = 24) -> bytes:
    """Encodes an image with a horizontal luminance ramp and a bright square."""
    pixels = np.zeros((height, width, 3), dtype=np.uint8)
    pixels[:, :, :] = np.linspace(0, 200, width, dtype=np.uint8)[np.newaxis, :, np.newaxis]
    pixels[height // 4: height // 2, width // 4: width // 2] = 255
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format="PNG")
    return buffer.getvalue()
