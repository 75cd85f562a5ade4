"""
Pixel Buffers
=============
Conversion between Pillow images and the RGBA numpy arrays the engine
works on.

A pixel buffer is an ``(height, width, 4)`` ``uint8`` array in R, G, B, A
order. Every engine stage mutates the buffer in place.
"""

from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image, ImageOps


def ensure_pixel_buffer(buffer: np.ndarray, name: str = "image") -> np.ndarray:
    """
    Validate that ``buffer`` is an RGBA uint8 array.

    Raises:
        ValueError: If the shape or dtype is wrong.
    """
    if not isinstance(buffer, np.ndarray):
        raise ValueError(f"{name} must be a numpy array, got {type(buffer).__name__}")
    if buffer.ndim != 3 or buffer.shape[2] != 4:
        raise ValueError(f"{name} must have shape (height, width, 4), got {buffer.shape}")
    if buffer.dtype != np.uint8:
        raise ValueError(f"{name} must be uint8, got {buffer.dtype}")
    return buffer


def to_pixel_buffer(image: Image.Image) -> np.ndarray:
    """Convert a Pillow image to a writable RGBA buffer."""
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    return np.array(image, dtype=np.uint8)


def from_pixel_buffer(buffer: np.ndarray) -> Image.Image:
    """Wrap a pixel buffer in a Pillow RGBA image (copies the data)."""
    ensure_pixel_buffer(buffer)
    return Image.fromarray(buffer)


def open_pixel_buffer(image_path: Union[str, Path]) -> np.ndarray:
    """
    Decode an image file into a pixel buffer.

    EXIF orientation is applied so the buffer matches what a viewer shows.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    image_path = Path(image_path)
    if not image_path.exists():
        raise FileNotFoundError(f"Image not found: {image_path}")

    with Image.open(image_path) as img:
        img = ImageOps.exif_transpose(img)
        return to_pixel_buffer(img)


def save_pixel_buffer(buffer: np.ndarray, output_path: Union[str, Path]) -> Path:
    """
    Save a pixel buffer as PNG.

    Lossless output is required: any other suffix is replaced by ``.png``.

    Returns:
        The path actually written.
    """
    output_path = Path(output_path)
    if output_path.suffix.lower() != ".png":
        output_path = output_path.with_suffix(".png")
    output_path.parent.mkdir(parents=True, exist_ok=True)

    from_pixel_buffer(buffer).save(output_path, "PNG")
    return output_path
