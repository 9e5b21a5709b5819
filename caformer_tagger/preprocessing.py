"""
Image preprocessing for the CAFormer DBv4 tagger.
Pads to a white square, resizes, crops and normalizes into an NCHW tensor.
"""

import io
from pathlib import Path
from typing import IO, Tuple, Union
import numpy as np
from PIL import Image, UnidentifiedImageError
from .logging import get_logger

PAD_SIZE = 512
FINAL_SIZE = 384

# ImageNet statistics, R,G,B order
MEAN = np.array([0.485, 0.456, 0.406], dtype=np.float32)
STD = np.array([0.229, 0.224, 0.225], dtype=np.float32)

ImageSource = Union[bytes, bytearray, str, Path, IO[bytes]]

logger = get_logger("preprocessing")


class DecodeError(Exception):
    """Raised when image data cannot be decoded."""
    pass


def load_image(source: ImageSource) -> Image.Image:
    """Decode an image from bytes, a binary stream or a file path.

    Pixel data is loaded eagerly so truncated or corrupt files fail here
    rather than halfway through preprocessing. Images over Pillow's
    ``MAX_IMAGE_PIXELS`` bomb limit are rejected as ``DecodeError``.
    """
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    elif not isinstance(source, (str, Path)):
        # Copy the stream so non-seekable sources work with PIL
        source = io.BytesIO(source.read())

    try:
        image = Image.open(source)
        image.load()
    except FileNotFoundError:
        raise
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise DecodeError(f"Cannot decode image: {e}") from e
    return image


def pad_to_square(image: Image.Image, pad_size: int = PAD_SIZE) -> Tuple[Image.Image, Tuple[int, int]]:
    """Center ``image`` on an opaque white square canvas.

    The canvas side is ``max(width, height, pad_size)``. Transparent pixels are
    flattened onto the white background. Returns the RGB canvas and the
    top-left offset at which the image was placed.
    """
    width, height = image.size
    target_size = max(width, height, pad_size)
    offset = ((target_size - width) // 2, (target_size - height) // 2)

    canvas = Image.new("RGBA", (target_size, target_size), (255, 255, 255, 255))
    canvas.alpha_composite(image.convert("RGBA"), dest=offset)
    return canvas.convert("RGB"), offset


def resize_and_crop(image: Image.Image, final_size: int = FINAL_SIZE) -> Image.Image:
    """Stretch-resize to ``final_size`` with bicubic resampling, then center crop."""
    resized = image.resize((final_size, final_size), Image.Resampling.BICUBIC)
    left = (resized.width - final_size) // 2
    top = (resized.height - final_size) // 2
    return resized.crop((left, top, left + final_size, top + final_size))


def normalize(image: Image.Image) -> np.ndarray:
    """Convert an RGB image to a normalized float32 tensor of shape (1, 3, H, W)."""
    arr = np.asarray(image.convert("RGB"), dtype=np.float32) / np.float32(255.0)
    arr = (arr - MEAN) / STD
    # HWC -> CHW, then add batch dimension
    return np.ascontiguousarray(arr.transpose(2, 0, 1)[np.newaxis, ...], dtype=np.float32)


def preprocess_image(image: Image.Image, pad_size: int = PAD_SIZE, final_size: int = FINAL_SIZE) -> np.ndarray:
    """Preprocess a decoded image into the model's input tensor. ``image`` is not modified."""
    padded, offset = pad_to_square(image, pad_size)
    logger.debug(f"Padded {image.size[0]}x{image.size[1]} image to {padded.size[0]} at offset {offset}")
    return normalize(resize_and_crop(padded, final_size))


def preprocess_source(source: ImageSource, pad_size: int = PAD_SIZE, final_size: int = FINAL_SIZE) -> np.ndarray:
    """Decode and preprocess an image from bytes, a stream or a path."""
    with load_image(source) as image:
        return preprocess_image(image, pad_size, final_size)
