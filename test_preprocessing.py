"""
Tests for image preprocessing.
"""

import io

import numpy as np
import pytest
from PIL import Image

from caformer_tagger.preprocessing import (
    DecodeError,
    FINAL_SIZE,
    MEAN,
    STD,
    load_image,
    normalize,
    pad_to_square,
    preprocess_image,
    preprocess_source,
    resize_and_crop,
)


@pytest.mark.parametrize(
    "size, expected_side, expected_offset",
    [
        ((10, 10), 512, (251, 251)),
        ((2000, 800), 2000, (0, 600)),
        ((300, 700), 700, (200, 0)),
        ((512, 512), 512, (0, 0)),
        ((513, 20), 513, (0, 246)),
    ],
)
def test_pad_canvas_size_and_offset(size, expected_side, expected_offset):
    image = Image.new("RGB", size, (10, 20, 30))
    padded, offset = pad_to_square(image)

    assert padded.size == (expected_side, expected_side)
    assert offset == expected_offset

    x, y = offset
    # Content sits exactly at the offset, white padding around it
    assert padded.getpixel((x, y)) == (10, 20, 30)
    assert padded.getpixel((x + size[0] - 1, y + size[1] - 1)) == (10, 20, 30)
    if x > 0:
        assert padded.getpixel((x - 1, y)) == (255, 255, 255)
    if y > 0:
        assert padded.getpixel((x, y - 1)) == (255, 255, 255)


def test_transparent_pixels_flatten_to_white():
    image = Image.new("RGBA", (20, 20), (0, 0, 0, 0))
    padded, (x, y) = pad_to_square(image)
    assert padded.mode == "RGB"
    assert padded.getpixel((x + 5, y + 5)) == (255, 255, 255)


def test_input_image_is_not_mutated():
    image = Image.new("RGBA", (30, 40), (1, 2, 3, 128))
    before = image.tobytes()
    preprocess_image(image)
    assert image.size == (30, 40)
    assert image.mode == "RGBA"
    assert image.tobytes() == before


@pytest.mark.parametrize("size", [(10, 10), (2000, 800), (384, 384), (1, 1000)])
def test_tensor_shape(size):
    tensor = preprocess_image(Image.new("RGB", size, (128, 64, 32)))
    assert tensor.shape == (1, 3, FINAL_SIZE, FINAL_SIZE)
    assert tensor.dtype == np.float32


def test_white_pixel_normalization():
    tensor = preprocess_image(Image.new("RGB", (100, 100), (255, 255, 255)))
    expected = (1.0 - np.array([0.485, 0.456, 0.406])) / np.array([0.229, 0.224, 0.225])
    for channel in range(3):
        np.testing.assert_allclose(tensor[0, channel], expected[channel], atol=1e-5)


def test_normalize_is_channel_major():
    image = Image.new("RGB", (2, 2), (255, 0, 0))
    image.putpixel((1, 0), (0, 255, 0))
    tensor = normalize(image)

    assert tensor.shape == (1, 3, 2, 2)
    # tensor[0, c, y, x]
    assert tensor[0, 0, 0, 0] == pytest.approx((1.0 - MEAN[0]) / STD[0], abs=1e-6)
    assert tensor[0, 1, 0, 0] == pytest.approx((0.0 - MEAN[1]) / STD[1], abs=1e-6)
    assert tensor[0, 0, 0, 1] == pytest.approx((0.0 - MEAN[0]) / STD[0], abs=1e-6)
    assert tensor[0, 1, 0, 1] == pytest.approx((1.0 - MEAN[1]) / STD[1], abs=1e-6)


def test_resize_and_crop_target_size():
    resized = resize_and_crop(Image.new("RGB", (900, 900), (0, 0, 0)))
    assert resized.size == (FINAL_SIZE, FINAL_SIZE)


def test_crop_centers_when_sizes_differ():
    image = Image.new("RGB", (600, 600), (0, 0, 0))
    cropped = resize_and_crop(image, final_size=100)
    assert cropped.size == (100, 100)


def test_load_image_from_bytes_stream_and_path(png_bytes, tmp_path):
    data = png_bytes(size=(12, 8))
    path = tmp_path / "image.png"
    path.write_bytes(data)

    for source in (data, io.BytesIO(data), path, str(path)):
        image = load_image(source)
        assert image.size == (12, 8)


def test_preprocess_source_matches_preprocess_image(png_bytes):
    data = png_bytes(size=(40, 90), color=(12, 200, 99))
    expected = preprocess_image(Image.open(io.BytesIO(data)))
    np.testing.assert_array_equal(preprocess_source(data), expected)


def test_grayscale_and_palette_images_are_accepted(png_bytes):
    assert preprocess_source(png_bytes(mode="L", color=200)).shape == (1, 3, 384, 384)
    assert preprocess_source(png_bytes(mode="P", color=3)).shape == (1, 3, 384, 384)


def test_garbage_bytes_raise_decode_error():
    with pytest.raises(DecodeError):
        preprocess_source(b"definitely not an image")


def test_truncated_image_raises_decode_error():
    noise = np.random.default_rng(0).integers(0, 256, (200, 200, 3), dtype=np.uint8)
    buffer = io.BytesIO()
    Image.fromarray(noise).save(buffer, format="PNG")
    data = buffer.getvalue()
    with pytest.raises(DecodeError):
        load_image(data[: len(data) // 2])


def test_decompression_bomb_raises_decode_error(png_bytes, monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
    with pytest.raises(DecodeError):
        load_image(png_bytes(size=(20, 20)))
