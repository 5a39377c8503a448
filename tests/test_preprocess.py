from io import BytesIO

import numpy as np
import pytest

from conftest import encode_png
from ingredient_scanner.errors import InvalidImageError
from ingredient_scanner.vision_pipeline.preprocess import (
    decode_image,
    load_image,
    prepare,
    to_original_box,
)


@pytest.mark.parametrize(
    "width,height",
    [(640, 480), (480, 640), (1, 1), (3000, 7), (7, 3000), (640, 640), (600, 800)],
)
def test_prepare_always_returns_target_shape(width, height):
    image = np.full((height, width, 3), 200, dtype=np.uint8)

    prepared = prepare(image, 320, 256)

    assert prepared.tensor.shape == (256, 320, 3)
    assert prepared.tensor.dtype == np.float32
    assert prepared.tensor.min() >= 0.0
    assert prepared.tensor.max() <= 1.0


def test_prepare_unpacks_as_tensor_and_ratios(rgb_image):
    tensor, x_ratio, y_ratio = prepare(rgb_image, 64, 64)

    # scale = min(64/100, 64/50) = 0.64
    assert tensor.shape == (64, 64, 3)
    assert x_ratio == pytest.approx(1.0)
    assert y_ratio == pytest.approx(2.0)


def test_wide_image_is_padded_at_the_bottom():
    image = np.full((50, 100, 3), 255, dtype=np.uint8)

    tensor = prepare(image, 64, 64).tensor

    # 100x50 -> 64x32 content in the top rows, zeros below
    assert np.allclose(tensor[:32], 1.0)
    assert np.all(tensor[32:] == 0.0)


def test_square_image_into_wide_target_pads_instead_of_stretching():
    image = np.full((40, 40, 3), 255, dtype=np.uint8)

    prepared = prepare(image, 80, 40)

    assert prepared.scale_factors.scale == pytest.approx(1.0)
    assert np.allclose(prepared.tensor[:, :40], 1.0)
    assert np.all(prepared.tensor[:, 40:] == 0.0)
    assert prepared.x_ratio == pytest.approx(2.0)
    assert prepared.y_ratio == pytest.approx(1.0)


def test_pixel_values_are_divided_by_255():
    image = np.full((10, 10, 3), 51, dtype=np.uint8)

    tensor = prepare(image, 10, 10).tensor

    assert np.allclose(tensor, 0.2)


def test_box_round_trip_in_tensor_pixels(rgb_image):
    prepared = prepare(rgb_image, 64, 64)
    scale = prepared.scale_factors.scale
    original = (10.0, 5.0, 30.0, 20.0)

    tensor_box = [v * scale for v in original]
    recovered = to_original_box(tensor_box, prepared.scale_factors)

    assert recovered == pytest.approx(original, abs=1e-6)


def test_box_round_trip_in_normalized_units():
    image = np.zeros((300, 300, 3), dtype=np.uint8)
    prepared = prepare(image, 640, 320)
    scale = prepared.scale_factors.scale
    original = (30.0, 60.0, 150.0, 270.0)

    normalized = [
        original[0] * scale / 640,
        original[1] * scale / 320,
        original[2] * scale / 640,
        original[3] * scale / 320,
    ]
    recovered = to_original_box(normalized, prepared.scale_factors, normalized=True)

    assert recovered == pytest.approx(original, abs=1e-6)


def test_box_is_clamped_to_image(rgb_image):
    prepared = prepare(rgb_image, 64, 64)

    recovered = to_original_box([-5, -5, 64, 64], prepared.scale_factors)

    assert recovered == pytest.approx((0.0, 0.0, 100.0, 50.0))


@pytest.mark.parametrize("shape", [(0, 10, 3), (10, 0, 3), (0, 0, 3)])
def test_zero_sized_image_is_rejected(shape):
    with pytest.raises(InvalidImageError):
        prepare(np.zeros(shape, dtype=np.uint8), 64, 64)


def test_non_rgb_array_is_rejected():
    with pytest.raises(InvalidImageError):
        prepare(np.zeros((10, 10), dtype=np.uint8), 64, 64)


def test_non_positive_target_is_rejected(rgb_image):
    with pytest.raises(InvalidImageError):
        prepare(rgb_image, 0, 64)


def test_decode_png_to_rgb():
    arr = np.zeros((12, 20, 3), dtype=np.uint8)
    arr[..., 0] = 255

    decoded = decode_image(encode_png(arr))

    assert decoded.shape == (12, 20, 3)
    assert decoded.dtype == np.uint8
    assert np.all(decoded[..., 0] == 255)
    assert np.all(decoded[..., 1:] == 0)


def test_decode_grayscale_png_gives_three_channels():
    gray = np.full((8, 8), 77, dtype=np.uint8)

    decoded = decode_image(encode_png(gray))

    assert decoded.shape == (8, 8, 3)


@pytest.mark.parametrize("payload", [b"", b"definitely not an image"])
def test_decode_rejects_bad_payload(payload):
    with pytest.raises(InvalidImageError):
        decode_image(payload)


def test_load_image_from_disk(tmp_path, rgb_image):
    path = tmp_path / "photo.png"
    path.write_bytes(encode_png(rgb_image))

    loaded = load_image(str(path))

    assert loaded.shape == (50, 100, 3)


def test_load_missing_image_fails(tmp_path):
    with pytest.raises(InvalidImageError):
        load_image(str(tmp_path / "missing.jpg"))


def test_decode_applies_exif_rotation():
    from PIL import Image

    # Orientation 6: stored landscape, displayed rotated 90 degrees clockwise
    exif = Image.Exif()
    exif[0x0112] = 6
    buf = BytesIO()
    Image.new("RGB", (40, 20), (200, 30, 30)).save(buf, format="JPEG", exif=exif)

    rgb = decode_image(buf.getvalue())

    assert rgb.shape == (40, 20, 3)
