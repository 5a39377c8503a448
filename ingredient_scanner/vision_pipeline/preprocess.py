import logging
from io import BytesIO
from typing import Sequence, Tuple

import cv2  # type: ignore
import numpy as np  # type: ignore
from PIL import Image, ImageOps, UnidentifiedImageError

from ingredient_scanner.errors import InvalidImageError
from .types import PreparedInput, ScaleFactors

logger = logging.getLogger(__name__)


# -----------------------------------
# Decoding
# -----------------------------------


def _to_rgb_array(img: Image.Image) -> np.ndarray:
    # Camera photos often carry their rotation in EXIF only
    img = ImageOps.exif_transpose(img)
    arr = np.asarray(img.convert("RGB"), dtype=np.uint8)
    if arr.ndim != 3 or arr.shape[0] == 0 or arr.shape[1] == 0:
        raise InvalidImageError("Decoded image is empty")
    return arr


def decode_image(data: bytes) -> np.ndarray:
    """Decode JPEG/PNG bytes into an RGB uint8 array of shape (H, W, 3)."""
    if not data:
        raise InvalidImageError("Empty image payload")
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            return _to_rgb_array(img)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise InvalidImageError(f"Cannot decode image: {e}") from e


def load_image(path: str) -> np.ndarray:
    """Load an image file from disk as an RGB uint8 array."""
    try:
        with Image.open(path) as img:
            img.load()
            return _to_rgb_array(img)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise InvalidImageError(f"Cannot load image: {path} ({e})") from e


# -----------------------------------
# Letterbox
# -----------------------------------


def prepare(image: np.ndarray, target_width: int, target_height: int) -> PreparedInput:
    """
    Letterbox an RGB image into the detector's fixed input shape.

    - scale = min(target_width / W, target_height / H)
    - resized image is placed at the TOP-LEFT of a zero canvas
      (padding only on the right / bottom edge)
    - pixel values divided by 255

    Returns PreparedInput(tensor, scale_factors); the tensor has shape
    (target_height, target_width, 3), dtype float32. Unpacks as
    `tensor, x_ratio, y_ratio`.
    """
    if target_width <= 0 or target_height <= 0:
        raise InvalidImageError(
            f"Target size must be positive, got {target_width}x{target_height}"
        )
    if image is None or not isinstance(image, np.ndarray):
        raise InvalidImageError("Image must be a numpy array")
    if image.ndim != 3 or image.shape[2] != 3:
        raise InvalidImageError(f"Expected (H, W, 3) image, got shape {image.shape}")

    h, w = image.shape[:2]
    if w == 0 or h == 0:
        raise InvalidImageError(f"Image has zero size: {w}x{h}")

    scale = min(target_width / w, target_height / h)
    new_w = min(target_width, max(1, int(round(w * scale))))
    new_h = min(target_height, max(1, int(round(h * scale))))

    interpolation = cv2.INTER_AREA if scale < 1 else cv2.INTER_LINEAR
    resized = cv2.resize(np.ascontiguousarray(image), (new_w, new_h), interpolation=interpolation)

    tensor = np.zeros((target_height, target_width, 3), dtype=np.float32)
    tensor[:new_h, :new_w, :] = resized.astype(np.float32) / 255.0

    factors = ScaleFactors(
        x_ratio=target_width / (w * scale),
        y_ratio=target_height / (h * scale),
        scale=scale,
        image_width=w,
        image_height=h,
        target_width=target_width,
        target_height=target_height,
    )

    logger.debug(
        "Letterboxed image %sx%s -> %sx%s (content=%sx%s, scale=%.4f, ratios=%.4f/%.4f)",
        w,
        h,
        target_width,
        target_height,
        new_w,
        new_h,
        scale,
        factors.x_ratio,
        factors.y_ratio,
    )
    return PreparedInput(tensor=tensor, scale_factors=factors)


def to_original_box(
    box: Sequence[float],
    factors: ScaleFactors,
    normalized: bool = False,
) -> Tuple[float, float, float, float]:
    """
    Map an (x1, y1, x2, y2) box from tensor space back to original pixels.

    With `normalized=True` the box is in [0, 1] tensor units, as emitted by
    YOLOv5 TF.js / ONNX exports. Result is clamped to the image bounds.
    """
    x1, y1, x2, y2 = (float(v) for v in box[:4])

    if normalized:
        # x_norm * x_ratio * W == x_norm * target_width / scale
        fx = factors.x_ratio * factors.image_width
        fy = factors.y_ratio * factors.image_height
    else:
        fx = fy = 1.0 / factors.scale

    w, h = float(factors.image_width), float(factors.image_height)
    return (
        max(0.0, min(w, x1 * fx)),
        max(0.0, min(h, y1 * fy)),
        max(0.0, min(w, x2 * fx)),
        max(0.0, min(h, y2 * fy)),
    )
