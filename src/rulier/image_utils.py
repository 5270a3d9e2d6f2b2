"""
Image I/O and conversion between 8-bit images and two-level rasters.
"""

from pathlib import Path
from typing import Optional
import logging

import numpy as np
import cv2
from PIL import Image

from .exceptions import NotBinaryImageError, RuleLineError
from .raster import BACKGROUND, FOREGROUND, RASTER_DTYPE

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".png", ".bmp", ".jpg", ".jpeg", ".tif", ".tiff", ".gif"}

# Formats OpenCV cannot read or write
_PILLOW_ONLY = {".gif"}

PURE_FRACTION = 0.75
ACCEPTED_FRACTION = 0.90
NEAR_WHITE = 200
NEAR_BLACK = 5


def to_gray(image_bgr: np.ndarray) -> np.ndarray:
    """Convert a BGR(A) image to 8-bit grayscale.

    Args:
        image_bgr: BGR, BGRA or grayscale image array

    Returns:
        Grayscale image array
    """
    if image_bgr.ndim == 2:
        gray = image_bgr
    elif image_bgr.shape[2] == 4:
        gray = cv2.cvtColor(image_bgr, cv2.COLOR_BGRA2GRAY)
    else:
        gray = cv2.cvtColor(image_bgr, cv2.COLOR_BGR2GRAY)
    if gray.dtype != np.uint8:
        gray = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
    return gray


def load_image(path: Path) -> np.ndarray:
    """Read an image file as 8-bit grayscale."""
    path = Path(path)
    if not path.is_file():
        raise RuleLineError(f"이미지 파일을 찾을 수 없습니다: {path}", "IMAGE_NOT_FOUND")

    gray = None
    if path.suffix.lower() not in _PILLOW_ONLY:
        gray = cv2.imread(path.as_posix(), cv2.IMREAD_GRAYSCALE)
    if gray is None:
        try:
            with Image.open(path) as img:
                gray = np.array(img.convert("L"))
        except OSError as e:
            raise RuleLineError(f"이미지를 읽을 수 없습니다: {path} ({e})", "IMAGE_READ_FAILED") from e
    logger.debug(f"Loaded {path.name}: {gray.shape}")
    return gray


def save_image(path: Path, image: np.ndarray) -> Path:
    """Write an 8-bit image; GIF goes through Pillow."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() in _PILLOW_ONLY:
        Image.fromarray(image).save(path)
    elif not cv2.imwrite(path.as_posix(), image):
        raise RuleLineError(f"이미지를 저장할 수 없습니다: {path}", "IMAGE_WRITE_FAILED")
    return path


def looks_binary(image: np.ndarray) -> bool:
    """Heuristic check that an image is black text on white paper.

    More than 75% of the gray pixels must be pure black or white, and more
    than 90% must be pure, near-white (> 200) or near-black (< 5).
    """
    gray = to_gray(image)
    if gray.size == 0:
        return False
    if np.unique(gray).size <= 2:
        return True

    pure = np.count_nonzero((gray == 0) | (gray == 255))
    accepted = np.count_nonzero((gray == 0) | (gray == 255) | (gray > NEAR_WHITE) | (gray < NEAR_BLACK))
    return pure / gray.size > PURE_FRACTION and accepted / gray.size > ACCEPTED_FRACTION


def to_binary(image: np.ndarray, threshold: int = 128, source: Optional[str] = None) -> np.ndarray:
    """Two-level raster of an image: gray below ``threshold`` is foreground.

    Raises:
        NotBinaryImageError: if the image does not look binary
    """
    if not validate_image(image):
        raise NotBinaryImageError("빈 이미지이거나 형식이 잘못되었습니다", source)
    if not looks_binary(image):
        raise NotBinaryImageError("흑백 문서 이미지만 처리할 수 있습니다", source)
    gray = to_gray(image)
    return np.where(gray < threshold, FOREGROUND, BACKGROUND).astype(RASTER_DTYPE)


def to_image(raster: np.ndarray) -> np.ndarray:
    """Black-on-white 8-bit image of a raster."""
    return np.where(raster == FOREGROUND, 0, 255).astype(np.uint8)


def validate_image(image: np.ndarray) -> bool:
    """True for a non-empty 2-D gray or 3-D color array."""
    return isinstance(image, np.ndarray) and image.size > 0 and image.ndim in (2, 3)


def get_image_info(image: np.ndarray) -> dict:
    """Shape, type and binary-check summary of a page image, for logging."""
    if not validate_image(image):
        raise RuleLineError("빈 이미지이거나 형식이 잘못되었습니다", "INVALID_IMAGE")

    rows, cols = image.shape[:2]
    info = {
        "size": f"{cols}x{rows}",
        "dtype": str(image.dtype),
        "channels": image.shape[2] if image.ndim == 3 else 1,
        "memory_mb": round(image.nbytes / (1024 * 1024), 2),
    }
    if image.dtype == np.uint8:
        info["looks_binary"] = looks_binary(image)
    return info
