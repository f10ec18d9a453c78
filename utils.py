"""
Utility functions for the raster effects library.
"""

import os
import logging
from typing import Dict, Optional, Tuple
from PIL import Image
import numpy as np

__all__ = [
    # Constants
    'LUMA_WEIGHTS',
    'IMAGE_EXTENSIONS',
    # Functions
    'luminance',
    'clamp01',
    'to_uint8',
    'validate_image_file',
    'get_image_info',
    'ensure_rgb',
    'sanitize_filename',
    'split_extension',
]

logger = logging.getLogger(__name__)

# Rec. 601 luma, same weights everywhere luminance is needed
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)

IMAGE_EXTENSIONS = {'.png', '.jpg', '.jpeg', '.gif', '.bmp', '.tiff', '.webp'}


def luminance(pixels: np.ndarray) -> np.ndarray:
    """
    Compute per-pixel luminance of an RGB array.

    Args:
        pixels: Array whose last axis holds R, G, B

    Returns:
        Float64 array with the last axis removed
    """
    pix = pixels.astype(np.float64, copy=False)
    return (LUMA_WEIGHTS[0] * pix[..., 0]
            + LUMA_WEIGHTS[1] * pix[..., 1]
            + LUMA_WEIGHTS[2] * pix[..., 2])


def clamp01(values: np.ndarray) -> np.ndarray:
    """Clamp to [0, 1] without touching the input."""
    return np.clip(values, 0.0, 1.0)


def to_uint8(pixels: np.ndarray) -> np.ndarray:
    """
    Convert [0,1] float channels to 8-bit, clamping out-of-range values.

    Args:
        pixels: Float array of shape (h, w, 3)

    Returns:
        uint8 array of the same shape
    """
    return np.round(clamp01(pixels) * 255.0).astype(np.uint8)


def validate_image_file(filepath: str) -> bool:
    """
    Check if file is a valid image file.

    Args:
        filepath: Path to image file

    Returns:
        True if valid image file
    """
    ext = os.path.splitext(filepath)[1].lower()
    return ext in IMAGE_EXTENSIONS and os.path.exists(filepath)


def get_image_info(filepath: str) -> Optional[Dict]:
    """
    Get basic image information.

    Args:
        filepath: Path to image file

    Returns:
        Dictionary with width, height, mode, format, or None if unreadable
    """
    try:
        with Image.open(filepath) as img:
            return {
                'width': img.width,
                'height': img.height,
                'mode': img.mode,
                'format': img.format
            }
    except (OSError, ValueError) as e:
        logger.warning(f"Error getting image info: {e}")
        return None


def ensure_rgb(image: Image.Image) -> Image.Image:
    """
    Ensure image is in RGB mode.

    Args:
        image: PIL Image

    Returns:
        Image in RGB mode
    """
    if image.mode != 'RGB':
        return image.convert('RGB')
    return image


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename by replacing invalid characters.
    """
    invalid_chars = ['<', '>', ':', '"', '/', '\\', '|', '?', '*']
    for ch in invalid_chars:
        filename = filename.replace(ch, '_')
    return filename


def split_extension(filename: str, default_ext: str = '.png') -> Tuple[str, str]:
    """Split a file name into stem and extension, falling back to default_ext."""
    stem, ext = os.path.splitext(filename)
    return stem, (ext or default_ext)
