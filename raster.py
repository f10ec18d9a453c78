"""
Raster container used by every effect in the library.

A Raster is a width x height grid of RGB samples stored as float32 in a
numpy array of shape (height, width, 3). Channels are conventionally in
[0, 1]; effects may push them outside that range and it is up to save()
to clamp when writing an 8-bit file.
"""

import logging
from pathlib import Path
from typing import Tuple, Union

import numpy as np
from PIL import Image

from utils import ensure_rgb, to_uint8

__all__ = [
    'Raster',
]

logger = logging.getLogger(__name__)

Color = Tuple[float, float, float]


class Raster:
    """
    2-D RGB buffer with (0,0) at the top-left and x the fastest-varying index.
    """

    def __init__(self, width: int, height: int):
        """
        Create a black raster.

        Args:
            width: Number of columns, must be positive
            height: Number of rows, must be positive
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"Raster dimensions must be positive, got {width}x{height}")
        self._pixels = np.zeros((height, width, 3), dtype=np.float32)

    # -------------------- Construction --------------------

    @classmethod
    def from_array(cls, array: np.ndarray) -> 'Raster':
        """
        Build a raster from an (h, w, 3) array. The data is copied.
        """
        arr = np.asarray(array)
        if arr.ndim != 3 or arr.shape[2] != 3:
            raise ValueError(f"Expected an array of shape (h, w, 3), got {arr.shape}")
        raster = cls(arr.shape[1], arr.shape[0])
        raster._pixels[...] = arr
        return raster

    @classmethod
    def from_image(cls, image: Image.Image) -> 'Raster':
        """Build a raster from a PIL image, mapping 0..255 to 0..1."""
        arr = np.asarray(ensure_rgb(image), dtype=np.float32) / 255.0
        return cls.from_array(arr)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'Raster':
        """
        Decode an image file through Pillow.

        Raises:
            FileNotFoundError: if the file does not exist
            PIL.UnidentifiedImageError: if Pillow cannot decode it
        """
        with Image.open(path) as img:
            raster = cls.from_image(img)
        logger.debug(f"Loaded {path} ({raster.width}x{raster.height})")
        return raster

    # -------------------- Accessors --------------------

    @property
    def width(self) -> int:
        return self._pixels.shape[1]

    @property
    def height(self) -> int:
        return self._pixels.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height), same order as PIL."""
        return self.width, self.height

    @property
    def array(self) -> np.ndarray:
        """The backing (h, w, 3) float32 array. Writes go straight to the raster."""
        return self._pixels

    def pixels(self) -> np.ndarray:
        """Row-major (w*h, 3) view of every pixel."""
        return self._pixels.reshape((-1, 3))

    def _check_bounds(self, x: int, y: int) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"Pixel ({x}, {y}) outside {self.width}x{self.height} raster")

    def get_pixel(self, x: int, y: int) -> Color:
        self._check_bounds(x, y)
        r, g, b = self._pixels[y, x]
        return float(r), float(g), float(b)

    def set_pixel(self, x: int, y: int, color) -> None:
        self._check_bounds(x, y)
        self._pixels[y, x] = color

    def copy(self) -> 'Raster':
        """Deep copy; the new raster never shares storage with this one."""
        return Raster.from_array(self._pixels)

    # -------------------- Output --------------------

    def to_image(self) -> Image.Image:
        """Clamp to [0,1] and convert to an 8-bit RGB PIL image."""
        return Image.fromarray(to_uint8(self._pixels), 'RGB')

    def save(self, path: Union[str, Path]) -> None:
        """
        Persist through Pillow, creating the parent directory if needed.
        The format is taken from the file extension.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_image().save(path)
        logger.debug(f"Saved {path} ({self.width}x{self.height})")

    def __eq__(self, other) -> bool:
        if not isinstance(other, Raster):
            return NotImplemented
        return np.array_equal(self._pixels, other._pixels)

    __hash__ = None

    def __repr__(self) -> str:
        return f"Raster({self.width}x{self.height})"
