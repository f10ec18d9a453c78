"""
Lossless delta coding of rasters.

A DiffStream holds one RGB triple per pixel in row-major order: the first
is the absolute colour of pixel (0,0), every later one is the difference to
the previous pixel. Deltas are kept in float64 so that the prefix sum in
decode() gives back the original float32 pixels bit for bit, as long as
neighbouring values are within about 29 binary orders of magnitude of each
other. A value much smaller than its predecessor (1e-30 after 1.0) is lost
in the subtraction and decodes as 0.
"""

import io
import logging
from pathlib import Path
from typing import Union

import numpy as np

from raster import Raster

__all__ = [
    'DiffStream',
    'DifferentialCodec',
    'CSV_HEADER',
]

logger = logging.getLogger(__name__)

CSV_HEADER = "R,G,B"


class DiffStream:
    """Ordered (n, 3) float64 sequence of colour deltas."""

    def __init__(self, deltas: np.ndarray):
        arr = np.array(deltas, dtype=np.float64)
        if arr.ndim != 2 or arr.shape[1] != 3:
            raise ValueError(f"DiffStream needs shape (n, 3), got {arr.shape}")
        self.deltas = arr

    def __len__(self) -> int:
        return self.deltas.shape[0]

    def __iter__(self):
        for r, g, b in self.deltas:
            yield float(r), float(g), float(b)

    def __getitem__(self, index):
        return self.deltas[index]

    def __repr__(self) -> str:
        return f"DiffStream({len(self)} elements)"


class DifferentialCodec:
    """
    Encode/decode rasters as delta streams, plus the text form used to dump
    them (a CSV with an R,G,B header and six decimals per channel).
    """

    @staticmethod
    def encode(raster: Raster) -> DiffStream:
        flat = raster.pixels().astype(np.float64)
        deltas = np.empty_like(flat)
        deltas[0] = flat[0]
        deltas[1:] = flat[1:] - flat[:-1]
        return DiffStream(deltas)

    @staticmethod
    def _check_size(stream: DiffStream, width: int, height: int):
        if width <= 0 or height <= 0:
            raise ValueError(f"Raster dimensions must be positive, got {width}x{height}")
        if len(stream) != width * height:
            raise ValueError(
                f"DiffStream has {len(stream)} elements, expected {width}x{height}={width * height}")

    @staticmethod
    def decode(stream: DiffStream, width: int, height: int) -> Raster:
        """Prefix-sum the deltas back into a width x height raster."""
        DifferentialCodec._check_size(stream, width, height)
        flat = np.cumsum(stream.deltas, axis=0)
        return Raster.from_array(flat.reshape((height, width, 3)))

    @staticmethod
    def visualize(stream: DiffStream, width: int, height: int) -> Raster:
        """
        White where neighbouring pixels agree, darker as the delta grows:
        (1,1,1) - |delta|. Not clamped; deltas above 1 go negative until
        the raster is saved.
        """
        DifferentialCodec._check_size(stream, width, height)
        shade = 1.0 - np.abs(stream.deltas)
        return Raster.from_array(shade.reshape((height, width, 3)))

    @staticmethod
    def serialize(stream: DiffStream) -> str:
        buf = io.StringIO()
        buf.write(CSV_HEADER + "\n")
        for r, g, b in stream.deltas:
            buf.write(f"{r:.6f},{g:.6f},{b:.6f}\n")
        return buf.getvalue()

    @staticmethod
    def deserialize(text: str) -> DiffStream:
        """
        Parse the output of serialize(). Values come back rounded to six
        decimals, so this is not an exact inverse of encode().
        """
        lines = text.splitlines()
        if not lines or lines[0].strip() != CSV_HEADER:
            raise ValueError(f"Missing '{CSV_HEADER}' header line")

        rows = []
        for lineno, line in enumerate(lines[1:], start=2):
            if not line.strip():
                continue
            fields = line.split(',')
            if len(fields) != 3:
                raise ValueError(f"Line {lineno}: expected 3 fields, got {len(fields)}")
            try:
                rows.append([float(f) for f in fields])
            except ValueError:
                raise ValueError(f"Line {lineno}: not a number: {line!r}") from None

        if not rows:
            raise ValueError("DiffStream text holds no pixels")
        return DiffStream(np.array(rows, dtype=np.float64))

    @staticmethod
    def save(stream: DiffStream, path: Union[str, Path]) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8', newline='\n') as f:
            f.write(DifferentialCodec.serialize(stream))
        logger.debug(f"Wrote {len(stream)} deltas to {path}")

    @staticmethod
    def load(path: Union[str, Path]) -> DiffStream:
        with open(path, 'r', encoding='utf-8') as f:
            return DifferentialCodec.deserialize(f.read())
