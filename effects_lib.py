"""
A Python library of neighborhood- and algorithm-based raster effects:
3x3 kernel convolution, separable box blur, difference-of-Gaussians edges,
Kuwahara smoothing, ordered (Bayer) dithering and Mandelbrot synthesis.
Use this as a standalone library or import it from your application.

Every effect returns a new Raster and never writes into its input.
"""

import logging
import numpy as np
from enum import Enum
from typing import Dict, Optional, Union
from scipy import ndimage

from raster import Raster
from utils import clamp01, luminance

__all__ = [
    # Enumerations
    'EffectMode',
    'DitherColorMode',
    # Kernels
    'Kernel',
    'KERNELS',
    'register_kernel',
    'get_kernel',
    'BAYER_4X4',
    'bayer_thresholds',
    # Strategies
    'BaseEffectStrategy',
    'ConvolutionStrategy',
    'BoxBlurStrategy',
    'DifferenceOfGaussiansStrategy',
    'KuwaharaStrategy',
    'OrderedDitherStrategy',
    'MandelbrotGenerator',
    # Orchestration
    'ImageEffects',
    # Shortcuts
    'convolve',
    'box_blur',
    'difference_of_gaussians',
    'kuwahara',
    'ordered_dither',
    'mandelbrot',
]

logger = logging.getLogger(__name__)

# -------------------- Enumerations --------------------

class EffectMode(Enum):
    CONVOLUTION = "convolution"
    BOX_BLUR = "box_blur"
    DIFFERENCE_OF_GAUSSIANS = "difference_of_gaussians"
    KUWAHARA = "kuwahara"
    ORDERED_DITHER = "ordered_dither"
    MANDELBROT = "mandelbrot"


class DitherColorMode(Enum):
    COLOR = "color"
    MONO = "mono"


# -------------------- Kernels --------------------

class Kernel:
    """
    Immutable named 3x3 weight table. weights[ky+1][kx+1] multiplies the
    sample at offset (kx, ky) from the centre pixel.
    """
    __slots__ = ('name', 'weights')

    def __init__(self, name: str, weights):
        arr = np.array(weights, dtype=np.float64)
        if arr.shape != (3, 3):
            raise ValueError(f"Kernel '{name}' must be 3x3, got {arr.shape}")
        arr.flags.writeable = False
        object.__setattr__(self, 'name', name)
        object.__setattr__(self, 'weights', arr)

    def __setattr__(self, key, value):
        raise AttributeError("Kernel is immutable")

    def __repr__(self) -> str:
        return f"Kernel({self.name!r})"


KERNELS: Dict[str, Kernel] = {}


def register_kernel(kernel: Kernel) -> Kernel:
    """Make a kernel available by name to ConvolutionStrategy and the CLI."""
    KERNELS[kernel.name] = kernel
    return kernel


def get_kernel(kernel: Union[str, Kernel]) -> Kernel:
    if isinstance(kernel, Kernel):
        return kernel
    try:
        return KERNELS[kernel]
    except KeyError:
        raise ValueError(f"Unknown kernel: '{kernel}'. Available: {sorted(KERNELS)}") from None


register_kernel(Kernel("identity", [
    [0, 0, 0],
    [0, 1, 0],
    [0, 0, 0],
]))

register_kernel(Kernel("blur", np.array([
    [1, 2, 1],
    [2, 4, 2],
    [1, 2, 1],
]) / 16.0))

register_kernel(Kernel("sharpen", [
    [0, -1, 0],
    [-1, 5, -1],
    [0, -1, 0],
]))

register_kernel(Kernel("edge_detection", [
    [-1, -1, -1],
    [-1, 8, -1],
    [-1, -1, -1],
]))


# Bayer 4x4 order; threshold at (x, y) is (BAYER_4X4[y % 4][x % 4] + 0.5) / 16
BAYER_4X4 = np.array([
    [0, 8, 2, 10],
    [12, 4, 14, 6],
    [3, 11, 1, 9],
    [15, 7, 13, 5],
], dtype=np.int32)
BAYER_4X4.flags.writeable = False


def _snapshot(raster: Raster) -> np.ndarray:
    """Private read-only float64 copy of the raster for neighbourhood reads."""
    snap = raster.array.astype(np.float64, copy=True)
    snap.flags.writeable = False
    return snap


# -------------------- Base Class for Effect Strategies --------------------

class BaseEffectStrategy:
    """
    Base class for raster effects.
    Each strategy must implement .apply(raster) returning a new Raster of the
    same size; the input raster is left untouched.
    """

    @staticmethod
    def get_parameter_info() -> dict:
        return {}

    def get_current_parameters(self) -> dict:
        return {}

    def apply(self, raster: Raster) -> Raster:
        raise NotImplementedError


# -------------------- Convolution --------------------

class ConvolutionStrategy(BaseEffectStrategy):
    """
    Fixed 3x3 kernel convolution. Border pixels are copied from the input;
    interior pixels get the weighted neighbourhood sum. No clamping, so
    sharpen and edge_detection can leave [0, 1].
    """

    @staticmethod
    def get_parameter_info():
        return {
            'kernel': {
                'type': 'choice',
                'default': 'blur',
                'choices': sorted(KERNELS),
                'label': 'Kernel',
                'description': 'Named 3x3 weight table'
            }
        }

    def __init__(self, kernel: Union[str, Kernel] = 'blur'):
        self.kernel = get_kernel(kernel)

    def get_current_parameters(self):
        return {'kernel': self.kernel.name}

    def apply(self, raster: Raster) -> Raster:
        src = _snapshot(raster)
        out = src.copy()
        h, w = src.shape[:2]
        if h < 3 or w < 3:
            return Raster.from_array(out)

        weights = self.kernel.weights[:, :, np.newaxis]
        full = ndimage.correlate(src, weights, mode='nearest')
        out[1:-1, 1:-1] = full[1:-1, 1:-1]
        return Raster.from_array(out)


# -------------------- Separable Box Blur --------------------

def _sliding_mean(data: np.ndarray, size: int, axis: int) -> np.ndarray:
    """
    Mean over a window of `size` samples along `axis`, edge-replicated.
    Running sum: one sample leaves and one enters per step.
    """
    lanes = np.moveaxis(data, axis, 0)
    n = lanes.shape[0]
    half = size // 2
    last = n - 1

    out = np.empty_like(lanes)
    window = np.zeros(lanes.shape[1:], dtype=np.float64)
    for k in range(-half, size - half):
        window += lanes[min(max(k, 0), last)]
    out[0] = window / size

    for i in range(1, n):
        window -= lanes[min(max(i - half - 1, 0), last)]
        window += lanes[min(max(i - half + size - 1, 0), last)]
        out[i] = window / size

    return np.moveaxis(out, 0, axis)


class BoxBlurStrategy(BaseEffectStrategy):
    """
    Mean blur of arbitrary window size in O(w*h): a horizontal sliding-window
    pass over each row, then the same pass down each column of that result.
    size <= 1 is the identity.
    """

    @staticmethod
    def get_parameter_info():
        return {
            'size': {
                'type': 'int',
                'default': 5,
                'min': 1,
                'max': 101,
                'label': 'Window Size',
                'description': 'Width of the averaging window in pixels (1 = no blur)'
            }
        }

    def __init__(self, size: int = 5):
        self.size = int(size)

    def get_current_parameters(self):
        return {'size': self.size}

    def apply(self, raster: Raster) -> Raster:
        if self.size <= 1:
            return raster.copy()
        src = _snapshot(raster)
        horizontal = _sliding_mean(src, self.size, axis=1)
        vertical = _sliding_mean(horizontal, self.size, axis=0)
        return Raster.from_array(vertical)


# -------------------- Difference of Gaussians --------------------

class DifferenceOfGaussiansStrategy(BaseEffectStrategy):
    """
    Edge map from the difference of a narrow and a wide box blur.
    Per channel d = narrow - wide; d > threshold saturates to 1.0, anything
    else is clamped to [0, 1].
    """

    @staticmethod
    def get_parameter_info():
        return {
            'size_a': {
                'type': 'int',
                'default': 1,
                'min': 1,
                'max': 15,
                'label': 'Narrow Size',
                'description': 'Window size of the narrow blur'
            },
            'size_b': {
                'type': 'int',
                'default': 3,
                'min': 2,
                'max': 31,
                'label': 'Wide Size',
                'description': 'Window size of the wide blur (must exceed narrow size)'
            },
            'threshold': {
                'type': 'float',
                'default': 0.03,
                'min': 0.0,
                'max': 1.0,
                'step': 0.01,
                'label': 'Threshold',
                'description': 'Differences above this become full white'
            }
        }

    def __init__(self, size_a: int = 1, size_b: int = 3, threshold: float = 0.03):
        if size_a >= size_b:
            raise ValueError(f"size_a ({size_a}) must be smaller than size_b ({size_b})")
        self.size_a = int(size_a)
        self.size_b = int(size_b)
        self.threshold = float(threshold)

    def get_current_parameters(self):
        return {
            'size_a': self.size_a,
            'size_b': self.size_b,
            'threshold': self.threshold
        }

    def apply(self, raster: Raster) -> Raster:
        narrow = BoxBlurStrategy(self.size_a).apply(raster).array.astype(np.float64)
        wide = BoxBlurStrategy(self.size_b).apply(raster).array.astype(np.float64)
        diff = narrow - wide
        out = np.where(diff > self.threshold, 1.0, clamp01(diff))
        return Raster.from_array(out)


# -------------------- Kuwahara --------------------

# (x offset range, y offset range) as multiples of the radius, in the order
# top-left, top-right, bottom-left, bottom-right; ties go to the earliest
_QUADRANTS = (
    ((-1, 0), (-1, 0)),
    ((0, 1), (-1, 0)),
    ((-1, 0), (0, 1)),
    ((0, 1), (0, 1)),
)


class KuwaharaStrategy(BaseEffectStrategy):
    """
    Edge-preserving smoothing. For every pixel the four (r+1)x(r+1) quadrants
    sharing it as a corner are compared; the output is the mean colour of the
    quadrant with the lowest luminance variance.
    """

    @staticmethod
    def get_parameter_info():
        return {
            'radius': {
                'type': 'int',
                'default': 3,
                'min': 0,
                'max': 15,
                'label': 'Radius',
                'description': 'Quadrant extent in pixels (0 = no effect)'
            }
        }

    def __init__(self, radius: int = 3):
        self.radius = int(radius)

    def get_current_parameters(self):
        return {'radius': self.radius}

    def apply(self, raster: Raster) -> Raster:
        r = self.radius
        if r <= 0:
            return raster.copy()

        src = _snapshot(raster)
        lum = luminance(src)
        h, w = lum.shape
        ys = np.arange(h)
        xs = np.arange(w)
        count = (r + 1) * (r + 1)

        best_var = np.full((h, w), np.inf)
        best_mean = np.zeros((h, w, 3))

        for (x0, x1), (y0, y1) in _QUADRANTS:
            # clamped sample coordinates for every offset in the quadrant
            offsets = [
                (np.clip(ys + dy, 0, h - 1)[:, np.newaxis], np.clip(xs + dx, 0, w - 1)[np.newaxis, :])
                for dy in range(y0 * r, y1 * r + 1)
                for dx in range(x0 * r, x1 * r + 1)
            ]

            sum_rgb = np.zeros((h, w, 3))
            sum_lum = np.zeros((h, w))
            for rows, cols in offsets:
                sum_rgb += src[rows, cols]
                sum_lum += lum[rows, cols]
            mean_rgb = sum_rgb / count
            mean_lum = sum_lum / count

            var = np.zeros((h, w))
            for rows, cols in offsets:
                var += (lum[rows, cols] - mean_lum) ** 2
            var /= count

            better = var < best_var
            best_var = np.where(better, var, best_var)
            best_mean = np.where(better[:, :, np.newaxis], mean_rgb, best_mean)

        return Raster.from_array(best_mean)


# -------------------- Ordered Dithering --------------------

def bayer_thresholds(width: int, height: int) -> np.ndarray:
    """Tile the 4x4 Bayer order over (height, width) as thresholds in (0, 1)."""
    ys, xs = np.indices((height, width))
    return (BAYER_4X4[ys % 4, xs % 4] + 0.5) / 16.0


class OrderedDitherStrategy(BaseEffectStrategy):
    """
    Two-level ordered dithering against the 4x4 Bayer matrix.
    'color' quantizes R, G and B independently (8 possible colours);
    'mono' quantizes luminance and writes it to all three channels.
    """

    @staticmethod
    def get_parameter_info():
        return {
            'color_mode': {
                'type': 'choice',
                'default': DitherColorMode.COLOR.value,
                'choices': [m.value for m in DitherColorMode],
                'label': 'Color Mode',
                'description': 'Dither each channel (color) or luminance only (mono)'
            }
        }

    def __init__(self, color_mode: Union[str, DitherColorMode] = DitherColorMode.COLOR):
        try:
            self.color_mode = DitherColorMode(color_mode)
        except ValueError:
            raise ValueError(f"Unrecognized dither color mode: {color_mode}") from None

    def get_current_parameters(self):
        return {'color_mode': self.color_mode.value}

    def apply(self, raster: Raster) -> Raster:
        src = raster.array.astype(np.float64)
        thresh = bayer_thresholds(raster.width, raster.height)

        if self.color_mode == DitherColorMode.COLOR:
            out = np.where(clamp01(src) > thresh[:, :, np.newaxis], 1.0, 0.0)
        else:
            lum = clamp01(luminance(src))
            level = np.where(lum > thresh, 1.0, 0.0)
            out = np.repeat(level[:, :, np.newaxis], 3, axis=2)
        return Raster.from_array(out)


# -------------------- Mandelbrot --------------------

class MandelbrotGenerator:
    """
    Escape-time Mandelbrot renderer. Pixel (x, y) maps to
    c = (x/w*3.5 - 2.5) + i*(y/h*2.0 - 1.0); intensity is the iteration count
    divided by max_iterations, so points inside the set come out white.
    """

    @staticmethod
    def get_parameter_info():
        return {
            'width': {
                'type': 'int',
                'default': 700,
                'min': 1,
                'max': 8192,
                'label': 'Width',
                'description': 'Output width in pixels'
            },
            'height': {
                'type': 'int',
                'default': 400,
                'min': 1,
                'max': 8192,
                'label': 'Height',
                'description': 'Output height in pixels'
            },
            'max_iterations': {
                'type': 'int',
                'default': 100,
                'min': 1,
                'max': 10000,
                'label': 'Max Iterations',
                'description': 'Iteration cap (higher = finer boundary detail)'
            }
        }

    def __init__(self, width: int = 700, height: int = 400, max_iterations: int = 100):
        if width <= 0 or height <= 0:
            raise ValueError(f"Mandelbrot size must be positive, got {width}x{height}")
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")
        self.width = int(width)
        self.height = int(height)
        self.max_iterations = int(max_iterations)

    def get_current_parameters(self):
        return {
            'width': self.width,
            'height': self.height,
            'max_iterations': self.max_iterations
        }

    def generate(self) -> Raster:
        ys, xs = np.indices((self.height, self.width), dtype=np.float64)
        c = (xs / self.width * 3.5 - 2.5) + 1j * (ys / self.height * 2.0 - 1.0)

        z = np.zeros_like(c)
        counts = np.zeros(c.shape, dtype=np.int64)
        active = np.ones(c.shape, dtype=bool)
        for _ in range(self.max_iterations):
            if not active.any():
                break
            z[active] = z[active] * z[active] + c[active]
            counts[active] += 1
            active &= np.abs(z) <= 2.0

        intensity = counts / float(self.max_iterations)
        return Raster.from_array(np.repeat(intensity[:, :, np.newaxis], 3, axis=2))


# -------------------- Image Effects --------------------

_STRATEGIES = {
    EffectMode.CONVOLUTION: ConvolutionStrategy,
    EffectMode.BOX_BLUR: BoxBlurStrategy,
    EffectMode.DIFFERENCE_OF_GAUSSIANS: DifferenceOfGaussiansStrategy,
    EffectMode.KUWAHARA: KuwaharaStrategy,
    EffectMode.ORDERED_DITHER: OrderedDitherStrategy,
    EffectMode.MANDELBROT: MandelbrotGenerator,
}


class ImageEffects:
    """
    Orchestrates one effect: resolves its strategy, fills in parameter
    defaults and runs it on a raster (or synthesizes one for generators).
    """
    def __init__(self,
                 effect_mode: Union[str, EffectMode],
                 effect_params: Optional[dict] = None):
        try:
            self.effect_mode = EffectMode(effect_mode)
        except ValueError:
            raise ValueError(f"Unrecognized EffectMode: {effect_mode}") from None
        self.effect_params = effect_params or {}

    @staticmethod
    def get_mode_parameters(mode: EffectMode) -> Optional[dict]:
        """
        Get parameter metadata for a specific effect.
        Returns None if the effect has no configurable parameters.
        """
        info = _STRATEGIES[mode].get_parameter_info()
        return info or None

    @staticmethod
    def mode_has_parameters(mode: EffectMode) -> bool:
        """Check if an effect has configurable parameters."""
        return ImageEffects.get_mode_parameters(mode) is not None

    @staticmethod
    def is_generator(mode: EffectMode) -> bool:
        """Generators synthesize a raster and take no input image."""
        return mode == EffectMode.MANDELBROT

    def resolved_parameters(self) -> dict:
        """Defaults from get_parameter_info() overridden by effect_params."""
        params = _STRATEGIES[self.effect_mode].get_parameter_info()
        settings = {key: info['default'] for key, info in params.items()}
        unknown = set(self.effect_params) - set(settings)
        if unknown:
            raise ValueError(
                f"Unknown parameter(s) for {self.effect_mode.value}: {sorted(unknown)}")
        settings.update(self.effect_params)
        return settings

    def _get_strategy(self):
        strategy_cls = _STRATEGIES[self.effect_mode]
        return strategy_cls(**self.resolved_parameters())

    def apply_effect(self, raster: Optional[Raster] = None) -> Raster:
        strategy = self._get_strategy()
        logger.debug(f"Running {self.effect_mode.value} with {strategy.get_current_parameters()}")
        if self.is_generator(self.effect_mode):
            return strategy.generate()
        if raster is None:
            raise ValueError(f"{self.effect_mode.value} needs an input raster")
        return strategy.apply(raster)


# -------------------- Shortcuts --------------------

def convolve(raster: Raster, kernel: Union[str, Kernel] = 'blur') -> Raster:
    return ConvolutionStrategy(kernel).apply(raster)


def box_blur(raster: Raster, size: int) -> Raster:
    return BoxBlurStrategy(size).apply(raster)


def difference_of_gaussians(raster: Raster, size_a: int = 1, size_b: int = 3,
                            threshold: float = 0.03) -> Raster:
    return DifferenceOfGaussiansStrategy(size_a, size_b, threshold).apply(raster)


def kuwahara(raster: Raster, radius: int) -> Raster:
    return KuwaharaStrategy(radius).apply(raster)


def ordered_dither(raster: Raster,
                   color_mode: Union[str, DitherColorMode] = DitherColorMode.COLOR) -> Raster:
    return OrderedDitherStrategy(color_mode).apply(raster)


def mandelbrot(width: int, height: int, max_iterations: int = 100) -> Raster:
    return MandelbrotGenerator(width, height, max_iterations).generate()
