"""
Tests for the raster effects in effects_lib.

Tests verify actual pixel values, comparing against brute-force references
where the library takes a faster route.
"""

import numpy as np
import pytest

from raster import Raster
from effects_lib import (
    EffectMode,
    DitherColorMode,
    Kernel,
    KERNELS,
    BAYER_4X4,
    register_kernel,
    get_kernel,
    bayer_thresholds,
    ConvolutionStrategy,
    ImageEffects,
    MandelbrotGenerator,
    convolve,
    box_blur,
    difference_of_gaussians,
    kuwahara,
    ordered_dither,
    mandelbrot,
)


def brute_force_box_blur(raster: Raster, size: int) -> np.ndarray:
    """Direct average over the clamped size x size window of every pixel."""
    src = raster.array.astype(np.float64)
    h, w = src.shape[:2]
    half = size // 2
    out = np.zeros_like(src)
    for y in range(h):
        for x in range(w):
            acc = np.zeros(3)
            for dy in range(-half, size - half):
                for dx in range(-half, size - half):
                    yy = min(max(y + dy, 0), h - 1)
                    xx = min(max(x + dx, 0), w - 1)
                    acc += src[yy, xx]
            out[y, x] = acc / (size * size)
    return out


class TestKernels:

    def test_presets_registered(self):
        for name in ("identity", "blur", "sharpen", "edge_detection"):
            assert name in KERNELS

    def test_blur_kernel_sums_to_one(self):
        weights = get_kernel("blur").weights
        assert weights.sum() == pytest.approx(1.0)
        assert weights[1, 1] == 0.25

    def test_sharpen_and_edge_weights(self):
        sharpen = get_kernel("sharpen").weights
        assert sharpen[1, 1] == 5
        assert sharpen[0, 1] == sharpen[1, 0] == sharpen[1, 2] == sharpen[2, 1] == -1
        assert sharpen[0, 0] == sharpen[2, 2] == 0

        edge = get_kernel("edge_detection").weights
        assert edge[1, 1] == 8
        assert edge.sum() == 0

    def test_kernel_is_immutable(self):
        kernel = get_kernel("identity")
        with pytest.raises(ValueError):
            kernel.weights[0, 0] = 3.0
        with pytest.raises(AttributeError):
            kernel.name = "other"

    def test_kernel_must_be_3x3(self):
        with pytest.raises(ValueError):
            Kernel("bad", [[1, 2], [3, 4]])

    def test_unknown_kernel(self, random_raster):
        with pytest.raises(ValueError, match="Unknown kernel"):
            convolve(random_raster, "emboss_9000")


class TestConvolution:

    def test_identity_leaves_raster_unchanged(self, random_raster):
        assert convolve(random_raster, "identity") == random_raster

    def test_blur_center_dot(self, center_dot_raster):
        result = convolve(center_dot_raster, "blur")
        assert result.get_pixel(1, 1) == (0.25, 0.25, 0.25)
        # only pixel (1,1) is interior on a 3x3 raster
        assert result.get_pixel(0, 0) == (0.0, 0.0, 0.0)
        assert result.get_pixel(2, 1) == (0.0, 0.0, 0.0)

    def test_sharpen_is_not_clamped(self, center_dot_raster):
        result = convolve(center_dot_raster, "sharpen")
        assert result.get_pixel(1, 1) == (5.0, 5.0, 5.0)

    def test_edge_detection_on_flat_color_is_zero(self, uniform_raster):
        result = convolve(uniform_raster, "edge_detection").array
        np.testing.assert_allclose(result[1:-1, 1:-1], 0.0, atol=1e-6)

    def test_border_copied(self, random_raster):
        src = random_raster.array
        out = convolve(random_raster, "edge_detection").array
        np.testing.assert_array_equal(out[0], src[0])
        np.testing.assert_array_equal(out[-1], src[-1])
        np.testing.assert_array_equal(out[:, 0], src[:, 0])
        np.testing.assert_array_equal(out[:, -1], src[:, -1])

    def test_interior_matches_direct_sum(self, random_raster):
        src = random_raster.array.astype(np.float64)
        weights = get_kernel("sharpen").weights
        out = convolve(random_raster, "sharpen")
        for y in range(1, random_raster.height - 1):
            for x in range(1, random_raster.width - 1):
                expected = sum(
                    weights[ky + 1, kx + 1] * src[y + ky, x + kx]
                    for ky in (-1, 0, 1) for kx in (-1, 0, 1)
                )
                np.testing.assert_allclose(out.array[y, x], expected, atol=1e-5)

    def test_reads_from_snapshot_only(self, random_raster):
        # shifting left by one must not cascade through already written pixels
        shift = Kernel("shift_left", [[0, 0, 0], [0, 0, 1], [0, 0, 0]])
        result = ConvolutionStrategy(shift).apply(random_raster)
        src = random_raster.array
        np.testing.assert_array_equal(result.array[1:-1, 1:-2], src[1:-1, 2:-1])

    def test_registered_kernel_usable_by_name(self, random_raster):
        register_kernel(Kernel("test_double", [[0, 0, 0], [0, 2, 0], [0, 0, 0]]))
        try:
            result = convolve(random_raster, "test_double")
            np.testing.assert_allclose(result.array[1:-1, 1:-1],
                                       2 * random_raster.array[1:-1, 1:-1])
        finally:
            KERNELS.pop("test_double")

    def test_small_raster_has_no_interior(self):
        raster = Raster.from_array(np.full((2, 2, 3), 0.4, dtype=np.float32))
        assert convolve(raster, "edge_detection") == raster

    def test_input_not_modified(self, random_raster):
        before = random_raster.copy()
        convolve(random_raster, "sharpen")
        assert random_raster == before


class TestBoxBlur:

    @pytest.mark.parametrize("size", [1, 0, -3])
    def test_small_size_is_identity(self, random_raster, size):
        result = box_blur(random_raster, size)
        assert result == random_raster
        assert result is not random_raster

    @pytest.mark.parametrize("size", [2, 3, 4, 7, 12])
    def test_uniform_color_preserved(self, uniform_raster, size):
        assert box_blur(uniform_raster, size) == uniform_raster

    @pytest.mark.parametrize("size", [2, 3, 4, 5, 8, 11])
    def test_matches_brute_force(self, random_raster, size):
        result = box_blur(random_raster, size)
        np.testing.assert_allclose(result.array, brute_force_box_blur(random_raster, size), atol=1e-5)

    def test_single_row_and_column(self):
        rng = np.random.default_rng(3)
        row = Raster.from_array(rng.random((1, 10, 3), dtype=np.float32))
        col = Raster.from_array(rng.random((10, 1, 3), dtype=np.float32))
        for raster in (row, col):
            np.testing.assert_allclose(box_blur(raster, 4).array,
                                       brute_force_box_blur(raster, 4), atol=1e-5)

    def test_input_not_modified(self, random_raster):
        before = random_raster.copy()
        box_blur(random_raster, 5)
        assert random_raster == before


class TestDifferenceOfGaussians:

    def test_uniform_color_gives_black(self, uniform_raster):
        result = difference_of_gaussians(uniform_raster)
        assert np.all(result.array == 0.0)

    def test_bright_dot_saturates(self):
        raster = Raster(7, 7)
        raster.set_pixel(3, 3, (1.0, 1.0, 1.0))
        result = difference_of_gaussians(raster)
        # narrow blur keeps the dot, wide blur spreads it over 3x3
        assert result.get_pixel(3, 3) == (1.0, 1.0, 1.0)
        # next to the dot the difference is negative and clamps to 0
        assert result.get_pixel(3, 2) == (0.0, 0.0, 0.0)

    def test_output_range(self, random_raster):
        out = difference_of_gaussians(random_raster).array
        assert np.all(out >= 0.0)
        assert np.all((out == 1.0) | (out <= 0.03 + 1e-7))

    def test_small_difference_passes_through(self):
        # 0.02 above the wide mean: below threshold, kept as is
        arr = np.zeros((5, 5, 3), dtype=np.float32)
        arr[2, 2] = 0.0225
        result = difference_of_gaussians(Raster.from_array(arr))
        assert result.get_pixel(2, 2)[0] == pytest.approx(0.0225 - 0.0225 / 9, abs=1e-6)

    def test_difference_equal_to_threshold_is_not_saturated(self):
        arr = np.zeros((5, 5, 3), dtype=np.float32)
        arr[2, 2] = 0.5
        raster = Raster.from_array(arr)
        wide = box_blur(raster, 3).array.astype(np.float64)
        d = 0.5 - wide[2, 2, 0]
        result = difference_of_gaussians(raster, size_a=1, size_b=3, threshold=d)
        assert result.array[2, 2, 0] == np.float32(d)
        assert result.array[2, 2, 0] < 1.0

    def test_sizes_must_be_ordered(self, random_raster):
        with pytest.raises(ValueError):
            difference_of_gaussians(random_raster, size_a=5, size_b=3)


class TestKuwahara:

    @pytest.mark.parametrize("radius", [1, 2, 3])
    def test_uniform_color_unchanged(self, uniform_raster, radius):
        assert kuwahara(uniform_raster, radius) == uniform_raster

    @pytest.mark.parametrize("radius", [0, -2])
    def test_non_positive_radius_is_noop(self, random_raster, radius):
        assert kuwahara(random_raster, radius) == random_raster

    def test_step_edge_preserved(self, step_edge_raster):
        assert kuwahara(step_edge_raster, 1) == step_edge_raster

    def test_output_is_a_quadrant_mean(self, random_raster):
        src = random_raster.array.astype(np.float64)
        h, w = src.shape[:2]
        out = kuwahara(random_raster, 1).array
        x, y = 4, 3
        means = []
        for xs, ys in (((-1, 0), (-1, 0)), ((0, 1), (-1, 0)), ((-1, 0), (0, 1)), ((0, 1), (0, 1))):
            samples = [src[min(max(y + dy, 0), h - 1), min(max(x + dx, 0), w - 1)]
                       for dy in range(ys[0], ys[1] + 1) for dx in range(xs[0], xs[1] + 1)]
            means.append(np.mean(samples, axis=0))
        assert any(np.allclose(out[y, x], m, atol=1e-6) for m in means)

    def test_picks_lowest_variance_quadrant(self):
        # bottom-right quadrant of (1,1) is flat, the others include noise
        arr = np.full((3, 3, 3), 0.5, dtype=np.float32)
        arr[0, 0] = 0.0
        arr[0, 2] = 1.0
        arr[2, 0] = 0.9
        result = kuwahara(Raster.from_array(arr), 1)
        assert result.get_pixel(1, 1) == pytest.approx((0.5, 0.5, 0.5))

    def test_variance_uses_luminance_weights(self):
        # top-left varies in blue (low weight), top-right in green (high weight);
        # by plain channel mean the top-right would be the flatter one
        arr = np.zeros((3, 3, 3), dtype=np.float32)
        arr[0, 0] = arr[1, 0] = (0.0, 0.0, 1.0)
        arr[0, 2] = arr[1, 2] = (0.0, 0.3, 0.0)
        arr[2, :] = 1.0
        result = kuwahara(Raster.from_array(arr), 1)
        assert result.get_pixel(1, 1) == (0.0, 0.0, 0.5)

    def test_tie_keeps_earlier_quadrant(self):
        # the blue in the top-right is too small to move its luminance, so the
        # top-left and top-right variances are identical but their means are not
        arr = np.zeros((3, 3, 3), dtype=np.float32)
        arr[0, 0] = arr[0, 1] = (0.5, 0.5, 0.0)
        arr[0, 2] = (0.5, 0.5, 1e-20)
        arr[2, :] = 1.0
        result = kuwahara(Raster.from_array(arr), 1)
        assert result.get_pixel(1, 1) == (0.25, 0.25, 0.0)

    def test_input_not_modified(self, random_raster):
        before = random_raster.copy()
        kuwahara(random_raster, 2)
        assert random_raster == before


class TestOrderedDither:

    def test_bayer_matrix_is_a_permutation(self):
        assert sorted(BAYER_4X4.flatten().tolist()) == list(range(16))

    def test_bayer_matrix_read_only(self):
        with pytest.raises(ValueError):
            BAYER_4X4[0, 0] = 5

    def test_threshold_at_origin(self):
        assert bayer_thresholds(1, 1)[0, 0] == 0.03125

    def test_thresholds_tile(self):
        thresh = bayer_thresholds(9, 6)
        assert thresh[1, 0] == (12 + 0.5) / 16
        assert thresh[5, 8] == thresh[1, 0]

    def test_origin_scenario(self):
        bright = Raster.from_array(np.full((1, 1, 3), 0.5, dtype=np.float32))
        dark = Raster.from_array(np.full((1, 1, 3), 0.02, dtype=np.float32))
        assert ordered_dither(bright, "color").get_pixel(0, 0) == (1.0, 1.0, 1.0)
        assert ordered_dither(dark, "color").get_pixel(0, 0) == (0.0, 0.0, 0.0)

    def test_color_mode_is_binary(self):
        rng = np.random.default_rng(11)
        raster = Raster.from_array(rng.uniform(-0.5, 1.5, (10, 13, 3)).astype(np.float32))
        out = ordered_dither(raster, DitherColorMode.COLOR).array
        assert np.all((out == 0.0) | (out == 1.0))

    def test_mid_gray_is_half_on(self):
        raster = Raster.from_array(np.full((4, 4, 3), 0.5, dtype=np.float32))
        out = ordered_dither(raster, "color").array
        assert int(out[:, :, 0].sum()) == 8

    def test_mono_writes_gray(self, random_raster):
        out = ordered_dither(random_raster, "mono").array
        assert np.all(out[:, :, 0] == out[:, :, 1])
        assert np.all(out[:, :, 1] == out[:, :, 2])
        assert np.all((out == 0.0) | (out == 1.0))

    def test_mono_uses_luminance_weights(self):
        # pure blue has luminance 0.114: above the 0.03125 threshold at (0,0),
        # below the 0.53125 threshold at (1,0)
        raster = Raster(2, 1)
        raster.set_pixel(0, 0, (0.0, 0.0, 1.0))
        raster.set_pixel(1, 0, (0.0, 0.0, 1.0))
        out = ordered_dither(raster, "mono")
        assert out.get_pixel(0, 0) == (1.0, 1.0, 1.0)
        assert out.get_pixel(1, 0) == (0.0, 0.0, 0.0)

    def test_unknown_mode(self, random_raster):
        with pytest.raises(ValueError):
            ordered_dither(random_raster, "sepia")


class TestMandelbrot:

    def test_origin_never_escapes(self):
        # x = 5 of 7 and y = 2 of 4 map to c = 0
        raster = mandelbrot(7, 4, 100)
        assert raster.get_pixel(5, 2) == (1.0, 1.0, 1.0)

    def test_far_point_escapes_immediately(self):
        # (0,0) maps to c = -2.5 - 1i, outside radius 2
        raster = mandelbrot(7, 4, 100)
        assert raster.get_pixel(0, 0) == pytest.approx((0.01, 0.01, 0.01))

    def test_size_and_range(self):
        raster = mandelbrot(35, 20, 50)
        assert raster.size == (35, 20)
        out = raster.array
        assert np.all(out > 0.0)
        assert np.all(out <= 1.0)
        assert np.all(out[:, :, 0] == out[:, :, 2])

    def test_deterministic(self):
        assert mandelbrot(21, 12, 40) == mandelbrot(21, 12, 40)

    @pytest.mark.parametrize("args", [(0, 4, 10), (4, -1, 10), (4, 4, 0)])
    def test_invalid_arguments(self, args):
        with pytest.raises(ValueError):
            MandelbrotGenerator(*args)


class TestImageEffects:

    def test_defaults_filled_in(self):
        assert ImageEffects("kuwahara").resolved_parameters() == {"radius": 3}
        assert ImageEffects(EffectMode.DIFFERENCE_OF_GAUSSIANS).resolved_parameters() == {
            "size_a": 1, "size_b": 3, "threshold": 0.03}

    def test_overrides_win(self):
        params = ImageEffects("convolution", {"kernel": "sharpen"}).resolved_parameters()
        assert params == {"kernel": "sharpen"}

    def test_unknown_parameter(self):
        with pytest.raises(ValueError, match="Unknown parameter"):
            ImageEffects("box_blur", {"radius": 3}).resolved_parameters()

    def test_unknown_mode(self):
        with pytest.raises(ValueError, match="Unrecognized EffectMode"):
            ImageEffects("posterize")

    def test_every_mode_has_parameters(self):
        for mode in EffectMode:
            assert ImageEffects.mode_has_parameters(mode)

    def test_generator_needs_no_input(self):
        effects = ImageEffects("mandelbrot", {"width": 14, "height": 8, "max_iterations": 20})
        assert effects.apply_effect().size == (14, 8)

    def test_filter_needs_input(self):
        with pytest.raises(ValueError, match="needs an input raster"):
            ImageEffects("box_blur").apply_effect()

    def test_apply_matches_shortcut(self, random_raster):
        effects = ImageEffects("box_blur", {"size": 3})
        assert effects.apply_effect(random_raster) == box_blur(random_raster, 3)
