"""
Tests for shared helpers.
"""

import numpy as np
import pytest
from PIL import Image

from utils import (
    clamp01,
    ensure_rgb,
    get_image_info,
    luminance,
    sanitize_filename,
    split_extension,
    to_uint8,
    validate_image_file,
)


def test_luminance_weights():
    pixels = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])
    np.testing.assert_allclose(luminance(pixels), [0.299, 0.587, 0.114])


def test_clamp_and_uint8():
    values = np.array([[[-0.2, 0.5, 1.7]]], dtype=np.float32)
    np.testing.assert_array_equal(clamp01(values), [[[0.0, 0.5, 1.0]]])
    np.testing.assert_array_equal(to_uint8(values), [[[0, 128, 255]]])


def test_image_file_checks(tmp_path):
    path = tmp_path / "pic.png"
    Image.new("RGB", (5, 4)).save(path)
    assert validate_image_file(str(path))
    assert not validate_image_file(str(tmp_path / "missing.png"))
    assert get_image_info(str(path)) == {'width': 5, 'height': 4, 'mode': 'RGB', 'format': 'PNG'}
    assert get_image_info(str(tmp_path / "missing.png")) is None


def test_ensure_rgb():
    assert ensure_rgb(Image.new("RGBA", (1, 1))).mode == "RGB"


@pytest.mark.parametrize("name, expected", [
    ("a:b?.png", "a_b_.png"),
    ("plain.png", "plain.png"),
])
def test_sanitize_filename(name, expected):
    assert sanitize_filename(name) == expected


def test_split_extension():
    assert split_extension("diff.png") == ("diff", ".png")
    assert split_extension("diff") == ("diff", ".png")
