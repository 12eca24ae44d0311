"""Tests for image_buffer."""
import numpy as np
from PIL import Image

from image_buffer import GrayscaleImage, Pixel
from scanning_order import ScanlineScanningOrder


def test_pixel_clips_values():
    assert Pixel.gray(300)[0] == 255
    assert Pixel.gray(-4)[0] == 0
    pixel = Pixel([10], 2, 3)
    pixel[0] = 999
    assert pixel[0] == 255
    assert (pixel.x, pixel.y) == (2, 3)


def test_grayscale_converts_rgb():
    rgb = Image.new('RGB', (3, 2), (255, 255, 255))
    image = GrayscaleImage(rgb)
    assert image.image.mode == 'L'
    assert (image.width, image.height) == (3, 2)
    assert image.get_pixel(2, 1)[0] == 255


def test_buffer_is_flushed_back():
    image = GrayscaleImage.blank(4, 3, 0)
    image.init_buffer()
    image.set_pixel(1, 2, Pixel.gray(200))
    assert image.buffered
    image.flush_buffer()
    assert not image.buffered
    assert image.image.getpixel((1, 2)) == 200


def test_iterate_transforms_every_pixel(gradient):
    image = gradient(10, 4)
    before = image.to_array()
    image.iterate(lambda p: Pixel.gray(255 - p[0], p.x, p.y), ScanlineScanningOrder())
    assert np.array_equal(image.to_array(), 255 - before)
    assert not image.buffered


def test_iterate_reports_coarse_progress(gradient):
    image = gradient(50, 40)
    reports = []
    image.iterate(lambda p: p, ScanlineScanningOrder(), reports.append)
    assert reports[-1] == 1.0
    assert len(reports) <= 102
    assert reports == sorted(reports)


def test_iterate_empty_image_is_noop():
    image = GrayscaleImage.blank(5, 0)
    calls = []
    image.iterate(lambda p: calls.append(p) or p, ScanlineScanningOrder(), calls.append)
    assert calls == []


def test_replace_discards_buffer():
    image = GrayscaleImage.blank(2, 2, 0)
    image.init_buffer()
    image.replace(Image.new('L', (5, 1), 7))
    assert not image.buffered
    assert (image.width, image.height) == (5, 1)
    assert image.get_pixel(4, 0)[0] == 7
