"""Pytest fixtures (in-memory test images)."""
from collections import Counter

import numpy as np
import pytest

from image_buffer import GrayscaleImage


class RecordingImage(GrayscaleImage):
    """GrayscaleImage counting writes per coordinate."""

    def __init__(self, image):
        super().__init__(image)
        self.writes = Counter()

    def set_pixel(self, x, y, pixel):
        self.writes[(x, y)] += 1
        super().set_pixel(x, y, pixel)


@pytest.fixture
def gradient():
    """Factory for horizontal gradient images."""
    def make(width, height):
        row = np.linspace(0, 255, num=max(width, 1))[:width]
        return GrayscaleImage.from_array(np.tile(np.round(row), (height, 1)))
    return make


@pytest.fixture
def flat():
    """Factory for single-intensity images."""
    def make(width, height, value):
        return GrayscaleImage.blank(width, height, value)
    return make


@pytest.fixture
def recording():
    """Factory for RecordingImage wrapping an array."""
    def make(array):
        return RecordingImage(GrayscaleImage.from_array(np.asarray(array)).image)
    return make
