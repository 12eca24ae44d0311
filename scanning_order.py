"""
Scanning orders: the sequence in which a halftone method visits pixels.

Every order enumerates each coordinate of a width x height rectangle
exactly once. Orders differ in the path they take, which matters for
error diffusion (directional artifacts) and for cell-wise methods
which need consecutive pixels to be spatial neighbours.
"""

from typing import Iterator, Optional, Tuple

import numpy as np

from components import ImageRunInfo, Module

__all__ = [
    'ScanningOrder',
    'ScanlineScanningOrder',
    'SerpentineScanningOrder',
    'SFCScanningOrder',
    'HilbertScanningOrder',
]

Coordinate = Tuple[int, int]


class ScanningOrder(Module):
    """
    Base class for scanning orders.

    coordinates() returns a fresh lazy iterator of (x, y) pairs each time it
    is called, so the order can be restarted any number of times.
    """

    def __init__(self, name: str = "", description: str = ""):
        super().__init__(name, description)
        self._width = 0
        self._height = 0

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        self._width = run_info.width
        self._height = run_info.height

    def coordinates(self, width: Optional[int] = None,
                    height: Optional[int] = None) -> Iterator[Coordinate]:
        """
        Iterate over all coordinates of the rectangle in this order.

        Args:
            width: Rectangle width (defaults to the width given to init())
            height: Rectangle height (defaults to the height given to init())
        """
        width = self._width if width is None else width
        height = self._height if height is None else height
        if width <= 0 or height <= 0:
            return iter(())
        return self._generate(width, height)

    def _generate(self, width: int, height: int) -> Iterator[Coordinate]:
        raise NotImplementedError


class ScanlineScanningOrder(ScanningOrder):
    """Row by row, each row left to right."""

    def _generate(self, width, height):
        for y in range(height):
            for x in range(width):
                yield x, y


class SerpentineScanningOrder(ScanningOrder):
    """
    Zig-zag rows: even rows go left to right, odd rows right to left.
    """

    def _generate(self, width, height):
        for y in range(height):
            if y % 2 == 0:
                for x in range(width):
                    yield x, y
            else:
                for x in range(width - 1, -1, -1):
                    yield x, y


class SFCScanningOrder(ScanningOrder):
    """
    Marker base for space-filling curves. Consecutive coordinates of such
    an order are spatial neighbours (except where the curve is clipped).
    """


def _hilbert_curve(order_bits: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Coordinates of the Hilbert curve filling a 2^order_bits square,
    in curve order. Returns (xs, ys).
    """
    n = 1 << order_bits
    t = np.arange(n * n, dtype=np.int64)
    xs = np.zeros_like(t)
    ys = np.zeros_like(t)
    s = 1
    for _ in range(order_bits):
        rx = 1 & (t // 2)
        ry = 1 & (t ^ rx)
        flip = (ry == 0) & (rx == 1)
        xs = np.where(flip, s - 1 - xs, xs)
        ys = np.where(flip, s - 1 - ys, ys)
        swap = ry == 0
        xs, ys = np.where(swap, ys, xs), np.where(swap, xs, ys)
        xs += s * rx
        ys += s * ry
        t //= 4
        s <<= 1
    return xs, ys


class HilbertScanningOrder(SFCScanningOrder):
    """
    Traverses the Hilbert space-filling curve.

    The curve is defined only for squares with a power-of-two side, so it
    is generated for the smallest such square containing the image and
    clipped to the image rectangle. For images taller than wide the curve
    is transposed so that its long run follows the longer side.
    """

    def _generate(self, width, height):
        side = max(width, height)
        order_bits = (side - 1).bit_length()
        xs, ys = _hilbert_curve(order_bits)
        if height > width:
            xs, ys = ys, xs
        inside = (xs < width) & (ys < height)
        for x, y in zip(xs[inside].tolist(), ys[inside].tolist()):
            yield x, y
