"""
Image abstraction used by the halftoning core.

The core never owns pixel storage. It talks to an image through the
HalftoneImage contract: dimensions, random pixel access on a working
buffer, and a batch iteration along a scanning order. GrayscaleImage is
the concrete implementation backed by a Pillow image.
"""

from typing import Callable, Optional, Sequence

import numpy as np
from PIL import Image

__all__ = [
    'Pixel',
    'HalftoneImage',
    'GrayscaleImage',
]

# approximate number of progress reports per run
PROGRESS_STEPS = 100


class Pixel:
    """
    A pixel: one byte per channel plus the coordinates it was read from.
    """
    __slots__ = ('values', 'x', 'y')

    def __init__(self, values: Sequence[int], x: int = 0, y: int = 0):
        self.values = np.clip(np.asarray(values, dtype=np.int64), 0, 255).astype(np.uint8)
        self.x = x
        self.y = y

    @classmethod
    def gray(cls, intensity: float, x: int = 0, y: int = 0) -> 'Pixel':
        return cls([int(np.clip(round(intensity), 0, 255))], x, y)

    def __getitem__(self, channel: int) -> int:
        return int(self.values[channel])

    def __setitem__(self, channel: int, value: float):
        self.values[channel] = int(np.clip(value, 0, 255))

    def __len__(self):
        return len(self.values)

    def __eq__(self, other):
        if not isinstance(other, Pixel):
            return NotImplemented
        return np.array_equal(self.values, other.values)

    def __repr__(self):
        return f"Pixel({list(self.values)}, x={self.x}, y={self.y})"


class HalftoneImage:
    """
    Abstract image contract consumed by halftone methods.
    """

    @property
    def width(self) -> int:
        raise NotImplementedError

    @property
    def height(self) -> int:
        raise NotImplementedError

    def get_pixel(self, x: int, y: int) -> Pixel:
        raise NotImplementedError

    def set_pixel(self, x: int, y: int, pixel: Pixel):
        raise NotImplementedError

    def init_buffer(self):
        raise NotImplementedError

    def flush_buffer(self):
        raise NotImplementedError

    def iterate(self, pixel_func: Callable[[Pixel], Pixel], scanning_order,
                progress_callback: Optional[Callable[[float], None]] = None):
        """
        Transform every pixel along a scanning order.

        Args:
            pixel_func: Function mapping a source pixel to a destination pixel
            scanning_order: ScanningOrder giving the visiting order
            progress_callback: Optional function called with a fraction (0.0-1.0)
        """
        total = self.width * self.height
        if total == 0:
            return
        self.init_buffer()
        report_every = max(1, total // PROGRESS_STEPS)
        visited = 0
        for x, y in scanning_order.coordinates(self.width, self.height):
            self.set_pixel(x, y, pixel_func(self.get_pixel(x, y)))
            visited += 1
            if progress_callback and visited % report_every == 0:
                progress_callback(visited / total)
        self.flush_buffer()
        if progress_callback:
            progress_callback(1.0)


class GrayscaleImage(HalftoneImage):
    """
    Single-channel image backed by a Pillow image in mode 'L'.

    Pixels are read and written through a numpy working buffer which is
    acquired by init_buffer() and written back by flush_buffer().
    """

    def __init__(self, image: Image.Image):
        self._image = image if image.mode == 'L' else image.convert('L')
        self._buffer: Optional[np.ndarray] = None

    @classmethod
    def blank(cls, width: int, height: int, fill: int = 0) -> 'GrayscaleImage':
        return cls(Image.new('L', (width, height), color=int(fill)))

    @classmethod
    def from_array(cls, array: np.ndarray) -> 'GrayscaleImage':
        arr = np.clip(np.asarray(array), 0, 255).astype(np.uint8)
        return cls(Image.fromarray(arr))

    @property
    def image(self) -> Image.Image:
        """The backing Pillow image (pending buffer changes are flushed first)."""
        self.flush_buffer()
        return self._image

    @property
    def width(self) -> int:
        return self._image.width

    @property
    def height(self) -> int:
        return self._image.height

    @property
    def buffered(self) -> bool:
        return self._buffer is not None

    def init_buffer(self):
        if self._buffer is None:
            self._buffer = np.array(self._image, dtype=np.uint8)

    def flush_buffer(self):
        if self._buffer is not None:
            self._image = Image.fromarray(self._buffer)
            self._buffer = None

    def get_pixel(self, x: int, y: int) -> Pixel:
        if self._buffer is None:
            self.init_buffer()
        return Pixel([self._buffer[y, x]], x, y)

    def set_pixel(self, x: int, y: int, pixel: Pixel):
        if self._buffer is None:
            self.init_buffer()
        self._buffer[y, x] = pixel.values[0]

    def to_array(self) -> np.ndarray:
        """Copy of the current pixel values as a (height, width) uint8 array."""
        if self._buffer is not None:
            return self._buffer.copy()
        return np.array(self._image, dtype=np.uint8)

    def load_array(self, array: np.ndarray):
        """Replace the pixel values (and possibly dimensions) with an array."""
        self.replace(Image.fromarray(np.clip(array, 0, 255).astype(np.uint8)))

    def replace(self, image: Image.Image):
        """
        Swap the backing image, e.g. after a filter changed its size.
        Any pending buffer is discarded.
        """
        self._buffer = None
        self._image = image if image.mode == 'L' else image.convert('L')
