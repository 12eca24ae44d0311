"""
Halftone methods: the algorithms proper.

Point methods decide every pixel separately (thresholding with optional
error diffusion). Cell methods process groups of consecutive pixels
along a space-filling curve.
"""

import logging
import math
from typing import Callable, List, Optional, Tuple

from components import ImageRunInfo, Module
from error_filters import ErrorFilter, VectorErrorFilter
from image_buffer import PROGRESS_STEPS, HalftoneImage, Pixel
from scanning_order import HilbertScanningOrder, ScanlineScanningOrder, ScanningOrder, SFCScanningOrder
from threshold_filters import MatrixThresholdFilter, ThresholdFilter

logger = logging.getLogger(__name__)

__all__ = [
    'HalftoneMethod',
    'PointHalftoneMethod',
    'CellHalftoneMethod',
    'ThresholdHalftoneMethod',
    'SFCClusteringMethod',
    'cluster_start',
]

BLACK = 0
WHITE = 255

ProgressCallback = Optional[Callable[[float], None]]


class HalftoneMethod(Module):
    """Base class for halftone methods."""

    def run(self, image: HalftoneImage, progress_callback: ProgressCallback = None):
        raise NotImplementedError

    @staticmethod
    def create_default() -> 'HalftoneMethod':
        return ThresholdHalftoneMethod()


class PointHalftoneMethod(HalftoneMethod):
    """Methods deciding each pixel on its own."""


class CellHalftoneMethod(HalftoneMethod):
    """Methods deciding whole cells of pixels at once."""


class ThresholdHalftoneMethod(PointHalftoneMethod):
    """
    Thresholding with optional error diffusion.

    For each pixel along the scanning order the carried error is added to
    the intensity, the result is compared with the threshold filter, and
    the difference between the value before and after quantization is fed
    to the error filter.
    """

    def __init__(self, threshold_filter: Optional[ThresholdFilter] = None,
                 error_filter: Optional[ErrorFilter] = None,
                 scanning_order: Optional[ScanningOrder] = None,
                 use_error_filter: bool = True):
        super().__init__()
        self.threshold_filter = threshold_filter if threshold_filter is not None else MatrixThresholdFilter()
        self.error_filter = error_filter
        self.scanning_order = scanning_order if scanning_order is not None else ScanlineScanningOrder()
        self.use_error_filter = use_error_filter

    @staticmethod
    def get_parameter_info():
        return {
            'use_error_filter': {
                'type': 'bool',
                'default': True,
                'label': 'Use Error Filter',
                'description': 'Enable or disable the error filter without removing it'
            }
        }

    @property
    def error_filter_enabled(self) -> bool:
        return (self.use_error_filter and self.error_filter is not None
                and self.error_filter.initialized)

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        self.scanning_order.init(run_info)
        self.threshold_filter.init(run_info)
        if self.error_filter is not None:
            self.error_filter.init(run_info)

    def run(self, image: HalftoneImage, progress_callback: ProgressCallback = None):
        self.init(ImageRunInfo(image.width, image.height, self.scanning_order))
        threshold_filter = self.threshold_filter
        error_filter = self.error_filter
        logger.debug("Thresholding %dx%d along %s (error filter: %s)", image.width, image.height,
                     type(self.scanning_order).__name__,
                     type(error_filter).__name__ if self.error_filter_enabled else "off")

        if self.error_filter_enabled:
            def process(pixel: Pixel) -> Pixel:
                original = pixel[0] + error_filter.get_error()
                quantized = threshold_filter.quantize(original, pixel.x, pixel.y)
                error_filter.set_error(original - quantized, int(original))
                error_filter.move_next()
                return Pixel.gray(quantized, pixel.x, pixel.y)
        else:
            def process(pixel: Pixel) -> Pixel:
                quantized = threshold_filter.quantize(pixel[0], pixel.x, pixel.y)
                return Pixel.gray(quantized, pixel.x, pixel.y)

        image.iterate(process, self.scanning_order, progress_callback)


def cluster_start(darkest_index: int, black_count: int, cell_size: int) -> int:
    """
    First cell position of a black run of `black_count` pixels centered on
    the darkest pixel and kept inside the cell.
    """
    start = darkest_index - black_count // 2
    start = max(start, 0)
    return min(start, cell_size - black_count)


class SFCClusteringMethod(CellHalftoneMethod):
    """
    Adaptive clustering along a space-filling curve (Velho and Gomes).

    The image is walked along the curve in cells of consecutive pixels. In
    each cell a number of pixels proportional to the cell's darkness is
    turned black as one contiguous cluster; the rest is white. The
    rounding error of a cell is carried to the next cell by an optional
    vector error filter.

    Cluster positioning centers the cluster on the darkest pixel of the
    cell. Adaptive clustering shrinks cells (down to min_cell_size) where
    the intensity changes quickly along the curve.
    """

    def __init__(self, error_filter: Optional[VectorErrorFilter] = None,
                 scanning_order: Optional[SFCScanningOrder] = None,
                 use_error_filter: bool = True,
                 max_cell_size: int = 7, min_cell_size: int = 2,
                 use_cluster_positioning: bool = True,
                 use_adaptive_clustering: bool = True):
        super().__init__()
        self.error_filter = error_filter if error_filter is not None else VectorErrorFilter()
        self._scanning_order: SFCScanningOrder = HilbertScanningOrder()
        if scanning_order is not None:
            self.scanning_order = scanning_order
        self.use_error_filter = use_error_filter
        self._max_cell_size = 7
        self._min_cell_size = 2
        self.max_cell_size = max_cell_size
        self.min_cell_size = min_cell_size
        self.use_cluster_positioning = use_cluster_positioning
        self.use_adaptive_clustering = use_adaptive_clustering

    @staticmethod
    def get_parameter_info():
        return {
            'max_cell_size': {
                'type': 'int',
                'default': 7,
                'min': 1,
                'max': 64,
                'label': 'Max Cell Size',
                'description': 'Largest number of pixels in a cell'
            },
            'min_cell_size': {
                'type': 'int',
                'default': 2,
                'min': 1,
                'max': 64,
                'label': 'Min Cell Size',
                'description': 'Smallest cell size used by adaptive clustering'
            },
            'use_error_filter': {
                'type': 'bool',
                'default': True,
                'label': 'Use Error Filter',
                'description': 'Carry the rounding error of a cell to the next cell'
            },
            'use_cluster_positioning': {
                'type': 'bool',
                'default': True,
                'label': 'Cluster Positioning',
                'description': 'Center clusters on the darkest pixel of the cell'
            },
            'use_adaptive_clustering': {
                'type': 'bool',
                'default': True,
                'label': 'Adaptive Clustering',
                'description': 'Shrink cells in areas with much detail'
            }
        }

    @property
    def scanning_order(self) -> SFCScanningOrder:
        return self._scanning_order

    @scanning_order.setter
    def scanning_order(self, value: SFCScanningOrder):
        if not isinstance(value, SFCScanningOrder):
            raise TypeError(f"{type(self).__name__} needs a space-filling curve, "
                            f"got {type(value).__name__}")
        self._scanning_order = value

    @property
    def max_cell_size(self) -> int:
        return self._max_cell_size

    @max_cell_size.setter
    def max_cell_size(self, value: int):
        if value >= 1:
            self._max_cell_size = int(value)
            self._min_cell_size = min(self._min_cell_size, self._max_cell_size)

    @property
    def min_cell_size(self) -> int:
        return self._min_cell_size

    @min_cell_size.setter
    def min_cell_size(self, value: int):
        if 1 <= value <= self._max_cell_size:
            self._min_cell_size = int(value)

    @property
    def error_filter_enabled(self) -> bool:
        return (self.use_error_filter and self.error_filter is not None
                and self.error_filter.initialized)

    def allowed_cell_size(self, gradient: float) -> int:
        """
        Largest cell size allowed at a pixel with the given normalized
        intensity difference (-1.0 to 1.0).
        """
        exponent = (1 - abs(gradient)) * math.log2(self._max_cell_size)
        # 2 ** log2(n) may fall just below n
        size = int(2 ** exponent + 1e-9)
        return max(min(size, self._max_cell_size), self._min_cell_size)

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        if self.error_filter is not None:
            self.error_filter.init(run_info)
        self._scanning_order.init(run_info)

    def _fill_cell(self, image: HalftoneImage, cell: List[Tuple[int, int]],
                   total_intensity: float, darkest_index: int) -> float:
        """
        Paint one cell and return its quantization error.
        """
        size = len(cell)
        white_ratio = total_intensity / 255.0
        white_count = min(max(int(math.floor(white_ratio + 0.5)), 0), size)
        error = (white_ratio - white_count) * 255.0
        black_count = size - white_count

        start = 0
        if self.use_cluster_positioning:
            start = cluster_start(darkest_index, black_count, size)

        for i, (x, y) in enumerate(cell):
            value = BLACK if start <= i < start + black_count else WHITE
            image.set_pixel(x, y, Pixel.gray(value, x, y))
        return error

    def run(self, image: HalftoneImage, progress_callback: ProgressCallback = None):
        width, height = image.width, image.height
        self.init(ImageRunInfo(width, height, self._scanning_order))
        total = width * height
        if total == 0:
            return

        error_filter = self.error_filter
        error_enabled = self.error_filter_enabled
        logger.debug("SFC clustering %dx%d, cell size %d-%d, positioning %s, adaptive %s",
                     width, height, self._min_cell_size, self._max_cell_size,
                     self.use_cluster_positioning, self.use_adaptive_clustering)

        cell: List[Tuple[int, int]] = []
        cell_size = self._max_cell_size
        total_intensity = 0.0
        min_intensity = 255.0
        darkest_index = 0
        intensity = 0
        visited = 0
        report_every = max(1, total // PROGRESS_STEPS)

        image.init_buffer()
        for x, y in self._scanning_order.coordinates(width, height):
            visited += 1
            previous_intensity = intensity
            intensity = image.get_pixel(x, y)[0]
            with_error = intensity + (error_filter.get_error() if error_enabled else 0.0)
            total_intensity += with_error
            if with_error < min_intensity:
                min_intensity = with_error
                darkest_index = len(cell)

            if self.use_adaptive_clustering:
                gradient = (intensity - previous_intensity) / 255.0
                cell_size = max(self.allowed_cell_size(gradient), len(cell) + 1)

            cell.append((x, y))

            if len(cell) >= cell_size or visited == total:
                error = self._fill_cell(image, cell, total_intensity, darkest_index)
                cell = []
                total_intensity = 0.0
                min_intensity = 255.0
                darkest_index = 0
                if error_enabled:
                    error_filter.set_error(error, 0)
                cell_size = self._max_cell_size

            if error_enabled:
                error_filter.move_next()
            if progress_callback and visited % report_every == 0:
                progress_callback(visited / total)

        image.flush_buffer()
        if progress_callback:
            progress_callback(1.0)
