"""
Threshold filters decide, for each pixel position, the intensity a pixel
has to reach to be rendered white.

Variants differ only in where the threshold comes from: a tiled matrix,
an intensity-indexed table of matrices, a periodic spot function, or a
precomputed threshold image.
"""

import logging
import math
from enum import Enum
from typing import List, Optional

import numpy as np
from PIL import Image

from components import ImageRunInfo, Module
from image_buffer import GrayscaleImage
from intensity_table import IntensityTable, TableRecord
from matrices import ThresholdMatrix

logger = logging.getLogger(__name__)

__all__ = [
    'ThresholdFilter',
    'MatrixThresholdFilter',
    'ThresholdRecord',
    'DynamicMatrixThresholdFilter',
    'SpotShape',
    'SpotFunction',
    'evaluate_spot',
    'SpotFunctionThresholdFilter',
    'ImageGenerator',
    'ImageThresholdFilter',
]


class ThresholdFilter(Module):
    """Base threshold filter."""

    def threshold(self, intensity: int, x: int, y: int) -> int:
        raise NotImplementedError

    def quantize(self, intensity: float, x: int, y: int) -> int:
        """Binary decision: 0 below the threshold, 255 otherwise."""
        return 0 if intensity < self.threshold(int(intensity), x, y) else 255


# -------------------- Matrix Thresholding --------------------

class MatrixThresholdFilter(ThresholdFilter):
    """Threshold read from a matrix tiled over the image."""

    def __init__(self, matrix: Optional[ThresholdMatrix] = None):
        super().__init__()
        self.matrix = matrix if matrix is not None else ThresholdMatrix.sample('simple_threshold')

    @staticmethod
    def get_parameter_info():
        return {
            'matrix': {
                'type': 'choice',
                'default': 'simple_threshold',
                'options': ThresholdMatrix.sample_names(),
                'label': 'Threshold Matrix',
                'description': 'Tiled threshold matrix (bayer_N = 2^N x 2^N Bayer matrix)'
            }
        }

    def get_current_parameters(self):
        return {'matrix': self.matrix.name}

    def threshold(self, intensity, x, y):
        return int(self.matrix[y, x])

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        self.matrix.init(run_info)


class ThresholdRecord(TableRecord):
    """Intensity table record: a threshold matrix and a noise amplitude."""

    def __init__(self, key: int = 0, matrix: Optional[ThresholdMatrix] = None,
                 noise_amplitude: float = 0.0):
        super().__init__(key)
        self.matrix = matrix if matrix is not None else ThresholdMatrix.sample('simple_threshold')
        self._noise_amplitude = 0.0
        self.noise_amplitude = noise_amplitude

    @property
    def noise_amplitude(self) -> float:
        return self._noise_amplitude

    @noise_amplitude.setter
    def noise_amplitude(self, value: float):
        if 0.0 <= value <= 1.0:
            self._noise_amplitude = float(value)

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        self.matrix.init(run_info)


class DynamicMatrixThresholdFilter(ThresholdFilter):
    """
    Threshold matrix selected by the pixel intensity.

    Each table record may add uniform noise of the given relative
    amplitude to the threshold.
    """

    def __init__(self, table: Optional[IntensityTable] = None,
                 noise_enabled: bool = True, seed: Optional[int] = None):
        super().__init__()
        self.table: IntensityTable = table if table is not None else IntensityTable(ThresholdRecord())
        self.noise_enabled = noise_enabled
        self.seed = seed
        self._rng = np.random.RandomState(seed)

    @staticmethod
    def get_parameter_info():
        return {
            'records': {
                'type': 'list',
                'default': [],
                'label': 'Matrix Table',
                'description': 'List of {"key", "matrix", "noise_amplitude"} entries'
            },
            'noise_enabled': {
                'type': 'bool',
                'default': True,
                'label': 'Noise',
                'description': 'Add per-record noise to thresholds'
            },
            'seed': {
                'type': 'int',
                'default': None,
                'min': 0,
                'max': 2**32 - 1,
                'label': 'Random Seed',
                'description': 'Seed for threshold noise (empty = nondeterministic)'
            }
        }

    def get_current_parameters(self):
        return {
            'records': [{'key': r.key, 'matrix': r.matrix.name, 'noise_amplitude': r.noise_amplitude}
                        for r in self.table.records()],
            'noise_enabled': self.noise_enabled,
            'seed': self.seed
        }

    def threshold(self, intensity, x, y):
        record = self.table.working_record(intensity)
        value = int(record.matrix[y, x])
        if self.noise_enabled and record.noise_amplitude > 0:
            value += int((self._rng.random_sample() - 0.5) * record.noise_amplitude * 255)
        return value

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        self.table.init(run_info)
        self._rng = np.random.RandomState(self.seed)


# -------------------- Spot Functions --------------------

class SpotShape(Enum):
    NULL = 'null'
    EUCLID_DOT = 'euclid_dot'
    PERTURBED_EUCLID_DOT = 'perturbed_euclid_dot'
    SQUARE_DOT = 'square_dot'
    LINE = 'line'
    TRIANGLE = 'triangle'
    CIRCLE_DOT = 'circle_dot'


PERTURBATION_AMPLITUDE = 0.01


def _rotate(x, y, angle):
    sin, cos = math.sin(angle), math.cos(angle)
    return x * sin + y * cos, -x * cos + y * sin


def evaluate_spot(shape: SpotShape, x, y, angle: float, distance: float,
                  rng: Optional[np.random.RandomState] = None):
    """
    Evaluate a periodic spot function.

    Args:
        shape: Spot shape
        x, y: Coordinates (scalars or broadcastable numpy arrays)
        angle: Screen angle in radians
        distance: Screen period in pixels
        rng: Random source for the perturbed Euclid dot

    Returns:
        Truncated threshold values; an int for scalar input
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)

    if shape == SpotShape.NULL:
        value = np.full(np.broadcast(x, y).shape, 128.0)
    elif shape in (SpotShape.EUCLID_DOT, SpotShape.PERTURBED_EUCLID_DOT):
        scale = 2.0 / distance
        rx, ry = _rotate(x * scale, y * scale, angle)
        value = 0.5 - 0.25 * (np.sin(np.pi * (rx + 0.5)) + np.cos(np.pi * ry))
        if shape == SpotShape.PERTURBED_EUCLID_DOT:
            rng = rng if rng is not None else np.random.RandomState()
            value = value + (rng.random_sample(value.shape) - 0.5) * 2 * PERTURBATION_AMPLITUDE
        value = 255 * value
    elif shape == SpotShape.SQUARE_DOT:
        rx, ry = _rotate(x, y, angle)
        half = distance * 0.5
        value = 255 * (1 - 0.5 * (np.abs(np.fmod(np.abs(rx) / half, 2) - 1) +
                                  np.abs(np.fmod(np.abs(ry) / half, 2) - 1)))
    elif shape == SpotShape.LINE:
        line_angle = math.fmod(angle, math.pi * 0.5)
        v = (math.sin(line_angle) / distance) * x + (math.cos(line_angle) / distance) * y
        value = 255 * np.fmod(np.abs(v), 1)
    elif shape == SpotShape.TRIANGLE:
        # not rotated
        value = 255 * 0.5 * (np.fmod(x / distance, 1) + np.fmod(y / distance, 1))
    elif shape == SpotShape.CIRCLE_DOT:
        xs = np.fmod((x - distance * 0.5) ** 2, distance)
        ys = np.fmod((y - distance * 0.5) ** 2, distance)
        value = 255 * (1 - np.sqrt(2 * (xs + ys)) / distance)
    else:
        raise ValueError(f"Unknown spot shape: {shape}")

    result = np.trunc(value).astype(np.int64)
    return int(result) if result.ndim == 0 else result


class SpotFunction(Module):
    """
    Periodic 2-D function describing how screen dots grow with intensity.
    Parameterized by shape, screen angle (radians) and distance (period).
    """

    def __init__(self, shape: SpotShape = SpotShape.EUCLID_DOT,
                 angle: float = math.pi * 0.25, distance: float = 10.0,
                 seed: Optional[int] = None):
        super().__init__()
        self.shape = SpotShape(shape)
        self.angle = angle
        self._distance = 10.0
        self.distance = distance
        self.seed = seed
        self._rng = np.random.RandomState(seed)

    @staticmethod
    def get_parameter_info():
        return {
            'shape': {
                'type': 'choice',
                'default': SpotShape.EUCLID_DOT.value,
                'options': [s.value for s in SpotShape],
                'label': 'Spot Shape',
                'description': 'Shape of the screen dot'
            },
            'angle': {
                'type': 'float',
                'default': math.pi * 0.25,
                'min': 0.0,
                'max': 2 * math.pi,
                'label': 'Screen Angle',
                'description': 'Rotation of the screen in radians'
            },
            'distance': {
                'type': 'float',
                'default': 10.0,
                'min': 1.0,
                'max': 100.0,
                'label': 'Distance',
                'description': 'Distance between screen elements in pixels'
            },
            'seed': {
                'type': 'int',
                'default': None,
                'min': 0,
                'max': 2**32 - 1,
                'label': 'Random Seed',
                'description': 'Seed for the perturbed Euclid dot'
            }
        }

    def get_current_parameters(self):
        return {
            'shape': self.shape.value,
            'angle': self.angle,
            'distance': self._distance,
            'seed': self.seed
        }

    @property
    def distance(self) -> float:
        return self._distance

    @distance.setter
    def distance(self, value: float):
        if value > 0:
            self._distance = float(value)

    def evaluate(self, x, y):
        return evaluate_spot(self.shape, x, y, self.angle, self._distance, self._rng)

    def render(self, width: int, height: int) -> np.ndarray:
        """Thresholds for a whole width x height grid, shape (height, width)."""
        ys, xs = np.mgrid[0:height, 0:width]
        return np.broadcast_to(self.evaluate(xs, ys), (height, width))

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        self._rng = np.random.RandomState(self.seed)


class SpotFunctionThresholdFilter(ThresholdFilter):
    """
    Threshold computed by a spot function (screening). The function is
    evaluated over the whole run size once, at init.
    """

    def __init__(self, spot_function: Optional[SpotFunction] = None):
        super().__init__()
        self.spot_function = spot_function if spot_function is not None else SpotFunction()
        self._thresholds: Optional[np.ndarray] = None

    @staticmethod
    def get_parameter_info():
        return SpotFunction.get_parameter_info()

    def get_current_parameters(self):
        return self.spot_function.get_current_parameters()

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        self.spot_function.init(run_info)
        self._thresholds = self.spot_function.render(run_info.width, run_info.height)

    def threshold(self, intensity, x, y):
        thresholds = self._thresholds
        if thresholds is not None and y < thresholds.shape[0] and x < thresholds.shape[1]:
            return int(thresholds[y, x])
        return self.spot_function.evaluate(x, y)


# -------------------- Threshold Images --------------------

class ImageGenerator(Module):
    """
    Renders a threshold image with a spot function and then applies a
    sequence of image effects on top of it.
    """

    def __init__(self, spot_function: Optional[SpotFunction] = None,
                 effects: Optional[List] = None):
        super().__init__()
        self.spot_function = spot_function if spot_function is not None else SpotFunction()
        self.effects = list(effects) if effects is not None else []

    def generate_image(self, image: GrayscaleImage) -> GrayscaleImage:
        if self.spot_function is not None:
            image.load_array(self.spot_function.render(image.width, image.height))
        for effect in self.effects:
            if effect is not None:
                effect.run(image)
        return image

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        if self.spot_function is not None:
            self.spot_function.init(run_info)
        for effect in self.effects:
            if effect is not None:
                effect.init(run_info)


class ImageThresholdFilter(ThresholdFilter):
    """
    Threshold read from a grayscale image.

    The image is either generated for the run size by an image generator
    or side-loaded (any size, tiled over the run).
    """

    def __init__(self, image_generator: Optional[ImageGenerator] = None,
                 source_image: Optional[Image.Image] = None):
        super().__init__()
        self.source_image = source_image
        if image_generator is None and source_image is None:
            image_generator = ImageGenerator()
        self.image_generator = image_generator
        self._thresholds: Optional[np.ndarray] = None

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        if self.source_image is not None:
            self._thresholds = GrayscaleImage(self.source_image).to_array()
            logger.debug("Using side-loaded threshold image %sx%s",
                         self._thresholds.shape[1], self._thresholds.shape[0])
            return
        image = GrayscaleImage.blank(max(1, run_info.width), max(1, run_info.height), 128)
        if self.image_generator is not None:
            self.image_generator.init(run_info)
            self.image_generator.generate_image(image)
        self._thresholds = image.to_array()

    def threshold(self, intensity, x, y):
        if self._thresholds is None:
            return 128
        height, width = self._thresholds.shape
        return int(self._thresholds[y % height, x % width])
