"""
Image effects used as pre- and post-processing stages of a halftone
algorithm and for post-processing generated threshold images.

Effects work on a GrayscaleImage in place. Effects which change the pixel
grid (resize) swap the backing Pillow image.
"""

import logging
import math
from enum import Enum
from typing import Optional

import numpy as np
from PIL import Image, ImageFilter
from scipy.ndimage import gaussian_filter

from components import Module
from image_buffer import GrayscaleImage

logger = logging.getLogger(__name__)

__all__ = [
    'ImageEffect',
    'Interpolation',
    'Resize',
    'DotGainCorrection',
    'GammaCorrection',
    'Sharpen',
    'Smoothen',
    'NoiseEffect',
    'PixelizeEffect',
    'apply_levels',
]


class ImageEffect(Module):
    """Base class for in-place image effects."""

    def run(self, image: GrayscaleImage):
        raise NotImplementedError


def apply_levels(array: np.ndarray, low: float = 0, high: float = 255,
                 gamma: float = 1.0) -> np.ndarray:
    """
    Stretch [low, high] to [0, 255] with gamma adjustment, like an image
    editor's levels tool.

    Args:
        array: Input intensities
        low: Input black point
        high: Input white point
        gamma: Midtone gamma (values above 1 brighten)

    Returns:
        uint8 array of the same shape
    """
    span = max(float(high) - float(low), 1e-9)
    normalized = np.clip((np.asarray(array, dtype=np.float64) - low) / span, 0.0, 1.0)
    if gamma != 1.0:
        normalized = normalized ** (1.0 / gamma)
    return np.round(normalized * 255).astype(np.uint8)


# -------------------- Resizing --------------------

class Interpolation(Enum):
    NEAREST = 'nearest'
    BILINEAR = 'bilinear'
    BICUBIC = 'bicubic'
    LANCZOS = 'lanczos'


_RESAMPLING = {
    Interpolation.NEAREST: Image.Resampling.NEAREST,
    Interpolation.BILINEAR: Image.Resampling.BILINEAR,
    Interpolation.BICUBIC: Image.Resampling.BICUBIC,
    Interpolation.LANCZOS: Image.Resampling.LANCZOS,
}


class Resize(ImageEffect):
    """
    Scale the image by a factor. A backward resize divides by the factor,
    so a forward and a backward resize with the same factor cancel out.
    """

    def __init__(self, factor: float = 1.0, forward: bool = True,
                 interpolation: Interpolation = Interpolation.BICUBIC):
        super().__init__()
        self._factor = 1.0
        self.factor = factor
        self.forward = forward
        self.interpolation = Interpolation(interpolation)

    @staticmethod
    def get_parameter_info():
        return {
            'factor': {
                'type': 'float',
                'default': 1.0,
                'min': 0.01,
                'max': 16.0,
                'label': 'Factor',
                'description': 'Scale factor'
            },
            'forward': {
                'type': 'bool',
                'default': True,
                'label': 'Forward',
                'description': 'Multiply by the factor (off = divide)'
            },
            'interpolation': {
                'type': 'choice',
                'default': Interpolation.BICUBIC.value,
                'options': [i.value for i in Interpolation],
                'label': 'Interpolation',
                'description': 'Resampling filter'
            }
        }

    def get_current_parameters(self):
        return {
            'factor': self._factor,
            'forward': self.forward,
            'interpolation': self.interpolation.value
        }

    @property
    def factor(self) -> float:
        return self._factor

    @factor.setter
    def factor(self, value: float):
        if value > 0:
            self._factor = float(value)

    def target_size(self, width: int, height: int):
        scale = self._factor if self.forward else 1.0 / self._factor
        return max(1, int(round(width * scale))), max(1, int(round(height * scale)))

    def run(self, image: GrayscaleImage):
        size = self.target_size(image.width, image.height)
        if size == (image.width, image.height):
            return
        logger.debug("Resizing %dx%d -> %dx%d (%s)", image.width, image.height,
                     size[0], size[1], self.interpolation.value)
        image.replace(image.image.resize(size, _RESAMPLING[self.interpolation]))


# -------------------- Tone Corrections --------------------

class DotGainCorrection(ImageEffect):
    """Base for corrections compensating dot gain of the output device."""


class GammaCorrection(DotGainCorrection):
    """Levels-style gamma correction. Gamma outside [0.1, 10] is ignored."""

    def __init__(self, gamma: float = 1.0):
        super().__init__()
        self._gamma = 1.0
        self.gamma = gamma

    @staticmethod
    def get_parameter_info():
        return {
            'gamma': {
                'type': 'float',
                'default': 1.0,
                'min': 0.1,
                'max': 10.0,
                'label': 'Gamma',
                'description': 'Midtone gamma (above 1 brightens)'
            }
        }

    @property
    def gamma(self) -> float:
        return self._gamma

    @gamma.setter
    def gamma(self, value: float):
        if 0.1 <= value <= 10:
            self._gamma = float(value)

    def run(self, image: GrayscaleImage):
        lut = apply_levels(np.arange(256), 0, 255, self._gamma).tolist()
        image.replace(image.image.point(lut))


# -------------------- Filters --------------------

class Sharpen(ImageEffect):
    """Unsharp mask with strength given by `amount` (0.0-1.0)."""

    def __init__(self, amount: float = 0.1):
        super().__init__()
        self._amount = 0.1
        self.amount = amount

    @staticmethod
    def get_parameter_info():
        return {
            'amount': {
                'type': 'float',
                'default': 0.1,
                'min': 0.0,
                'max': 1.0,
                'label': 'Amount',
                'description': 'Sharpening strength'
            }
        }

    @property
    def amount(self) -> float:
        return self._amount

    @amount.setter
    def amount(self, value: float):
        if 0.0 <= value <= 1.0:
            self._amount = float(value)

    def run(self, image: GrayscaleImage):
        percent = int(self.amount * 100)
        if percent <= 0:
            return
        image.replace(image.image.filter(ImageFilter.UnsharpMask(radius=1, percent=percent, threshold=0)))


class Smoothen(ImageEffect):
    """
    Gaussian blur followed by a levels stretch. Used after downsampling a
    supersampled halftone to get crisp yet smooth edges.
    """

    def __init__(self, radius: float = 5.0, low: int = 110, high: int = 145):
        super().__init__()
        self.radius = radius
        self.low = low
        self.high = high

    @staticmethod
    def get_parameter_info():
        return {
            'radius': {
                'type': 'float',
                'default': 5.0,
                'min': 0.0,
                'max': 50.0,
                'label': 'Radius',
                'description': 'Blur radius in pixels'
            },
            'low': {
                'type': 'int',
                'default': 110,
                'min': 0,
                'max': 255,
                'label': 'Levels Low',
                'description': 'Input level mapped to black'
            },
            'high': {
                'type': 'int',
                'default': 145,
                'min': 0,
                'max': 255,
                'label': 'Levels High',
                'description': 'Input level mapped to white'
            }
        }

    @property
    def sigma(self) -> float:
        # the kernel reaches 1/255 of its peak at `radius`
        return self.radius / math.sqrt(2 * math.log(255))

    def run(self, image: GrayscaleImage):
        array = image.to_array().astype(np.float64)
        if self.radius > 0:
            array = gaussian_filter(array, sigma=self.sigma, mode='nearest')
        image.load_array(apply_levels(array, self.low, self.high))


# -------------------- Threshold Image Effects --------------------

class NoiseEffect(ImageEffect):
    """Additive Gaussian noise; `amount` is relative to half the intensity range."""

    def __init__(self, amount: float = 0.2, seed: Optional[int] = None):
        super().__init__()
        self._amount = 0.2
        self.amount = amount
        self.seed = seed

    @staticmethod
    def get_parameter_info():
        return {
            'amount': {
                'type': 'float',
                'default': 0.2,
                'min': 0.0,
                'max': 1.0,
                'label': 'Amount',
                'description': 'Noise strength'
            },
            'seed': {
                'type': 'int',
                'default': None,
                'min': 0,
                'max': 2**32 - 1,
                'label': 'Random Seed',
                'description': 'Seed for noise generation (empty = nondeterministic)'
            }
        }

    @property
    def amount(self) -> float:
        return self._amount

    @amount.setter
    def amount(self, value: float):
        if 0.0 <= value <= 1.0:
            self._amount = float(value)

    def run(self, image: GrayscaleImage):
        rng = np.random.RandomState(self.seed)
        array = image.to_array().astype(np.float64)
        array += rng.normal(0.0, self.amount * 128, size=array.shape)
        image.load_array(np.round(array))


class PixelizeEffect(ImageEffect):
    """Replace blocks of pixels by their average."""

    def __init__(self, block_size: int = 4):
        super().__init__()
        self._block_size = 4
        self.block_size = block_size

    @staticmethod
    def get_parameter_info():
        return {
            'block_size': {
                'type': 'int',
                'default': 4,
                'min': 1,
                'max': 64,
                'label': 'Block Size',
                'description': 'Size of pixel blocks'
            }
        }

    @property
    def block_size(self) -> int:
        return self._block_size

    @block_size.setter
    def block_size(self, value: int):
        if value >= 1:
            self._block_size = int(value)

    def run(self, image: GrayscaleImage):
        block = self._block_size
        if block == 1:
            return
        width, height = image.width, image.height
        small_w, small_h = math.ceil(width / block), math.ceil(height / block)
        small = image.image.resize((small_w, small_h), Image.Resampling.BOX)
        big = small.resize((small_w * block, small_h * block), Image.Resampling.NEAREST)
        image.replace(big.crop((0, 0, width, height)))
