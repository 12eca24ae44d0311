"""
Tileable matrices used by threshold and error-diffusion filters.

A matrix keeps the definition as it was authored and a derived working
form used at run time (e.g. normalized error weights). Elements are
accessed with coordinates taken modulo the matrix size, so every matrix
implicitly tiles the whole plane.
"""

import math
from typing import Callable, Dict, Iterator, List, Optional, Tuple

import numpy as np

from components import ImageRunInfo, Module

__all__ = [
    'Matrix',
    'ErrorMatrix',
    'ThresholdMatrix',
    'generate_riemersma_coefficients',
    'generate_riemersma_matrix',
]


class Matrix(Module):
    """
    Abstract tileable matrix with a definition form and a working form.

    Assigning `definition` stores a copy and recomputes the working form.
    When a parameter the working form depends on changes, subclasses call
    invalidate() and the working form is recomputed lazily on next access.
    """

    def __init__(self, definition, name: str = "", description: str = ""):
        super().__init__(name, description)
        self._definition: Optional[np.ndarray] = None
        self._working: Optional[np.ndarray] = None
        self.definition = definition

    @property
    def definition(self) -> np.ndarray:
        return self._definition

    @definition.setter
    def definition(self, value):
        if value is None:
            raise ValueError("Matrix definition must be a non-empty 2-D array, got None")
        arr = np.array(value, copy=True)
        if arr.ndim != 2 or arr.size == 0:
            raise ValueError(f"Matrix definition must be a non-empty 2-D array, got shape {arr.shape}")
        self._definition = arr
        self._working = self.compute_working_matrix()

    @property
    def working(self) -> np.ndarray:
        if self._working is None:
            self._working = self.compute_working_matrix()
        return self._working

    def invalidate(self):
        self._working = None

    @property
    def height(self) -> int:
        return self._definition.shape[0]

    @property
    def width(self) -> int:
        return self._definition.shape[1]

    def __getitem__(self, key: Tuple[int, int]):
        y, x = key
        working = self.working
        return working[y % working.shape[0], x % working.shape[1]]

    def compute_working_matrix(self) -> np.ndarray:
        raise NotImplementedError

    def clone(self) -> 'Matrix':
        raise NotImplementedError

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        self._working = self.compute_working_matrix()

    def __str__(self):
        return "\n".join(" ".join(str(v) for v in row) for row in self.working)


# -------------------- Error Matrices --------------------

def generate_riemersma_coefficients(ratio: float, count: int) -> List[float]:
    """
    Exponentially decaying weights from 1.0 down to 1/ratio.
    """
    if count == 1:
        return [1.0]
    base = math.exp(math.log(ratio) / (count - 1))
    coeffs = [0.0] * count
    for i in range(count):
        coeffs[count - i - 1] = base ** i / ratio
    return coeffs


def generate_riemersma_matrix(ratio: float, count: int, precision: int) -> 'ErrorMatrix':
    """
    Build a one-row error matrix with Riemersma coefficients scaled to
    integers with the given number of decimal digits.
    """
    if not 0 < precision <= 8:
        raise ValueError(f"Precision must be within 1..8, got {precision}")
    scaled = [int(round(c * 10 ** precision)) for c in generate_riemersma_coefficients(ratio, count)]
    return ErrorMatrix([[0] + scaled], 0)


# name: (label, coefficients, source offset x, divisor)
ERROR_MATRIX_SAMPLES: Dict[str, Tuple[str, List[List[int]], int, int]] = {
    'next_pixel': ("Next pixel", [[0, 1]], 0, 1),
    'next_two_pixels': ("Next two pixels", [[0, 7, 3]], 0, 10),
    'floyd_steinberg': ("Floyd-Steinberg", [[0, 0, 7],
                                            [3, 5, 1]], 1, 16),
    'jarvis_judice_ninke': ("Jarvis-Judice-Ninke", [[0, 0, 0, 7, 5],
                                                    [3, 5, 7, 5, 3],
                                                    [1, 3, 5, 3, 1]], 2, 48),
    'stucki': ("Stucki", [[0, 0, 0, 8, 4],
                          [2, 4, 8, 4, 2],
                          [1, 2, 4, 2, 1]], 2, 42),
    'burkes': ("Burkes", [[0, 0, 0, 4, 2],
                          [1, 2, 4, 2, 1]], 2, 16),
    'fan': ("Fan", [[0, 0, 0, 7],
                    [1, 3, 5, 0]], 2, 16),
    'shiau_fan_1': ("Shiau-Fan 1", [[0, 0, 0, 4],
                                    [1, 1, 2, 0]], 2, 8),
    'shiau_fan_2': ("Shiau-Fan 2", [[0, 0, 0, 0, 8],
                                    [1, 1, 2, 4, 0]], 3, 16),
    'sierra': ("Sierra", [[0, 0, 0, 5, 3],
                          [2, 4, 5, 4, 2],
                          [0, 2, 3, 2, 0]], 2, 32),
    'sierra_two_row': ("Sierra two row", [[0, 0, 0, 4, 3],
                                          [1, 2, 3, 2, 1]], 2, 16),
    'sierra_lite': ("Sierra filter lite", [[0, 0, 2],
                                           [1, 1, 0]], 1, 4),
    'atkinson': ("Atkinson", [[0, 0, 1, 1],
                              [1, 1, 1, 0],
                              [0, 1, 0, 0]], 1, 8),
    'hocevar_niger': ("Hocevar-Niger", [[0, 0, 7],
                                        [4, 5, 0]], 1, 16),
}

VECTOR_SAMPLES = ('next_pixel', 'next_two_pixels', 'riemersma_16')


class ErrorMatrix(Matrix):
    """
    Error-diffusion matrix.

    The definition holds integer coefficients; the working form holds
    weights (coefficient / divisor). The source pixel sits on the first row
    at `source_offset_x`; only coefficients after it on the first row and
    all coefficients on the following rows distribute error.
    """

    def __init__(self, definition, source_offset_x: int = 0,
                 divisor: Optional[int] = None, name: str = "", description: str = ""):
        self._source_offset_x = source_offset_x
        self._divisor = divisor
        super().__init__(definition, name, description)
        if not 0 <= source_offset_x < self.width:
            raise ValueError(f"Source offset {source_offset_x} lies outside the matrix width {self.width}")

    @classmethod
    def sample(cls, key: str) -> 'ErrorMatrix':
        """
        Create a fresh instance of a well-known error matrix.
        The sample key becomes the matrix name.
        """
        if key == 'riemersma_16':
            matrix = generate_riemersma_matrix(16, 16, 3)
            matrix.name = key
            matrix.description = "Riemersma coefficients, 16 coefficients, ratio 1:16, precision: 3"
            return matrix
        if key not in ERROR_MATRIX_SAMPLES:
            raise ValueError(f"Unknown error matrix: {key}")
        label, coeffs, offset, divisor = ERROR_MATRIX_SAMPLES[key]
        return cls(coeffs, offset, divisor, name=key, description=label)

    @staticmethod
    def sample_names() -> List[str]:
        return list(ERROR_MATRIX_SAMPLES) + ['riemersma_16']

    @property
    def source_offset_x(self) -> int:
        return self._source_offset_x

    @property
    def divisor(self) -> int:
        if self._divisor is None:
            return int(sum(self.definition[y, x] for y, x in self.coefficient_offsets()))
        return self._divisor

    @divisor.setter
    def divisor(self, value: Optional[int]):
        self._divisor = value
        self.invalidate()

    def compute_working_matrix(self) -> np.ndarray:
        divisor = self.divisor
        if divisor == 0:
            return np.zeros(self.definition.shape, dtype=np.float64)
        return self.definition.astype(np.float64) / float(divisor)

    def coefficient_offsets(self) -> Iterator[Tuple[int, int]]:
        """
        Matrix positions (y, x) which may receive error, in row order.
        """
        for x in range(self._source_offset_x + 1, self.width):
            yield 0, x
        for y in range(1, self.height):
            for x in range(self.width):
                yield y, x

    @property
    def coefficient_count(self) -> int:
        return sum(1 for y, x in self.coefficient_offsets() if self.definition[y, x] != 0)

    @property
    def coefficient_capacity(self) -> int:
        return self.height * self.width - self._source_offset_x - 1

    def apply(self, func: Callable[[int, int, float], None]):
        """
        Call func(dy, dx, weight) for every coefficient position, dx being
        relative to the source pixel.
        """
        working = self.working
        for y, x in self.coefficient_offsets():
            func(y, x - self._source_offset_x, working[y, x])

    def clone(self) -> 'ErrorMatrix':
        return ErrorMatrix(self.definition, self._source_offset_x, self._divisor,
                           self.name, self.description)

    def __str__(self):
        return f"Source offset X: {self._source_offset_x}\n" + super().__str__()


# -------------------- Threshold Matrices --------------------

CLUSTERED_DOT_8x8 = [
    [32, 10, 18, 26, 34, 56, 48, 40],
    [24,  2,  4, 12, 42, 64, 62, 54],
    [16,  8,  6, 20, 50, 58, 60, 46],
    [30, 22, 14, 28, 36, 44, 52, 38],
    [34, 56, 48, 40, 32, 10, 18, 26],
    [42, 64, 62, 54, 24,  2,  4, 12],
    [50, 58, 60, 46, 16,  8,  6, 20],
    [36, 44, 52, 38, 30, 22, 14, 28],
]


class ThresholdMatrix(Matrix):
    """
    Threshold matrix.

    An incremental definition lists the order in which dots turn on
    (1..N); its working form is rescaled into thresholds 0-255 using
    (max coefficient + 1) as the divisor. A non-incremental definition
    already contains thresholds and is used as it is.
    """

    def __init__(self, definition=None, incremental: bool = True,
                 name: str = "", description: str = ""):
        if definition is None:
            definition, incremental = [[128]], False
        self._incremental = incremental
        super().__init__(definition, name, description)

    @property
    def incremental(self) -> bool:
        return self._incremental

    def compute_working_matrix(self) -> np.ndarray:
        definition = self.definition.astype(np.int64)
        if not self._incremental:
            return definition
        divisor = int(definition.max()) + 1
        return (definition * (255.0 / divisor)).astype(np.int64)

    def clone(self) -> 'ThresholdMatrix':
        return ThresholdMatrix(self.definition, self._incremental, self.name, self.description)

    @classmethod
    def simple_threshold(cls) -> 'ThresholdMatrix':
        return cls([[128]], False, name="Simple threshold")

    @classmethod
    def clustered_dot(cls) -> 'ThresholdMatrix':
        return cls(CLUSTERED_DOT_8x8, True, name="Clustered dot 8x8")

    @classmethod
    def bayer(cls, magnitude: int) -> 'ThresholdMatrix':
        """
        Bayer dispersed-dot matrix of size 2^magnitude.

        Args:
            magnitude: 0..8
        """
        if not 0 <= magnitude <= 8:
            raise ValueError(f"Bayer magnitude must be within 0..8, got {magnitude}")
        if magnitude == 0:
            return cls([[0]], name="Bayer 1x1")
        matrix = np.array([[0, 2], [3, 1]], dtype=np.int64)
        for _ in range(1, magnitude):
            matrix = np.block([[4 * matrix + 0, 4 * matrix + 2],
                               [4 * matrix + 3, 4 * matrix + 1]])
        size = matrix.shape[0]
        return cls(matrix + 1, name=f"Bayer {size}x{size}")

    @classmethod
    def sample(cls, key: str) -> 'ThresholdMatrix':
        """
        Well-known threshold matrices: 'simple_threshold', 'clustered_dot'
        and 'bayer_<magnitude>'. The key becomes the matrix name.
        """
        if key == 'simple_threshold':
            matrix = cls.simple_threshold()
        elif key == 'clustered_dot':
            matrix = cls.clustered_dot()
        elif key.startswith('bayer_') and key[len('bayer_'):].isdigit():
            matrix = cls.bayer(int(key[len('bayer_'):]))
        else:
            raise ValueError(f"Unknown threshold matrix: {key}")
        matrix.description = matrix.name
        matrix.name = key
        return matrix

    @staticmethod
    def sample_names() -> List[str]:
        return ['simple_threshold', 'clustered_dot'] + [f'bayer_{m}' for m in range(9)]
