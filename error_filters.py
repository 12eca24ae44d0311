"""
Error filters: carry quantization error from processed pixels to the
pixels not yet processed.

A filter is initialized with the run information (image size and
scanning order), then for every visited pixel the method reads the
carried error with get_error(), deposits the new error with set_error()
and advances with move_next().
"""

import logging
from typing import List, Optional

import numpy as np

from components import ImageRunInfo, Module
from intensity_table import IntensityTable, TableRecord
from matrices import VECTOR_SAMPLES, ErrorMatrix
from scanning_order import SerpentineScanningOrder, SFCScanningOrder

logger = logging.getLogger(__name__)

__all__ = [
    'MatrixErrorBuffer',
    'VectorErrorBuffer',
    'ErrorFilter',
    'VectorErrorFilter',
    'MatrixErrorFilter',
    'RandomizedMatrixErrorFilter',
    'PerturbedErrorFilter',
    'ErrorRecord',
    'DynamicMatrixErrorFilter',
]


# -------------------- Error Buffers --------------------

class MatrixErrorBuffer:
    """
    Rolling 2-D error buffer for row-based scanning orders.

    It holds as many image rows as the error matrix is tall. Rows are
    reused cyclically: a row is cleared once the scan leaves it. With
    serpentine scanning the horizontal direction flips at the end of each
    row and horizontal offsets are mirrored accordingly.
    """

    def __init__(self, height: int, width: int, serpentine: bool = False):
        self.height = max(1, height)
        self.width = width
        self.serpentine = serpentine
        self._buffer = np.zeros((self.height, width), dtype=np.float64)
        self._y = 0
        self._x = 0
        self._backward = False

    @property
    def backward(self) -> bool:
        return self._backward

    def get_error(self) -> float:
        return float(self._buffer[self._y, self._x])

    def set_error(self, dy: int, dx: int, error: float):
        """Add error to the cell at (dy, dx) relative to the current pixel."""
        if self._backward:
            dx = -dx
        x = self._x + dx
        if 0 <= x < self.width:
            self._buffer[(self._y + dy) % self.height, x] += error

    def move_next(self):
        row_end = self._x == (0 if self._backward else self.width - 1)
        if row_end:
            self._buffer[self._y, :] = 0.0
            self._y = (self._y + 1) % self.height
            if self.serpentine:
                self._backward = not self._backward
            else:
                self._x = 0
        else:
            self._x += -1 if self._backward else 1

    def clear(self):
        self._buffer.fill(0.0)
        self._y = self._x = 0
        self._backward = False


class VectorErrorBuffer:
    """
    Ring buffer carrying error forward along the scanning sequence.
    Offsets are counted in visited pixels, not image coordinates.
    """

    def __init__(self, length: int):
        self._buffer = np.zeros(max(1, length) + 1, dtype=np.float64)
        self._current = 0

    def __len__(self):
        return len(self._buffer)

    def get_error(self) -> float:
        return float(self._buffer[self._current])

    def set_error(self, offset: int, error: float):
        self._buffer[(self._current + offset) % len(self._buffer)] += error

    def move_next(self):
        self._buffer[self._current] = 0.0
        self._current = (self._current + 1) % len(self._buffer)

    def clear(self):
        self._buffer.fill(0.0)
        self._current = 0


# -------------------- Error Filters --------------------

class ErrorFilter(Module):
    """
    Base error filter.

    A filter which could not be initialized for the current run (e.g. a
    2-D matrix along a space-filling curve) reports `initialized` False
    and methods then skip error diffusion.
    """

    def __init__(self, name: str = "", description: str = ""):
        super().__init__(name, description)
        self.initialized = False

    def get_error(self) -> float:
        raise NotImplementedError

    def set_error(self, error: float, intensity: int = 0):
        """
        Distribute the quantization error of the current pixel.

        Args:
            error: Quantization error (original minus quantized value)
            intensity: Source intensity of the current pixel
        """
        raise NotImplementedError

    def move_next(self):
        raise NotImplementedError


class VectorErrorFilter(ErrorFilter):
    """
    One-dimensional error diffusion along the scanning sequence.

    The matrix must be a single row. Since it only needs the order of
    visits, it works with every scanning order including space-filling
    curves.
    """

    def __init__(self, matrix: Optional[ErrorMatrix] = None):
        super().__init__()
        self._matrix = None
        self._buffer: Optional[VectorErrorBuffer] = None
        self.matrix = matrix if matrix is not None else ErrorMatrix.sample('next_pixel')

    @staticmethod
    def get_parameter_info():
        return {
            'matrix': {
                'type': 'choice',
                'default': 'next_pixel',
                'options': list(VECTOR_SAMPLES),
                'label': 'Error Vector',
                'description': 'One-row error matrix used along the scan sequence'
            }
        }

    @property
    def matrix(self) -> ErrorMatrix:
        return self._matrix

    @matrix.setter
    def matrix(self, value: ErrorMatrix):
        if value.height != 1:
            raise ValueError(f"An error vector must have exactly one row, got {value.height}")
        self._matrix = value

    def get_current_parameters(self):
        return {'matrix': self._matrix.name}

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        self._matrix.init(run_info)
        self._buffer = VectorErrorBuffer(self._matrix.width - self._matrix.source_offset_x - 1)
        self.initialized = True

    def get_error(self) -> float:
        return self._buffer.get_error()

    def set_error(self, error: float, intensity: int = 0):
        buffer = self._buffer
        self._matrix.apply(lambda dy, dx, weight: buffer.set_error(dx, error * weight))

    def move_next(self):
        self._buffer.move_next()


class MatrixErrorFilter(ErrorFilter):
    """
    Classic two-dimensional error diffusion (Floyd-Steinberg and friends).

    Works along scanline and serpentine orders. Along a space-filling
    curve the filter stays uninitialized.
    """

    def __init__(self, matrix: Optional[ErrorMatrix] = None):
        super().__init__()
        self.matrix = matrix if matrix is not None else ErrorMatrix.sample('floyd_steinberg')
        self._buffer: Optional[MatrixErrorBuffer] = None

    @staticmethod
    def get_parameter_info():
        return {
            'matrix': {
                'type': 'choice',
                'default': 'floyd_steinberg',
                'options': ErrorMatrix.sample_names(),
                'label': 'Error Matrix',
                'description': 'Error diffusion matrix'
            }
        }

    def get_current_parameters(self):
        return {'matrix': self.matrix.name}

    def _buffer_height(self) -> int:
        return self.matrix.height

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        self.matrix.init(run_info)
        order = run_info.scanning_order
        if isinstance(order, SFCScanningOrder):
            logger.warning("%s cannot diffuse error along a space-filling curve; disabled for this run",
                           type(self).__name__)
            self._buffer = None
            self.initialized = False
            return
        serpentine = isinstance(order, SerpentineScanningOrder)
        self._buffer = MatrixErrorBuffer(self._buffer_height(), run_info.width, serpentine)
        self.initialized = True

    def _diffuse(self, matrix: ErrorMatrix, weights: np.ndarray, error: float):
        offset = matrix.source_offset_x
        for y, x in matrix.coefficient_offsets():
            weight = weights[y, x]
            if weight:
                self._buffer.set_error(y, x - offset, error * weight)

    def get_error(self) -> float:
        return self._buffer.get_error()

    def set_error(self, error: float, intensity: int = 0):
        self._diffuse(self.matrix, self.matrix.working, error)

    def move_next(self):
        self._buffer.move_next()


class RandomizedMatrixErrorFilter(MatrixErrorFilter):
    """
    Matrix error filter with random weights.

    After every pixel new weights summing to 1 are drawn. They cover the
    non-zero positions of the matrix, or, with `randomize_coeff_count`,
    a random number of positions anywhere in front of the source pixel.
    The matrix itself is left untouched.
    """

    def __init__(self, matrix: Optional[ErrorMatrix] = None,
                 randomize_coeff_count: bool = False, seed: Optional[int] = None):
        super().__init__(matrix)
        self.randomize_coeff_count = randomize_coeff_count
        self.seed = seed
        self._rng = np.random.RandomState(seed)
        self._weights: Optional[np.ndarray] = None

    @staticmethod
    def get_parameter_info():
        info = dict(MatrixErrorFilter.get_parameter_info())
        info.update({
            'randomize_coeff_count': {
                'type': 'bool',
                'default': False,
                'label': 'Randomize Coefficient Count',
                'description': 'Spread error over a random number of positions'
            },
            'seed': {
                'type': 'int',
                'default': None,
                'min': 0,
                'max': 2**32 - 1,
                'label': 'Random Seed',
                'description': 'Seed for weight generation (empty = nondeterministic)'
            }
        })
        return info

    def get_current_parameters(self):
        return {
            'matrix': self.matrix.name,
            'randomize_coeff_count': self.randomize_coeff_count,
            'seed': self.seed
        }

    @property
    def weights(self) -> Optional[np.ndarray]:
        return self._weights

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        self._rng = np.random.RandomState(self.seed)
        self._randomize_weights()

    def _randomize_weights(self):
        positions = list(self.matrix.coefficient_offsets())
        if not self.randomize_coeff_count:
            positions = [p for p in positions if self.matrix.definition[p] != 0]
            count = len(positions)
        else:
            count = int(self._rng.randint(1, len(positions) + 1)) if positions else 0
        weights = np.zeros(self.matrix.definition.shape, dtype=np.float64)
        if count > 0:
            chosen = self._rng.permutation(len(positions))[:count]
            values = np.empty(count, dtype=np.float64)
            remainder = 1.0
            for i in range(count - 1):
                values[i] = self._rng.random_sample() * remainder
                remainder -= values[i]
            values[count - 1] = remainder
            self._rng.shuffle(values)
            for index, value in zip(chosen, values):
                weights[positions[index]] = value
        self._weights = weights

    def set_error(self, error: float, intensity: int = 0):
        self._diffuse(self.matrix, self._weights, error)

    def move_next(self):
        super().move_next()
        self._randomize_weights()


class PerturbedErrorFilter(MatrixErrorFilter):
    """
    Matrix error filter with slightly perturbed weights.

    Coefficients are sorted by value and grouped in pairs (an odd one
    joins the last group). For every pixel each group gets a random
    perturbation p with |p| <= amplitude * min(group): a pair receives
    +p and -p, a triple +p, -p/2 and -p/2. The weight sum is preserved.
    """

    def __init__(self, matrix: Optional[ErrorMatrix] = None,
                 perturbation_amplitude: float = 0.5, seed: Optional[int] = None):
        super().__init__(matrix)
        self._amplitude = 0.5
        self.perturbation_amplitude = perturbation_amplitude
        self.seed = seed
        self._rng = np.random.RandomState(seed)
        self._groups: List[List[tuple]] = []
        self._weights: Optional[np.ndarray] = None

    @staticmethod
    def get_parameter_info():
        info = dict(MatrixErrorFilter.get_parameter_info())
        info.update({
            'perturbation_amplitude': {
                'type': 'float',
                'default': 0.5,
                'min': 0.0,
                'max': 1.0,
                'label': 'Perturbation Amplitude',
                'description': 'Relative size of weight perturbation'
            },
            'seed': {
                'type': 'int',
                'default': None,
                'min': 0,
                'max': 2**32 - 1,
                'label': 'Random Seed',
                'description': 'Seed for perturbation (empty = nondeterministic)'
            }
        })
        return info

    def get_current_parameters(self):
        return {
            'matrix': self.matrix.name,
            'perturbation_amplitude': self.perturbation_amplitude,
            'seed': self.seed
        }

    @property
    def perturbation_amplitude(self) -> float:
        return self._amplitude

    @perturbation_amplitude.setter
    def perturbation_amplitude(self, value: float):
        if 0.0 <= value <= 1.0:
            self._amplitude = value

    @property
    def weights(self) -> Optional[np.ndarray]:
        return self._weights

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        self._rng = np.random.RandomState(self.seed)
        self._groups = self._group_coefficients()
        self._perturb()

    def _group_coefficients(self) -> List[List[tuple]]:
        working = self.matrix.working
        positions = [p for p in self.matrix.coefficient_offsets() if working[p] != 0]
        positions.sort(key=lambda p: working[p])
        groups = [positions[i:i + 2] for i in range(0, len(positions) - 1, 2)]
        if len(positions) % 2 == 1:
            if groups:
                groups[-1].append(positions[-1])
            else:
                groups.append([positions[-1]])
        return groups

    def _perturb(self):
        working = self.matrix.working
        weights = working.astype(np.float64).copy()
        for group in self._groups:
            if len(group) < 2:
                continue
            smallest = min(working[p] for p in group)
            p = self._amplitude * smallest * self._rng.uniform(-1.0, 1.0)
            weights[group[0]] += p
            rest = -p / (len(group) - 1)
            for position in group[1:]:
                weights[position] += rest
        self._weights = weights

    def set_error(self, error: float, intensity: int = 0):
        self._diffuse(self.matrix, self._weights, error)

    def move_next(self):
        super().move_next()
        self._perturb()


class ErrorRecord(TableRecord):
    """Intensity table record holding an error matrix."""

    def __init__(self, key: int = 0, matrix: Optional[ErrorMatrix] = None):
        super().__init__(key)
        self.matrix = matrix if matrix is not None else ErrorMatrix.sample('floyd_steinberg')

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        self.matrix.init(run_info)


class DynamicMatrixErrorFilter(MatrixErrorFilter):
    """
    Matrix error filter whose matrix depends on the source intensity.

    The matrix for each pixel is looked up in an intensity table. The
    buffer is as tall as the tallest matrix in the table.
    """

    def __init__(self, table: Optional[IntensityTable] = None):
        self.table: IntensityTable = table if table is not None else IntensityTable(ErrorRecord())
        super().__init__(self.table.default_record.matrix)

    @staticmethod
    def get_parameter_info():
        return {
            'records': {
                'type': 'list',
                'default': [],
                'label': 'Matrix Table',
                'description': 'List of {"key": intensity, "matrix": sample name} entries'
            }
        }

    def get_current_parameters(self):
        return {'records': [{'key': r.key, 'matrix': r.matrix.name} for r in self.table.records()]}

    def _buffer_height(self) -> int:
        heights = [r.matrix.height for r in self.table.records()]
        heights.append(self.table.default_record.matrix.height)
        return max(heights)

    def init(self, run_info: ImageRunInfo):
        self.table.init(run_info)
        super().init(run_info)

    def set_error(self, error: float, intensity: int = 0):
        matrix = self.table.working_record(intensity).matrix
        self._diffuse(matrix, matrix.working, error)
