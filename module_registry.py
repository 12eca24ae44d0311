"""
Explicit registry of halftoning modules.

Maps stable type tags (as used in job files) to factories. A registry is
an ordinary object: create one with create_default_registry() and pass it
to whoever needs to build modules from plain dictionaries.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from PIL import Image

from components import Module
from effects import GammaCorrection, NoiseEffect, PixelizeEffect, Resize, Sharpen, Smoothen
from error_filters import (DynamicMatrixErrorFilter, ErrorRecord, MatrixErrorFilter,
                           PerturbedErrorFilter, RandomizedMatrixErrorFilter, VectorErrorFilter)
from halftone_algorithm import HalftoneAlgorithm
from halftone_methods import SFCClusteringMethod, ThresholdHalftoneMethod
from intensity_table import IntensityTable
from matrices import ErrorMatrix, ThresholdMatrix
from scanning_order import HilbertScanningOrder, ScanlineScanningOrder, SerpentineScanningOrder
from threshold_filters import (DynamicMatrixThresholdFilter, ImageGenerator, ImageThresholdFilter,
                               MatrixThresholdFilter, SpotFunction, SpotFunctionThresholdFilter,
                               SpotShape, ThresholdRecord)

logger = logging.getLogger(__name__)

__all__ = [
    'ModuleEntry',
    'ModuleRegistry',
    'create_default_registry',
    'build_algorithm',
]

CATEGORIES = ('method', 'threshold_filter', 'error_filter', 'scanning_order', 'effect')


@dataclass
class ModuleEntry:
    tag: str
    category: str
    factory: Callable[..., Module]
    parameter_info: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    submodules: Tuple[str, ...] = ()
    description: str = ""


class ModuleRegistry:
    """
    Registry of module factories keyed by type tag.

    create() merges the parameter defaults with the given overrides
    (unknown parameters are rejected) and builds nested submodules given
    as dictionaries with a "type" key.
    """

    def __init__(self):
        self._entries: Dict[str, ModuleEntry] = {}

    def register(self, tag: str, category: str, factory: Callable[..., Module],
                 parameter_info: Optional[Dict[str, Dict[str, Any]]] = None,
                 submodules: Sequence[str] = (), description: str = ""):
        if tag in self._entries:
            raise ValueError(f"Module tag already registered: {tag}")
        self._entries[tag] = ModuleEntry(tag, category, factory, dict(parameter_info or {}),
                                         tuple(submodules), description)

    def entry(self, tag: str) -> ModuleEntry:
        if tag not in self._entries:
            raise KeyError(f"Unknown module: {tag}. Available: {list(self._entries.keys())}")
        return self._entries[tag]

    def tags(self, category: Optional[str] = None) -> List[str]:
        return [tag for tag, entry in self._entries.items()
                if category is None or entry.category == category]

    def __contains__(self, tag) -> bool:
        return tag in self._entries

    def __len__(self):
        return len(self._entries)

    def create(self, tag: str, **params) -> Module:
        entry = self.entry(tag)
        unknown = set(params) - set(entry.parameter_info) - set(entry.submodules)
        if unknown:
            raise ValueError(f"Unknown parameters for '{tag}': {sorted(unknown)}")

        settings = {key: info['default'] for key, info in entry.parameter_info.items()}
        settings.update(params)
        for name in entry.submodules:
            value = settings.get(name)
            if isinstance(value, dict):
                settings[name] = self.build(value)
            elif isinstance(value, list):
                settings[name] = [self.build(v) if isinstance(v, dict) else v for v in value]
        logger.debug("Creating %s with %s", tag, settings)
        return entry.factory(**settings)

    def build(self, config: Dict[str, Any]) -> Module:
        """Create a module from a dictionary with a "type" key and parameters."""
        config = dict(config)
        if 'type' not in config:
            raise ValueError(f"Module configuration lacks a 'type': {config}")
        tag = config.pop('type')
        return self.create(tag, **config)

    def describe(self) -> Dict[str, List[ModuleEntry]]:
        """Entries grouped by category, for listings."""
        grouped: Dict[str, List[ModuleEntry]] = {}
        for entry in self._entries.values():
            grouped.setdefault(entry.category, []).append(entry)
        return grouped


# -------------------- Parameter Conversion --------------------

def _threshold_matrix(value) -> ThresholdMatrix:
    if isinstance(value, ThresholdMatrix):
        return value
    if isinstance(value, str):
        return ThresholdMatrix.sample(value)
    if isinstance(value, dict):
        return ThresholdMatrix(value['definition'], value.get('incremental', True))
    return ThresholdMatrix(value)


def _error_matrix(value) -> ErrorMatrix:
    if isinstance(value, ErrorMatrix):
        return value
    if isinstance(value, str):
        return ErrorMatrix.sample(value)
    if isinstance(value, dict):
        return ErrorMatrix(value['definition'], value.get('source_offset_x', 0), value.get('divisor'))
    return ErrorMatrix(value)


def _spot_function(shape, angle, distance, seed) -> SpotFunction:
    return SpotFunction(SpotShape(shape), angle, distance, seed)


def _threshold_table(records) -> IntensityTable:
    return IntensityTable(ThresholdRecord(), [
        ThresholdRecord(r['key'], _threshold_matrix(r['matrix']), r.get('noise_amplitude', 0.0))
        for r in records
    ])


def _error_table(records) -> IntensityTable:
    return IntensityTable(ErrorRecord(), [
        ErrorRecord(r['key'], _error_matrix(r['matrix'])) for r in records
    ])


def _image_threshold_filter(shape, angle, distance, seed, effects=None, source=None):
    if source:
        with Image.open(source) as img:
            return ImageThresholdFilter(source_image=img.convert('L'))
    generator = ImageGenerator(_spot_function(shape, angle, distance, seed), effects or [])
    return ImageThresholdFilter(image_generator=generator)


# -------------------- Default Registry --------------------

def create_default_registry() -> ModuleRegistry:
    """Registry populated with every built-in module."""
    registry = ModuleRegistry()

    # scanning orders
    registry.register('scanline', 'scanning_order', ScanlineScanningOrder,
                      description="Row by row, left to right")
    registry.register('serpentine', 'scanning_order', SerpentineScanningOrder,
                      description="Rows alternating direction")
    registry.register('hilbert', 'scanning_order', HilbertScanningOrder,
                      description="Hilbert space-filling curve")

    # threshold filters
    registry.register('matrix_threshold', 'threshold_filter',
                      lambda matrix: MatrixThresholdFilter(_threshold_matrix(matrix)),
                      MatrixThresholdFilter.get_parameter_info(),
                      description="Tiled threshold matrix")
    registry.register('dynamic_matrix_threshold', 'threshold_filter',
                      lambda records, noise_enabled, seed: DynamicMatrixThresholdFilter(
                          _threshold_table(records), noise_enabled, seed),
                      DynamicMatrixThresholdFilter.get_parameter_info(),
                      description="Threshold matrix selected by intensity")
    registry.register('spot_function_threshold', 'threshold_filter',
                      lambda shape, angle, distance, seed: SpotFunctionThresholdFilter(
                          _spot_function(shape, angle, distance, seed)),
                      SpotFunctionThresholdFilter.get_parameter_info(),
                      description="Screening with a spot function")
    image_info = dict(SpotFunction.get_parameter_info())
    image_info['source'] = {
        'type': 'str',
        'default': None,
        'label': 'Source Image',
        'description': 'Side-loaded threshold image (overrides the generator)'
    }
    registry.register('image_threshold', 'threshold_filter', _image_threshold_filter,
                      image_info, submodules=('effects',),
                      description="Threshold image generated by a spot function and effects")

    # error filters
    registry.register('vector_error', 'error_filter',
                      lambda matrix: VectorErrorFilter(_error_matrix(matrix)),
                      VectorErrorFilter.get_parameter_info(),
                      description="Error diffusion along the scan sequence")
    registry.register('matrix_error', 'error_filter',
                      lambda matrix: MatrixErrorFilter(_error_matrix(matrix)),
                      MatrixErrorFilter.get_parameter_info(),
                      description="2-D error diffusion matrix")
    registry.register('randomized_matrix_error', 'error_filter',
                      lambda matrix, randomize_coeff_count, seed: RandomizedMatrixErrorFilter(
                          _error_matrix(matrix), randomize_coeff_count, seed),
                      RandomizedMatrixErrorFilter.get_parameter_info(),
                      description="Error diffusion with random weights")
    registry.register('perturbed_error', 'error_filter',
                      lambda matrix, perturbation_amplitude, seed: PerturbedErrorFilter(
                          _error_matrix(matrix), perturbation_amplitude, seed),
                      PerturbedErrorFilter.get_parameter_info(),
                      description="Error diffusion with perturbed weights")
    registry.register('dynamic_matrix_error', 'error_filter',
                      lambda records: DynamicMatrixErrorFilter(_error_table(records)),
                      DynamicMatrixErrorFilter.get_parameter_info(),
                      description="Error matrix selected by intensity")

    # methods
    registry.register('threshold', 'method', ThresholdHalftoneMethod,
                      ThresholdHalftoneMethod.get_parameter_info(),
                      submodules=('threshold_filter', 'error_filter', 'scanning_order'),
                      description="Thresholding with optional error diffusion")
    registry.register('sfc_clustering', 'method', SFCClusteringMethod,
                      SFCClusteringMethod.get_parameter_info(),
                      submodules=('error_filter', 'scanning_order'),
                      description="Adaptive clustering along a space-filling curve")

    # effects
    registry.register('resize', 'effect', Resize, Resize.get_parameter_info(),
                      description="Scale by a factor")
    registry.register('gamma', 'effect', GammaCorrection, GammaCorrection.get_parameter_info(),
                      description="Gamma (dot gain) correction")
    registry.register('sharpen', 'effect', Sharpen, Sharpen.get_parameter_info(),
                      description="Unsharp mask")
    registry.register('smoothen', 'effect', Smoothen, Smoothen.get_parameter_info(),
                      description="Gaussian blur and levels")
    registry.register('noise', 'effect', NoiseEffect, NoiseEffect.get_parameter_info(),
                      description="Gaussian noise")
    registry.register('pixelize', 'effect', PixelizeEffect, PixelizeEffect.get_parameter_info(),
                      description="Block averaging")

    return registry


def build_algorithm(registry: ModuleRegistry, config: Dict[str, Any]) -> HalftoneAlgorithm:
    """
    Build a pipeline from the "algorithm" section of a job file.

    Example:
        {"method": {"type": "sfc_clustering", "max_cell_size": 9},
         "pre": {"resize": {"factor": 2.0}, "dot_gain": {"gamma": 1.2}},
         "post": {"smoothen": {"radius": 3}},
         "supersampling": true}
    """
    def stage(section: Dict[str, Any], key: str, default_type: str):
        value = section.get(key)
        if value is None:
            return None
        value = dict(value)
        value.setdefault('type', default_type)
        return registry.build(value)

    method_config = config.get('method') or {'type': 'threshold'}
    pre = config.get('pre') or {}
    post = config.get('post') or {}
    return HalftoneAlgorithm(
        method=registry.build(method_config),
        pre_resize=stage(pre, 'resize', 'resize'),
        pre_dot_gain=stage(pre, 'dot_gain', 'gamma'),
        pre_sharpen=stage(pre, 'sharpen', 'sharpen'),
        post_resize=stage(post, 'resize', 'resize'),
        post_smoothen=stage(post, 'smoothen', 'smoothen'),
        supersampling_enabled=bool(config.get('supersampling', False)),
    )
