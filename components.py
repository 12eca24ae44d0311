"""
Base building blocks shared by every configurable halftoning module.
A module is a pluggable component: it carries a name and description,
can be deep-copied, and is initialized with run-time image information
right before an algorithm runs.
"""

import copy
from dataclasses import dataclass
from typing import Any, Dict, Optional

__all__ = [
    'ImageRunInfo',
    'Module',
]


@dataclass
class ImageRunInfo:
    """Run-time information about the image an algorithm is about to process."""
    width: int
    height: int
    scanning_order: Optional[Any] = None


class Module:
    """
    Base class for configurable modules which can be plugged together
    to form various halftoning algorithms.

    Parameters and submodules are plain attributes or properties.
    Subclasses describe their parameters via get_parameter_info() so that
    front-ends (CLI, registry) can build instances from plain dictionaries.
    """

    def __init__(self, name: str = "", description: str = ""):
        self.name = name
        self.description = description

    @staticmethod
    def get_parameter_info() -> Dict[str, Dict[str, Any]]:
        """
        Returns metadata about configurable parameters of this module.
        """
        return {}

    def get_current_parameters(self) -> Dict[str, Any]:
        """Returns current parameter values."""
        return {key: getattr(self, key) for key in self.get_parameter_info()}

    def init(self, run_info: ImageRunInfo):
        """
        Initialize this module and its submodules.

        Temporary run-time state is (re)created here and information
        about the image the whole algorithm runs on is propagated down.
        """

    def deep_copy(self) -> 'Module':
        """Copy this module together with all its submodules."""
        return copy.deepcopy(self)

    def __repr__(self):
        label = f" '{self.name}'" if self.name else ""
        return f"<{type(self).__name__}{label}>"
