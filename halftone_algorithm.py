"""
Halftone algorithm: a halftone method wrapped with optional pre- and
post-processing.

Processing order:
    pre-resize -> dot gain correction -> sharpen -> METHOD -> post-resize -> smoothen

Every stage except the method may be None, in which case it is skipped.
All stages work on the same image object.
"""

import logging
from typing import Callable, List, Optional, Tuple

from components import ImageRunInfo, Module
from effects import DotGainCorrection, Resize, Sharpen, Smoothen
from halftone_methods import HalftoneMethod
from image_buffer import GrayscaleImage

logger = logging.getLogger(__name__)

__all__ = ['HalftoneAlgorithm']


class HalftoneAlgorithm(Module):
    """
    Complete halftoning pipeline.

    With `supersampling_enabled` and a pre-resize configured, the
    post-resize is replaced by the inverse of the pre-resize so that the
    halftone is computed at a higher resolution and scaled back.
    """

    def __init__(self, method: Optional[HalftoneMethod] = None,
                 pre_resize: Optional[Resize] = None,
                 pre_dot_gain: Optional[DotGainCorrection] = None,
                 pre_sharpen: Optional[Sharpen] = None,
                 post_resize: Optional[Resize] = None,
                 post_smoothen: Optional[Smoothen] = None,
                 supersampling_enabled: bool = False,
                 name: str = "", description: str = ""):
        super().__init__(name, description)
        self.method = method if method is not None else HalftoneMethod.create_default()
        self.pre_resize = pre_resize
        self.pre_dot_gain = pre_dot_gain
        self.pre_sharpen = pre_sharpen
        self.post_resize = post_resize
        self.post_smoothen = post_smoothen
        self.supersampling_enabled = supersampling_enabled

    @staticmethod
    def get_parameter_info():
        return {
            'supersampling_enabled': {
                'type': 'bool',
                'default': False,
                'label': 'Supersampling',
                'description': 'Scale back by the inverse of the pre-resize after halftoning'
            }
        }

    def _effective_post_resize(self) -> Optional[Resize]:
        if self.supersampling_enabled and self.pre_resize is not None:
            return Resize(self.pre_resize.factor, not self.pre_resize.forward,
                          self.pre_resize.interpolation)
        return self.post_resize

    def stages(self) -> List[Tuple[str, Module]]:
        """Configured stages in processing order (disabled stages omitted)."""
        candidates = [
            ('pre_resize', self.pre_resize),
            ('pre_dot_gain', self.pre_dot_gain),
            ('pre_sharpen', self.pre_sharpen),
            ('method', self.method),
            ('post_resize', self._effective_post_resize()),
            ('post_smoothen', self.post_smoothen),
        ]
        return [(label, stage) for label, stage in candidates if stage is not None]

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        for _, stage in self.stages():
            if stage is not self.method:
                stage.init(run_info)

    def run(self, image: GrayscaleImage,
            progress_callback: Optional[Callable[[float], None]] = None):
        """
        Run the whole pipeline on the image in place.

        Args:
            image: Image to be halftoned
            progress_callback: Optional function called with the method's progress (0.0-1.0)
        """
        self.init(ImageRunInfo(image.width, image.height))
        for label, stage in self.stages():
            logger.debug("Running stage %s: %s", label, type(stage).__name__)
            if stage is self.method:
                stage.run(image, progress_callback)
            else:
                stage.run(image)
        return image
