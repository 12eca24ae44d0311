"""Tests for halftone_algorithm."""
import numpy as np

from effects import GammaCorrection, Resize, Sharpen, Smoothen
from error_filters import MatrixErrorFilter
from halftone_algorithm import HalftoneAlgorithm
from halftone_methods import ThresholdHalftoneMethod


def recording_stage(base, log, label):
    class Recorded(base):
        def run(self, image, *args):
            log.append(label)
            return super().run(image, *args)
    return Recorded


def test_method_only_pipeline_matches_method(gradient):
    image = gradient(24, 10)
    reference = gradient(24, 10)
    HalftoneAlgorithm(ThresholdHalftoneMethod(error_filter=MatrixErrorFilter())).run(image)
    ThresholdHalftoneMethod(error_filter=MatrixErrorFilter()).run(reference)
    assert np.array_equal(image.to_array(), reference.to_array())


def test_default_method():
    algorithm = HalftoneAlgorithm()
    assert isinstance(algorithm.method, ThresholdHalftoneMethod)
    assert [label for label, _ in algorithm.stages()] == ['method']


def test_stage_order(gradient):
    log = []
    algorithm = HalftoneAlgorithm(
        method=recording_stage(ThresholdHalftoneMethod, log, 'method')(),
        pre_resize=recording_stage(Resize, log, 'pre_resize')(1.0),
        pre_dot_gain=recording_stage(GammaCorrection, log, 'pre_dot_gain')(1.2),
        pre_sharpen=recording_stage(Sharpen, log, 'pre_sharpen')(0.2),
        post_resize=recording_stage(Resize, log, 'post_resize')(1.0),
        post_smoothen=recording_stage(Smoothen, log, 'post_smoothen')(1.0),
    )
    algorithm.run(gradient(8, 8))
    assert log == ['pre_resize', 'pre_dot_gain', 'pre_sharpen', 'method', 'post_resize', 'post_smoothen']


def test_pre_resize_alone_changes_size(gradient):
    image = gradient(10, 7)
    HalftoneAlgorithm(pre_resize=Resize(2.0)).run(image)
    assert (image.width, image.height) == (20, 14)


def test_supersampling_restores_size(gradient):
    image = gradient(10, 7)
    algorithm = HalftoneAlgorithm(pre_resize=Resize(3.0), post_resize=Resize(5.0),
                                  supersampling_enabled=True)
    algorithm.run(image)
    assert (image.width, image.height) == (10, 7)


def test_supersampling_without_pre_resize_uses_post_resize(gradient):
    image = gradient(10, 7)
    HalftoneAlgorithm(post_resize=Resize(2.0), supersampling_enabled=True).run(image)
    assert (image.width, image.height) == (20, 14)


def test_progress_is_forwarded(gradient):
    reports = []
    HalftoneAlgorithm(pre_sharpen=Sharpen(0.5)).run(gradient(16, 16), reports.append)
    assert reports[-1] == 1.0


def test_output_is_binary_after_method(gradient):
    image = gradient(16, 16)
    result = HalftoneAlgorithm(pre_dot_gain=GammaCorrection(1.5)).run(image)
    assert result is image
    assert set(np.unique(image.to_array()).tolist()) <= {0, 255}
