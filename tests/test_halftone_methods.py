"""Tests for halftone_methods."""
import numpy as np
import pytest

from error_filters import MatrixErrorFilter, VectorErrorFilter
from halftone_methods import HalftoneMethod, SFCClusteringMethod, ThresholdHalftoneMethod, cluster_start
from image_buffer import GrayscaleImage
from matrices import ErrorMatrix, ThresholdMatrix
from scanning_order import HilbertScanningOrder, ScanlineScanningOrder, SerpentineScanningOrder
from threshold_filters import MatrixThresholdFilter


def binary(array):
    return set(np.unique(array).tolist()) <= {0, 255}


# -------------------- Thresholding --------------------

def test_default_method_is_threshold():
    assert isinstance(HalftoneMethod.create_default(), ThresholdHalftoneMethod)


def test_plain_threshold(gradient):
    image = gradient(16, 3)
    source = image.to_array()
    ThresholdHalftoneMethod().run(image)
    assert np.array_equal(image.to_array(), np.where(source < 128, 0, 255))


def test_error_diffusion_conserves_intensity():
    row = np.array([[30, 200, 90, 128, 17, 250, 64, 140, 99, 180]])
    image = GrayscaleImage.from_array(row)
    method = ThresholdHalftoneMethod(error_filter=VectorErrorFilter())
    method.run(image)
    result = image.to_array()
    assert binary(result)
    assert abs(int(result.sum()) - int(row.sum())) <= 255


@pytest.mark.parametrize("order", [ScanlineScanningOrder(), SerpentineScanningOrder()])
def test_floyd_steinberg_mid_gray(flat, order):
    image = flat(32, 32, 128)
    ThresholdHalftoneMethod(error_filter=MatrixErrorFilter(), scanning_order=order).run(image)
    result = image.to_array()
    assert binary(result)
    assert 0.4 <= (result == 255).mean() <= 0.6


def test_ordered_dither_mid_gray(flat):
    image = flat(8, 8, 128)
    ThresholdHalftoneMethod(MatrixThresholdFilter(ThresholdMatrix.bayer(3))).run(image)
    assert (image.to_array() == 255).sum() == 32


def test_matrix_error_filter_along_curve_is_skipped(gradient):
    with_filter = gradient(12, 9)
    without_filter = gradient(12, 9)
    ThresholdHalftoneMethod(error_filter=MatrixErrorFilter(),
                            scanning_order=HilbertScanningOrder()).run(with_filter)
    ThresholdHalftoneMethod(scanning_order=HilbertScanningOrder()).run(without_filter)
    assert np.array_equal(with_filter.to_array(), without_filter.to_array())


def test_disabled_error_filter(gradient):
    image = gradient(20, 4)
    reference = gradient(20, 4)
    ThresholdHalftoneMethod(error_filter=MatrixErrorFilter(), use_error_filter=False).run(image)
    ThresholdHalftoneMethod().run(reference)
    assert np.array_equal(image.to_array(), reference.to_array())


def test_threshold_progress(gradient):
    reports = []
    ThresholdHalftoneMethod().run(gradient(30, 30), reports.append)
    assert reports and reports[-1] == 1.0


# -------------------- SFC Clustering --------------------

def test_cluster_start():
    assert cluster_start(2, 3, 5) == 1
    assert cluster_start(0, 3, 5) == 0
    assert cluster_start(4, 3, 5) == 2
    assert cluster_start(3, 0, 5) == 3
    assert cluster_start(1, 5, 5) == 0


def test_allowed_cell_size():
    method = SFCClusteringMethod(max_cell_size=7, min_cell_size=2)
    assert method.allowed_cell_size(0.0) == 7
    assert method.allowed_cell_size(1.0) == 2
    assert method.allowed_cell_size(-1.0) == 2
    assert 2 <= method.allowed_cell_size(0.5) <= 7


def test_power_of_two_cell_size_is_exact():
    assert SFCClusteringMethod(max_cell_size=8).allowed_cell_size(0.0) == 8


def test_cell_size_setters_ignore_invalid_values():
    method = SFCClusteringMethod(max_cell_size=6, min_cell_size=3)
    method.max_cell_size = 0
    method.min_cell_size = 10
    assert (method.max_cell_size, method.min_cell_size) == (6, 3)
    method.max_cell_size = 2
    assert method.min_cell_size == 2


def test_sfc_needs_space_filling_curve():
    with pytest.raises(TypeError):
        SFCClusteringMethod(scanning_order=ScanlineScanningOrder())
    method = SFCClusteringMethod()
    with pytest.raises(TypeError):
        method.scanning_order = SerpentineScanningOrder()


@pytest.mark.parametrize("size", [(1, 1), (3, 5), (8, 8), (13, 6), (7, 1)])
@pytest.mark.parametrize("adaptive", [True, False])
def test_sfc_writes_every_pixel_once(recording, size, adaptive):
    width, height = size
    rng = np.random.RandomState(0)
    image = recording(rng.randint(0, 256, size=(height, width)))
    SFCClusteringMethod(use_adaptive_clustering=adaptive).run(image)
    assert set(image.writes) == {(x, y) for x in range(width) for y in range(height)}
    assert set(image.writes.values()) == {1}
    assert binary(image.to_array())


def test_sfc_extremes(flat):
    white = flat(9, 9, 255)
    black = flat(9, 9, 0)
    SFCClusteringMethod().run(white)
    SFCClusteringMethod().run(black)
    assert (white.to_array() == 255).all()
    assert (black.to_array() == 0).all()


def test_sfc_fixed_cells_mid_gray(flat):
    image = flat(4, 4, 128)
    method = SFCClusteringMethod(use_error_filter=False, max_cell_size=4,
                                 use_cluster_positioning=False, use_adaptive_clustering=False)
    method.run(image)
    result = image.to_array()
    assert (result == 0).sum() == 8
    # without positioning each cluster starts the cell
    coords = list(HilbertScanningOrder().coordinates(4, 4))
    values = [result[y, x] for x, y in coords]
    assert values == [0, 0, 255, 255] * 4


def test_sfc_error_filter_tracks_mean(flat):
    image = flat(16, 16, 64)
    SFCClusteringMethod(error_filter=VectorErrorFilter(ErrorMatrix.sample('next_pixel'))).run(image)
    assert abs((image.to_array() == 255).mean() - 64 / 255) < 0.05


def test_sfc_progress(gradient):
    reports = []
    SFCClusteringMethod().run(gradient(20, 20), reports.append)
    assert reports[-1] == 1.0
    assert reports == sorted(reports)


def test_sfc_empty_image():
    image = GrayscaleImage.blank(0, 4)
    SFCClusteringMethod().run(image)
    assert (image.width, image.height) == (0, 4)


def along_curve(values, width, height):
    """Image whose pixels take `values` in Hilbert visiting order."""
    array = np.zeros((height, width), dtype=np.uint8)
    coords = list(HilbertScanningOrder().coordinates(width, height))
    for (x, y), value in zip(coords, values):
        array[y, x] = value
    return GrayscaleImage.from_array(array), coords


def read_along_curve(image, coords):
    result = image.to_array()
    return [int(result[y, x]) for x, y in coords]


@pytest.mark.parametrize("values,expected", [
    ([200, 150, 0, 100, 60], [255, 0, 0, 0, 255]),
    # two equally dark pixels: the run centers on the first one
    ([50, 0, 0, 200, 255], [0, 0, 0, 255, 255]),
])
def test_sfc_cluster_centers_on_darkest_pixel(values, expected):
    image, coords = along_curve(values, 5, 1)
    SFCClusteringMethod(use_error_filter=False, max_cell_size=5,
                        use_adaptive_clustering=False).run(image)
    assert read_along_curve(image, coords) == expected


def test_sfc_adaptive_cell_keeps_collected_pixels():
    # the edge at the fifth pixel closes the four-pixel cell with the edge pixel in it
    image, coords = along_curve([200, 200, 200, 200, 0, 0, 0, 0], 8, 1)
    SFCClusteringMethod(use_error_filter=False, max_cell_size=8, min_cell_size=2,
                        use_cluster_positioning=False).run(image)
    assert read_along_curve(image, coords) == [0, 0, 255, 255, 255, 0, 0, 0]


def test_deep_copy_is_independent():
    method = ThresholdHalftoneMethod(MatrixThresholdFilter(ThresholdMatrix.bayer(2)),
                                     MatrixErrorFilter(ErrorMatrix.sample('stucki')))
    copy = method.deep_copy()
    copy.threshold_filter.matrix.definition = [[5]]
    copy.error_filter.matrix.divisor = 1
    copy.use_error_filter = False
    assert method.threshold_filter.matrix.definition.shape == (4, 4)
    assert method.error_filter.matrix.divisor == 42
    assert method.use_error_filter
