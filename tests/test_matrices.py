"""Tests for matrices."""
import numpy as np
import pytest

from matrices import ErrorMatrix, ThresholdMatrix, generate_riemersma_coefficients, generate_riemersma_matrix


@pytest.mark.parametrize("matrix", [
    ThresholdMatrix.bayer(2),
    ThresholdMatrix.clustered_dot(),
    ErrorMatrix.sample('floyd_steinberg'),
    ErrorMatrix.sample('jarvis_judice_ninke'),
])
def test_indexing_wraps_around(matrix):
    height, width = matrix.working.shape
    for y in range(-5, 10):
        for x in range(-5, 10):
            assert matrix[y, x] == matrix[y + height, x] == matrix[y, x + width]


def test_definition_is_copied():
    source = np.array([[0, 0, 7], [3, 5, 1]])
    matrix = ErrorMatrix(source, 1)
    source[0, 2] = 100
    assert matrix.definition[0, 2] == 7


def test_definition_must_be_2d():
    with pytest.raises(ValueError):
        ThresholdMatrix([1, 2, 3])


def test_definition_must_not_be_none():
    with pytest.raises(ValueError):
        ErrorMatrix(None)
    matrix = ThresholdMatrix.bayer(1)
    with pytest.raises(ValueError):
        matrix.definition = None
    assert matrix.definition.shape == (2, 2)
    assert ThresholdMatrix().definition.tolist() == [[128]]


def test_error_matrix_default_divisor_is_coefficient_sum():
    matrix = ErrorMatrix([[0, 0, 7], [3, 5, 1]], 1)
    assert matrix.divisor == 16
    assert matrix[0, 2] == pytest.approx(7 / 16)


def test_error_matrix_weights_sum_to_one():
    # Atkinson deliberately drops a quarter of the error
    for name in set(ErrorMatrix.sample_names()) - {'atkinson'}:
        matrix = ErrorMatrix.sample(name)
        total = sum(matrix.working[p] for p in matrix.coefficient_offsets())
        assert total == pytest.approx(1.0), name


def test_atkinson_keeps_three_quarters():
    matrix = ErrorMatrix.sample('atkinson')
    assert sum(matrix.working[p] for p in matrix.coefficient_offsets()) == pytest.approx(0.75)


def test_error_matrix_divisor_change_recomputes_working():
    matrix = ErrorMatrix.sample('floyd_steinberg')
    matrix.divisor = 32
    assert matrix[0, 2] == pytest.approx(7 / 32)


def test_error_matrix_source_offset_must_fit():
    with pytest.raises(ValueError):
        ErrorMatrix([[0, 1]], 5)


def test_apply_reports_offsets_relative_to_source():
    calls = []
    ErrorMatrix.sample('floyd_steinberg').apply(lambda dy, dx, w: calls.append((dy, dx, w)))
    assert [(dy, dx) for dy, dx, _ in calls] == [(0, 1), (1, -1), (1, 0), (1, 1)]
    assert [w for _, _, w in calls] == pytest.approx([7 / 16, 3 / 16, 5 / 16, 1 / 16])


def test_coefficient_count_and_capacity():
    matrix = ErrorMatrix.sample('fan')
    assert matrix.coefficient_count == 4
    assert matrix.coefficient_capacity == 8 - 2 - 1


def test_riemersma_coefficients_decay():
    coeffs = generate_riemersma_coefficients(16, 16)
    assert coeffs[0] == pytest.approx(1.0)
    assert coeffs[-1] == pytest.approx(1 / 16)
    assert all(a > b for a, b in zip(coeffs, coeffs[1:]))


def test_riemersma_matrix_layout():
    matrix = generate_riemersma_matrix(16, 16, 3)
    assert matrix.definition.shape == (1, 17)
    assert matrix.definition[0, 0] == 0
    assert matrix.definition[0, 1] == 1000
    assert matrix.source_offset_x == 0


def test_bayer_contains_each_rank_once():
    matrix = ThresholdMatrix.bayer(3)
    assert matrix.definition.shape == (8, 8)
    assert sorted(matrix.definition.ravel().tolist()) == list(range(1, 65))


def test_bayer_2x2_thresholds():
    matrix = ThresholdMatrix.bayer(1)
    assert matrix.definition.tolist() == [[1, 3], [4, 2]]
    assert matrix.working.tolist() == [[51, 153], [204, 102]]


def test_bayer_magnitude_range():
    assert ThresholdMatrix.bayer(0).working.tolist() == [[0]]
    with pytest.raises(ValueError):
        ThresholdMatrix.bayer(9)


def test_non_incremental_matrix_is_used_as_is():
    matrix = ThresholdMatrix([[10, 250]], incremental=False)
    assert matrix.working.tolist() == [[10, 250]]


def test_samples_are_named_by_key():
    assert ThresholdMatrix.sample('bayer_2').name == 'bayer_2'
    assert ErrorMatrix.sample('stucki').name == 'stucki'
    with pytest.raises(ValueError):
        ThresholdMatrix.sample('no_such_matrix')


def test_clone_is_independent():
    matrix = ErrorMatrix.sample('burkes')
    clone = matrix.clone()
    clone.divisor = 1
    assert matrix.divisor == 16
