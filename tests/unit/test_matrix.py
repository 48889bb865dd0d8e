import numpy as np
import pytest

from digitscanner.core.matrix import Matrix, ShapeError


def _m(values) -> Matrix:
    return Matrix.from_array(np.asarray(values, dtype=np.float64))


def test_new_matrix_is_zero_filled_and_owning():
    m = Matrix(2, 3)
    assert m.shape == (2, 3)
    assert m.owns_data
    assert np.array_equal(m.to_array(), np.zeros((2, 3)))


@pytest.mark.parametrize("dims", [(0, 1), (1, 0), (-1, 2)])
def test_non_positive_dimensions_rejected(dims):
    with pytest.raises(ValueError):
        Matrix(*dims)


def test_integer_dtype_rejected():
    with pytest.raises(TypeError):
        Matrix(2, 2, dtype=np.int32)


def test_from_array_makes_column_of_1d_input():
    m = Matrix.from_array(np.array([1.0, 2.0, 3.0]))
    assert m.shape == (3, 1)
    assert m[2, 0] == 3.0


def test_from_array_keeps_float32():
    m = Matrix.from_array(np.ones((2, 2)), dtype=np.dtype(np.float32))
    assert m.dtype == np.float32


def test_clone_is_independent():
    a = _m([[1.0, 2.0], [3.0, 4.0]])
    b = a.clone()
    b[0, 0] = 10.0
    assert a[0, 0] == 1.0
    assert b.owns_data


def test_view_writes_through_and_free_detaches_only_the_view():
    a = _m([[1.0, 2.0], [3.0, 4.0]])
    v = a.view()
    assert not v.owns_data
    v[1, 1] = -1.0
    v += _m([[1.0, 1.0], [1.0, 1.0]])
    assert a[1, 1] == 0.0
    assert a[0, 0] == 2.0
    v.free()
    assert v.is_freed
    assert not a.is_freed
    assert a[0, 1] == 3.0


def test_freed_matrix_cannot_be_used():
    a = Matrix(1, 1)
    a.free()
    with pytest.raises(ValueError, match="freed"):
        a.shape  # noqa: B018


def test_element_access_out_of_range():
    a = Matrix(2, 2)
    with pytest.raises(IndexError):
        a[2, 0]
    with pytest.raises(IndexError):
        a[0, -1] = 1.0


def test_add_and_subtract_require_same_shape():
    a = Matrix(2, 1, fill=1.0)
    with pytest.raises(ShapeError):
        a += Matrix(1, 2)
    with pytest.raises(ShapeError):
        a -= Matrix(3, 1)


def test_in_place_product_replaces_storage():
    a = _m([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]])
    a *= _m([[1.0], [1.0]])
    assert a.shape == (3, 1)
    assert np.array_equal(a.to_array(), np.array([[3.0], [7.0], [11.0]]))


def test_product_shape_mismatch():
    a = Matrix(2, 3)
    with pytest.raises(ShapeError):
        a *= Matrix(2, 1)
    with pytest.raises(ShapeError):
        Matrix(2, 3) @ Matrix(2, 3)


def test_scalar_scaling_and_hadamard():
    a = _m([[1.0, -2.0]])
    a *= 3.0
    a.hadamard(_m([[2.0, 0.5]]))
    assert np.array_equal(a.to_array(), np.array([[6.0, -3.0]]))


def test_transpose_variants():
    a = _m([[1.0, 2.0, 3.0]])
    t = a.transpose()
    assert t.shape == (3, 1)
    assert a.shape == (1, 3)
    a.self_transpose()
    assert a.shape == (3, 1)
    assert a.allclose(t)


def test_sigmoid_in_place():
    a = _m([[0.0], [1000.0], [-1000.0]])
    a.sigmoid()
    assert a[0, 0] == pytest.approx(0.5)
    assert a[1, 0] == pytest.approx(1.0)
    assert a[2, 0] == pytest.approx(0.0)


def test_argmax_picks_lowest_index_on_ties():
    assert _m([[0.1], [0.9], [0.9]]).argmax() == 1
    with pytest.raises(ShapeError):
        Matrix(2, 2).argmax()


def test_assign_checks_shape():
    a = Matrix(2, 1)
    a.assign(np.array([1.0, 2.0]))
    assert a[1, 0] == 2.0
    with pytest.raises(ShapeError):
        a.assign(np.zeros((1, 2)))


def test_array_conversion_copies_unless_asked_not_to():
    a = _m([[1.0, 2.0]])
    copied = np.asarray(a)
    copied[0, 0] = 9.0
    assert a[0, 0] == 1.0
    shared = a.__array__(copy=False)
    shared[0, 1] = 7.0
    assert a[0, 1] == 7.0
    assert a.__array__(np.float32).dtype == np.float32
    with pytest.raises(ValueError):
        a.__array__(np.float32, copy=False)
