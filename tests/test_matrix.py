"""
test_matrix.py
~~~~~~~~~~~~~~

Unit tests for the immutable Matrix type.
"""

import pytest
import numpy as np

from dense_nn.errors import ShapeMismatchError
from dense_nn.matrix import Matrix


@pytest.fixture
def rng():
    """Seeded generator so random matrices are reproducible."""
    return np.random.default_rng(42)


@pytest.mark.unit
class TestMatrixConstruction:
    """Test constructors and shape validation."""

    def test_zeros(self):
        """Test that zeros() has the requested shape and only zeros."""
        m = Matrix.zeros(2, 3)
        assert m.shape == (2, 3)
        assert m.to_list() == [[0.0, 0.0, 0.0], [0.0, 0.0, 0.0]]

    def test_zero_dimension_rejected(self):
        """Test that non-positive dimensions raise ShapeMismatchError."""
        with pytest.raises(ShapeMismatchError):
            Matrix.zeros(0, 3)

    def test_from_data(self):
        """Test building a matrix from nested lists."""
        m = Matrix.from_data([[1, 2], [3, 4], [5, 6]])
        assert m.rows == 3
        assert m.cols == 2
        assert m.row(1) == [3.0, 4.0]

    def test_from_data_ragged(self):
        """Test that ragged rows are rejected."""
        with pytest.raises(ShapeMismatchError, match="Row 1"):
            Matrix.from_data([[1, 2, 3], [4, 5]])

    def test_from_data_empty(self):
        """Test that an empty row list is rejected."""
        with pytest.raises(ShapeMismatchError):
            Matrix.from_data([])

    def test_constructor_rejects_1d(self):
        """Test that a flat list is not accepted as a matrix."""
        with pytest.raises(ShapeMismatchError):
            Matrix([1.0, 2.0])

    def test_row_vector(self):
        """Test that row_vector() builds a 1 x n matrix."""
        m = Matrix.row_vector([0.5, 1.5, 2.5])
        assert m.shape == (1, 3)

    def test_random_range(self, rng):
        """Test that random() draws from [-1, 1)."""
        m = Matrix.random(20, 20, rng=rng)
        assert np.all(m.data >= -1.0)
        assert np.all(m.data < 1.0)

    def test_he_statistics(self, rng):
        """Test that He init is zero-mean with std sqrt(2 / cols)."""
        m = Matrix.he(200, 50, rng=rng)
        assert abs(float(np.mean(m.data))) < 0.02
        assert float(np.std(m.data)) == pytest.approx(np.sqrt(2.0 / 50), rel=0.05)

    def test_xavier_statistics(self, rng):
        """Test that Xavier init is zero-mean with std sqrt(1 / cols)."""
        m = Matrix.xavier(200, 50, rng=rng)
        assert abs(float(np.mean(m.data))) < 0.02
        assert float(np.std(m.data)) == pytest.approx(np.sqrt(1.0 / 50), rel=0.05)

    def test_init_is_finite(self, rng):
        """Test that Box-Muller sampling never produces inf or nan."""
        m = Matrix.he(100, 100, rng=rng)
        assert np.all(np.isfinite(m.data))


@pytest.mark.unit
class TestMatrixOperations:
    """Test arithmetic and shape rules."""

    def test_add_and_subtract(self):
        """Test element-wise addition and subtraction."""
        a = Matrix.from_data([[1, 2], [3, 4]])
        b = Matrix.from_data([[10, 20], [30, 40]])
        assert (a + b).to_list() == [[11, 22], [33, 44]]
        assert (b - a).to_list() == [[9, 18], [27, 36]]

    def test_add_shape_mismatch(self):
        """Test that adding different shapes fails instead of broadcasting."""
        a = Matrix.zeros(1, 3)
        b = Matrix.zeros(2, 3)
        with pytest.raises(ShapeMismatchError):
            a + b

    def test_matmul(self):
        """Test the matrix product."""
        a = Matrix.from_data([[1, 2, 3]])
        b = Matrix.from_data([[1], [0], [2]])
        assert (a @ b).to_list() == [[7.0]]

    def test_matmul_shape_mismatch(self):
        """Test that inner dimensions must agree."""
        with pytest.raises(ShapeMismatchError, match="3 != 2"):
            Matrix.zeros(2, 3) @ Matrix.zeros(2, 3)

    def test_transpose_of_product(self, rng):
        """Test that (AB)^T equals B^T A^T."""
        a = Matrix.random(3, 4, rng=rng)
        b = Matrix.random(4, 2, rng=rng)
        assert (a @ b).transpose().allclose(b.transpose() @ a.transpose())

    def test_transpose_shape(self):
        """Test that transpose swaps dimensions."""
        assert Matrix.zeros(2, 5).T.shape == (5, 2)

    def test_hadamard(self):
        """Test the element-wise product."""
        a = Matrix.from_data([[1, 2], [3, 4]])
        b = Matrix.from_data([[2, 0], [1, -1]])
        assert a.hadamard(b).to_list() == [[2, 0], [3, -4]]

    def test_hadamard_shape_mismatch(self):
        """Test that the element-wise product requires equal shapes."""
        with pytest.raises(ShapeMismatchError):
            Matrix.zeros(1, 2).hadamard(Matrix.zeros(2, 1))

    def test_scale(self):
        """Test scalar multiplication."""
        assert Matrix.from_data([[1, -2]]).scale(0.5).to_list() == [[0.5, -1.0]]

    def test_map_preserves_shape(self):
        """Test that map() applies a vectorized function."""
        m = Matrix.from_data([[1, 4], [9, 16]]).map(np.sqrt)
        assert m.to_list() == [[1, 2], [3, 4]]

    def test_map_rejects_shape_change(self):
        """Test that map() fails if the function changes the shape."""
        with pytest.raises(ShapeMismatchError):
            Matrix.zeros(2, 2).map(lambda values: values.ravel())

    def test_operations_return_new_matrices(self):
        """Test that operands are never modified."""
        a = Matrix.from_data([[1, 2]])
        b = Matrix.from_data([[3, 4]])
        _ = a + b
        assert a.to_list() == [[1, 2]]
        assert b.to_list() == [[3, 4]]

    def test_data_is_read_only(self):
        """Test that the backing array cannot be written through."""
        m = Matrix.zeros(2, 2)
        with pytest.raises(ValueError):
            m.data[0, 0] = 1.0

    def test_equality(self):
        """Test value equality."""
        assert Matrix.from_data([[1, 2]]) == Matrix.from_data([[1.0, 2.0]])
        assert Matrix.from_data([[1, 2]]) != Matrix.from_data([[1], [2]])
