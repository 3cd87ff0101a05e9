"""
matrix.py
~~~~~~~~~

Immutable dense matrix backed by a 2-D ``float64`` numpy array.

All operations return new matrices; there is no broadcasting. Shapes are
checked before any arithmetic and mismatches raise
:class:`~dense_nn.errors.ShapeMismatchError`.
"""

from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from .errors import ShapeMismatchError


class Matrix:
    """
    A dense ``rows x cols`` matrix of real numbers.

    Instances are read-only: the underlying array has its ``writeable``
    flag cleared, and every operator returns a fresh Matrix.
    """

    __slots__ = ('_data',)

    def __init__(self, data) -> None:
        """
        Build a matrix from any 2-D array-like value.

        Args:
            data: Nested sequence or ndarray with exactly two dimensions

        Raises:
            ShapeMismatchError: If ``data`` is not a non-empty 2-D array
        """
        try:
            array = np.array(data, dtype=np.float64)
        except ValueError as e:
            raise ShapeMismatchError(f"Matrix data is not rectangular: {e}") from e

        if array.ndim != 2 or array.shape[0] == 0 or array.shape[1] == 0:
            raise ShapeMismatchError(
                f"Matrix data must be a non-empty 2-D array, got shape {array.shape}"
            )
        array.flags.writeable = False
        self._data = array

    @classmethod
    def _wrap(cls, array: np.ndarray) -> 'Matrix':
        """Adopt a freshly computed array without copying it."""
        matrix = object.__new__(cls)
        array.flags.writeable = False
        matrix._data = array
        return matrix

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @staticmethod
    def _check_dims(rows: int, cols: int) -> None:
        if rows < 1 or cols < 1:
            raise ShapeMismatchError(
                f"Matrix dimensions must be positive, got ({rows}, {cols})"
            )

    @classmethod
    def zeros(cls, rows: int, cols: int) -> 'Matrix':
        """Return a ``rows x cols`` matrix filled with 0.0."""
        cls._check_dims(rows, cols)
        return cls._wrap(np.zeros((rows, cols), dtype=np.float64))

    @classmethod
    def random(
        cls,
        rows: int,
        cols: int,
        rng: Optional[np.random.Generator] = None
    ) -> 'Matrix':
        """Return a matrix with entries drawn uniformly from [-1, 1)."""
        cls._check_dims(rows, cols)
        rng = rng if rng is not None else np.random.default_rng()
        return cls._wrap(rng.random((rows, cols)) * 2.0 - 1.0)

    @staticmethod
    def _standard_normal(
        rng: np.random.Generator,
        rows: int,
        cols: int
    ) -> np.ndarray:
        """
        Sample N(0, 1) values with the Box-Muller transform.

        Both uniforms are taken from (0, 1] so the logarithm stays finite.
        """
        u1 = 1.0 - rng.random((rows, cols))
        u2 = 1.0 - rng.random((rows, cols))
        return np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)

    @classmethod
    def he(
        cls,
        rows: int,
        cols: int,
        rng: Optional[np.random.Generator] = None
    ) -> 'Matrix':
        """
        He initialization: N(0, sqrt(2 / cols)).

        Suited to ReLU layers. ``cols`` is the fan-in.
        """
        cls._check_dims(rows, cols)
        rng = rng if rng is not None else np.random.default_rng()
        std_dev = np.sqrt(2.0 / cols)
        return cls._wrap(cls._standard_normal(rng, rows, cols) * std_dev)

    @classmethod
    def xavier(
        cls,
        rows: int,
        cols: int,
        rng: Optional[np.random.Generator] = None
    ) -> 'Matrix':
        """
        Xavier (Glorot) initialization: N(0, sqrt(1 / cols)).

        Suited to Sigmoid, Identity and Softmax layers. ``cols`` is the
        fan-in.
        """
        cls._check_dims(rows, cols)
        rng = rng if rng is not None else np.random.default_rng()
        std_dev = np.sqrt(1.0 / cols)
        return cls._wrap(cls._standard_normal(rng, rows, cols) * std_dev)

    @classmethod
    def from_data(cls, rows: Sequence[Sequence[float]]) -> 'Matrix':
        """
        Build a matrix from a list of rows.

        Args:
            rows: Sequence of equally long numeric sequences

        Returns:
            Matrix: New matrix holding a copy of ``rows``

        Raises:
            ShapeMismatchError: If ``rows`` is empty or ragged
        """
        if len(rows) == 0:
            raise ShapeMismatchError("Matrix data must contain at least one row")

        width = len(rows[0])
        for i, row in enumerate(rows):
            if len(row) != width:
                raise ShapeMismatchError(
                    f"Row {i} has {len(row)} entries, expected {width}"
                )
        return cls(rows)

    @classmethod
    def row_vector(cls, values: Sequence[float]) -> 'Matrix':
        """Build a ``1 x n`` matrix from a flat sequence."""
        return cls.from_data([list(values)])

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def rows(self) -> int:
        return self._data.shape[0]

    @property
    def cols(self) -> int:
        return self._data.shape[1]

    @property
    def shape(self) -> Tuple[int, int]:
        return self._data.shape

    @property
    def data(self) -> np.ndarray:
        """Read-only view of the underlying array."""
        return self._data

    def row(self, index: int) -> List[float]:
        return self._data[index].tolist()

    def to_list(self) -> List[List[float]]:
        return self._data.tolist()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def _require_same_shape(self, other: 'Matrix', op: str) -> None:
        if self.shape != other.shape:
            raise ShapeMismatchError(
                f"Cannot {op} matrices of shape {self.shape} and {other.shape}"
            )

    def __add__(self, other: 'Matrix') -> 'Matrix':
        if not isinstance(other, Matrix):
            return NotImplemented
        self._require_same_shape(other, 'add')
        return Matrix._wrap(self._data + other._data)

    def __sub__(self, other: 'Matrix') -> 'Matrix':
        if not isinstance(other, Matrix):
            return NotImplemented
        self._require_same_shape(other, 'subtract')
        return Matrix._wrap(self._data - other._data)

    def __matmul__(self, other: 'Matrix') -> 'Matrix':
        if not isinstance(other, Matrix):
            return NotImplemented
        if self.cols != other.rows:
            raise ShapeMismatchError(
                f"Cannot multiply matrices of shape {self.shape} and "
                f"{other.shape}: {self.cols} != {other.rows}"
            )
        return Matrix._wrap(self._data @ other._data)

    def hadamard(self, other: 'Matrix') -> 'Matrix':
        """Element-wise product of two matrices of identical shape."""
        self._require_same_shape(other, 'take the Hadamard product of')
        return Matrix._wrap(self._data * other._data)

    def scale(self, factor: float) -> 'Matrix':
        return Matrix._wrap(self._data * float(factor))

    def transpose(self) -> 'Matrix':
        return Matrix._wrap(self._data.T.copy())

    @property
    def T(self) -> 'Matrix':
        return self.transpose()

    def map(self, func: Callable[[np.ndarray], np.ndarray]) -> 'Matrix':
        """
        Apply an element-wise transform.

        ``func`` receives the whole array and must be vectorized (numpy
        ufuncs, arithmetic expressions, ``np.where`` ...). Row-wise
        transforms such as Softmax are allowed as long as the shape is kept.

        Raises:
            ShapeMismatchError: If ``func`` changes the shape
        """
        result = np.array(func(self._data), dtype=np.float64)
        if result.shape != self.shape:
            raise ShapeMismatchError(
                f"map() must preserve shape {self.shape}, got {result.shape}"
            )
        return Matrix._wrap(result)

    def allclose(self, other: 'Matrix', atol: float = 1e-9) -> bool:
        return self.shape == other.shape and bool(
            np.allclose(self._data, other._data, rtol=0.0, atol=atol)
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.shape == other.shape and bool(np.array_equal(self._data, other._data))

    __hash__ = None

    def __repr__(self) -> str:
        return f"Matrix(rows={self.rows}, cols={self.cols})"
