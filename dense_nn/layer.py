"""
layer.py
~~~~~~~~

Fully-connected layer with forward and backward passes.

A layer computes ``A = f(X . W + b)`` for a single ``1 x in`` input row.
The forward pass caches the pre-activation ``Z`` and the activation ``A``;
only :meth:`Layer.feed_from` writes those caches, and
:meth:`Layer.compute_gradients` reads ``Z`` from the most recent call.
"""

from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .activations import ActivationFunction
from .errors import ShapeMismatchError
from .matrix import Matrix


RowLike = Union[Matrix, Sequence[float], np.ndarray]


def as_row(values: RowLike, expected_width: int, what: str) -> Matrix:
    """
    Coerce a flat sequence or ``1 x n`` matrix into a row matrix.

    Args:
        values: Input row
        expected_width: Required number of entries
        what: Name used in error messages

    Returns:
        Matrix: A ``1 x expected_width`` matrix

    Raises:
        ShapeMismatchError: If the width is wrong
    """
    if isinstance(values, Matrix):
        row = values
    else:
        flat = np.asarray(values, dtype=np.float64)
        if flat.ndim != 1:
            raise ShapeMismatchError(
                f"{what} must be a flat row, got array of shape {flat.shape}"
            )
        if flat.size == 0:
            raise ShapeMismatchError(f"{what} must not be empty")
        row = Matrix._wrap(flat.reshape(1, -1).copy())

    if row.rows != 1 or row.cols != expected_width:
        raise ShapeMismatchError(
            f"{what} has shape {row.shape}, expected (1, {expected_width})"
        )
    return row


class Layer:
    """
    A dense layer owning its weights (in x out) and bias (1 x out).
    """

    def __init__(
        self,
        out_size: int,
        in_size: int,
        activation: Union[ActivationFunction, str] = ActivationFunction.IDENTITY,
        weights: Optional[Matrix] = None,
        biases: Optional[Matrix] = None,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Initialize the layer.

        He initialization is used for ReLU layers and Xavier for every other
        activation; biases start at zero. Explicit ``weights``/``biases``
        (as used when loading a saved model) bypass initialization.

        Args:
            out_size: Number of neurons in this layer
            in_size: Number of inputs feeding this layer (fan-in)
            activation: Activation applied after the affine map
            weights: Optional pre-defined ``in_size x out_size`` matrix
            biases: Optional pre-defined ``1 x out_size`` matrix
            rng: Random generator used for initialization

        Raises:
            ShapeMismatchError: If sizes are not positive or explicit
                parameters have the wrong shape
        """
        if out_size < 1 or in_size < 1:
            raise ShapeMismatchError(
                f"Layer sizes must be positive, got out={out_size}, in={in_size}"
            )

        self.out_size = out_size
        self.in_size = in_size
        self.activation = ActivationFunction.parse(activation)

        if weights is None:
            # Drawn as out x in so the initializer sees in_size as its fan-in
            if self.activation is ActivationFunction.RELU:
                weights = Matrix.he(out_size, in_size, rng=rng).transpose()
            else:
                weights = Matrix.xavier(out_size, in_size, rng=rng).transpose()
        elif weights.shape != (in_size, out_size):
            raise ShapeMismatchError(
                f"Weights have shape {weights.shape}, expected ({in_size}, {out_size})"
            )

        if biases is None:
            biases = Matrix.zeros(1, out_size)
        elif biases.shape != (1, out_size):
            raise ShapeMismatchError(
                f"Biases have shape {biases.shape}, expected (1, {out_size})"
            )

        self.weights: Matrix = weights
        self.biases: Matrix = biases

        # Scratch written by feed_from, read by compute_gradients
        self.last_pre_activation: Optional[Matrix] = None
        self.last_activation: Optional[Matrix] = None

    @property
    def parameter_count(self) -> int:
        return self.in_size * self.out_size + self.out_size

    def feed_from(self, inputs: RowLike) -> Matrix:
        """
        Forward pass for a single input row.

        Args:
            inputs: Row of length ``in_size``

        Returns:
            Matrix: The ``1 x out_size`` activation

        Raises:
            ShapeMismatchError: If ``len(inputs) != in_size``
        """
        x = as_row(inputs, self.in_size, 'Layer input')
        z = x @ self.weights + self.biases
        a = self.activation.function(z)
        self.last_pre_activation = z
        self.last_activation = a
        return a

    def compute_gradients(
        self,
        delta_above: RowLike,
        layer_input: RowLike
    ) -> Tuple[Matrix, Matrix, Matrix]:
        """
        Backward pass for the most recent forward call.

        ``delta_above`` is dL/dA for this layer (or dL/dZ for a fused
        Softmax output). The local delta is ``delta_above * f'(Z)`` and
        flows back through the transpose of the weights used forward.

        Args:
            delta_above: Row of length ``out_size``
            layer_input: The row that was fed forward, length ``in_size``

        Returns:
            tuple: ``(weight_grad, bias_grad, delta_below)`` with shapes
            ``in x out``, ``1 x out`` and ``1 x in``

        Raises:
            ShapeMismatchError: If either row has the wrong width
            RuntimeError: If no forward pass has been run yet
        """
        if self.last_pre_activation is None:
            raise RuntimeError("compute_gradients() called before feed_from()")

        delta = as_row(delta_above, self.out_size, 'Upstream delta')
        x = as_row(layer_input, self.in_size, 'Layer input')

        local_delta = delta.hadamard(self.activation.derivative(self.last_pre_activation))
        weight_grad = x.transpose() @ local_delta
        bias_grad = local_delta
        delta_below = local_delta @ self.weights.transpose()
        return weight_grad, bias_grad, delta_below

    def apply_gradients(
        self,
        weight_grad: Matrix,
        bias_grad: Matrix,
        learning_rate: float
    ) -> None:
        """
        Plain gradient-descent update: ``W -= lr * dW`` and ``b -= lr * db``.

        Both shapes are checked before either parameter changes.
        """
        if weight_grad.shape != self.weights.shape:
            raise ShapeMismatchError(
                f"Weight gradient shape {weight_grad.shape} does not match "
                f"weights {self.weights.shape}"
            )
        if bias_grad.shape != self.biases.shape:
            raise ShapeMismatchError(
                f"Bias gradient shape {bias_grad.shape} does not match "
                f"biases {self.biases.shape}"
            )

        self.weights = self.weights - weight_grad.scale(learning_rate)
        self.biases = self.biases - bias_grad.scale(learning_rate)

    def to_dict(self) -> dict:
        """Serializable form used by the model file format."""
        return {
            'input_size': self.in_size,
            'output_size': self.out_size,
            'activation': self.activation.value,
            'weights': self.weights.to_list(),
            'biases': self.biases.row(0)
        }

    def __repr__(self) -> str:
        return (f"Layer(out_size={self.out_size}, in_size={self.in_size}, "
                f"activation={self.activation.value})")
