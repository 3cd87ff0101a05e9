"""
optimizer.py
~~~~~~~~~~~~

Stochastic gradient descent with a fixed learning rate.
"""

from .layer import Layer
from .matrix import Matrix


class SGD:
    """
    Plain SGD: no momentum, no decay, no state carried between steps.
    """

    def __init__(self, learning_rate: float = 0.1):
        """
        Args:
            learning_rate: Step size applied to every update

        Raises:
            ValueError: If the learning rate is not a positive number
        """
        if not isinstance(learning_rate, (int, float)) or learning_rate <= 0:
            raise ValueError(
                f"learning_rate must be a positive number, got {learning_rate}"
            )
        self.learning_rate = float(learning_rate)

    def step(self, layer: Layer, weight_grad: Matrix, bias_grad: Matrix) -> None:
        """Apply one update to ``layer`` from its averaged gradients."""
        layer.apply_gradients(weight_grad, bias_grad, self.learning_rate)

    def __repr__(self) -> str:
        return f"SGD(learning_rate={self.learning_rate})"
