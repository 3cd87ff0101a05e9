"""
activations.py
~~~~~~~~~~~~~~

Activation functions applied by dense layers.

Identity, Sigmoid and ReLU act element-wise. Softmax acts on each row and
is only valid on the output layer of a network trained with cross-entropy;
its derivative is reported as 1 because the cross-entropy gradient
(predicted - expected) is already the gradient with respect to the logits.
"""

from enum import Enum

import numpy as np

from .matrix import Matrix


def _sigmoid(z: np.ndarray) -> np.ndarray:
    # Split on sign so np.exp never sees a large positive argument
    out = np.empty_like(z)
    positive = z >= 0
    out[positive] = 1.0 / (1.0 + np.exp(-z[positive]))
    exp_z = np.exp(z[~positive])
    out[~positive] = exp_z / (1.0 + exp_z)
    return out


def _softmax(z: np.ndarray) -> np.ndarray:
    shifted = z - np.max(z, axis=1, keepdims=True)
    exp_z = np.exp(shifted)
    return exp_z / np.sum(exp_z, axis=1, keepdims=True)


class ActivationFunction(Enum):
    """Closed set of supported activations; values are the persisted names."""

    IDENTITY = 'Identity'
    SIGMOID = 'Sigmoid'
    RELU = 'ReLU'
    SOFTMAX = 'Softmax'

    @classmethod
    def parse(cls, name) -> 'ActivationFunction':
        """
        Resolve an activation from its name, case-insensitively.

        Args:
            name: An ActivationFunction or a string such as 'relu' or 'Sigmoid'

        Returns:
            ActivationFunction: The matching member

        Raises:
            ValueError: If the name is unknown
        """
        if isinstance(name, cls):
            return name
        if isinstance(name, str):
            for member in cls:
                if member.value.lower() == name.strip().lower():
                    return member
        raise ValueError(
            f"Unknown activation '{name}'. "
            f"Valid options: {[member.value for member in cls]}"
        )

    @property
    def requires_fused_loss(self) -> bool:
        """True when the activation is only correct paired with cross-entropy."""
        return self is ActivationFunction.SOFTMAX

    def function(self, z: Matrix) -> Matrix:
        """Map a pre-activation matrix to its activation."""
        if self is ActivationFunction.IDENTITY:
            return z
        if self is ActivationFunction.SIGMOID:
            return z.map(_sigmoid)
        if self is ActivationFunction.RELU:
            return z.map(lambda values: np.maximum(values, 0.0))
        return z.map(_softmax)

    def derivative(self, z: Matrix) -> Matrix:
        """
        Local chain-rule factor evaluated at the pre-activation ``z``.

        Softmax returns ones; see the module docstring.
        """
        if self is ActivationFunction.SIGMOID:
            def sigmoid_prime(values):
                s = _sigmoid(values)
                return s * (1.0 - s)
            return z.map(sigmoid_prime)
        if self is ActivationFunction.RELU:
            return z.map(lambda values: (values > 0.0).astype(np.float64))
        return z.map(np.ones_like)

    def __str__(self) -> str:
        return self.value
