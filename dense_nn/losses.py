"""
losses.py
~~~~~~~~~

Per-sample loss functions and their gradients with respect to the network
output.

Every loss is a pure function of ``(predicted, expected)`` flat rows and
exposes ``loss()`` (scalar) and ``derivative()`` (row). Each derivative is
the exact gradient of its own ``loss()`` so finite-difference checks hold,
with one deliberate exception: :class:`CrossEntropyLoss` returns the fused
Softmax + cross-entropy gradient ``predicted - expected``, which is the
gradient with respect to the Softmax logits.
"""

from typing import Dict, List, Sequence, Tuple, Type

import numpy as np

from .errors import ShapeMismatchError

EPSILON = 1e-12
HUBER_DELTA = 1.0


def _as_pair(
    predicted: Sequence[float],
    expected: Sequence[float]
) -> Tuple[np.ndarray, np.ndarray]:
    p = np.asarray(predicted, dtype=np.float64).ravel()
    y = np.asarray(expected, dtype=np.float64).ravel()
    if p.shape != y.shape:
        raise ShapeMismatchError(
            f"Predicted length {p.size} does not match expected length {y.size}"
        )
    if p.size == 0:
        raise ShapeMismatchError("Loss inputs must not be empty")
    return p, y


class Loss:
    """Base class for loss functions."""

    name: str = ''
    requires_softmax_output: bool = False

    @staticmethod
    def loss(predicted: Sequence[float], expected: Sequence[float]) -> float:
        raise NotImplementedError

    @staticmethod
    def derivative(predicted: Sequence[float], expected: Sequence[float]) -> List[float]:
        raise NotImplementedError


class MseLoss(Loss):
    """
    Mean squared error.

    loss = mean((p - y)^2), derivative = 2 (p - y) / n
    """

    name = 'mse'

    @staticmethod
    def loss(predicted, expected):
        p, y = _as_pair(predicted, expected)
        return float(np.mean((p - y) ** 2))

    @staticmethod
    def derivative(predicted, expected):
        p, y = _as_pair(predicted, expected)
        return (2.0 * (p - y) / p.size).tolist()


class CrossEntropyLoss(Loss):
    """
    Categorical cross-entropy for a Softmax output layer.

    loss = -sum(y * ln(p + eps)), derivative = p - y (fused with Softmax)
    """

    name = 'cross_entropy'
    requires_softmax_output = True

    @staticmethod
    def loss(predicted, expected):
        p, y = _as_pair(predicted, expected)
        return float(-np.sum(y * np.log(p + EPSILON)))

    @staticmethod
    def derivative(predicted, expected):
        p, y = _as_pair(predicted, expected)
        return (p - y).tolist()


class BinaryCrossEntropyLoss(Loss):
    """
    Binary cross-entropy for Sigmoid outputs.

    loss = -mean(y ln(p + eps) + (1 - y) ln(1 - p + eps))
    """

    name = 'binary_cross_entropy'

    @staticmethod
    def loss(predicted, expected):
        p, y = _as_pair(predicted, expected)
        terms = y * np.log(p + EPSILON) + (1.0 - y) * np.log(1.0 - p + EPSILON)
        return float(-np.mean(terms))

    @staticmethod
    def derivative(predicted, expected):
        p, y = _as_pair(predicted, expected)
        grad = (p - y) / ((p + EPSILON) * (1.0 - p + EPSILON))
        return (grad / p.size).tolist()


class MaeLoss(Loss):
    """Mean absolute error; the subgradient is 0 where p == y."""

    name = 'mae'

    @staticmethod
    def loss(predicted, expected):
        p, y = _as_pair(predicted, expected)
        return float(np.mean(np.abs(p - y)))

    @staticmethod
    def derivative(predicted, expected):
        p, y = _as_pair(predicted, expected)
        return (np.sign(p - y) / p.size).tolist()


class HuberLoss(Loss):
    """Huber loss with a fixed delta of 1.0."""

    name = 'huber'

    @staticmethod
    def loss(predicted, expected):
        p, y = _as_pair(predicted, expected)
        x = p - y
        quadratic = 0.5 * x ** 2
        linear = HUBER_DELTA * (np.abs(x) - 0.5 * HUBER_DELTA)
        return float(np.mean(np.where(np.abs(x) <= HUBER_DELTA, quadratic, linear)))

    @staticmethod
    def derivative(predicted, expected):
        p, y = _as_pair(predicted, expected)
        x = p - y
        grad = np.where(np.abs(x) <= HUBER_DELTA, x, HUBER_DELTA * np.sign(x))
        return (grad / p.size).tolist()


# Dictionary mapping loss kind strings to loss classes
LOSS_FUNCTIONS: Dict[str, Type[Loss]] = {
    cls.name: cls
    for cls in (MseLoss, CrossEntropyLoss, BinaryCrossEntropyLoss, MaeLoss, HuberLoss)
}


def get_loss(kind) -> Type[Loss]:
    """
    Look up a loss by kind.

    Args:
        kind: A loss kind string such as 'mse' or 'cross_entropy', or a
            Loss subclass

    Returns:
        The Loss class

    Raises:
        ValueError: If the kind is unknown
    """
    if isinstance(kind, type) and issubclass(kind, Loss):
        return kind
    if kind not in LOSS_FUNCTIONS:
        raise ValueError(
            f"Unsupported loss '{kind}'. Valid options: {list(LOSS_FUNCTIONS.keys())}"
        )
    return LOSS_FUNCTIONS[kind]
