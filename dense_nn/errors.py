"""
errors.py
~~~~~~~~~

Exception hierarchy for the training engine.

Every error is detected at construction or call time and raised before any
state has been mutated.
"""


class NeuralNetworkError(Exception):
    """Base class for all engine errors."""


class ShapeMismatchError(NeuralNetworkError, ValueError):
    """Incompatible matrix or layer dimensions."""


class DimensionMismatchError(NeuralNetworkError, ValueError):
    """Inconsistent chain of layer sizes inside a network."""


class CorruptModelError(NeuralNetworkError, ValueError):
    """A persisted model failed structural or dimensional validation."""


class InvalidActivationLossPairingError(NeuralNetworkError, ValueError):
    """Softmax used without cross-entropy, or cross-entropy without Softmax."""


class ModelIOError(NeuralNetworkError, OSError):
    """Reading or writing a persisted model failed."""
