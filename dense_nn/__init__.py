"""
dense_nn package
~~~~~~~~~~~~~~~~

Dense feed-forward neural network training engine.
Contains the matrix and layer primitives, activation and loss functions,
the mini-batch SGD trainer, JSON model persistence and a gevent-hosted
training job.
"""

from .activations import ActivationFunction
from .architecture import LayerSpec, NetworkSpec
from .errors import (
    CorruptModelError,
    DimensionMismatchError,
    InvalidActivationLossPairingError,
    ModelIOError,
    NeuralNetworkError,
    ShapeMismatchError,
)
from .layer import Layer
from .losses import LOSS_FUNCTIONS, get_loss
from .matrix import Matrix
from .model_persistence import load_model, save_model
from .network import Network
from .optimizer import SGD
from .trainer import (
    EpochStats,
    Trainer,
    TrainConfig,
    TrainingResult,
    TrainingStatus,
    train_network,
)
from .training_job import TrainingJob

__version__ = "1.0.0"
