"""
trainer.py
~~~~~~~~~~

Mini-batch SGD training loop.

A :class:`Trainer` runs once: Idle -> Running -> Completed | Stopped |
Failed. The loop is single-threaded; the host talks to it through two
contracts carried by :class:`TrainConfig`:

- ``stop_signal``: any object with ``is_set()``. It is checked before the
  first batch of every epoch and after every batch, never mid-batch, so the
  parameters only ever reflect whole batches.
- ``progress_sink``: a callable receiving one :class:`EpochStats` per
  completed epoch. A partial epoch cut short by the stop signal is not
  reported.

Completed and Stopped runs save the network when a model path is given;
a failed save turns the run into Failed.
"""

import time
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from .config import DEFAULT_BATCH_SIZE, DEFAULT_EPOCHS, DEFAULT_LEARNING_RATE
from .errors import ShapeMismatchError
from .layer import RowLike, as_row
from .losses import CrossEntropyLoss, get_loss
from .matrix import Matrix
from .model_persistence import save_model
from .network import Network, check_activation_loss_pairing
from .optimizer import SGD

logger = logging.getLogger(__name__)


class StopSignal(Protocol):
    """Shared flag the host sets to request early termination."""

    def is_set(self) -> bool:
        ...


ProgressSink = Callable[['EpochStats'], None]
Sample = Tuple[Matrix, np.ndarray]


class TrainingStatus(Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    COMPLETED = 'completed'
    STOPPED = 'stopped'
    FAILED = 'failed'


@dataclass(frozen=True)
class EpochStats:
    """Statistics for one completed epoch."""

    epoch: int
    total_epochs: int
    train_loss: float
    elapsed_seconds: float
    train_accuracy: Optional[float] = None
    val_loss: Optional[float] = None
    val_accuracy: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TrainConfig:
    """
    Hyperparameters and host hooks for one training run.

    Attributes:
        epochs: Number of full passes over the dataset
        batch_size: Samples per gradient update; 1 gives online SGD
        loss: Loss kind ('mse', 'cross_entropy', ...)
        learning_rate: SGD step size
        stop_signal: Optional flag checked between batches
        progress_sink: Optional callable receiving EpochStats
        seed: Seed for the per-epoch shuffle; None draws fresh entropy
        yield_func: Optional hook called after every batch so a
            cooperative host can run its own tasks
    """

    epochs: int = DEFAULT_EPOCHS
    batch_size: int = DEFAULT_BATCH_SIZE
    loss: str = 'mse'
    learning_rate: float = DEFAULT_LEARNING_RATE
    stop_signal: Optional[StopSignal] = None
    progress_sink: Optional[ProgressSink] = None
    seed: Optional[int] = None
    yield_func: Optional[Callable[[], None]] = None

    def __post_init__(self):
        if not isinstance(self.epochs, int) or isinstance(self.epochs, bool) or self.epochs < 1:
            raise ValueError(f"epochs must be a positive integer, got {self.epochs!r}")
        if (not isinstance(self.batch_size, int) or isinstance(self.batch_size, bool)
                or self.batch_size < 1):
            raise ValueError(f"batch_size must be a positive integer, got {self.batch_size!r}")
        if (not isinstance(self.learning_rate, (int, float))
                or isinstance(self.learning_rate, bool) or self.learning_rate <= 0):
            raise ValueError(
                f"learning_rate must be a positive number, got {self.learning_rate!r}"
            )
        # Normalizes the kind and rejects unknown losses
        object.__setattr__(self, 'loss', get_loss(self.loss).name)


@dataclass(frozen=True)
class TrainingResult:
    """Outcome of a Completed or Stopped run."""

    status: TrainingStatus
    epochs_completed: int
    final_loss: Optional[float]
    model_path: Optional[str]
    elapsed_seconds: float

    @property
    def was_stopped(self) -> bool:
        return self.status is TrainingStatus.STOPPED


def _argmax(values: Sequence[float]) -> int:
    return int(np.argmax(values))


class Trainer:
    """
    Trains a network with mini-batch SGD.

    The trainer owns the network and optimizer for the duration of
    :meth:`run`; the host must not mutate the network concurrently.
    """

    def __init__(
        self,
        network: Network,
        config: TrainConfig,
        optimizer: Optional[SGD] = None,
        model_path: Optional[str] = None
    ):
        """
        Args:
            network: Network to train in place
            config: Run configuration
            optimizer: Update rule; defaults to SGD at ``config.learning_rate``
            model_path: Where to save the network when the run ends
                normally or is stopped; None disables saving
        """
        self.network = network
        self.config = config
        self.optimizer = optimizer if optimizer is not None else SGD(config.learning_rate)
        self.model_path = model_path
        self.status = TrainingStatus.IDLE
        self.epochs_completed = 0
        self.error: Optional[BaseException] = None
        self._loss = get_loss(config.loss)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(
        self,
        dataset: Sequence[Tuple[RowLike, RowLike]],
        validation: Optional[Sequence[Tuple[RowLike, RowLike]]] = None
    ) -> TrainingResult:
        """
        Train for ``config.epochs`` epochs or until the stop signal is set.

        Args:
            dataset: Ordered ``(input, expected_output)`` row pairs
            validation: Optional held-out pairs evaluated after each epoch

        Returns:
            TrainingResult: For Completed and Stopped runs

        Raises:
            RuntimeError: If the trainer has already been run
            InvalidActivationLossPairingError: If the loss does not suit
                the network's output layer
            ShapeMismatchError: If any sample has the wrong width
            ModelIOError: If the final save fails
        """
        if self.status is not TrainingStatus.IDLE:
            raise RuntimeError(f"Trainer already used (status: {self.status.value})")

        self.status = TrainingStatus.RUNNING
        run_start = time.perf_counter()

        try:
            check_activation_loss_pairing(
                [layer.activation for layer in self.network.layers], self.config.loss
            )
            samples = self._prepare(dataset, 'training')
            val_samples = self._prepare(validation, 'validation') if validation else None

            self.network.loss = self.config.loss
            logger.info(
                f"Starting training: {len(samples)} samples, epochs={self.config.epochs}, "
                f"batch_size={self.config.batch_size}, lr={self.optimizer.learning_rate}, "
                f"loss={self.config.loss}"
            )
            stopped, final_loss = self._train(samples, val_samples)

            saved_path = None
            if self.model_path is not None:
                saved_path = save_model(self.network, self.model_path)
        except BaseException as e:
            self.status = TrainingStatus.FAILED
            self.error = e
            logger.error(f"Training failed after {self.epochs_completed} epoch(s): {e}")
            raise

        self.status = TrainingStatus.STOPPED if stopped else TrainingStatus.COMPLETED
        elapsed = time.perf_counter() - run_start

        logger.info(
            f"Training {self.status.value} after {self.epochs_completed} epoch(s) "
            f"in {elapsed:.2f}s"
        )

        return TrainingResult(
            status=self.status,
            epochs_completed=self.epochs_completed,
            final_loss=final_loss,
            model_path=saved_path,
            elapsed_seconds=elapsed
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _prepare(
        self,
        dataset: Sequence[Tuple[RowLike, RowLike]],
        what: str
    ) -> List[Sample]:
        """Validate every sample up front so no batch fails half-applied."""
        if len(dataset) == 0:
            raise ValueError(f"The {what} dataset must not be empty")

        samples = []
        for index, pair in enumerate(dataset):
            try:
                inputs, expected = pair
                x = as_row(inputs, self.network.input_size, 'Input')
                y = as_row(expected, self.network.output_size, 'Expected output')
            except ShapeMismatchError as e:
                raise ShapeMismatchError(f"{what.capitalize()} sample {index}: {e}") from e
            except (TypeError, ValueError) as e:
                raise ShapeMismatchError(
                    f"{what.capitalize()} sample {index} is not an (input, expected) pair: {e}"
                ) from e
            samples.append((x, y.data[0]))
        return samples

    def _stop_requested(self) -> bool:
        signal = self.config.stop_signal
        return signal is not None and signal.is_set()

    def _train(
        self,
        samples: List[Sample],
        val_samples: Optional[List[Sample]]
    ) -> Tuple[bool, Optional[float]]:
        """Run the epoch loop. Returns ``(stopped, last_epoch_loss)``."""
        config = self.config
        rng = np.random.default_rng(config.seed)
        n = len(samples)
        final_loss = None

        for epoch in range(1, config.epochs + 1):
            if self._stop_requested():
                logger.info(f"Stop requested before epoch {epoch}")
                return True, final_loss

            epoch_start = time.perf_counter()
            order = rng.permutation(n)
            total_loss = 0.0
            processed = 0
            stop_seen = False

            for start in range(0, n, config.batch_size):
                batch = [samples[i] for i in order[start:start + config.batch_size]]
                total_loss += self._train_batch(batch)
                processed += len(batch)

                if config.yield_func is not None:
                    config.yield_func()
                if self._stop_requested():
                    stop_seen = True
                    break

            if processed < n:
                logger.info(
                    f"Stop requested during epoch {epoch} after {processed}/{n} samples"
                )
                return True, final_loss

            final_loss = total_loss / processed
            self.epochs_completed = epoch
            self._emit(self._epoch_stats(epoch, final_loss, epoch_start, samples, val_samples))

            if stop_seen:
                return True, final_loss

        return False, final_loss

    def _train_batch(self, batch: List[Sample]) -> float:
        """
        Forward, backward and accumulate over ``batch``, then apply the
        averaged gradients once per layer. Returns the summed sample loss.
        """
        layers = self.network.layers
        weight_acc: List[Optional[Matrix]] = [None] * len(layers)
        bias_acc: List[Optional[Matrix]] = [None] * len(layers)
        batch_loss = 0.0

        for x, expected in batch:
            output = self.network.forward_row(x).row(0)
            batch_loss += self._loss.loss(output, expected)
            delta = Matrix.row_vector(self._loss.derivative(output, expected))

            for i in range(len(layers) - 1, -1, -1):
                layer_input = x if i == 0 else layers[i - 1].last_activation
                weight_grad, bias_grad, delta = layers[i].compute_gradients(delta, layer_input)
                if weight_acc[i] is None:
                    weight_acc[i], bias_acc[i] = weight_grad, bias_grad
                else:
                    weight_acc[i] = weight_acc[i] + weight_grad
                    bias_acc[i] = bias_acc[i] + bias_grad

        inv_batch = 1.0 / len(batch)
        for i, layer in enumerate(layers):
            self.optimizer.step(layer, weight_acc[i].scale(inv_batch), bias_acc[i].scale(inv_batch))

        return batch_loss

    def _evaluate(self, samples: List[Sample]) -> Tuple[float, Optional[float]]:
        """Mean loss and, for cross-entropy runs, argmax accuracy."""
        total_loss = 0.0
        correct = 0
        for x, expected in samples:
            output = self.network.forward_row(x).row(0)
            total_loss += self._loss.loss(output, expected)
            if _argmax(output) == _argmax(expected):
                correct += 1

        accuracy = correct / len(samples) if self._loss is CrossEntropyLoss else None
        return total_loss / len(samples), accuracy

    def _epoch_stats(
        self,
        epoch: int,
        train_loss: float,
        epoch_start: float,
        samples: List[Sample],
        val_samples: Optional[List[Sample]]
    ) -> EpochStats:
        train_accuracy = None
        if self._loss is CrossEntropyLoss:
            _, train_accuracy = self._evaluate(samples)

        val_loss = val_accuracy = None
        if val_samples:
            val_loss, val_accuracy = self._evaluate(val_samples)

        return EpochStats(
            epoch=epoch,
            total_epochs=self.config.epochs,
            train_loss=train_loss,
            elapsed_seconds=time.perf_counter() - epoch_start,
            train_accuracy=train_accuracy,
            val_loss=val_loss,
            val_accuracy=val_accuracy
        )

    def _emit(self, stats: EpochStats) -> None:
        msg = f"Epoch {stats.epoch}/{stats.total_epochs} - loss: {stats.train_loss:.5f}"
        if stats.train_accuracy is not None:
            msg += f" - acc: {stats.train_accuracy:.2%}"
        if stats.val_loss is not None:
            msg += f" - val_loss: {stats.val_loss:.5f}"
        logger.debug(msg)

        if self.config.progress_sink is not None:
            self.config.progress_sink(stats)


def train_network(
    network: Network,
    dataset: Sequence[Tuple[RowLike, RowLike]],
    config: TrainConfig,
    optimizer: Optional[SGD] = None,
    model_path: Optional[str] = None,
    validation: Optional[Sequence[Tuple[RowLike, RowLike]]] = None
) -> TrainingResult:
    """Convenience wrapper: build a :class:`Trainer` and run it once."""
    trainer = Trainer(network, config, optimizer=optimizer, model_path=model_path)
    return trainer.run(dataset, validation=validation)
