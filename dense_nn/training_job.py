"""
training_job.py
~~~~~~~~~~~~~~~

Runs a :class:`~dense_nn.trainer.Trainer` as a background gevent task.

The job owns the two host-side contracts the trainer expects: a
``gevent.event.Event`` as the stop flag and a ``gevent.queue.Queue`` that
collects :class:`~dense_nn.trainer.EpochStats`. The trainer yields with
``gevent.sleep(0)`` after every batch so other greenlets (a web server,
a progress reporter) keep running during training.
"""

import uuid
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

import gevent
from gevent.event import Event
from gevent.queue import Empty, Queue

from .layer import RowLike
from .network import Network
from .trainer import EpochStats, Trainer, TrainConfig, TrainingStatus

# Configure module logger
logger = logging.getLogger(__name__)

JOB_STATUSES = ('pending', 'training', 'completed', 'stopped', 'failed')


def yield_to_other_tasks() -> None:
    """Let gevent run other greenlets between batches."""
    gevent.sleep(0)


class TrainingJob:
    """
    One training run hosted on a greenlet.

    Example:
        >>> job = TrainingJob(net, data, TrainConfig(epochs=10), model_path='xor.json')
        >>> job.start()
        >>> job.join()
        >>> job.to_dict()['status']
        'completed'
    """

    def __init__(
        self,
        network: Network,
        dataset: Sequence[Tuple[RowLike, RowLike]],
        config: TrainConfig,
        model_path: Optional[str] = None,
        validation: Optional[Sequence[Tuple[RowLike, RowLike]]] = None,
        job_id: Optional[str] = None
    ):
        self.job_id = job_id or str(uuid.uuid4())
        self.network = network
        self.dataset = dataset
        self.validation = validation
        self.model_path = model_path

        self.status = JOB_STATUSES[0]
        self.progress = 0.0
        self.last_stats: Optional[EpochStats] = None
        self.error: Optional[str] = None
        self.result = None

        self._stop_event = Event()
        self._updates: Queue = Queue()
        self._greenlet: Optional[gevent.Greenlet] = None

        # The job supplies the host hooks; any caller-provided sink still runs
        self._user_sink = config.progress_sink
        self.config = replace(
            config,
            stop_signal=self._stop_event,
            progress_sink=self._on_epoch_complete,
            yield_func=yield_to_other_tasks
        )

    def start(self) -> 'TrainingJob':
        """
        Spawn the training greenlet.

        Raises:
            RuntimeError: If the job has already been started
        """
        if self._greenlet is not None:
            raise RuntimeError(f"Training job {self.job_id} already started")

        self._greenlet = gevent.spawn(self._run)
        logger.info(f"Spawned training job {self.job_id}")
        return self

    def stop(self) -> None:
        """Request a stop; the trainer honours it after the current batch."""
        logger.info(f"Stop requested for training job {self.job_id}")
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the greenlet to finish.

        Returns:
            bool: True if the job has finished
        """
        if self._greenlet is None:
            raise RuntimeError(f"Training job {self.job_id} has not been started")
        self._greenlet.join(timeout=timeout)
        return self._greenlet.ready()

    @property
    def finished(self) -> bool:
        return self.status in JOB_STATUSES[2:]

    def drain(self) -> List[EpochStats]:
        """Return every queued epoch update without blocking."""
        updates = []
        while True:
            try:
                updates.append(self._updates.get_nowait())
            except Empty:
                return updates

    def to_dict(self) -> Dict[str, Any]:
        return {
            'job_id': self.job_id,
            'status': self.status,
            'progress': self.progress,
            'last_epoch': self.last_stats.to_dict() if self.last_stats else None,
            'model_path': self.model_path,
            'error': self.error
        }

    def _set_status(self, status: str) -> None:
        if status not in JOB_STATUSES:
            raise ValueError(
                f"Unknown job status '{status}'. Valid options: {list(JOB_STATUSES)}"
            )
        logger.debug(f"Training job {self.job_id}: {self.status} -> {status}")
        self.status = status

    def _on_epoch_complete(self, stats: EpochStats) -> None:
        """Called after each training epoch to publish progress."""
        self.progress = (stats.epoch / stats.total_epochs) * 100
        self.last_stats = stats
        self._updates.put_nowait(stats)

        if self._user_sink is not None:
            self._user_sink(stats)

    def _run(self) -> None:
        """Greenlet body: train, then record the outcome."""
        self._set_status('training')
        trainer = Trainer(self.network, self.config, model_path=self.model_path)

        try:
            logger.info(f"Starting training for job {self.job_id}")
            self.result = trainer.run(self.dataset, validation=self.validation)
        except Exception as e:
            logger.exception(f"Training failed for job {self.job_id}: {e}")
            self._set_status('failed')
            self.error = str(e)
            return
        except BaseException as e:
            # Killed greenlet or interrupt; record it and let it propagate
            self._set_status('failed')
            self.error = repr(e)
            raise

        if self.result.status is TrainingStatus.COMPLETED:
            self._set_status('completed')
            self.progress = 100.0
        else:
            self._set_status('stopped')
        logger.info(
            f"Training job {self.job_id} {self.status} after "
            f"{self.result.epochs_completed} epoch(s)"
        )
