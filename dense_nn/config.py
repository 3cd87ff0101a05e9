"""
config.py
~~~~~~~~~

Environment-driven settings and logging setup.

Training hyperparameters are never read from here at run time; the
``DEFAULT_*`` values only seed :class:`dense_nn.trainer.TrainConfig` defaults.
"""

import os
import logging

DEFAULT_EPOCHS = 5
DEFAULT_BATCH_SIZE = 10
DEFAULT_LEARNING_RATE = 0.1
DEFAULT_MODEL_DIR = 'trained_models'

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

_logging_configured = False


def configure_logging() -> None:
    """
    Set up logging based on environment.

    The level comes from ``LOG_LEVEL`` (default INFO). Calling this more
    than once has no effect.
    """
    global _logging_configured

    if _logging_configured:
        return

    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    logging.basicConfig(level=log_level, format=LOG_FORMAT)

    # gevent's hub logs every greenlet failure; ours are already reported
    logging.getLogger('gevent').setLevel(logging.WARNING)
    logging.getLogger('dense_nn').setLevel(log_level)

    _logging_configured = True


def get_model_dir() -> str:
    """Return the directory used by the model store (``MODEL_DIR``)."""
    return os.getenv('MODEL_DIR', DEFAULT_MODEL_DIR)
