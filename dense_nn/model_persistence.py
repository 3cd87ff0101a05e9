"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

JSON persistence for trained networks.

Two layers are provided:

- :func:`save_model` / :func:`load_model` read and write a single model
  file and raise on any failure.
- :class:`ModelStore` and the module-level helpers manage a directory of
  ``<name>.json`` models addressed by name.

Model document layout::

    {
      "metadata": {"input_size": 2, "output_kind": "probability", "loss": "mse"},
      "layers": [
        {"input_size": 2, "output_size": 4, "activation": "Sigmoid",
         "weights": [[...], [...]], "biases": [...]},
        ...
      ]
    }
"""

import os
import re
import json
import time
import logging
import tempfile
from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np

from .config import get_model_dir
from .errors import CorruptModelError, ModelIOError
from .network import Network

# Configure module logger
logger = logging.getLogger(__name__)

MODEL_SUFFIX = '.json'
_NAME_PATTERN = re.compile(r'^[A-Za-z0-9_-][A-Za-z0-9._-]*$')


class NetworkEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles numpy arrays and scalars."""

    def default(self, obj: Any) -> Any:
        """
        Convert numpy values to plain Python for JSON serialization.

        Args:
            obj: Object to serialize

        Returns:
            JSON-serializable representation
        """
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.generic):
            return obj.item()
        return super().default(obj)


# ============================================================================
# SINGLE FILE
# ============================================================================

def save_model(network: Network, path: str) -> str:
    """
    Write ``network`` to ``path`` as JSON.

    The document is written to a temporary file in the same directory and
    renamed into place, so readers never observe a half-written model.

    Args:
        network: Network to persist
        path: Destination file

    Returns:
        str: The path written

    Raises:
        ModelIOError: If the directory or file cannot be written
    """
    directory = os.path.dirname(os.path.abspath(path))
    tmp_path = None
    try:
        os.makedirs(directory, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            'w', encoding='utf-8', dir=directory, suffix='.tmp', delete=False
        ) as f:
            tmp_path = f.name
            json.dump(network.to_dict(), f, cls=NetworkEncoder, indent=2)
        os.replace(tmp_path, path)
    except OSError as e:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise ModelIOError(f"Could not save model to '{path}': {e}") from e

    logger.info(f"Saved model with architecture {network.architecture} to {path}")
    return path


def load_model(path: str) -> Network:
    """
    Read a model written by :func:`save_model`.

    Args:
        path: Model file

    Returns:
        Network: The reconstructed network

    Raises:
        ModelIOError: If the file is missing or unreadable
        CorruptModelError: If the content fails validation
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise ModelIOError(f"Could not read model from '{path}': {e}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CorruptModelError(f"Model file '{path}' is not valid JSON: {e}") from e

    network = Network.from_dict(data)
    logger.info(f"Loaded model with architecture {network.architecture} from {path}")
    return network


# ============================================================================
# MODEL STORE
# ============================================================================

def _validate_name(name: str) -> None:
    if not isinstance(name, str) or not _NAME_PATTERN.match(name):
        raise ValueError(
            f"Invalid model name {name!r}: use letters, digits, '-', '_' or '.'"
        )


class ModelStore:
    """
    Manages a directory of persisted models.

    Each model lives in ``<model_dir>/<name>.json``.
    """

    def __init__(self, model_dir: Optional[str] = None):
        """
        Initialize the store.

        Args:
            model_dir: Directory holding the models; defaults to ``MODEL_DIR``
        """
        self.model_dir = model_dir if model_dir is not None else get_model_dir()
        self._ensure_directory()

    def _ensure_directory(self) -> None:
        """Create the model directory if it doesn't exist."""
        try:
            os.makedirs(self.model_dir, exist_ok=True)
        except OSError as e:
            raise ModelIOError(
                f"Could not create model directory '{self.model_dir}': {e}"
            ) from e

    def path_for(self, name: str) -> str:
        _validate_name(name)
        return os.path.join(self.model_dir, name + MODEL_SUFFIX)

    def _names(self) -> List[str]:
        return sorted(
            entry[:-len(MODEL_SUFFIX)]
            for entry in os.listdir(self.model_dir)
            if entry.endswith(MODEL_SUFFIX) and _NAME_PATTERN.match(entry)
        )

    def save(self, network: Network, name: str) -> str:
        """Save (or overwrite) the model called ``name``."""
        path = save_model(network, self.path_for(name))
        logger.info(f"Stored network '{name}' with architecture {network.architecture}")
        return path

    def load(self, name: str) -> Optional[Network]:
        """
        Load the model called ``name``.

        Returns:
            Network or None if not found
        """
        path = self.path_for(name)
        if not os.path.exists(path):
            logger.warning(f"Network '{name}' not found")
            return None
        return load_model(path)

    def describe(self, name: str) -> Optional[Dict[str, Any]]:
        """
        Get network metadata.

        Returns:
            Metadata dictionary or None if not found

        Raises:
            CorruptModelError: If the stored file is invalid
        """
        network = self.load(name)
        if network is None:
            return None

        path = self.path_for(name)
        modified = os.path.getmtime(path)
        return {
            'name': name,
            'path': path,
            'input_size': network.input_size,
            'output_kind': network.output_kind,
            'loss': network.loss,
            'description': network.description,
            'output_labels': network.output_labels,
            'architecture': network.architecture,
            'activations': [layer.activation.value for layer in network.layers],
            'weights_shape': [list(layer.weights.shape) for layer in network.layers],
            'biases_shape': [list(layer.biases.shape) for layer in network.layers],
            'parameter_count': network.parameter_count,
            'modified_at': datetime.fromtimestamp(modified).isoformat(timespec='seconds')
        }

    def list_networks(self) -> List[Dict[str, Any]]:
        """
        List all stored networks with metadata, newest first.

        Files that fail validation are skipped with a warning.
        """
        networks = []
        for name in self._names():
            try:
                info = self.describe(name)
            except (CorruptModelError, OSError) as e:
                logger.warning(f"Skipping unreadable model '{name}': {e}")
                continue
            if info is not None:
                networks.append(info)

        networks.sort(key=lambda info: info['modified_at'], reverse=True)
        logger.debug(f"Listed {len(networks)} networks")
        return networks

    def delete(self, name: str) -> bool:
        """
        Delete a network from the store.

        Returns:
            bool: True if deleted, False if not found
        """
        path = self.path_for(name)
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.warning(f"Could not delete network '{name}': not found")
            return False
        except OSError as e:
            raise ModelIOError(f"Could not delete model '{path}': {e}") from e

        logger.info(f"Deleted network '{name}'")
        return True

    def delete_older_than(self, days: float) -> int:
        """
        Delete networks whose file was last written more than ``days`` ago.

        Args:
            days: Age threshold in days (0 deletes everything already written)

        Returns:
            int: Number of networks deleted

        Raises:
            ValueError: If days is negative
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        cutoff = time.time() - days * 86400
        deleted = 0
        for name in self._names():
            path = self.path_for(name)
            if os.path.getmtime(path) < cutoff and self.delete(name):
                deleted += 1

        logger.info(f"Deleted {deleted} network(s) older than {days} day(s)")
        return deleted


def save_network(network: Network, name: str, model_dir: Optional[str] = None) -> str:
    """
    Save a neural network to the model store.

    Args:
        network: The neural network to save
        name: A unique name for the network
        model_dir: Directory of the store

    Returns:
        str: Path of the written model file

    Raises:
        ValueError: If the name is invalid
        ModelIOError: If the file cannot be written

    Example:
        >>> net = Network([(4, 3, 'relu'), (2, 4, 'softmax')], loss='cross_entropy')
        >>> save_network(net, "my_network")
        'trained_models/my_network.json'
    """
    return ModelStore(model_dir).save(network, name)


def load_network(name: str, model_dir: Optional[str] = None) -> Optional[Network]:
    """
    Load a neural network from the model store.

    Args:
        name: The name of the network to load
        model_dir: Directory of the store

    Returns:
        The loaded network or None if not found

    Raises:
        CorruptModelError: If the stored file fails validation
    """
    return ModelStore(model_dir).load(name)


def list_saved_networks(model_dir: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    List all saved networks with their metadata.

    Example:
        >>> for net in list_saved_networks():
        ...     print(f"{net['name']}: {net['architecture']}")
    """
    return ModelStore(model_dir).list_networks()


def delete_network(name: str, model_dir: Optional[str] = None) -> bool:
    """
    Delete a saved network.

    Returns:
        bool: True if deletion was successful, False if it did not exist
    """
    return ModelStore(model_dir).delete(name)


def get_network_metadata(
    name: str,
    model_dir: Optional[str] = None
) -> Optional[Dict[str, Any]]:
    """
    Get metadata for a specific network.

    Returns:
        dict: Network metadata or None if not found
    """
    return ModelStore(model_dir).describe(name)


def delete_old_networks(days: float = 2, model_dir: Optional[str] = None) -> int:
    """
    Delete saved networks older than ``days`` days.

    Returns:
        int: Number of networks deleted

    Raises:
        ValueError: If days is negative
    """
    return ModelStore(model_dir).delete_older_than(days)
