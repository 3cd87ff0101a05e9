"""
architecture.py
~~~~~~~~~~~~~~~

Weight-free description of a network: its name, layer sizes and
activations, the loss it trains with and optional presentation metadata.

A :class:`NetworkSpec` can be stored as JSON before any training happens
and later turned into an initialized network with
:meth:`dense_nn.network.Network.from_spec`.
"""

import json
import logging
from typing import Any, Dict, List, NamedTuple, Optional

from .activations import ActivationFunction
from .errors import CorruptModelError, ModelIOError
from .losses import get_loss

logger = logging.getLogger(__name__)


class LayerSpec(NamedTuple):
    """One dense layer: ``size`` neurons fed by ``input_size`` inputs."""

    size: int
    input_size: int
    activation: ActivationFunction

    def to_dict(self) -> Dict[str, Any]:
        return {
            'size': self.size,
            'input_size': self.input_size,
            'activation': self.activation.value
        }


class NetworkSpec:
    """Serializable architecture plus loss kind and metadata."""

    def __init__(
        self,
        name: str,
        layers: List[LayerSpec],
        loss: str = 'mse',
        metadata: Optional[Dict[str, Any]] = None
    ):
        self.name = name
        self.layers = [
            LayerSpec(int(size), int(input_size), ActivationFunction.parse(activation))
            for size, input_size, activation in layers
        ]
        self.loss = get_loss(loss).name
        self.metadata = dict(metadata or {})

    @property
    def input_size(self) -> Optional[int]:
        return self.layers[0].input_size if self.layers else None

    def layer_tuples(self) -> List[tuple]:
        """Layers as ``(out_size, in_size, activation)`` tuples."""
        return [tuple(layer) for layer in self.layers]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'layers': [layer.to_dict() for layer in self.layers],
            'loss': self.loss,
            'metadata': self.metadata
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NetworkSpec':
        """
        Build a spec from its JSON form.

        Raises:
            CorruptModelError: If keys are missing or values are invalid
        """
        try:
            layers = [
                (entry['size'], entry['input_size'], entry['activation'])
                for entry in data['layers']
            ]
            return cls(
                name=data['name'],
                layers=layers,
                loss=data.get('loss', 'mse'),
                metadata=data.get('metadata')
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CorruptModelError(f"Invalid network spec: {e}") from e

    def save_json(self, path: str) -> None:
        """Write the spec as pretty-printed JSON."""
        try:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(self.to_dict(), f, indent=2)
        except OSError as e:
            raise ModelIOError(f"Could not write network spec to '{path}': {e}") from e
        logger.info(f"Saved network spec '{self.name}' to {path}")

    @classmethod
    def load_json(cls, path: str) -> 'NetworkSpec':
        """
        Read a spec written by :meth:`save_json`.

        Raises:
            ModelIOError: If the file cannot be read
            CorruptModelError: If the content is not a valid spec
        """
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except OSError as e:
            raise ModelIOError(f"Could not read network spec from '{path}': {e}") from e
        except json.JSONDecodeError as e:
            raise CorruptModelError(f"Network spec '{path}' is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise CorruptModelError(f"Network spec '{path}' must be a JSON object")
        return cls.from_dict(data)

    def __repr__(self) -> str:
        return f"NetworkSpec(name={self.name!r}, layers={len(self.layers)}, loss={self.loss!r})"
