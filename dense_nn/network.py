"""
network.py
~~~~~~~~~~

Feed-forward network: an ordered stack of dense layers plus the metadata
needed to present its output.

Construction validates the layer chain and the activation/loss pairing
before any layer is built, so an invalid network never exists.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .activations import ActivationFunction
from .architecture import NetworkSpec
from .errors import (
    CorruptModelError,
    DimensionMismatchError,
    InvalidActivationLossPairingError,
)
from .layer import Layer, RowLike, as_row
from .losses import get_loss
from .matrix import Matrix

# Configure module logger
logger = logging.getLogger(__name__)

OUTPUT_KINDS = ('raw', 'probability', 'distribution')

LayerTuple = Tuple[int, int, Union[ActivationFunction, str]]


def check_activation_loss_pairing(
    activations: Sequence[ActivationFunction],
    loss: str
) -> None:
    """
    Reject activation/loss combinations whose gradients would be wrong.

    Softmax reports a unit derivative, which is only correct on the final
    layer when the loss is cross-entropy; cross-entropy's fused gradient in
    turn is only correct behind a Softmax.

    Raises:
        InvalidActivationLossPairingError: For any invalid combination
    """
    loss_cls = get_loss(loss)

    for index, activation in enumerate(activations[:-1]):
        if activation.requires_fused_loss:
            raise InvalidActivationLossPairingError(
                f"Layer {index} uses {activation.value}, which is only "
                f"allowed on the output layer"
            )

    final = activations[-1]
    if final.requires_fused_loss and not loss_cls.requires_softmax_output:
        raise InvalidActivationLossPairingError(
            f"{final.value} output requires the 'cross_entropy' loss, got '{loss_cls.name}'"
        )
    if loss_cls.requires_softmax_output and not final.requires_fused_loss:
        raise InvalidActivationLossPairingError(
            f"'{loss_cls.name}' loss requires a Softmax output layer, got {final.value}"
        )


def default_output_kind(final_activation: ActivationFunction, output_size: int) -> str:
    """Pick how the output is presented when the caller does not say."""
    if final_activation is ActivationFunction.SOFTMAX:
        return 'distribution'
    if final_activation is ActivationFunction.SIGMOID and output_size == 1:
        return 'probability'
    return 'raw'


def _check_numeric(value: Any, where: str) -> None:
    """Require a (nested) list whose leaves are JSON numbers, not bools or strings."""
    if isinstance(value, list):
        for item in value:
            _check_numeric(item, where)
    elif isinstance(value, bool) or not isinstance(value, (int, float)):
        raise CorruptModelError(f"{where} contains non-numeric value {value!r}")


class Network:
    """
    A feed-forward neural network of dense layers.

    Layers are given as ``(out_size, in_size, activation)`` tuples; the
    first tuple's ``in_size`` is the model's input width and every later
    ``in_size`` must equal the previous ``out_size``.
    """

    def __init__(
        self,
        layer_specs: Sequence[LayerTuple],
        loss: str = 'mse',
        output_kind: Optional[str] = None,
        description: Optional[str] = None,
        output_labels: Optional[List[str]] = None,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Initializes the neural network.

        Args:
            layer_specs: Ordered ``(out_size, in_size, activation)`` tuples
            loss: Loss kind the network is trained with
            output_kind: 'raw', 'probability' or 'distribution'; inferred
                from the output layer when omitted
            description: Optional free-text description
            output_labels: Optional class labels, one per output neuron
            rng: Random generator used for weight initialization

        Raises:
            DimensionMismatchError: If the layer chain is inconsistent
            InvalidActivationLossPairingError: If Softmax and cross-entropy
                are not used together on the output layer
            ValueError: For unknown activations, losses or output kinds
        """
        specs = [
            (int(out_size), int(in_size), ActivationFunction.parse(activation))
            for out_size, in_size, activation in layer_specs
        ]
        self._validate_chain([(out_size, in_size) for out_size, in_size, _ in specs])

        activations = [activation for _, _, activation in specs]
        self.loss = get_loss(loss).name
        check_activation_loss_pairing(activations, self.loss)

        final_out = specs[-1][0]
        self.output_kind = self._resolve_output_kind(output_kind, activations[-1], final_out)
        self.output_labels = self._validate_labels(output_labels, final_out)
        self.description = description

        if rng is None:
            rng = np.random.default_rng()
        self.layers: List[Layer] = [
            Layer(out_size, in_size, activation, rng=rng)
            for out_size, in_size, activation in specs
        ]

        logger.info(
            f"Created network with architecture {self.architecture}, "
            f"activations {[a.value for a in activations]}, loss '{self.loss}'"
        )

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_chain(sizes: Sequence[Tuple[int, int]]) -> None:
        if not sizes:
            raise DimensionMismatchError("Network must have at least one layer")

        for index, (out_size, in_size) in enumerate(sizes):
            if out_size < 1 or in_size < 1:
                raise DimensionMismatchError(
                    f"Layer {index} sizes must be positive, got out={out_size}, in={in_size}"
                )
            if index > 0 and in_size != sizes[index - 1][0]:
                raise DimensionMismatchError(
                    f"Layer {index} expects {in_size} inputs but layer "
                    f"{index - 1} produces {sizes[index - 1][0]}"
                )

    @staticmethod
    def _resolve_output_kind(
        output_kind: Optional[str],
        final_activation: ActivationFunction,
        output_size: int
    ) -> str:
        if output_kind is None:
            return default_output_kind(final_activation, output_size)
        if output_kind not in OUTPUT_KINDS:
            raise ValueError(
                f"Unknown output kind '{output_kind}'. Valid options: {list(OUTPUT_KINDS)}"
            )
        if output_kind == 'probability' and output_size != 1:
            raise ValueError(
                f"Output kind 'probability' needs a single output, got {output_size}"
            )
        return output_kind

    @staticmethod
    def _validate_labels(
        output_labels: Optional[List[str]],
        output_size: int
    ) -> Optional[List[str]]:
        if output_labels is None:
            return None
        labels = [str(label) for label in output_labels]
        if len(labels) != output_size:
            raise ValueError(
                f"Got {len(labels)} output labels for {output_size} outputs"
            )
        return labels

    # ------------------------------------------------------------------
    # Alternate constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_spec(
        cls,
        spec: NetworkSpec,
        rng: Optional[np.random.Generator] = None
    ) -> 'Network':
        """Build a freshly initialized network from a :class:`NetworkSpec`."""
        metadata = spec.metadata
        return cls(
            spec.layer_tuples(),
            loss=spec.loss,
            output_kind=metadata.get('output_kind'),
            description=metadata.get('description'),
            output_labels=metadata.get('output_labels'),
            rng=rng
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Network':
        """
        Rebuild a network from its persisted form (see :meth:`to_dict`).

        Every layer's ``input_size`` is checked against the previous
        layer's ``output_size`` (the first against ``metadata.input_size``)
        and every array against its declared size.

        Raises:
            CorruptModelError: On any structural or dimensional problem
        """
        if not isinstance(data, dict):
            raise CorruptModelError("Model document must be a JSON object")

        try:
            metadata = data['metadata']
            entries = data['layers']
            input_size = metadata['input_size']
        except (KeyError, TypeError) as e:
            raise CorruptModelError(f"Model is missing required key {e}") from e

        if not isinstance(entries, list) or not entries:
            raise CorruptModelError("Model must contain a non-empty 'layers' list")
        if not isinstance(input_size, int) or isinstance(input_size, bool):
            raise CorruptModelError(f"metadata.input_size must be an integer, got {input_size!r}")

        layers = []
        expected_in = input_size
        for index, entry in enumerate(entries):
            layers.append(cls._layer_from_dict(index, entry, expected_in))
            expected_in = layers[-1].out_size

        network = object.__new__(cls)
        network.layers = layers

        activations = [layer.activation for layer in layers]
        try:
            network.loss = get_loss(metadata.get('loss') or cls._infer_loss(activations[-1])).name
            check_activation_loss_pairing(activations, network.loss)
            network.output_kind = cls._resolve_output_kind(
                metadata.get('output_kind'), activations[-1], layers[-1].out_size
            )
            network.output_labels = cls._validate_labels(
                metadata.get('output_labels'), layers[-1].out_size
            )
        except (ValueError, TypeError) as e:
            raise CorruptModelError(f"Invalid model metadata: {e}") from e
        description = metadata.get('description')
        if description is not None and not isinstance(description, str):
            raise CorruptModelError(
                f"metadata.description must be a string, got {type(description).__name__}"
            )
        network.description = description

        return network

    @staticmethod
    def _infer_loss(final_activation: ActivationFunction) -> str:
        return 'cross_entropy' if final_activation.requires_fused_loss else 'mse'

    @staticmethod
    def _layer_from_dict(index: int, entry: Dict[str, Any], expected_in: int) -> Layer:
        try:
            in_size = entry['input_size']
            out_size = entry['output_size']
            activation = ActivationFunction.parse(entry['activation'])
            raw_weights = entry['weights']
            raw_biases = entry['biases']
        except (KeyError, TypeError) as e:
            raise CorruptModelError(f"Layer {index} is missing required key {e}") from e
        except ValueError as e:
            raise CorruptModelError(f"Layer {index}: {e}") from e

        for name, value in (('input_size', in_size), ('output_size', out_size)):
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise CorruptModelError(
                    f"Layer {index} {name} must be a positive integer, got {value!r}"
                )
        if in_size != expected_in:
            raise CorruptModelError(
                f"Layer {index} input_size {in_size} does not match the "
                f"previous output size {expected_in}"
            )

        _check_numeric(raw_weights, f"Layer {index} weights")
        _check_numeric(raw_biases, f"Layer {index} biases")
        try:
            weights = np.array(raw_weights, dtype=np.float64)
            biases = np.array(raw_biases, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise CorruptModelError(f"Layer {index} contains non-numeric parameters: {e}") from e

        if weights.shape != (in_size, out_size):
            raise CorruptModelError(
                f"Layer {index} weights have shape {weights.shape}, "
                f"declared ({in_size}, {out_size})"
            )
        if biases.shape != (out_size,):
            raise CorruptModelError(
                f"Layer {index} biases have shape {biases.shape}, declared ({out_size},)"
            )
        if not (np.all(np.isfinite(weights)) and np.all(np.isfinite(biases))):
            raise CorruptModelError(f"Layer {index} contains non-finite parameters")

        return Layer(
            out_size,
            in_size,
            activation,
            weights=Matrix(weights),
            biases=Matrix(biases.reshape(1, -1))
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def input_size(self) -> int:
        return self.layers[0].in_size

    @property
    def output_size(self) -> int:
        return self.layers[-1].out_size

    @property
    def architecture(self) -> List[int]:
        """Layer widths from input to output, e.g. ``[2, 4, 1]``."""
        return [self.input_size] + [layer.out_size for layer in self.layers]

    @property
    def parameter_count(self) -> int:
        return sum(layer.parameter_count for layer in self.layers)

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    def forward_row(self, inputs: RowLike) -> Matrix:
        """Forward pass returning the ``1 x output_size`` matrix."""
        current = as_row(inputs, self.input_size, 'Network input')
        for layer in self.layers:
            current = layer.feed_from(current)
        return current

    def forward(self, inputs: RowLike) -> List[float]:
        """
        Threads ``inputs`` through every layer in order.

        Args:
            inputs: Row of length ``input_size``

        Returns:
            list: The output row

        Raises:
            ShapeMismatchError: If the input width is wrong
        """
        return self.forward_row(inputs).row(0)

    def predict(self, inputs: RowLike):
        """
        Forward pass shaped for presentation according to ``output_kind``.

        Returns:
            float for 'probability', ``(index, probabilities)`` for
            'distribution', and the raw output list otherwise
        """
        output = self.forward(inputs)
        if self.output_kind == 'probability':
            return output[0]
        if self.output_kind == 'distribution':
            return int(np.argmax(output)), output
        return output

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def metadata(self) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            'input_size': self.input_size,
            'output_kind': self.output_kind,
            'loss': self.loss
        }
        if self.description is not None:
            metadata['description'] = self.description
        if self.output_labels is not None:
            metadata['output_labels'] = list(self.output_labels)
        return metadata

    def to_dict(self) -> Dict[str, Any]:
        """Persisted form: a metadata block plus one entry per layer."""
        return {
            'metadata': self.metadata(),
            'layers': [layer.to_dict() for layer in self.layers]
        }

    def summary(self) -> str:
        """
        Generates a text summary of the network architecture and parameters.
        """
        lines = ["=" * 50, "Neural Network Summary", "=" * 50]
        for i, layer in enumerate(self.layers):
            lines.append(
                f"Layer {i}: Dense {layer.in_size} -> {layer.out_size} "
                f"({layer.activation.value}), {layer.parameter_count} parameters"
            )
        lines.append("-" * 50)
        lines.append(f"Loss: {self.loss}, output kind: {self.output_kind}")
        lines.append(f"Total Parameters: {self.parameter_count}")
        lines.append("=" * 50)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"Network(architecture={self.architecture}, loss={self.loss!r})"
