"""
test_network.py
~~~~~~~~~~~~~~~

Unit tests for Network construction, inference and backpropagation.
"""

import pytest
import numpy as np

from dense_nn.activations import ActivationFunction
from dense_nn.architecture import NetworkSpec
from dense_nn.errors import (
    CorruptModelError,
    DimensionMismatchError,
    InvalidActivationLossPairingError,
    ShapeMismatchError,
)
from dense_nn.losses import get_loss
from dense_nn.matrix import Matrix
from dense_nn.network import Network, check_activation_loss_pairing


@pytest.fixture
def rng():
    return np.random.default_rng(7)


@pytest.fixture
def small_network(rng):
    """2 -> 2 -> 1 sigmoid network trained with MSE."""
    return Network([(2, 2, 'sigmoid'), (1, 2, 'sigmoid')], loss='mse', rng=rng)


@pytest.fixture
def classifier(rng):
    """3 -> 4 -> 3 ReLU/Softmax classifier."""
    return Network(
        [(4, 3, 'relu'), (3, 4, 'softmax')],
        loss='cross_entropy',
        output_labels=['a', 'b', 'c'],
        rng=rng
    )


def backprop(network, x, y):
    """Per-layer weight and bias gradients for one sample."""
    loss = get_loss(network.loss)
    output = network.forward(x)
    delta = Matrix.row_vector(loss.derivative(output, y))
    grads = [None] * len(network.layers)
    for i in range(len(network.layers) - 1, -1, -1):
        layer_input = Matrix.row_vector(x) if i == 0 else network.layers[i - 1].last_activation
        wg, bg, delta = network.layers[i].compute_gradients(delta, layer_input)
        grads[i] = (wg, bg)
    return grads


def numeric_weight_gradient(network, layer_index, x, y, h=1e-5):
    """Central finite differences of the loss w.r.t. one layer's weights."""
    loss = get_loss(network.loss)
    layer = network.layers[layer_index]
    original = layer.weights
    grad = np.zeros(original.shape)
    for r in range(original.rows):
        for c in range(original.cols):
            values = original.data.copy()
            values[r, c] += h
            layer.weights = Matrix(values)
            plus = loss.loss(network.forward(x), y)
            values[r, c] -= 2 * h
            layer.weights = Matrix(values)
            minus = loss.loss(network.forward(x), y)
            grad[r, c] = (plus - minus) / (2 * h)
    layer.weights = original
    return grad


@pytest.mark.unit
class TestNetworkConstruction:
    """Test chain and pairing validation."""

    def test_architecture(self, small_network):
        """Test that architecture lists widths from input to output."""
        assert small_network.architecture == [2, 2, 1]
        assert small_network.input_size == 2
        assert small_network.output_size == 1

    def test_chain_mismatch(self):
        """Test that a layer's in_size must equal the previous out_size."""
        with pytest.raises(DimensionMismatchError, match="Layer 1 expects 3"):
            Network([(4, 2, 'relu'), (1, 3, 'sigmoid')])

    def test_empty_network(self):
        """Test that at least one layer is required."""
        with pytest.raises(DimensionMismatchError):
            Network([])

    def test_non_positive_size(self):
        """Test that layer sizes must be positive."""
        with pytest.raises(DimensionMismatchError):
            Network([(0, 2, 'relu')])

    def test_softmax_requires_cross_entropy(self):
        """Test that a Softmax output with MSE is rejected."""
        with pytest.raises(InvalidActivationLossPairingError):
            Network([(3, 2, 'softmax')], loss='mse')

    def test_cross_entropy_requires_softmax(self):
        """Test that cross-entropy behind a Sigmoid output is rejected."""
        with pytest.raises(InvalidActivationLossPairingError):
            Network([(3, 2, 'sigmoid')], loss='cross_entropy')

    def test_softmax_hidden_layer_rejected(self):
        """Test that Softmax may only be used on the output layer."""
        with pytest.raises(InvalidActivationLossPairingError, match="Layer 0"):
            Network([(3, 2, 'softmax'), (3, 3, 'softmax')], loss='cross_entropy')

    def test_pairing_check_standalone(self):
        """Test the pairing check on a plain activation list."""
        check_activation_loss_pairing(
            [ActivationFunction.RELU, ActivationFunction.SOFTMAX], 'cross_entropy'
        )
        with pytest.raises(InvalidActivationLossPairingError):
            check_activation_loss_pairing([ActivationFunction.IDENTITY], 'cross_entropy')

    def test_unknown_loss(self):
        """Test that an unknown loss kind raises ValueError."""
        with pytest.raises(ValueError):
            Network([(1, 2, 'sigmoid')], loss='hinge')

    def test_default_output_kinds(self, small_network, classifier):
        """Test output kinds inferred from the output layer."""
        assert small_network.output_kind == 'probability'
        assert classifier.output_kind == 'distribution'
        assert Network([(2, 2, 'identity')]).output_kind == 'raw'

    def test_probability_needs_single_output(self):
        """Test that 'probability' is rejected for multi-output layers."""
        with pytest.raises(ValueError):
            Network([(2, 2, 'sigmoid')], output_kind='probability')

    def test_label_count_checked(self):
        """Test that output labels must match the output width."""
        with pytest.raises(ValueError):
            Network([(2, 2, 'sigmoid')], output_labels=['only one'])

    def test_seeded_construction_is_reproducible(self):
        """Test that equal seeds give equal weights."""
        a = Network([(3, 2, 'relu')], rng=np.random.default_rng(3))
        b = Network([(3, 2, 'relu')], rng=np.random.default_rng(3))
        assert a.layers[0].weights == b.layers[0].weights

    def test_from_spec(self):
        """Test building a network from a NetworkSpec."""
        spec = NetworkSpec(
            'digits',
            [(8, 4, 'relu'), (3, 8, 'softmax')],
            loss='cross_entropy',
            metadata={'description': 'toy', 'output_labels': ['x', 'y', 'z']}
        )
        net = Network.from_spec(spec)
        assert net.architecture == [4, 8, 3]
        assert net.loss == 'cross_entropy'
        assert net.description == 'toy'
        assert net.output_labels == ['x', 'y', 'z']


@pytest.mark.unit
class TestNetworkInference:
    """Test forward and predict."""

    def test_forward_returns_list(self, small_network):
        """Test that forward returns a flat list of output_size floats."""
        out = small_network.forward([0.5, -0.5])
        assert isinstance(out, list)
        assert len(out) == 1
        assert 0.0 < out[0] < 1.0

    def test_forward_wrong_width(self, small_network):
        """Test that the input width must match the first layer."""
        with pytest.raises(ShapeMismatchError):
            small_network.forward([1.0, 2.0, 3.0])

    def test_forward_is_deterministic(self, classifier):
        """Test that repeated forward passes agree."""
        assert classifier.forward([1.0, 2.0, 3.0]) == classifier.forward([1.0, 2.0, 3.0])

    def test_predict_probability(self, small_network):
        """Test that a probability network predicts a float."""
        assert isinstance(small_network.predict([0.0, 1.0]), float)

    def test_predict_distribution(self, classifier):
        """Test that a distribution network predicts (argmax, probabilities)."""
        index, probs = classifier.predict([0.1, 0.2, 0.3])
        assert sum(probs) == pytest.approx(1.0)
        assert index == int(np.argmax(probs))

    def test_summary(self, classifier):
        """Test that the summary mentions every layer and the parameter count."""
        text = classifier.summary()
        assert "Layer 0: Dense 3 -> 4 (ReLU)" in text
        assert "Layer 1: Dense 4 -> 3 (Softmax)" in text
        assert f"Total Parameters: {classifier.parameter_count}" in text


@pytest.mark.unit
class TestBackpropagation:
    """Test analytic gradients against finite differences."""

    def test_sigmoid_mse_gradients(self, small_network):
        """Test every weight gradient of a 2-2-1 sigmoid MSE network."""
        x, y = [0.4, -0.8], [1.0]
        grads = backprop(small_network, x, y)
        for i in range(len(small_network.layers)):
            numeric = numeric_weight_gradient(small_network, i, x, y)
            assert np.allclose(grads[i][0].data, numeric, atol=1e-4)

    def test_softmax_cross_entropy_gradients(self, classifier):
        """Test the fused Softmax + cross-entropy gradient through a ReLU layer."""
        x, y = [0.5, -1.0, 2.0], [0.0, 1.0, 0.0]
        grads = backprop(classifier, x, y)
        for i in range(len(classifier.layers)):
            numeric = numeric_weight_gradient(classifier, i, x, y)
            assert np.allclose(grads[i][0].data, numeric, atol=1e-4)


@pytest.mark.unit
class TestNetworkSerialization:
    """Test to_dict / from_dict."""

    def test_round_trip(self, classifier):
        """Test that a rebuilt network produces identical outputs."""
        restored = Network.from_dict(classifier.to_dict())
        x = [0.3, -0.1, 0.9]
        assert restored.forward(x) == classifier.forward(x)
        assert restored.output_labels == ['a', 'b', 'c']
        assert restored.loss == 'cross_entropy'

    def test_missing_loss_is_inferred(self, classifier):
        """Test that documents without a loss key still load."""
        data = classifier.to_dict()
        del data['metadata']['loss']
        assert Network.from_dict(data).loss == 'cross_entropy'

    def test_chain_mismatch_is_corrupt(self, small_network):
        """Test that an inconsistent layer chain is reported as corrupt."""
        data = small_network.to_dict()
        data['layers'][1]['input_size'] = 3
        with pytest.raises(CorruptModelError):
            Network.from_dict(data)

    def test_weight_shape_is_checked(self, small_network):
        """Test that weights must match the declared sizes."""
        data = small_network.to_dict()
        data['layers'][0]['weights'] = data['layers'][0]['weights'][:1]
        with pytest.raises(CorruptModelError, match="weights have shape"):
            Network.from_dict(data)

    def test_unknown_activation_is_corrupt(self, small_network):
        """Test that an unknown activation name is reported as corrupt."""
        data = small_network.to_dict()
        data['layers'][0]['activation'] = 'Swish'
        with pytest.raises(CorruptModelError):
            Network.from_dict(data)

    @pytest.mark.parametrize("bad_value", ["1.5", True, None])
    def test_non_numeric_weights_are_corrupt(self, bad_value):
        """Test that string, boolean or null weights are rejected rather than coerced."""
        net = Network([(1, 2, 'identity')])
        data = net.to_dict()
        data['layers'][0]['weights'] = [[bad_value], [2]]
        with pytest.raises(CorruptModelError, match="non-numeric"):
            Network.from_dict(data)

    def test_non_numeric_biases_are_corrupt(self, small_network):
        """Test that a string bias is rejected."""
        data = small_network.to_dict()
        data['layers'][1]['biases'] = ["0.0"]
        with pytest.raises(CorruptModelError, match="biases"):
            Network.from_dict(data)

    def test_integer_weights_are_accepted(self):
        """Test that JSON integers are valid parameter values."""
        net = Network([(1, 2, 'identity')])
        data = net.to_dict()
        data['layers'][0]['weights'] = [[1], [2]]
        data['layers'][0]['biases'] = [0]
        assert Network.from_dict(data).forward([1.0, 1.0]) == [3.0]

    def test_non_string_description_is_corrupt(self, small_network):
        """Test that metadata.description must be a string when present."""
        data = small_network.to_dict()
        data['metadata']['description'] = {'text': 'nested'}
        with pytest.raises(CorruptModelError, match="description"):
            Network.from_dict(data)
