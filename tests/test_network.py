"""
Tests for the two-layer QNetwork.
"""
import numpy as np
import pytest

from mindloop.errors import NumericInstabilityError
from mindloop.learning.network import QNetwork, relu


def test_relu():
    assert list(relu(np.array([-1.0, 0.0, 2.0]))) == [0.0, 0.0, 2.0]


class TestForward:
    """Tests for prediction."""

    def test_shapes(self):
        net = QNetwork(seed=1)
        hidden, q = net.forward(np.ones(10))
        assert hidden.shape == (20,)
        assert q.shape == (10,)
        assert np.all(hidden >= 0)

    def test_weights_start_small(self):
        net = QNetwork(init_scale=0.1, seed=2)
        for array in (net.input_to_hidden, net.hidden_to_output, net.hidden_bias, net.output_bias):
            assert np.all(np.abs(array) <= 0.1)

    def test_seeded_init_is_reproducible(self):
        a = QNetwork(seed=3)
        b = QNetwork(seed=3)
        assert np.array_equal(a.input_to_hidden, b.input_to_hidden)

    def test_wrong_input_size(self):
        with pytest.raises(ValueError):
            QNetwork(seed=1).predict(np.ones(4))


class TestUpdate:
    """Tests for the semi-gradient step."""

    def test_update_moves_towards_target(self):
        net = QNetwork(seed=4)
        state = np.linspace(0, 1, 10)
        next_state = np.zeros(10)

        before = net.predict(state)[2]
        target = 1.0 + 0.9 * float(np.max(net.predict(next_state)))
        error = net.update(state, 2, 1.0, next_state, 0.05, 0.9)

        assert error == pytest.approx(target - before)
        assert abs(target - net.predict(state)[2]) < abs(target - before)

    def test_only_chosen_output_column_changes(self):
        net = QNetwork(seed=5)
        before = net.hidden_to_output.copy()
        net.update(np.ones(10), 3, 1.0, np.ones(10), 0.1, 0.9)

        changed = np.any(net.hidden_to_output != before, axis=0)
        assert list(np.nonzero(changed)[0]) == [3]

    def test_update_matches_hand_computed_step(self):
        """Every weight moves exactly as the semi-gradient rule dictates."""
        net = QNetwork(input_size=3, hidden_size=4, output_size=2, init_scale=0.5, seed=12)
        state = np.array([0.5, -1.0, 2.0])
        next_state = np.array([1.0, 0.0, -0.5])
        lr, gamma, reward, a = 0.1, 0.9, 1.0, 1

        W1 = net.input_to_hidden.copy()
        b1 = net.hidden_bias.copy()
        W2 = net.hidden_to_output.copy()
        b2 = net.output_bias.copy()

        hidden = [max(0.0, sum(state[i] * W1[i, j] for i in range(3)) + b1[j]) for j in range(4)]
        q = sum(hidden[j] * W2[j, a] for j in range(4)) + b2[a]
        next_hidden = [max(0.0, sum(next_state[i] * W1[i, j] for i in range(3)) + b1[j]) for j in range(4)]
        max_next = max(sum(next_hidden[j] * W2[j, k] for j in range(4)) + b2[k] for k in range(2))
        error = reward + gamma * max_next - q

        for j in range(4):
            W2[j, a] += lr * error * hidden[j]
        b2[a] += lr * error
        for j in range(4):
            if hidden[j] > 0:
                hidden_error = error * W2[j, a]
                for i in range(3):
                    W1[i, j] += lr * state[i] * hidden_error
                b1[j] += lr * hidden_error

        assert net.update(state, a, reward, next_state, lr, gamma) == pytest.approx(error)
        assert np.allclose(net.hidden_to_output, W2)
        assert np.allclose(net.output_bias, b2)
        assert np.allclose(net.input_to_hidden, W1)
        assert np.allclose(net.hidden_bias, b1)

    def test_bad_action_index(self):
        with pytest.raises(IndexError):
            QNetwork(seed=1).update(np.ones(10), 10, 1.0, np.ones(10), 0.1, 0.9)

    def test_non_finite_update_leaves_weights(self):
        net = QNetwork(seed=6)
        snapshot = net.to_dict()

        with pytest.raises(NumericInstabilityError):
            net.update(np.ones(10), 0, float("inf"), np.ones(10), 0.1, 0.9)
        assert net.to_dict() == snapshot

    def test_overflowing_update_is_rejected(self):
        net = QNetwork(seed=7)
        snapshot = net.to_dict()

        with pytest.raises(NumericInstabilityError):
            net.update(np.full(10, 1e300), 0, 1e300, np.zeros(10), 1.0, 0.0)
        assert net.to_dict() == snapshot


class TestSerialization:
    """Tests for to_dict / load_dict."""

    def test_round_trip(self):
        net = QNetwork(seed=8)
        copy = QNetwork(seed=9)

        assert copy.load_dict(net.to_dict())
        assert np.allclose(copy.predict(np.ones(10)), net.predict(np.ones(10)))

    @pytest.mark.parametrize("mutate", [
        lambda d: d.pop("hidden_bias"),
        lambda d: d.__setitem__("output_bias", [0.0] * 3),
        lambda d: d.__setitem__("input_to_hidden", "weights"),
        lambda d: d["hidden_bias"].__setitem__(0, float("nan")),
    ])
    def test_malformed_weights_rejected(self, mutate):
        net = QNetwork(seed=10)
        data = QNetwork(seed=11).to_dict()
        mutate(data)
        before = net.to_dict()

        assert not net.load_dict(data)
        assert net.to_dict() == before

    def test_non_dict(self):
        assert not QNetwork(seed=1).load_dict(None)
