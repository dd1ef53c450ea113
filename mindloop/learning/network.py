"""
Two-layer Q-value network.

``hidden = ReLU(x @ W1 + b1)``, ``q = hidden @ W2 + b2``. Trained online
with a single semi-gradient step per experience; there is no optimizer,
batching or target network.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

import numpy as np

from ..errors import NumericInstabilityError

logger = logging.getLogger(__name__)


def relu(x: np.ndarray) -> np.ndarray:
    return np.maximum(0, x)


class QNetwork:
    """
    Q-value approximator with one ReLU hidden layer.

    Attributes:
        input_to_hidden: (input_size, hidden_size) weights
        hidden_to_output: (hidden_size, output_size) weights
        hidden_bias: (hidden_size,) biases
        output_bias: (output_size,) biases
    """

    def __init__(
        self,
        input_size: int = 10,
        hidden_size: int = 20,
        output_size: int = 10,
        init_scale: float = 0.1,
        seed: Optional[int] = None,
    ):
        self.input_size = input_size
        self.hidden_size = hidden_size
        self.output_size = output_size
        self.init_scale = init_scale
        self.rng = np.random.default_rng(seed)
        self.init_weights()

    def init_weights(self) -> None:
        """Draw all weights uniformly from [-init_scale, init_scale]."""
        s = self.init_scale
        self.input_to_hidden = self.rng.uniform(-s, s, (self.input_size, self.hidden_size))
        self.hidden_to_output = self.rng.uniform(-s, s, (self.hidden_size, self.output_size))
        self.hidden_bias = self.rng.uniform(-s, s, self.hidden_size)
        self.output_bias = self.rng.uniform(-s, s, self.output_size)
        logger.info("Network weights initialized")

    def _as_input(self, features: Any) -> np.ndarray:
        x = np.asarray(features, dtype=float).reshape(-1)
        if x.shape[0] != self.input_size:
            raise ValueError(f"Expected {self.input_size} features, got {x.shape[0]}")
        return x

    def forward(self, features: Any) -> Tuple[np.ndarray, np.ndarray]:
        """
        Returns:
            (hidden activations, Q-values)
        """
        x = self._as_input(features)
        hidden = relu(x @ self.input_to_hidden + self.hidden_bias)
        q_values = hidden @ self.hidden_to_output + self.output_bias
        return hidden, q_values

    def predict(self, features: Any) -> np.ndarray:
        return self.forward(features)[1]

    def update(
        self,
        state: Any,
        action_index: int,
        reward: float,
        next_state: Any,
        learning_rate: float,
        discount_factor: float,
    ) -> float:
        """
        One semi-gradient Q-learning step on the chosen action's output.

        The output column is updated first; the hidden-layer error is then
        back-propagated through the already updated column, only into
        hidden units that were active.

        Returns:
            The TD error

        Raises:
            NumericInstabilityError: If the error or any new weight is not finite.
                Weights are left unchanged.
        """
        if not 0 <= action_index < self.output_size:
            raise IndexError(f"Action index {action_index} out of range")
        x = self._as_input(state)
        hidden, q_values = self.forward(x)
        max_next_q = float(np.max(self.predict(next_state)))
        error = float(reward + discount_factor * max_next_q - q_values[action_index])
        if not np.isfinite(error):
            raise NumericInstabilityError(f"Non-finite TD error: {error}")

        hidden_to_output = self.hidden_to_output.copy()
        output_bias = self.output_bias.copy()
        input_to_hidden = self.input_to_hidden.copy()
        hidden_bias = self.hidden_bias.copy()

        hidden_to_output[:, action_index] += learning_rate * error * hidden
        output_bias[action_index] += learning_rate * error

        active = hidden > 0
        hidden_error = error * hidden_to_output[:, action_index]
        input_to_hidden[:, active] += learning_rate * np.outer(x, hidden_error[active])
        hidden_bias[active] += learning_rate * hidden_error[active]

        for name, array in (
            ("input_to_hidden", input_to_hidden),
            ("hidden_to_output", hidden_to_output),
            ("hidden_bias", hidden_bias),
            ("output_bias", output_bias),
        ):
            if not np.all(np.isfinite(array)):
                raise NumericInstabilityError(f"Non-finite values in {name}")

        self.input_to_hidden = input_to_hidden
        self.hidden_to_output = hidden_to_output
        self.hidden_bias = hidden_bias
        self.output_bias = output_bias
        return error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_to_hidden": self.input_to_hidden.tolist(),
            "hidden_to_output": self.hidden_to_output.tolist(),
            "hidden_bias": self.hidden_bias.tolist(),
            "output_bias": self.output_bias.tolist(),
        }

    def load_dict(self, data: Dict[str, Any]) -> bool:
        """
        Replace weights from a persisted mapping.

        Returns:
            False (weights untouched) if any array is missing, mis-shaped or non-finite
        """
        expected = {
            "input_to_hidden": (self.input_size, self.hidden_size),
            "hidden_to_output": (self.hidden_size, self.output_size),
            "hidden_bias": (self.hidden_size,),
            "output_bias": (self.output_size,),
        }
        if not isinstance(data, dict):
            return False
        arrays = {}
        for key, shape in expected.items():
            try:
                array = np.asarray(data.get(key), dtype=float)
            except (TypeError, ValueError):
                return False
            if array.shape != shape or not np.all(np.isfinite(array)):
                return False
            arrays[key] = array
        self.input_to_hidden = arrays["input_to_hidden"]
        self.hidden_to_output = arrays["hidden_to_output"]
        self.hidden_bias = arrays["hidden_bias"]
        self.output_bias = arrays["output_bias"]
        return True
