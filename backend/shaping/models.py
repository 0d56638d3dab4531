"""
Policy networks for the shaping trainer.

Three interchangeable topologies sit behind one PolicyModel interface:

    simple-mlp      Dense 32 -> 16 -> 8 with dropout, tanh head
    residual-mlp    Dense 64 -> 64 with an additive skip, then 32, tanh head
    recurrent-lstm  LSTM(16) over the last `sequence_length` inputs,
                    dense 16, tanh head

All heads emit action_dim values in [-1, 1]. The recurrent variant keeps
its own rolling input history; predict() pushes into it, predict_batch()
and training never touch it.
"""

import copy
import logging
import time
from collections import deque
from enum import Enum
from typing import Callable, Optional, Sequence

import numpy as np
import torch
import torch.nn as nn
import torch.optim as optim

logger = logging.getLogger(__name__)


class Topology(str, Enum):
    SIMPLE_FEEDFORWARD = "simple-mlp"
    RESIDUAL_FEEDFORWARD = "residual-mlp"
    RECURRENT_SEQUENCE = "recurrent-lstm"


class SimpleFeedforwardNet(nn.Module):
    """Small dense policy with dropout for regularization."""

    def __init__(self, input_dim: int, output_dim: int, dropout: float = 0.1):
        super().__init__()
        self.layers = nn.Sequential(
            nn.Linear(input_dim, 32),
            nn.ReLU(),
            nn.Dropout(dropout),
            nn.Linear(32, 16),
            nn.ReLU(),
            nn.Dropout(dropout),
            nn.Linear(16, 8),
            nn.ReLU(),
            nn.Linear(8, output_dim),
            nn.Tanh(),
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.layers(x)


class ResidualFeedforwardNet(nn.Module):
    """Dense policy with one residual connection."""

    def __init__(self, input_dim: int, output_dim: int, hidden_dim: int = 64):
        super().__init__()
        self.dense1 = nn.Linear(input_dim, hidden_dim)
        self.dense2 = nn.Linear(hidden_dim, hidden_dim)
        self.dense3 = nn.Linear(hidden_dim, 32)
        self.out = nn.Linear(32, output_dim)
        self.relu = nn.ReLU()
        self.tanh = nn.Tanh()

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        h1 = self.relu(self.dense1(x))
        h2 = self.relu(self.dense2(h1))
        h = self.relu(self.dense3(h1 + h2))  # residual
        return self.tanh(self.out(h))


class RecurrentSequenceNet(nn.Module):
    """LSTM over a fixed-length input sequence."""

    def __init__(self, input_dim: int, output_dim: int, hidden_dim: int = 16):
        super().__init__()
        self.lstm = nn.LSTM(input_dim, hidden_dim, batch_first=True)
        self.dense = nn.Linear(hidden_dim, 16)
        self.out = nn.Linear(16, output_dim)
        self.relu = nn.ReLU()
        self.tanh = nn.Tanh()

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        # x: (batch, time, features)
        _, (h_n, _) = self.lstm(x)
        h = self.relu(self.dense(h_n[-1]))
        return self.tanh(self.out(h))


class PolicyModel:
    """
    A trainable policy of one topology.

    Owns its network, its optimizer and (for sequence topologies) the
    rolling input history. The Learner clones models to train shadows and
    swaps them in when training succeeds.
    """

    topology: Topology = Topology.SIMPLE_FEEDFORWARD

    def __init__(
        self,
        input_dim: int,
        output_dim: int,
        lr: float = 1e-3,
        weight_decay: float = 1e-3,
        device: str = "cpu",
    ):
        self.input_dim = input_dim
        self.output_dim = output_dim
        self.lr = lr
        self.weight_decay = weight_decay
        self.device = torch.device(device)
        self.net = self._build_net().to(self.device)
        self.optimizer = optim.AdamW(self.net.parameters(), lr=lr, weight_decay=weight_decay)
        self.training_steps = 0
        self.disposed = False

    def _build_net(self) -> nn.Module:
        raise NotImplementedError

    @property
    def num_parameters(self) -> int:
        return sum(p.numel() for p in self.net.parameters())

    # ----------------------------------------------------------------
    # Input preparation
    # ----------------------------------------------------------------

    def _check_width(self, features: Sequence[float]):
        if len(features) != self.input_dim:
            raise ValueError(f"Expected {self.input_dim} features, got {len(features)}")

    def _prepare_single(self, features: Sequence[float]) -> torch.Tensor:
        """(1, input_dim) tensor for one live prediction."""
        return torch.tensor([list(features)], dtype=torch.float32, device=self.device)

    def _prepare_batch(self, inputs: np.ndarray) -> torch.Tensor:
        """Network input for a (batch, input_dim) array."""
        return torch.as_tensor(inputs, dtype=torch.float32, device=self.device)

    # ----------------------------------------------------------------
    # Inference
    # ----------------------------------------------------------------

    def predict(self, features: Sequence[float]) -> list[float]:
        """Action for one live input vector."""
        self._check_width(features)
        x = self._prepare_single(features)
        self.net.eval()
        with torch.no_grad():
            y = self.net(x)
        return [float(v) for v in y[0].cpu()]

    def predict_batch(self, inputs: np.ndarray) -> np.ndarray:
        """Actions for a (batch, input_dim) array, without side effects."""
        inputs = np.asarray(inputs, dtype=np.float32)
        if inputs.ndim != 2 or inputs.shape[1] != self.input_dim:
            raise ValueError(f"Expected (batch, {self.input_dim}) inputs, got {inputs.shape}")
        self.net.eval()
        with torch.no_grad():
            y = self.net(self._prepare_batch(inputs))
        return y.cpu().numpy()

    # ----------------------------------------------------------------
    # Training
    # ----------------------------------------------------------------

    def train_step(self, inputs: torch.Tensor, targets: torch.Tensor, weights: torch.Tensor) -> float:
        """One optimizer step of per-sample weighted MSE."""
        self.net.train()
        predicted = self.net(inputs)
        per_sample = ((predicted - targets) ** 2).mean(dim=1)
        loss = (per_sample * weights).sum() / weights.sum().clamp(min=1e-8)

        self.optimizer.zero_grad()
        loss.backward()
        torch.nn.utils.clip_grad_norm_(self.net.parameters(), max_norm=1.0)
        self.optimizer.step()

        self.training_steps += 1
        return loss.item()

    def fit(
        self,
        inputs: np.ndarray,
        targets: np.ndarray,
        weights: np.ndarray,
        epochs: int = 1,
        batch_size: int = 8,
        should_abort: Optional[Callable[[], bool]] = None,
        yield_every_step: bool = True,
    ) -> Optional[float]:
        """
        Train for a few epochs of small mini-batches.

        Sleeps for 0 s between steps so other threads get the GIL; checks
        should_abort before every step.

        Returns:
            Mean loss of the last epoch, or None if aborted.
        """
        if self.disposed:
            raise RuntimeError("Cannot train a disposed model")

        x_all = self._prepare_batch(np.asarray(inputs, dtype=np.float32))
        y_all = torch.as_tensor(np.asarray(targets, dtype=np.float32), device=self.device)
        w_all = torch.as_tensor(np.asarray(weights, dtype=np.float32), device=self.device)
        n = x_all.shape[0]
        if n == 0:
            return 0.0

        last_epoch_loss = 0.0
        for _ in range(epochs):
            order = torch.randperm(n)
            losses = []
            for start in range(0, n, batch_size):
                if should_abort and should_abort():
                    return None
                idx = order[start:start + batch_size]
                losses.append(self.train_step(x_all[idx], y_all[idx], w_all[idx]))
                if yield_every_step:
                    time.sleep(0)
            last_epoch_loss = sum(losses) / len(losses)
        return last_epoch_loss

    # ----------------------------------------------------------------
    # Copies and lifecycle
    # ----------------------------------------------------------------

    def clone(self) -> "PolicyModel":
        """Independent copy with the same weights and optimizer state."""
        if self.disposed:
            raise RuntimeError("Cannot clone a disposed model")
        return copy.deepcopy(self)

    def clone_weights(self, other: "PolicyModel"):
        """Copy other's weights into this model (topologies must match)."""
        if other.topology is not self.topology:
            raise ValueError(f"Topology mismatch: {other.topology.value} -> {self.topology.value}")
        self.net.load_state_dict(other.net.state_dict())

    def reset_history(self):
        """Forget sequence context. No-op for feedforward topologies."""

    def adopt_history(self, other: "PolicyModel"):
        """Take over other's sequence context. No-op for feedforward topologies."""

    def dispose(self):
        """Release the optimizer; the model must not be trained afterwards."""
        self.disposed = True
        self.optimizer.state.clear()

    def describe(self) -> dict:
        return {
            "topology": self.topology.value,
            "input_dim": self.input_dim,
            "output_dim": self.output_dim,
            "parameters": self.num_parameters,
            "training_steps": self.training_steps,
        }


class SimpleFeedforwardPolicy(PolicyModel):
    topology = Topology.SIMPLE_FEEDFORWARD

    def _build_net(self) -> nn.Module:
        return SimpleFeedforwardNet(self.input_dim, self.output_dim)


class ResidualFeedforwardPolicy(PolicyModel):
    topology = Topology.RESIDUAL_FEEDFORWARD

    def _build_net(self) -> nn.Module:
        return ResidualFeedforwardNet(self.input_dim, self.output_dim)


class RecurrentSequencePolicy(PolicyModel):
    """
    Sequence policy fed with the last `sequence_length` inputs.

    Live predictions append to the rolling history (zero-padded at the
    front until full). Batches are turned into sequences ending at each
    row, using the preceding rows of the same batch as context.
    """

    topology = Topology.RECURRENT_SEQUENCE

    def __init__(self, input_dim: int, output_dim: int, sequence_length: int = 10, **kwargs):
        self.sequence_length = sequence_length
        self.history: deque[list[float]] = deque(maxlen=sequence_length)
        super().__init__(input_dim, output_dim, **kwargs)

    def _build_net(self) -> nn.Module:
        return RecurrentSequenceNet(self.input_dim, self.output_dim)

    def _padded(self, rows: list) -> list:
        padding = [[0.0] * self.input_dim] * (self.sequence_length - len(rows))
        return padding + rows

    def _prepare_single(self, features: Sequence[float]) -> torch.Tensor:
        self.history.append([float(v) for v in features])
        sequence = self._padded(list(self.history))
        return torch.tensor([sequence], dtype=torch.float32, device=self.device)

    def _prepare_batch(self, inputs: np.ndarray) -> torch.Tensor:
        rows = np.asarray(inputs, dtype=np.float32).tolist()
        sequences = []
        for i in range(len(rows)):
            start = max(0, i - self.sequence_length + 1)
            sequences.append(self._padded(rows[start:i + 1]))
        return torch.tensor(sequences, dtype=torch.float32, device=self.device).reshape(
            len(rows), self.sequence_length, self.input_dim
        )

    def reset_history(self):
        self.history.clear()

    def adopt_history(self, other: "PolicyModel"):
        if isinstance(other, RecurrentSequencePolicy):
            self.history = deque(other.history, maxlen=self.sequence_length)

    def describe(self) -> dict:
        info = super().describe()
        info["sequence_length"] = self.sequence_length
        info["history"] = len(self.history)
        return info


_POLICY_CLASSES = {
    Topology.SIMPLE_FEEDFORWARD: SimpleFeedforwardPolicy,
    Topology.RESIDUAL_FEEDFORWARD: ResidualFeedforwardPolicy,
    Topology.RECURRENT_SEQUENCE: RecurrentSequencePolicy,
}


def build_policy(
    topology,
    input_dim: int,
    output_dim: int,
    lr: float = 1e-3,
    weight_decay: float = 1e-3,
    sequence_length: int = 10,
    device: str = "cpu",
) -> PolicyModel:
    """Create a freshly initialized policy of the requested topology."""
    topology = Topology(topology)
    cls = _POLICY_CLASSES[topology]
    kwargs = {"lr": lr, "weight_decay": weight_decay, "device": device}
    if topology is Topology.RECURRENT_SEQUENCE:
        kwargs["sequence_length"] = sequence_length
    model = cls(input_dim, output_dim, **kwargs)
    logger.debug(f"Built {topology.value} policy: params={model.num_parameters}")
    return model
