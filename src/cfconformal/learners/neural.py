"""Neural network learner adapters.

MLP: X -> k outputs, trained with Adam on minibatches. The same
backbone serves the mean (squared error), quantile (pinball loss) and
propensity (binary cross-entropy) adapters.
"""

from __future__ import annotations

from typing import Callable, List, Sequence

import numpy as np
import torch
import torch.nn as nn
from torch.utils.data import DataLoader, TensorDataset

from .._typing import Float64Array, Predictor, QuantileLevels
from .base import LearnerAdapter


class MLP(nn.Module):
    """Feed-forward network with ReLU hidden layers."""

    def __init__(
        self,
        input_dim: int,
        output_dim: int = 1,
        hidden_dims: Sequence[int] = (64, 32),
        dropout: float = 0.1,
    ):
        super().__init__()

        layers = []
        prev_dim = input_dim
        for hidden_dim in hidden_dims:
            layers.extend([
                nn.Linear(prev_dim, hidden_dim),
                nn.ReLU(),
                nn.Dropout(dropout),
            ])
            prev_dim = hidden_dim

        self.backbone = nn.Sequential(*layers)
        self.head = nn.Linear(prev_dim, output_dim)
        self._init_weights()

    def _init_weights(self):
        for module in self.modules():
            if isinstance(module, nn.Linear):
                nn.init.xavier_uniform_(module.weight)
                nn.init.zeros_(module.bias)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.head(self.backbone(x))


def pinball_loss(
    pred: torch.Tensor, target: torch.Tensor, levels: torch.Tensor
) -> torch.Tensor:
    """Mean pinball loss summed over quantile columns."""
    diff = target.unsqueeze(1) - pred
    return torch.maximum(levels * diff, (levels - 1) * diff).sum(dim=1).mean()


def train_network(
    model: MLP,
    X: np.ndarray,
    y: np.ndarray,
    loss_fn: Callable[[torch.Tensor, torch.Tensor], torch.Tensor],
    epochs: int = 100,
    lr: float = 0.01,
    batch_size: int = 64,
    weight_decay: float = 1e-4,
    verbose: bool = False,
) -> List[float]:
    """Train ``model`` in place and return the per-epoch loss."""
    device = torch.device("cpu")
    model.to(device)
    model.train()

    optimizer = torch.optim.Adam(model.parameters(), lr=lr, weight_decay=weight_decay)
    dataset = TensorDataset(torch.FloatTensor(X), torch.FloatTensor(y))
    loader = DataLoader(dataset, batch_size=batch_size, shuffle=True)

    loss_history = []
    for epoch in range(epochs):
        epoch_loss = 0.0
        for bx, by in loader:
            bx, by = bx.to(device), by.to(device)

            optimizer.zero_grad()
            loss = loss_fn(model(bx), by)
            loss.backward()
            optimizer.step()

            epoch_loss += loss.item() * len(bx)

        epoch_loss /= len(X)
        loss_history.append(epoch_loss)

        if verbose and (epoch + 1) % 20 == 0:
            print(f"Epoch {epoch + 1}/{epochs}, Loss: {epoch_loss:.4f}")

    model.eval()
    return loss_history


class _Standardizer:
    def __init__(self, X: np.ndarray) -> None:
        self.mean = X.mean(axis=0)
        self.scale = X.std(axis=0)
        self.scale[self.scale == 0] = 1.0

    def __call__(self, X: np.ndarray) -> np.ndarray:
        return (X - self.mean) / self.scale


class _NetPredictor:
    def __init__(
        self, model, x_scaler, y_mean=0.0, y_scale=1.0, link=None, squeeze=True, clip=0.0
    ):
        self.model = model
        self.x_scaler = x_scaler
        self.y_mean = y_mean
        self.y_scale = y_scale
        self.link = link
        self.squeeze = squeeze
        self.clip = clip

    def __call__(self, X: Float64Array) -> Float64Array:
        with torch.no_grad():
            out = self.model(torch.FloatTensor(self.x_scaler(X))).numpy().astype(np.float64)
        if self.link == "sort":
            out = np.sort(out, axis=1)
        elif self.link == "sigmoid":
            out = np.clip(1.0 / (1.0 + np.exp(-out)), self.clip, 1 - self.clip)
        out = self.y_mean + self.y_scale * out
        return out[:, 0] if self.squeeze else out


class _MLPAdapter(LearnerAdapter):
    def __init__(
        self,
        hidden_dims: Sequence[int] = (64, 32),
        dropout: float = 0.1,
        epochs: int = 100,
        lr: float = 0.01,
        batch_size: int = 64,
        weight_decay: float = 1e-4,
        random_state: int | None = None,
        verbose: int = 0,
    ) -> None:
        self.hidden_dims = hidden_dims
        self.dropout = dropout
        self.epochs = epochs
        self.lr = lr
        self.batch_size = batch_size
        self.weight_decay = weight_decay
        self.random_state = random_state
        self.verbose = verbose

    def _train(self, X, y, output_dim, loss_fn):
        if self.random_state is not None:
            torch.manual_seed(self.random_state)
        model = MLP(X.shape[1], output_dim, self.hidden_dims, self.dropout)
        train_network(
            model, X, y, loss_fn,
            epochs=self.epochs,
            lr=self.lr,
            batch_size=self.batch_size,
            weight_decay=self.weight_decay,
            verbose=self.verbose >= 2,
        )
        return model

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(hidden_dims={tuple(self.hidden_dims)}, "
            f"epochs={self.epochs}, lr={self.lr})"
        )


class MLPRegressor(_MLPAdapter):
    """Conditional-mean MLP trained on standardized data with MSE."""

    def fit(self, Y, X, quantile_levels=None) -> Predictor:
        X = np.asarray(X, dtype=np.float64)
        Y = np.asarray(Y, dtype=np.float64)
        x_scaler = _Standardizer(X)
        y_mean, y_scale = Y.mean(), Y.std() or 1.0

        mse = nn.MSELoss()
        model = self._train(
            x_scaler(X), ((Y - y_mean) / y_scale)[:, None], 1, mse
        )
        return _NetPredictor(model, x_scaler, y_mean, y_scale)


class MLPQuantileRegressor(_MLPAdapter):
    """Conditional-quantile MLP with one output per level (pinball loss).

    Two-level outputs are sorted row-wise so the band never crosses.
    """

    def fit(self, Y, X, quantile_levels: QuantileLevels | None = None) -> Predictor:
        if quantile_levels is None:
            raise ValueError("MLPQuantileRegressor needs quantile_levels")
        X = np.asarray(X, dtype=np.float64)
        Y = np.asarray(Y, dtype=np.float64)
        levels = np.atleast_1d(np.asarray(quantile_levels, dtype=np.float64))
        x_scaler = _Standardizer(X)
        y_mean, y_scale = Y.mean(), Y.std() or 1.0

        level_tensor = torch.FloatTensor(levels)
        model = self._train(
            x_scaler(X),
            (Y - y_mean) / y_scale,
            levels.shape[0],
            lambda pred, target: pinball_loss(pred, target, level_tensor),
        )
        return _NetPredictor(
            model, x_scaler, y_mean, y_scale,
            link="sort",
            squeeze=np.ndim(quantile_levels) == 0,
        )


class MLPClassifier(_MLPAdapter):
    """Propensity MLP with a sigmoid output, clipped to [clip, 1 - clip]."""

    def __init__(self, clip: float = 1e-3, **kwargs) -> None:
        super().__init__(**kwargs)
        self.clip = clip

    def fit(self, Y, X, quantile_levels=None) -> Predictor:
        X = np.asarray(X, dtype=np.float64)
        T = np.asarray(Y, dtype=np.float64)
        x_scaler = _Standardizer(X)

        bce = nn.BCEWithLogitsLoss()
        model = self._train(x_scaler(X), T[:, None], 1, bce)
        return _NetPredictor(model, x_scaler, link="sigmoid", clip=self.clip)
