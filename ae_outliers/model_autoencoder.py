# Feed-forward autoencoder for flattened grayscale images.
# Four dense layers, D -> 250 -> 10 -> 250 -> D: sigmoid on the first three,
# identity on the output, trained against MSE with Adagrad and L2 on weights.

from __future__ import annotations

import numpy as np
import torch as th
import torch.nn as nn
import torch.nn.functional as F

from .errors import DimensionMismatch, NumericInstability

_ACTIVATIONS = {
    "sigmoid": th.sigmoid,
    "tanh": th.tanh,
}


def _as_tensor(x) -> th.Tensor:
    if isinstance(x, th.Tensor):
        return x.to(th.float32)
    return th.as_tensor(np.asarray(x, dtype=np.float32))


class AE(nn.Module):
    def __init__(
        self,
        in_dim: int,
        hidden: int = 250,
        bottleneck: int = 10,
        activation: str = "sigmoid",
        lr: float = 0.05,
        l2: float = 1e-4,
        eps: float = 1e-6,
    ):
        super().__init__()
        if activation not in _ACTIVATIONS:
            raise ValueError(f"Unknown activation: {activation} (choose from {sorted(_ACTIVATIONS)})")
        self.in_dim = int(in_dim)
        self.activation = activation
        self._act = _ACTIVATIONS[activation]

        # Encoder then mirrored decoder
        dims = [self.in_dim, hidden, bottleneck, hidden, self.in_dim]
        self.layers = nn.ModuleList(nn.Linear(a, b) for a, b in zip(dims[:-1], dims[1:]))
        self._check_shapes()

        # Persisted with the state_dict so a loaded model knows whether it was trained
        self.register_buffer("epochs_completed", th.zeros((), dtype=th.long))

        # L2 goes on weights only; biases sit in a zero-decay group
        self.optimizer = th.optim.Adagrad(
            [
                {"params": [l.weight for l in self.layers], "weight_decay": l2},
                {"params": [l.bias for l in self.layers], "weight_decay": 0.0},
            ],
            lr=lr,
            eps=eps,
        )

    @classmethod
    def initialize(cls, in_dim: int, seed: int, **kw) -> "AE":
        """
        Build the stack with Xavier-normal weights and zero biases drawn from `seed`.
        The global torch RNG is left as it was, so models built side by side don't interfere.
        """
        with th.random.fork_rng(devices=[]):
            th.manual_seed(seed)
            model = cls(in_dim, **kw)
            model.reset_parameters()
        return model

    @classmethod
    def from_config(cls, cfg) -> "AE":
        return cls.initialize(
            cfg.in_dim,
            cfg.seed,
            hidden=cfg.hidden_width,
            bottleneck=cfg.bottleneck_width,
            activation=cfg.activation,
            lr=cfg.learning_rate,
            l2=cfg.l2_penalty,
            eps=cfg.adagrad_eps,
        )

    def reset_parameters(self) -> None:
        for layer in self.layers:
            nn.init.xavier_normal_(layer.weight)
            nn.init.zeros_(layer.bias)

    def layer_dims(self) -> list[tuple[int, int]]:
        return [(l.in_features, l.out_features) for l in self.layers]

    def _check_shapes(self) -> None:
        dims = self.layer_dims()
        for (_, out_a), (in_b, _) in zip(dims[:-1], dims[1:]):
            if out_a != in_b:
                raise ValueError(f"Layer chain broken: {dims}")
        if dims[0][0] != self.in_dim or dims[-1][1] != self.in_dim:
            raise ValueError(f"Stack must map {self.in_dim} -> {self.in_dim}, got {dims}")

    def _check_input(self, x: th.Tensor, what: str = "input") -> None:
        if x.ndim not in (1, 2) or x.shape[-1] != self.in_dim:
            raise DimensionMismatch(self.in_dim, tuple(x.shape) if x.ndim != 1 else x.shape[-1], what=what)

    def forward(self, x):
        # A single D-vector comes back as a D-vector; (N, D) comes back as (N, D)
        x = _as_tensor(x)
        self._check_input(x)
        single = x.ndim == 1
        h = x.unsqueeze(0) if single else x

        last = len(self.layers) - 1
        for i, layer in enumerate(self.layers):
            h = layer(h)
            if i < last:
                h = self._act(h)
        return h.squeeze(0) if single else h

    def fit(self, x, target=None) -> float:
        """
        One Adagrad step on MSE(forward(x), target). Returns the batch loss.
        Raises NumericInstability before touching the weights if the loss or any
        gradient is non-finite.
        """
        x = _as_tensor(x)
        target = x if target is None else _as_tensor(target)
        self._check_input(x)
        self._check_input(target, what="target")
        if target.shape != x.shape:
            raise DimensionMismatch(tuple(x.shape), tuple(target.shape), what="target")
        if x.ndim == 1:
            x, target = x.unsqueeze(0), target.unsqueeze(0)
        if x.shape[0] == 0:
            raise ValueError("fit needs at least one example, got an empty batch")

        self.train()
        self.optimizer.zero_grad(set_to_none=True)
        xhat = self(x)
        loss = F.mse_loss(xhat, target)
        if not th.isfinite(loss):
            raise NumericInstability(f"non-finite loss {loss.item()!r}")

        loss.backward()
        for name, p in self.named_parameters():
            if p.grad is not None and not bool(th.isfinite(p.grad).all()):
                raise NumericInstability(f"non-finite gradient in {name}")

        self.optimizer.step()
        return float(loss.item())
