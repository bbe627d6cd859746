# Labeled image batches: load flattened images from npz, cut them into fixed-size
# batches, and split each batch into train/test parts with one seeded generator.

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

import numpy as np

from .errors import DimensionMismatch

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Batch:
    features: np.ndarray  # (N, D) float32
    labels: np.ndarray    # (N,) int64

    def __post_init__(self):
        if self.features.ndim != 2:
            raise ValueError(f"features must be 2-D, got shape {self.features.shape}")
        if len(self.features) != len(self.labels):
            raise ValueError(
                f"features/labels disagree: {len(self.features)} rows vs {len(self.labels)} labels"
            )

    def __len__(self) -> int:
        return int(self.features.shape[0])

    def split_test_train(self, train_fraction: float, rng: np.random.Generator) -> tuple["Batch", "Batch"]:
        """
        Shuffle row indexes with rng and cut at int(train_fraction * N).
        Returns: (train, test)
        """
        n = len(self)
        idx = rng.permutation(n)
        cut = int(train_fraction * n)
        tr, te = idx[:cut], idx[cut:]
        return (
            Batch(self.features[tr], self.labels[tr]),
            Batch(self.features[te], self.labels[te]),
        )


def _labels_to_index(y: np.ndarray) -> np.ndarray:
    # One-hot rows -> class index
    if y.ndim == 2:
        return np.argmax(y, axis=1).astype(np.int64)
    return y.astype(np.int64).reshape(-1)


def _flatten_images(X: np.ndarray, in_dim: int, path) -> np.ndarray:
    """Normalize to [N, D] float32 in [0, 1]."""
    N = X.shape[0]
    scale_u8 = X.dtype == np.uint8
    X = X.reshape(N, -1)
    if X.shape[1] != in_dim:
        raise DimensionMismatch(in_dim, X.shape[1], what=str(path))
    X = X.astype(np.float32, copy=False)
    if scale_u8:
        X = X / 255.0
    return X


def load_arrays(path: str | Path, rows: int, columns: int, max_examples: int | None = None) -> tuple[np.ndarray, np.ndarray]:
    """
    Load images and labels from an npz file.

    Accepted layouts:
      - X, y                                  (any image shape that flattens to rows*columns)
      - x_train, y_train[, x_test, y_test]    (Keras mnist.npz; both halves are concatenated,
                                               the pipeline makes its own split)
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Could not find image data at {path}")

    d = np.load(str(path))
    if "X" in d.files:
        X, y = d["X"], d["y"]
    elif "x_train" in d.files:
        X, y = d["x_train"], d["y_train"]
        if "x_test" in d.files:
            X = np.concatenate([X, d["x_test"]], axis=0)
            y = np.concatenate([y, d["y_test"]], axis=0)
    else:
        raise ValueError(f"{path} has neither 'X' nor 'x_train' arrays (found {d.files})")

    if max_examples is not None:
        X, y = X[:max_examples], y[:max_examples]

    X = _flatten_images(X, rows * columns, path)
    y = _labels_to_index(y)
    if len(X) != len(y):
        raise ValueError(f"{path}: {len(X)} images but {len(y)} labels")

    log.info("Loaded %d examples (D=%d) from %s", len(X), X.shape[1], path)
    return X, y


def iter_batches(X: np.ndarray, y: np.ndarray, batch_size: int) -> Iterator[Batch]:
    # Last batch may be short
    for i in range(0, len(X), batch_size):
        j = min(i + batch_size, len(X))
        yield Batch(X[i:j], y[i:j])


def make_splits(batches: Iterable[Batch], train_fraction: float, seed: int) -> tuple[list[np.ndarray], list[Batch]]:
    """
    Split every batch into train/test with a single generator consumed in batch order,
    so the whole partition is reproducible from (train_fraction, seed).
    Returns: (train feature matrices, test batches)
    """
    rng = np.random.default_rng(seed)
    features_train: list[np.ndarray] = []
    test: list[Batch] = []
    for b in batches:
        tr, te = b.split_test_train(train_fraction, rng)
        if len(tr):
            features_train.append(tr.features)
        if len(te):
            test.append(te)
    log.info(
        "Split: %d train rows in %d batches, %d test rows",
        sum(len(f) for f in features_train), len(features_train), sum(len(t) for t in test),
    )
    return features_train, test


def save_batches(path: str | Path, batches: list[Batch]) -> None:
    if batches:
        X = np.concatenate([b.features for b in batches], axis=0)
        y = np.concatenate([b.labels for b in batches], axis=0)
    else:
        X = np.zeros((0, 0), dtype=np.float32)
        y = np.zeros(0, dtype=np.int64)
    np.savez_compressed(str(path), X=X.astype(np.float32), y=y.astype(np.int64))


def load_batches(path: str | Path, batch_size: int) -> list[Batch]:
    d = np.load(str(path))
    X, y = d["X"].astype(np.float32, copy=False), d["y"].astype(np.int64, copy=False)
    return list(iter_batches(X, y, batch_size))
