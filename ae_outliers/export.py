# Turn feature vectors back into grayscale PNGs and plot training curves.
# Rendering (to_raster) is pure; only save_image/export_best_worst touch disk.

from __future__ import annotations

import logging
import os

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
from PIL import Image  # noqa: E402

from .errors import ExportFailure  # noqa: E402

log = logging.getLogger(__name__)


def to_raster(vector, rows: int, columns: int) -> np.ndarray:
    """
    Flat index i -> (i // columns, i % columns), value v -> floor(255 * v + 0.5).

    The decoder's last layer is linear, so reconstructions can leave [0, 1];
    values are clamped first so they cannot wrap around in uint8.
    """
    v = np.asarray(vector, dtype=np.float64).reshape(-1)
    if v.size != rows * columns:
        raise ValueError(f"vector has {v.size} values, raster needs {rows}x{columns}={rows * columns}")
    v = np.clip(np.nan_to_num(v, nan=0.0), 0.0, 1.0)
    return np.floor(255.0 * v + 0.5).astype(np.uint8).reshape(rows, columns)


def save_image(vector, path: str, rows: int, columns: int, label: int | None = None, slot: str | None = None) -> str:
    # uint8 (rows, columns) maps to mode "L": single-channel 8-bit PNG
    try:
        raster = to_raster(vector, rows, columns)
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        Image.fromarray(raster).save(path, format="PNG")
    except (OSError, ValueError) as e:
        raise ExportFailure(path, str(e), label=label, slot=slot) from e
    return path


def export_best_worst(selections: dict, out_dir: str, rows: int, columns: int) -> list[ExportFailure]:
    """
    Write <out_dir>/<label>/best/<i>.png and <out_dir>/<label>/worst/<i>.png.

    selections: label -> (best, worst), each a list of ScoredExample
    Returns: failures; one bad file never stops the rest
    """
    log.info("Visualising data: starts (%s)", out_dir)
    failures: list[ExportFailure] = []
    written = 0
    for label, (best, worst) in sorted(selections.items()):
        for kind, items in (("best", best), ("worst", worst)):
            for i, ex in enumerate(items):
                path = os.path.join(out_dir, str(label), kind, f"{i}.png")
                try:
                    save_image(ex.vector, path, rows, columns, label=label, slot=f"{kind}/{i}")
                    written += 1
                except ExportFailure as e:
                    log.error("Export failed for label=%s %s/%d (example %s): %s", label, kind, i, ex.index, e)
                    failures.append(e)
    log.info("Visualising data: ends (%d written, %d failed)", written, len(failures))
    return failures


def plot_losses(losses, save_path: str) -> str:
    """Per-epoch training loss curve."""
    fig, ax = plt.subplots(figsize=(6, 4), dpi=100)
    epochs = np.arange(1, len(losses) + 1)
    ax.plot(epochs, losses, marker="o", linewidth=1.2)
    ax.set_xlabel("Epoch")
    ax.set_ylabel("Reconstruction MSE")
    ax.set_title("Autoencoder training loss")
    ax.grid(alpha=0.3)
    fig.tight_layout()
    fig.savefig(save_path)
    plt.close(fig)
    return save_path
