# Train the autoencoder on the train half of every batch, input == target.
# I write all artifacts into a timestamped run directory under experiments/.

from __future__ import annotations

import argparse
import logging
from typing import Callable, Sequence

import numpy as np
import torch as th

from .config import Config, add_config_args, config_from_args
from .data import iter_batches, load_arrays, make_splits, save_batches
from .errors import NumericInstability
from .export import plot_losses
from .model_autoencoder import AE
from .utils import _join, make_run_dir, write_json

log = logging.getLogger(__name__)


def train(
    model: AE,
    batches: Sequence,
    epochs: int,
    log_every: int = 100,
    on_batch_end: Callable[[int, int, float], None] | None = None,
) -> list[float]:
    """
    Run `epochs` full passes over `batches` in the order given, one fit per batch.
    There is no early stopping; the loss is only reported.

    batches: feature matrices (N, D) or Batch objects
    on_batch_end: called as (epoch, batch_index, loss) after each fit returns
    Returns: mean loss per epoch, weighted by batch size
    """
    losses = []
    it = 0
    log.info("Model training: starts (%d epochs x %d batches)", epochs, len(batches))
    for ep in range(1, epochs + 1):
        log.info("Model training: beginning epoch number %d", ep)
        ep_loss = 0.0
        seen = 0
        for bi, xb in enumerate(batches):
            xb = getattr(xb, "features", xb)
            try:
                loss = model.fit(xb, xb)
            except NumericInstability as e:
                raise NumericInstability(str(e), epoch=ep, batch_index=bi) from e

            ep_loss += loss * len(xb)
            seen += len(xb)
            it += 1
            if log_every and it % log_every == 0:
                log.info("Score at iteration %d is %.6f", it, loss)
            if on_batch_end is not None:
                on_batch_end(ep, bi, loss)

        ep_loss /= max(1, seen)
        losses.append(ep_loss)
        with th.no_grad():
            model.epochs_completed.add_(1)
        log.info("Model training: completed epoch number %d  [%02d/%02d] loss=%.6f", ep, ep, epochs, ep_loss)

    log.info("Model training: ends")
    return losses


def run_train(cfg: Config = Config()) -> str:
    run_dir = make_run_dir(cfg.out_dir)

    # Data: fixed-size batches, each split train/test with one seeded generator
    X, y = load_arrays(cfg.data_path, cfg.rows, cfg.columns, cfg.num_examples)
    features_train, test = make_splits(iter_batches(X, y, cfg.batch_size), cfg.train_fraction, cfg.seed)

    # Model + train
    model = AE.from_config(cfg)
    losses = train(model, features_train, cfg.epochs, log_every=cfg.log_every)

    # Save artifacts
    th.save(model.state_dict(), _join(run_dir, "model.pt"))
    np.save(_join(run_dir, "losses.npy"), np.array(losses, dtype=np.float32))
    save_batches(_join(run_dir, "test_split.npz"), test)
    plot_losses(losses, _join(run_dir, "loss_curve.png"))

    # Save the effective config
    write_json(_join(run_dir, "cfg.json"), cfg.to_dict())

    print("Saved run to", run_dir)
    return run_dir


def main(argv=None):
    ap = argparse.ArgumentParser(description="Train the reconstruction autoencoder")
    add_config_args(ap)
    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return run_train(config_from_args(args))


if __name__ == "__main__":
    main()
