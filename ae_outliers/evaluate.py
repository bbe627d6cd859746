# Evaluate a trained autoencoder on the held-out split.
# Score every test example by reconstruction MSE, bucket by digit, and pull the
# K best (most typical) and K worst (most anomalous) examples per digit.

from __future__ import annotations

import argparse
import json
import logging
import os
from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np
import pandas as pd
import torch as th

from .config import Config
from .data import Batch, load_batches
from .errors import InsufficientData
from .export import export_best_worst
from .model_autoencoder import AE, _as_tensor
from .utils import _join, latest_run, read_json, write_json

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoredExample:
    score: float
    label: int
    vector: np.ndarray
    index: int = -1  # position in the test stream


def score(model: AE, example) -> float:
    """Reconstruction MSE of one example against itself, mean over features."""
    x = _as_tensor(example)
    model.eval()
    with th.no_grad():
        r = model(x)
        return float(th.mean((r - x) ** 2).item())


def _recon_errs_batched(model: AE, X: np.ndarray, batch_size: int = 1000) -> np.ndarray:
    """
    Per-row reconstruction MSE, computed in chunks.
    Same formula as score(), so values match row-by-row scoring.
    X: (N, D)
    Returns: (N,) float32
    """
    N = int(X.shape[0])
    errs = np.empty(N, dtype=np.float32)
    model.eval()

    with th.no_grad():
        for i in range(0, N, batch_size):
            j = min(i + batch_size, N)
            t = _as_tensor(X[i:j])
            r = model(t)
            errs[i:j] = th.mean((r - t) ** 2, dim=1).numpy()

    return errs


def score_examples(model: AE, batches: Iterable[Batch], batch_size: int = 1000) -> list[ScoredExample]:
    """Score every example of every batch, in stream order."""
    if int(model.epochs_completed) == 0:
        log.warning("Scoring with an untrained model; scores are well defined but meaningless")

    log.info("Evaluating model: starts")
    out: list[ScoredExample] = []
    idx = 0
    for b in batches:
        errs = _recon_errs_batched(model, b.features, batch_size=batch_size)
        for row, e, lab in zip(b.features, errs, b.labels):
            out.append(ScoredExample(score=float(e), label=int(lab), vector=row, index=idx))
            idx += 1
    log.info("Evaluating model: scored %d examples", len(out))
    return out


def rank(scored: Iterable[ScoredExample], num_classes: int = 10) -> dict[int, list[ScoredExample]]:
    """
    Bucket by label and sort each bucket ascending by score.
    Every label in 0..num_classes-1 gets a bucket, even an empty one.
    Python's sort is stable, so equal scores keep their input order.
    """
    buckets: dict[int, list[ScoredExample]] = {label: [] for label in range(num_classes)}
    for ex in scored:
        if ex.label not in buckets:
            raise ValueError(f"label {ex.label} of example {ex.index} is outside 0..{num_classes - 1}")
        buckets[ex.label].append(ex)
    for bucket in buckets.values():
        bucket.sort(key=lambda ex: ex.score)
    return buckets


def extract_best_worst(bucket: Sequence[ScoredExample], k: int, label: int | None = None):
    """
    best: the k lowest scores, ascending
    worst: the k highest scores, highest first
    """
    if len(bucket) < k:
        raise InsufficientData(len(bucket), k, label=label)
    best = list(bucket[:k])
    worst = [bucket[len(bucket) - i - 1] for i in range(k)]
    return best, worst


def select_best_worst(buckets: dict[int, list[ScoredExample]], k: int) -> dict[int, tuple[list, list]]:
    # Labels are not balanced in the test split; a short bucket gives up everything it has
    out = {}
    for label, bucket in buckets.items():
        try:
            out[label] = extract_best_worst(bucket, k, label=label)
        except InsufficientData as e:
            log.warning("%s; using all %d available", e, e.available)
            out[label] = extract_best_worst(bucket, e.available, label=label)
    return out


def summarize(scored: Sequence[ScoredExample], buckets: dict[int, list[ScoredExample]]) -> tuple[pd.DataFrame, dict]:
    df = pd.DataFrame(
        {
            "index": [ex.index for ex in scored],
            "label": [ex.label for ex in scored],
            "score": [ex.score for ex in scored],
        }
    )
    per_label = {}
    for label, bucket in buckets.items():
        s = np.array([ex.score for ex in bucket], dtype=np.float64)
        per_label[str(label)] = {
            "n": int(len(s)),
            "mean": float(s.mean()) if len(s) else float("nan"),
            "median": float(np.median(s)) if len(s) else float("nan"),
            "max": float(s.max()) if len(s) else float("nan"),
        }
    stats = {
        "n_scored": int(len(df)),
        "test_err_median": float(df["score"].median()) if len(df) else float("nan"),
        "test_err_mean": float(df["score"].mean()) if len(df) else float("nan"),
        "by_label": per_label,
    }
    return df, stats


def load_run(run_dir: str, cfg_override: dict | None = None) -> tuple[Config, AE]:
    cfg = Config.from_dict(read_json(_join(run_dir, "cfg.json")))
    if cfg_override:
        cfg = cfg.override(**cfg_override)
    model = AE.from_config(cfg)
    sd = th.load(_join(run_dir, "model.pt"), map_location="cpu", weights_only=True)
    model.load_state_dict(sd)
    model.eval()
    return cfg, model


def run_eval(run_dir: str, cfg_override: dict | None = None) -> dict:
    cfg, model = load_run(run_dir, cfg_override)
    test = load_batches(_join(run_dir, "test_split.npz"), cfg.eval_batch_size)

    scored = score_examples(model, test, batch_size=cfg.eval_batch_size)
    buckets = rank(scored, cfg.num_classes)
    selections = select_best_worst(buckets, cfg.top_k)

    df, stats = summarize(scored, buckets)
    df.to_csv(_join(run_dir, "scores.csv"), index=False)

    failures = export_best_worst(selections, _join(run_dir, "results"), cfg.rows, cfg.columns)

    out = {
        "in_dim": cfg.in_dim,
        "top_k": cfg.top_k,
        "epochs_completed": int(model.epochs_completed),
        **stats,
        "export_failures": [str(f) for f in failures],
    }
    write_json(_join(run_dir, "metrics.json"), out)
    log.info("Evaluating model: ends")
    return out


def main(argv=None):
    ap = argparse.ArgumentParser(description="Score, rank, and export the held-out split of a run")
    ap.add_argument("run_dir", nargs="?", default=None, help="defaults to the newest run under --out-dir")
    ap.add_argument("--top-k", dest="top_k", type=int, default=None)
    ap.add_argument("--out-dir", dest="out_dir", default=Config().out_dir)
    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    run_dir = args.run_dir or latest_run(args.out_dir)
    out = run_eval(run_dir, {"top_k": args.top_k})
    print(json.dumps(out, indent=2))
    print("Results under", os.path.join(run_dir, "results"))
    return out


if __name__ == "__main__":
    main()
