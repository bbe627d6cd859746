# Train then evaluate in one go: the full pipeline from npz images to
# per-digit best/worst PNGs under <run_dir>/results/<digit>/{best,worst}/.

from __future__ import annotations

import argparse
import logging

from .config import add_config_args, config_from_args
from .evaluate import run_eval
from .train import run_train


def main(argv=None):
    ap = argparse.ArgumentParser(description="Autoencoder reconstruction-error outliers per digit")
    add_config_args(ap)
    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    cfg = config_from_args(args)
    run_dir = run_train(cfg)
    out = run_eval(run_dir)
    if out["export_failures"]:
        print(f"{len(out['export_failures'])} images could not be written, see metrics.json")
    return run_dir


if __name__ == "__main__":
    main()
