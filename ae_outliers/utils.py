# Small helpers I reuse across scripts: run directories and json artifacts.

from __future__ import annotations

import json
import os
import re
import time
from pathlib import Path


def _join(*parts: str | os.PathLike) -> str:
    return os.path.join(*map(str, parts))


def make_run_dir(out_dir: str) -> str:
    os.makedirs(out_dir, exist_ok=True)
    stamp = time.strftime("%Y%m%d_%H%M%S")
    run_dir = _join(out_dir, f"run_{stamp}")
    # Two runs inside the same second get a numeric suffix
    n = 1
    while os.path.exists(run_dir):
        run_dir = _join(out_dir, f"run_{stamp}_{n}")
        n += 1
    os.makedirs(run_dir)
    return run_dir


_RUN_NAME = re.compile(r"^run_(\d{8}_\d{6})(?:_(\d+))?$")


def _run_key(p: Path) -> tuple[str, int]:
    # run_<stamp>_<n> sorts after run_<stamp>_<n-1>, not by string order
    m = _RUN_NAME.match(p.name)
    if m:
        return f"run_{m.group(1)}", int(m.group(2) or 0)
    base, _, n = p.name.rpartition("_")
    if n.isdigit() and base != "run":
        return base, int(n)
    return p.name, 0


def latest_run(out_dir: str) -> str:
    exp = Path(out_dir)
    runs = sorted((p for p in exp.iterdir() if p.name.startswith("run_")), key=_run_key) if exp.is_dir() else []
    if not runs:
        raise SystemExit(f"No run_* folder under {out_dir}/. Train first: python -m ae_outliers.train")
    return str(runs[-1])


def write_json(path: str | os.PathLike, obj) -> None:
    with open(path, "w") as f:
        json.dump(obj, f, indent=2)


def read_json(path: str | os.PathLike):
    with open(path) as f:
        return json.load(f)
