import numpy as np
import pytest

from ae_outliers.config import Config


@pytest.fixture
def tiny_cfg(tmp_path):
    # 4x4 "images", small layers, two epochs: fast enough for the whole pipeline
    return Config(
        rows=4,
        columns=4,
        batch_size=20,
        epochs=2,
        hidden_width=8,
        bottleneck_width=3,
        top_k=2,
        log_every=1,
        eval_batch_size=7,
        data_path=str(tmp_path / "digits.npz"),
        out_dir=str(tmp_path / "experiments"),
    )


@pytest.fixture
def digits_npz(tiny_cfg):
    rng = np.random.default_rng(7)
    X = rng.integers(0, 256, size=(100, tiny_cfg.rows, tiny_cfg.columns), dtype=np.uint8)
    y = np.arange(100) % 10
    np.savez(tiny_cfg.data_path, x_train=X[:80], y_train=y[:80], x_test=X[80:], y_test=y[80:])
    return tiny_cfg.data_path
