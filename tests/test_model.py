import numpy as np
import pytest
import torch as th

from ae_outliers.config import Config
from ae_outliers.errors import DimensionMismatch, NumericInstability
from ae_outliers.model_autoencoder import AE


def _data(n=10, d=16, seed=0):
    return np.random.default_rng(seed).random((n, d), dtype=np.float32)


def test_default_stack_dimensions():
    model = AE.from_config(Config())
    dims = model.layer_dims()
    assert dims == [(784, 250), (250, 10), (10, 250), (250, 784)]
    for (_, out_a), (in_b, _) in zip(dims[:-1], dims[1:]):
        assert out_a == in_b


def test_forward_preserves_shape():
    model = AE.initialize(16, seed=1)
    x = _data()
    assert tuple(model(x[0]).shape) == (16,)
    assert tuple(model(x).shape) == (10, 16)


def test_initialization_is_xavier_with_zero_bias():
    model = AE.initialize(784, seed=12345)
    w = model.layers[0].weight.detach()
    expected = np.sqrt(2.0 / (784 + 250))
    assert abs(float(w.std()) - expected) < 0.1 * expected
    assert abs(float(w.mean())) < 0.01
    for layer in model.layers:
        assert th.count_nonzero(layer.bias) == 0


def test_initialize_leaves_global_rng_alone():
    th.manual_seed(0)
    a = th.rand(3)
    th.manual_seed(0)
    AE.initialize(16, seed=99)
    b = th.rand(3)
    assert th.equal(a, b)


def test_same_seed_same_update():
    x = _data()
    m1, m2 = AE.initialize(16, seed=12345), AE.initialize(16, seed=12345)
    l1, l2 = m1.fit(x, x), m2.fit(x, x)
    assert l1 == l2
    for (k, v1), v2 in zip(m1.state_dict().items(), m2.state_dict().values()):
        assert th.equal(v1, v2), k

    m3 = AE.initialize(16, seed=1)
    assert not th.equal(m1.layers[0].weight, m3.layers[0].weight)


def test_fit_updates_weights_and_returns_mse():
    x = _data()
    model = AE.initialize(16, seed=3)
    before = [p.detach().clone() for p in model.parameters()]
    expected = float(th.mean((model(x) - th.as_tensor(x)) ** 2))
    loss = model.fit(x, x)
    assert loss == pytest.approx(expected, rel=1e-5)
    assert loss >= 0
    assert all(not th.equal(b, p) for b, p in zip(before, model.parameters()))


def test_l2_applies_to_weights_only():
    model = AE.initialize(16, seed=3, l2=1e-4)
    groups = model.optimizer.param_groups
    assert groups[0]["weight_decay"] == 1e-4
    assert all(p.ndim == 2 for p in groups[0]["params"])
    assert groups[1]["weight_decay"] == 0.0
    assert all(p.ndim == 1 for p in groups[1]["params"])


def test_fit_rejects_wrong_feature_length():
    model = AE.initialize(16, seed=3)
    with pytest.raises(DimensionMismatch):
        model.fit(_data(d=15))
    with pytest.raises(DimensionMismatch):
        model.fit(_data(n=10), _data(n=9))
    with pytest.raises(DimensionMismatch):
        model(np.zeros(17, dtype=np.float32))


def test_non_finite_loss_leaves_weights_untouched():
    model = AE.initialize(16, seed=3)
    x = _data()
    x[2, 5] = np.nan
    before = [p.detach().clone() for p in model.parameters()]
    with pytest.raises(NumericInstability):
        model.fit(x, x)
    assert all(th.equal(b, p) for b, p in zip(before, model.parameters()))


def test_unknown_activation():
    with pytest.raises(ValueError):
        AE(16, activation="softsign")


def test_non_finite_gradient_skips_the_step():
    model = AE.initialize(16, seed=3)
    x = _data()
    before = [p.detach().clone() for p in model.parameters()]
    handle = model.layers[0].weight.register_hook(lambda g: th.full_like(g, float("inf")))
    try:
        with pytest.raises(NumericInstability, match="layers.0.weight"):
            model.fit(x, x)
    finally:
        handle.remove()
    assert all(th.equal(b, p) for b, p in zip(before, model.parameters()))


def test_fit_rejects_empty_batch():
    model = AE.initialize(16, seed=1)
    with pytest.raises(ValueError, match="empty batch"):
        model.fit(np.zeros((0, 16), dtype=np.float32))
