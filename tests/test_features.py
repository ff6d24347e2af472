import numpy as np
import pytest
from scipy import stats

from sensible_rvm import (
    InterceptProvider,
    KernelProvider,
    LinearKernel,
    PolyKernel,
    RandomRBFProvider,
    RBFKernel,
    RBFProvider,
    RVMConfigError,
)


def test_rbf_kernel_values():
    k = RBFKernel(0.5)
    u = np.array([1.0, 2.0])
    v = np.array([0.0, 0.0])
    assert k(u, v) == pytest.approx(np.exp(-0.5 * 5.0))
    assert k(u, u) == pytest.approx(1.0)
    assert k.name.startswith("RBF")

    with pytest.raises(RVMConfigError):
        RBFKernel(0.0)


def test_linear_and_poly_kernels():
    u = np.array([1.0, 2.0, 3.0])
    v = np.array([0.5, -1.0, 2.0])
    assert LinearKernel(1.0)(u, v) == pytest.approx(5.5)
    assert PolyKernel(degree=2, slope=0.5, bias=1.0)(u, v) == pytest.approx((0.5 * 4.5 + 1.0) ** 2)

    x = np.stack([u, v, u + v], axis=0)
    col = LinearKernel(0.0).column(x, v)
    np.testing.assert_allclose(col, x @ v)

    with pytest.raises(RVMConfigError):
        PolyKernel(degree=0)


def test_intercept_provider():
    rng = np.random.default_rng(0)
    x = np.eye(10)
    features = InterceptProvider().generate_features(x, rng)

    assert len(features) == 1
    f = features[0]
    assert f.name == "intercept"
    assert f.train_index == -1
    np.testing.assert_allclose(f.prototype, np.full(10, 0.1))
    np.testing.assert_array_equal(f.column(), np.ones(10))
    assert f.evaluate(np.arange(10.0)) == 1.0
    assert InterceptProvider() == InterceptProvider()


def test_rbf_provider_validation():
    with pytest.raises(RVMConfigError, match="Gamma vector cannot be empty."):
        RBFProvider(None, 0)
    with pytest.raises(RVMConfigError, match="Gamma vector cannot be empty."):
        RBFProvider([], 1)
    with pytest.raises(RVMConfigError, match=r"Percentage value p=-1 is not in interval \[0,1\]."):
        RBFProvider([1.0], -1)
    with pytest.raises(RVMConfigError, match="not in interval"):
        RBFProvider([1.0], 1.5)
    with pytest.raises(RVMConfigError):
        RBFProvider([1.0, -2.0])

    # configuration errors are ValueErrors too
    with pytest.raises(ValueError):
        RBFProvider([], 1)


def test_rbf_provider_generates_sampled_features():
    provider = RBFProvider([1, 2], 0.5)
    assert provider == RBFProvider([1.0, 2.0], 0.5)
    assert provider != RBFProvider([2, 3], 0.5)
    assert provider != InterceptProvider()
    assert str(provider) == "RBFProvider{gammas=[1,2],p=0.5}"

    x = np.eye(10)
    features = provider.generate_features(x, np.random.default_rng(1))
    assert len(features) == 10
    for f in features:
        assert f.name.startswith("RBF")
        assert 0 <= f.train_index < 10
        np.testing.assert_array_equal(f.prototype, x[f.train_index])

    full = RBFProvider([1.0]).generate_features(x, np.random.default_rng(1))
    assert [f.train_index for f in full] == list(range(10))


def test_kernel_provider():
    provider = KernelProvider(LinearKernel(1), 0.5)
    assert provider == KernelProvider(LinearKernel(1), 0.5)
    assert provider != KernelProvider(LinearKernel(1))
    assert provider != KernelProvider(LinearKernel(2), 0.5)

    features = provider.generate_features(np.eye(10), np.random.default_rng(0))
    assert len(features) == 5
    assert len({f.train_index for f in features}) == 5
    for f in features:
        assert f.name.startswith("LinearKernel")

    # at least one feature, whatever the fraction
    assert len(KernelProvider(LinearKernel(1), 0.0).generate_features(np.eye(10), np.random.default_rng(0))) == 1

    with pytest.raises(RVMConfigError):
        KernelProvider(LinearKernel(1), 2.0)


def test_random_rbf_provider():
    provider = RandomRBFProvider([1.0], 1.5, stats.norm())
    assert provider == RandomRBFProvider([1.0], 1.5, stats.norm(1, 2))
    assert provider != RandomRBFProvider([1.0], 0.5)
    assert provider != RandomRBFProvider([2.0], 1.5)

    x = np.eye(10)
    features = provider.generate_features(x, np.random.default_rng(3))
    assert len(features) == 15
    for f in features:
        assert f.name.startswith("RBF")
        assert f.train_index == -1
        assert f.prototype.shape == (10,)
        assert f.column().shape == (10,)

    with pytest.raises(RVMConfigError):
        RandomRBFProvider([], 1.0)
    with pytest.raises(RVMConfigError):
        RandomRBFProvider([1.0], -0.5)


def test_random_rbf_centers_follow_training_columns_without_noise():
    x = np.column_stack([np.zeros(6), np.full(6, 5.0)])
    provider = RandomRBFProvider([1.0], 1.0, stats.uniform(loc=0.0, scale=1e-12))
    for f in provider.generate_features(x, np.random.default_rng(0)):
        np.testing.assert_allclose(f.prototype, [0.0, 5.0], atol=1e-9)


def test_training_column_is_memoized():
    x = np.random.default_rng(0).normal(size=(8, 2))
    f = RBFProvider([0.7]).generate_features(x, np.random.default_rng(0))[3]
    col = f.column()
    assert f.column() is col
    assert not col.flags.writeable


@pytest.mark.parametrize(
    "provider",
    [
        RBFProvider([0.3, 2.0]),
        KernelProvider(PolyKernel(degree=3, slope=0.5)),
        KernelProvider(RBFKernel(1.5)),
    ],
    ids=["rbf", "poly", "kernel-rbf"],
)
def test_evaluation_matches_training_column(provider):
    rng = np.random.default_rng(7)
    x = rng.normal(size=(20, 3))
    for f in provider.generate_features(x, rng):
        col = f.column()
        for r in range(x.shape[0]):
            assert f.evaluate(x[r]) == pytest.approx(col[r], rel=1e-12, abs=1e-15)
        np.testing.assert_allclose(f.evaluate_rows(x), col, rtol=1e-12)
