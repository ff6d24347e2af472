import numpy as np
import pytest

from sensible_rvm import (
    InterceptProvider,
    KernelProvider,
    Method,
    RBFKernel,
    RBFProvider,
    RVMConfig,
    RVMConfigError,
    RVMNumericalError,
    RVMRegression,
)


def _data(n=40, seed=0):
    rng = np.random.default_rng(seed)
    x = np.linspace(0.0, 2 * np.pi, n)
    y = np.sin(x) + rng.normal(0.0, 0.05, size=n)
    return x, y


@pytest.fixture(scope="module")
def fitted():
    x, y = _data()
    return RVMRegression.new(
        [InterceptProvider(), RBFProvider([1.0])], fit_threshold=1e-6, max_iter=2000, seed=0
    ).fit(x, y)


def test_default_model():
    model = RVMRegression()
    assert model.method is Method.FAST_TIPPING
    assert model.config == RVMConfig()
    assert str(model) == (
        "RVMRegression{providers=[InterceptProvider{},RBFProvider{gammas=[1],p=1}],"
        "method=fast_tipping}"
    )


def test_configure_is_fluent_and_immutable():
    model = RVMRegression()
    tuned = model.configure(max_iter=50, seed=3).with_method("fast_online")

    assert model.config.max_iter == 10_000
    assert tuned.config.max_iter == 50
    assert tuned.config.seed == 3
    assert tuned.method is Method.FAST_ONLINE
    assert tuned.providers == model.providers


def test_with_providers_requires_at_least_one():
    with pytest.raises(RVMConfigError):
        RVMRegression().with_providers()
    with pytest.raises(RVMConfigError):
        RVMRegression(providers=())
    with pytest.raises(RVMConfigError):
        RVMRegression.new([])
    assert RVMRegression.new().providers == RVMRegression().providers


@pytest.mark.parametrize(
    "settings",
    [
        {"method": "gradient_descent"},
        {"fit_threshold": 0.0},
        {"max_iter": 0},
        {"alpha_treshold": 1e3},
    ],
)
def test_invalid_settings(settings):
    with pytest.raises(RVMConfigError):
        RVMRegression.new(**settings)
    with pytest.raises(ValueError):
        RVMRegression().configure(**settings)


def test_shape_checks():
    model = RVMRegression()
    with pytest.raises(RVMConfigError, match="rows"):
        model.fit(np.zeros((5, 2)), np.zeros(4))
    with pytest.raises(RVMConfigError):
        model.fit(np.zeros(5), np.zeros((5, 2)))
    with pytest.raises(RVMConfigError):
        model.fit([1.0], [2.0])
    with pytest.raises(RVMConfigError, match="non-finite"):
        model.fit([0.0, 1.0, np.nan], [1.0, 2.0, 3.0])


def test_column_target_is_flattened_with_warning():
    x, y = _data(20)
    model = RVMRegression.new([InterceptProvider(), RBFProvider([1.0])], max_iter=50, seed=0)
    with pytest.warns(UserWarning, match="Flattening"):
        run = model.fit(x, y.reshape(-1, 1))
    assert run.data["y"].shape == (20,)


def test_empty_feature_set_is_rejected():
    x, y = _data(20)
    model = RVMRegression.new([RBFProvider([1.0], 0.0)])
    with pytest.raises(RVMConfigError, match="no features"):
        model.fit(x, y)


def test_results_shape(fitted):
    res = fitted.results
    k = res.rv_count

    assert res.feature_indexes.shape == (k,)
    assert res.m.shape == (k,) and res.alpha.shape == (k,)
    assert res.sigma.shape == (k, k)
    assert res.relevance_vectors.shape == (k, 1)
    assert len(res.feature_names) == k
    assert res.stats["candidates"] == 41
    assert len(np.unique(res.training_indexes)) == len(res.training_indexes)
    assert np.all((res.training_indexes >= 0) & (res.training_indexes < 40))
    assert len(fitted.active_features) == k


def test_predict_is_pure(fitted):
    xg = np.linspace(0.0, 2 * np.pi, 25)
    first = fitted.predict(xg).value
    fitted.predict(np.linspace(-1.0, 1.0, 7), quantiles=(0.1,))
    second = fitted.predict(xg).value
    np.testing.assert_array_equal(first, second)
    assert fitted.predict(1.0).value.shape == (1,)


def test_predict_quantiles(fitted):
    xg = np.linspace(0.0, 2 * np.pi, 25)
    pred = fitted.predict(xg, quantiles=(0.05, 0.5, 0.95))

    assert pred.quantile_values.shape == (25, 3)
    lo, mid, hi = pred.quantile(0.05), pred.quantile(0.5), pred.quantile(0.95)
    assert np.all(lo < pred.value) and np.all(pred.value < hi)
    np.testing.assert_allclose(mid, pred.value)
    np.testing.assert_allclose(pred.value - lo, hi - pred.value)
    with pytest.raises(KeyError):
        pred.quantile(0.25)


@pytest.mark.parametrize("level", [0.0, 1.0, -0.2, 1.5])
def test_predict_rejects_bad_quantile(fitted, level):
    with pytest.raises(RVMConfigError):
        fitted.predict([1.0], quantiles=(level,))


def test_predict_rejects_wrong_dimension(fitted):
    with pytest.raises(RVMConfigError):
        fitted.predict(np.zeros((3, 2)))


def test_summary_and_str(fitted):
    text = fitted.summary()
    assert "> relevant vectors count: {}".format(fitted.results.rv_count) in text
    assert "> convergence:" in text
    assert "> beta:" in text
    assert str(fitted).endswith(f"fitted=true, rvm count={fitted.results.rv_count}")


def test_seed_makes_sampling_reproducible():
    x, y = _data(40, seed=1)
    model = RVMRegression.new([RBFProvider([0.5, 2.0], 0.3)], max_iter=200, seed=11)
    a = model.fit(x, y)
    b = model.fit(x, y)
    assert [f.name for f in a.features] == [f.name for f in b.features]
    np.testing.assert_array_equal(a.results.feature_indexes, b.results.feature_indexes)
    np.testing.assert_array_equal(a.results.m, b.results.m)


def test_kernel_provider_fit_in_two_dimensions():
    rng = np.random.default_rng(8)
    x = rng.uniform(-2.0, 2.0, size=(60, 2))
    y = np.exp(-np.sum(x**2, axis=1)) + rng.normal(0.0, 0.02, size=60)
    run = RVMRegression.new(
        [InterceptProvider(), KernelProvider(RBFKernel(1.0))], max_iter=2000, seed=0
    ).fit(x, y)

    assert run.results.relevance_vectors.shape[1] == 2
    assert run.results.rv_count < 61
    pred = run.predict(x).value
    assert np.sqrt(np.mean((pred - y) ** 2)) < 0.1


class _RecordingProvider:
    def __init__(self, inner):
        self.inner = inner
        self.generated = []

    def generate_features(self, x, rng):
        features = self.inner.generate_features(x, rng)
        self.generated.extend(features)
        return features


def test_training_columns_do_not_outlive_the_fit():
    x, y = _data(60)
    provider = _RecordingProvider(RBFProvider([1.0]))
    run = RVMRegression.new([InterceptProvider(), provider], max_iter=500, seed=0).fit(x, y)

    assert len(provider.generated) == 60
    assert not any(f.is_cached for f in provider.generated)
    assert len(run.features) == run.results.rv_count
    assert not any(f.is_cached for f in run.features)
    assert tuple(f.name for f in run.features) == run.results.feature_names
    assert np.all(np.isfinite(run.predict(x).value))
    assert not any(f.is_cached for f in run.features)


def test_training_columns_are_released_when_the_fit_fails():
    x = np.linspace(0.0, 1.0, 20)
    provider = _RecordingProvider(InterceptProvider())
    model = RVMRegression.new([provider], method="evidence_approximation", alpha_threshold=1e-6)
    with pytest.raises(RVMNumericalError):
        model.fit(x, 2.0 + 0.1 * x)
    assert provider.generated and not any(f.is_cached for f in provider.generated)
