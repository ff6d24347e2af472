import numpy as np
import pytest

from sensible_rvm import RVMNumericalError
from sensible_rvm.linalg import GramMatrix, PairCache, robust_inverse, spd_inverse


def test_spd_inverse_matches_numpy():
    rng = np.random.default_rng(0)
    a = rng.normal(size=(6, 6))
    t = a @ a.T + 6.0 * np.eye(6)
    inv = spd_inverse(t)
    np.testing.assert_allclose(inv @ t, np.eye(6), atol=1e-10)
    np.testing.assert_array_equal(inv, inv.T)


def test_spd_inverse_falls_back_for_indefinite_matrix():
    # Cholesky rejects it, QR still inverts it
    t = np.array([[0.0, 1.0], [1.0, 0.0]])
    np.testing.assert_allclose(spd_inverse(t), t, atol=1e-12)


def test_singular_matrix_is_a_numerical_error():
    t = np.ones((2, 2))
    with pytest.raises(RVMNumericalError):
        spd_inverse(t)
    with pytest.raises(RVMNumericalError):
        robust_inverse(t)
    with pytest.raises(ArithmeticError):
        robust_inverse(np.full((2, 2), np.nan))


def test_gram_matrix_append_and_remove():
    rng = np.random.default_rng(1)
    vectors = rng.normal(size=(20, 7))
    full = vectors.T @ vectors

    g = GramMatrix(capacity=2)
    for k in range(7):
        g.append(full[k, :k], full[k, k])
    assert g.size == 7
    np.testing.assert_allclose(g.values, full)

    g.remove(3)
    keep = [0, 1, 2, 4, 5, 6]
    np.testing.assert_allclose(g.values, full[np.ix_(keep, keep)])

    g.remove(0)
    g.remove(g.size - 1)
    keep = [1, 2, 4, 5]
    np.testing.assert_allclose(g.values, full[np.ix_(keep, keep)])

    g.append(full[3, keep], full[3, 3])
    keep = [1, 2, 4, 5, 3]
    np.testing.assert_allclose(g.values, full[np.ix_(keep, keep)])


def test_gram_matrix_rejects_bad_input():
    g = GramMatrix()
    with pytest.raises(ValueError):
        g.append(np.ones(2), 1.0)
    g.append(np.empty(0), 1.0)
    with pytest.raises(IndexError):
        g.remove(1)


def test_pair_cache_is_symmetric():
    cache = PairCache()
    assert cache.get(3, 7) is None
    cache.store(3, 7, 1.25)
    assert cache.get(3, 7) == 1.25
    assert cache.get(7, 3) == 1.25
    assert (7, 3) in cache

    # first stored value wins
    assert cache.store(7, 3, 9.0) == 1.25
    assert cache.get(3, 7) == 1.25
    assert len(cache) == 1

    cache.store(5, 5, 2.0)
    assert cache.get(5, 5) == 2.0
    assert len(cache) == 2
