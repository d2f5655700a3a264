"""
Pytest configuration and shared fixtures for embedding tests.

Gradient checks run on the first 50 iris observations, range scaled as a
whole matrix, with PCA initial coordinates. Finite differences need double
precision, so x64 is enabled before any array is created.
"""
import pytest
import jax
import jax.numpy as jnp
import numpy as np
from sklearn.datasets import load_iris

# Finite-difference checks are meaningless in single precision
jax.config.update("jax_enable_x64", True)

from probembed import pca_init, range_scale_matrix


@pytest.fixture(scope="session")
def iris():
    """The full iris measurements, shape (150, 4)."""
    return jnp.asarray(load_iris().data, dtype=jnp.float64)


@pytest.fixture(scope="session")
def iris50(iris):
    """First 50 rows, range scaled to [0, 1] as one matrix."""
    return range_scale_matrix(iris[:50])


@pytest.fixture(scope="session")
def ym50(iris50):
    """PCA initial coordinates for iris50."""
    return pca_init(iris50, 2)


@pytest.fixture(scope="session")
def betas():
    """Per-point output precisions, one per iris50 row."""
    return jnp.linspace(1e-3, 1.0, 50)


@pytest.fixture(scope="session")
def base_key():
    """Root PRNG key for all tests."""
    return jax.random.PRNGKey(42)


@pytest.fixture
def key(base_key, request):
    """Per-test PRNG key derived from test name for reproducibility."""
    test_id = hash(request.node.nodeid) % (2**31)
    return jax.random.fold_in(base_key, test_id)


@pytest.fixture
def blobs(key):
    """Three well separated clusters, 30 points in 5 dimensions."""
    k1, k2 = jax.random.split(key)
    centers = 5.0 * jax.random.normal(k1, (3, 5))
    labels = np.arange(30) % 3
    return centers[labels] + jax.random.normal(k2, (30, 5))


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "gradient: analytic vs finite-difference gradients")
    config.addinivalue_line("markers", "invariant: mathematical invariant verification")
