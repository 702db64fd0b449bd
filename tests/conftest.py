import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest


@pytest.fixture
def rng():
    return np.random.default_rng(12345)


def build_matrix(n, ties):
    """Hand-built pairing matrix from a list of ``(u, v)`` ties."""
    matrix = np.zeros((n, n), dtype=np.int64)
    for u, v in ties:
        if u == v:
            matrix[u, u] += 1
        else:
            matrix[u, v] += 1
            matrix[v, u] += 1
    return matrix


@pytest.fixture
def make_matrix():
    return build_matrix
