import pytest

from mcfs.config import make_rng
from mcfs.dataset import Dataset


@pytest.fixture
def rng():
    return make_rng(1)


@pytest.fixture
def small_dataset():
    """Three users, three items, two criteria on a 1..5 scale."""
    return Dataset(
        [
            (0, 0, [1, 2]),
            (0, 1, [3, 4]),
            (1, 0, [1, 2]),
            (1, 2, [5, 5]),
            (2, 1, [2, 2]),
            (0, 2, [4, 1]),
        ],
        minv=[1, 1],
        maxv=[5, 5],
    )


@pytest.fixture
def ten_ratings():
    return Dataset([(u, i, [float(u + i)]) for u in range(5) for i in range(2)])
