import numpy as np
import pytest

from mcfs.config import make_rng
from mcfs.dataset import Precision
from mcfs.generate import generate_movies


def test_generated_ratings_within_scale():
    data = generate_movies(20, 30, 0.5, make_rng(0))
    assert data.criteria_size == 5
    assert data.users() == 20
    assert data.items() == 30
    assert data.precision == [Precision.INT] * 5
    assert data.minv.tolist() == [1.0] * 5
    assert data.maxv.tolist() == [13.0] * 5
    assert data.scores.min() >= 1.0
    assert data.scores.max() <= 13.0
    np.testing.assert_array_equal(data.scores, np.round(data.scores))


def test_every_pair_rated_when_ratio_is_one():
    data = generate_movies(4, 5, 1.0, make_rng(0))
    assert len(data) == 20
    assert all(len(data.ratings_by_user(u)) == 5 for u in range(4))


def test_criteria_are_positively_correlated():
    data = generate_movies(100, 100, 0.5, make_rng(3))
    corr = np.corrcoef(data.scores.T)
    assert (corr > 0.3).all()


def test_same_seed_same_data():
    a = generate_movies(10, 10, 0.3, make_rng(7))
    b = generate_movies(10, 10, 0.3, make_rng(7))
    assert a.to_record() == b.to_record()


@pytest.mark.parametrize("users, movies, fratings", [(0, 5, 0.5), (5, 5, 0.0), (5, 5, 1.5)])
def test_bad_arguments(users, movies, fratings):
    with pytest.raises(ValueError):
        generate_movies(users, movies, fratings, make_rng(0))
