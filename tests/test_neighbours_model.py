import logging

import pytest

from mcfs.dataset import Dataset, Precision, Rating
from mcfs.neighbours_model import NeighboursModel
from mcfs.similarities import NumericError, SimilarityKind


def _predict(model, user, item, criteria=1):
    rating = Rating(user, item, [0.0] * criteria)
    model.test([rating])
    return rating.scores.tolist()


@pytest.fixture
def neighbourhood():
    """
    User 0 has not rated item 0. Users 1 and 2 share items 1 and 2 with it;
    user 1 agrees on both, user 2 on one.
    """
    return Dataset([
        (0, 1, [1.0]), (0, 2, [1.0]),
        (1, 1, [1.0]), (1, 2, [1.0]), (1, 0, [4.0]),
        (2, 1, [1.0]), (2, 2, [0.0]), (2, 0, [1.0]),
    ])


@pytest.mark.parametrize("k", [0, 1, 5])
def test_rated_item_returns_existing_score(k):
    data = Dataset([(0, 0, [5.0]), (1, 0, [3.0]), (1, 1, [4.0])])
    model = NeighboursModel(k=k)
    model.train(data)
    assert _predict(model, 0, 0) == [5.0]


def test_cold_item_uses_midpoint(caplog):
    data = Dataset([(0, 0, [1.0]), (1, 1, [5.0])], minv=[1], maxv=[5])
    model = NeighboursModel()
    model.train(data)
    with caplog.at_level(logging.WARNING):
        assert _predict(model, 7, 99) == [3.0]
    assert "not rated before" in caplog.text


def test_weights_relative_to_best_neighbour(neighbourhood):
    model = NeighboursModel(similarity=SimilarityKind.DOT)
    model.train(neighbourhood)
    # sims 2 and 1 -> weights 1 and 0.5 -> (4 + 0.5) / 1.5
    assert _predict(model, 0, 0) == pytest.approx([3.0])


def test_k_limits_neighbours(neighbourhood):
    model = NeighboursModel(k=1, similarity=SimilarityKind.DOT)
    model.train(neighbourhood)
    assert _predict(model, 0, 0) == pytest.approx([4.0])


def test_exact_matches_are_averaged():
    data = Dataset([
        (0, 1, [1.0]), (0, 2, [1.0]),
        (1, 1, [1.0]), (1, 2, [1.0]), (1, 0, [4.0]),
        (2, 1, [1.0]), (2, 2, [1.0]), (2, 0, [2.0]),
        (3, 1, [3.0]), (3, 0, [5.0]),
    ])
    model = NeighboursModel(k=1, similarity=SimilarityKind.NORM_P2_RAW)
    model.train(data)
    assert _predict(model, 0, 0) == pytest.approx([3.0])


def test_int_criteria_are_rounded_half_away_from_zero():
    data = Dataset([
        (0, 1, [1.0]), (0, 2, [1.0]),
        (1, 1, [1.0]), (1, 2, [1.0]), (1, 0, [2.0]),
        (2, 1, [1.0]), (2, 2, [1.0]), (2, 0, [3.0]),
    ], precision=[Precision.INT])
    model = NeighboursModel(similarity=SimilarityKind.DOT)
    model.train(data)
    assert _predict(model, 0, 0) == [3.0]


def test_no_similar_users_leaves_scores(caplog):
    data = Dataset([(0, 1, [1.0]), (1, 2, [1.0]), (1, 0, [4.0])])
    model = NeighboursModel()
    model.train(data)
    with caplog.at_level(logging.WARNING):
        assert _predict(model, 0, 0) == [0.0]
        assert _predict(model, 9, 0) == [0.0]
    assert "no similar users" in caplog.text


def test_train_reports_validation_rmse():
    data = Dataset([(0, 0, [5.0]), (1, 0, [3.0]), (1, 1, [4.0])])
    model = NeighboursModel()
    assert model.train(data) == 0.0
    assert model.train(data, data) == pytest.approx(0.0)


def test_save_and_load(neighbourhood, tmp_path):
    model = NeighboursModel(k=1, similarity="DOT")
    model.train(neighbourhood)
    path = tmp_path / "knn.pkl"
    assert model.save(path)

    loaded = NeighboursModel()
    assert loaded.load(path)
    assert loaded.K == 1
    assert loaded.similarity_kind is SimilarityKind.DOT
    assert len(loaded.data) == len(neighbourhood)
    assert _predict(loaded, 0, 0) == _predict(model, 0, 0)


def test_load_string_round_trip(neighbourhood):
    model = NeighboursModel(similarity="NORM_P1")
    model.train(neighbourhood)
    loaded = NeighboursModel()
    assert loaded.load_string(model.save_string())
    assert loaded.similarity_kind is SimilarityKind.NORM_P1


def test_load_garbage(tmp_path):
    path = tmp_path / "garbage.pkl"
    path.write_bytes(b"not a model")
    assert not NeighboursModel().load(path)


def test_clear(neighbourhood):
    model = NeighboursModel(k=3, similarity="DOT")
    model.train(neighbourhood)
    model.clear()
    assert len(model.data) == 0
    assert model.K == 0
    assert model.similarity_kind is SimilarityKind.COSINE


def test_nan_similarity_raises():
    data = Dataset([(0, 1, [float('nan')]), (1, 1, [1.0]), (1, 0, [4.0])],
                   minv=[1], maxv=[5])
    model = NeighboursModel()
    model.train(data)
    with pytest.raises(NumericError):
        _predict(model, 0, 0)
