import math

import pytest

from mcfs.dataset import ShapeMismatchError
from mcfs.similarities import (
    SimilarityKind, cosine_similarity, get_similarity, is_minkowski
)

MINKOWSKI = [kind for kind in SimilarityKind if is_minkowski(kind)]


@pytest.mark.parametrize("kind", MINKOWSKI, ids=lambda k: k.name)
def test_minkowski_identical_vectors_are_infinitely_similar(kind):
    sim = get_similarity(kind)
    assert math.isinf(sim([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]))


@pytest.mark.parametrize("kind", list(SimilarityKind), ids=lambda k: k.name)
def test_symmetry(kind):
    sim = get_similarity(kind)
    a = [1.0, 2.0, 3.0, 4.0]
    b = [4.0, 1.0, 0.0, 2.0]
    assert sim(a, b) == pytest.approx(sim(b, a))


@pytest.mark.parametrize("kind", list(SimilarityKind), ids=lambda k: k.name)
def test_empty_vectors(kind):
    assert get_similarity(kind)([], []) == 0.0


@pytest.mark.parametrize("kind", list(SimilarityKind), ids=lambda k: k.name)
def test_size_mismatch(kind):
    with pytest.raises(ShapeMismatchError):
        get_similarity(kind)([1.0, 2.0], [1.0])


def test_cosine_values():
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([1, 1], [2, 2]) == pytest.approx(1.0)
    assert cosine_similarity([0, 0], [1, 2]) == 0.0


def test_cosine_variants():
    a, b = [1.0, 0.0], [1.0, 1.0]
    cos = 1 / math.sqrt(2)
    assert get_similarity("COSINE_SQRT")(a, b) == pytest.approx(math.sqrt(cos))
    assert get_similarity("COSINE_POW2")(a, b) == pytest.approx(0.5)
    assert get_similarity("COSINE_SQRT")([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)


def test_raw_similarities():
    a, b = [0.0, 0.0], [1.0, 2.0]
    assert get_similarity(SimilarityKind.DOT)([1, 2], [3, 4]) == pytest.approx(11.0)
    assert get_similarity(SimilarityKind.NORM_P1_RAW)(a, b) == pytest.approx(1 / 3)
    assert get_similarity(SimilarityKind.NORM_P2_RAW)(a, b) == pytest.approx(1 / math.sqrt(5))
    assert get_similarity(SimilarityKind.NORM_PINF_RAW)(a, b) == pytest.approx(0.5)


def test_normalized_norm_ignores_magnitude():
    sim = get_similarity(SimilarityKind.NORM_P2)
    assert math.isinf(sim([1.0, 2.0], [2.0, 4.0]))
    assert sim([0.0, 0.0], [1.0, 2.0]) == 0.0


def test_parse():
    assert SimilarityKind.parse("cosine") is SimilarityKind.COSINE
    assert SimilarityKind.parse(4) is SimilarityKind.NORM_P2
    with pytest.raises(KeyError):
        SimilarityKind.parse("manhattan")
