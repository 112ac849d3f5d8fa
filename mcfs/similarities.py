"""
Similarity Functions
====================
Pairwise similarity between two equal-length score vectors:
- Cosine similarity (plus its square root and square)
- Inverse Minkowski distance for p = 1, 2 and infinity

Every function has the signature `f(a, b, normalize=True) -> float`.
Minkowski based similarities return +inf for identical vectors, which the
neighbours model treats as an exact match.
"""

import math
from enum import Enum
from functools import partial

import numpy as np

from mcfs.dataset import ShapeMismatchError


class NumericError(ArithmeticError):
    """A similarity or prediction turned out NaN."""


def _check_sizes(a, b):
    if len(a) != len(b):
        raise ShapeMismatchError(f"Vector sizes differ: {len(a)} != {len(b)}")


def cosine_similarity(a, b, normalize=True):
    """dot(a, b) / (|a| |b|), or the raw dot product when not normalizing."""
    _check_sizes(a, b)
    if len(a) == 0:
        return 0.0
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    s = float(np.dot(a, b))
    if not normalize:
        return s
    norms = np.linalg.norm(a) * np.linalg.norm(b)
    if norms == 0:
        return 0.0
    return s / norms


def cosine_sqrt_similarity(a, b, normalize=True):
    s = cosine_similarity(a, b, normalize)
    # Negative similarities keep their sign, they are discarded anyway
    return math.sqrt(s) if s >= 0 else -math.sqrt(-s)


def cosine_pow2_similarity(a, b, normalize=True):
    s = cosine_similarity(a, b, normalize)
    return s * s


def _normalized_difference(a, b, normalize):
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if normalize:
        la = np.linalg.norm(a)
        lb = np.linalg.norm(b)
        if la == 0 or lb == 0:
            return None
        a = a / la
        b = b / lb
    return np.abs(a - b)


def norm_similarity(a, b, normalize=True, p=2.0):
    """
    Inverse of the p-norm of (a - b).

    Args:
        a, b: Score vectors of the same length
        normalize: L2-normalize both vectors first
        p: Norm order (math.inf for the maximum norm)

    Returns:
        float: 1 / ||a - b||_p, +inf when the vectors are identical.
    """
    _check_sizes(a, b)
    if len(a) == 0:
        return 0.0
    diff = _normalized_difference(a, b, normalize)
    if diff is None:
        return 0.0
    if math.isinf(p):
        dist = float(diff.max())
    else:
        dist = float(np.sum(diff ** p)) ** (1.0 / p)
    if dist > 0:
        return 1.0 / dist
    return math.inf


def inf_norm_similarity(a, b, normalize=True):
    return norm_similarity(a, b, normalize, p=math.inf)


class SimilarityKind(Enum):
    COSINE = 0
    COSINE_SQRT = 1
    COSINE_POW2 = 2
    NORM_P1 = 3
    NORM_P2 = 4
    NORM_PINF = 5
    DOT = 6
    NORM_P1_RAW = 7
    NORM_P2_RAW = 8
    NORM_PINF_RAW = 9

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls[value.upper()]
        return cls(int(value))


# kind -> (function, normalize, is Minkowski family)
_SIMILARITIES = {
    SimilarityKind.COSINE: (cosine_similarity, True, False),
    SimilarityKind.COSINE_SQRT: (cosine_sqrt_similarity, True, False),
    SimilarityKind.COSINE_POW2: (cosine_pow2_similarity, True, False),
    SimilarityKind.NORM_P1: (partial(norm_similarity, p=1.0), True, True),
    SimilarityKind.NORM_P2: (partial(norm_similarity, p=2.0), True, True),
    SimilarityKind.NORM_PINF: (inf_norm_similarity, True, True),
    SimilarityKind.DOT: (cosine_similarity, False, False),
    SimilarityKind.NORM_P1_RAW: (partial(norm_similarity, p=1.0), False, True),
    SimilarityKind.NORM_P2_RAW: (partial(norm_similarity, p=2.0), False, True),
    SimilarityKind.NORM_PINF_RAW: (inf_norm_similarity, False, True),
}


def get_similarity(kind):
    """Return the callable `f(a, b) -> float` for a SimilarityKind."""
    function, normalize, _ = _SIMILARITIES[SimilarityKind.parse(kind)]
    return partial(function, normalize=normalize)


def is_minkowski(kind):
    return _SIMILARITIES[SimilarityKind.parse(kind)][2]
