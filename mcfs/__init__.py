"""Multi-criteria collaborative filtering: datasets, kNN and PMF rating predictors."""

from mcfs.dataset import Dataset, Precision, Rating, rmse
from mcfs.neighbours_model import NeighboursModel
from mcfs.pmf_model import MatrixInit, PMFModel
from mcfs.similarities import SimilarityKind

__all__ = [
    'Dataset', 'Precision', 'Rating', 'rmse',
    'NeighboursModel', 'PMFModel', 'MatrixInit', 'SimilarityKind',
]
