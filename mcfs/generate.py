"""
Synthetic Movie Ratings
=======================
Generates data resembling the Yahoo! Movies dataset, where each user gives
a 5-criteria rating to a movie:
- User i rates movie j with probability `fratings`
- A rating always covers all the criteria
- Criteria scores are normally distributed and correlated
- Scores are clipped to 1..13 and rounded

Means and correlations from Lakiotaki et al.; the standard deviation is
the MovieLens one scaled to the 1..13 range.
"""

import logging

import numpy as np

from mcfs.config import (
    MOVIES_AVERAGES, MOVIES_CORR_L, MOVIES_MAXV, MOVIES_MINV, MOVIES_STDDEV
)
from mcfs.dataset import Dataset, Precision

logger = logging.getLogger(__name__)


def generate_movies(users, movies, fratings, rng):
    """
    Generate a synthetic multi-criteria movie ratings dataset.

    Args:
        users: Number of users
        movies: Number of movies
        fratings: Probability that a (user, movie) pair is rated
        rng: numpy Generator

    Returns:
        Dataset: Ratings with INT precision in the 1..13 range.
    """
    if users <= 0 or movies <= 0:
        raise ValueError("The number of users and movies must be greater than zero.")
    if not 0.0 < fratings <= 1.0:
        raise ValueError("The ratio of ratings must be in (0, 1].")

    corr_l = np.array(MOVIES_CORR_L)
    averages = np.array(MOVIES_AVERAGES)

    rated = rng.random((users, movies)) < fratings
    pair_users, pair_movies = np.nonzero(rated)
    n_ratings = len(pair_users)
    logger.info(f"Generating {n_ratings:,} ratings "
                f"({users:,} users x {movies:,} movies, fratings={fratings})")

    # Independent standard normals -> correlated criteria
    correlated = rng.standard_normal((n_ratings, len(averages))) @ corr_l
    scores = correlated * MOVIES_STDDEV + averages
    scores = np.round(np.clip(scores, MOVIES_MINV, MOVIES_MAXV))

    criteria = len(averages)
    return Dataset(
        zip(pair_users.tolist(), pair_movies.tolist(), scores),
        criteria_size=criteria,
        num_users=users,
        num_items=movies,
        minv=[MOVIES_MINV] * criteria,
        maxv=[MOVIES_MAXV] * criteria,
        precision=[Precision.INT],
    )
