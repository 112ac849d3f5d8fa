"""
Neighbours Model
================
User-based k-nearest-neighbours prediction over multi-criteria ratings:
- Similarity between two users computed on the items both rated
- Similarities memoized per user pair within a prediction batch
- Top-K neighbours combined with weights relative to the best neighbour
- Exact matches (infinite similarity) averaged on their own
"""

import logging
import math

import numpy as np

from mcfs.config import DEFAULT_K, DEFAULT_SIMILARITY
from mcfs.dataset import Dataset, Precision, round_half_away
from mcfs.model import Model
from mcfs.similarities import NumericError, SimilarityKind, get_similarity

logger = logging.getLogger(__name__)


class NeighboursModel(Model):
    """Non-parametric model: training keeps an indexed copy of the ratings."""

    def __init__(self, k=DEFAULT_K, similarity=DEFAULT_SIMILARITY):
        self.data = Dataset()
        self.K = int(k)
        self.set_similarity(similarity)

    def set_similarity(self, kind):
        self.similarity_kind = SimilarityKind.parse(kind)
        self.similarity = get_similarity(self.similarity_kind)

    def clear(self):
        self.data = Dataset()
        self.K = DEFAULT_K
        self.set_similarity(DEFAULT_SIMILARITY)

    # ========================================================================
    # Training
    # ========================================================================
    def train(self, train_set, valid_set=None):
        """
        Store an indexed copy of the training ratings.

        Returns:
            float: Validation RMSE if `valid_set` is given, else 0.0.
        """
        self.data = train_set.copy()
        if not self.data.is_indexed:
            self.data.prepare_aux()
        logger.info(self.info())
        # Nothing is fitted, so the training error is 0 by convention
        logger.info("Train RMSE = 0")
        if valid_set is None:
            return 0.0
        valid_rmse = self.test(valid_set)
        logger.info(f"Valid RMSE = {valid_rmse:.6f}")
        return valid_rmse

    # ========================================================================
    # Prediction
    # ========================================================================
    def _user_similarity(self, user_a, user_b):
        if user_a >= self.data.num_users or user_b >= self.data.num_users:
            return 0.0
        va, vb = self.data.get_scores_from_common_ratings_by_users(user_a, user_b)
        return self.similarity(va, vb)

    def predict_ratings(self, ratings):
        memo = {}
        for rating in ratings:
            self._predict(rating, memo)

    def _predict(self, rating, memo):
        data = self.data
        user, item = rating.user, rating.item

        positions = data.ratings_by_item(item) if item < data.num_items else None
        if positions is None or len(positions) == 0:
            logger.warning(f"Item {item} not rated before. Using the middle of the scale.")
            rating.scores[:] = data.midpoint()
            return

        raters = data.user_ids[positions]
        k = int(np.searchsorted(raters, user))
        if k < len(raters) and raters[k] == user:
            # The user already rated this item
            rating.scores[:] = data.scores[positions[k]]
            return

        neighbours = []
        for pos, other in zip(positions.tolist(), raters.tolist()):
            key = (user, other) if user < other else (other, user)
            if key not in memo:
                memo[key] = self._user_similarity(user, other)
            sim = memo[key]
            if math.isnan(sim):
                raise NumericError(f"NaN similarity between users {user} and {other}")
            if sim > 0:
                neighbours.append((sim, pos))

        if not neighbours:
            logger.warning(f"User {user} has no similar users among the raters of item {item}.")
            return

        neighbours.sort(key=lambda n: n[0], reverse=True)
        top = neighbours[:self.K] if self.K > 0 else neighbours

        if math.isinf(top[0][0]):
            # Exact matches only
            exact = [pos for sim, pos in neighbours if math.isinf(sim)]
            prediction = data.scores[exact].mean(axis=0)
        else:
            sims = np.array([sim for sim, _ in top])
            weights = sims / sims[0]
            neighbour_scores = data.scores[[pos for _, pos in top]]
            prediction = weights @ neighbour_scores / weights.sum()

        if not np.all(np.isfinite(prediction)):
            raise NumericError(f"Non-finite prediction for user {user}, item {item}")
        for c, precision in enumerate(data.precision):
            if precision == Precision.INT:
                prediction[c] = round_half_away(prediction[c])
        rating.scores[:] = prediction
        logger.debug(f"Predicted {rating} from {len(top)} neighbours")

    # ========================================================================
    # Persistence
    # ========================================================================
    def to_config(self):
        return {
            'ratings': self.data.to_record(),
            'k': self.K,
            'similarity': self.similarity_kind.name,
        }

    def load_config(self, config):
        data = Dataset()
        if not data.load_record(config.get('ratings', {})):
            return False
        try:
            kind = SimilarityKind.parse(config.get('similarity', DEFAULT_SIMILARITY))
        except (KeyError, ValueError):
            logger.error(f"NeighboursModel: Unknown similarity {config.get('similarity')!r}")
            return False
        self.data = data
        self.K = int(config.get('k', DEFAULT_K))
        self.set_similarity(kind)
        return True

    def info(self):
        return "\n".join([
            f"K = {self.K}",
            f"Similarity = {self.similarity_kind.name}",
            self.data.info(),
        ])
