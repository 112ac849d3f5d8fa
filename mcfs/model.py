"""
Model Base Class
================
Shared evaluation and persistence for the rating prediction models.
Subclasses implement `train`, `predict_ratings`, `to_config` and
`load_config`.
"""

import logging
import pickle
from pathlib import Path

from mcfs.dataset import Dataset, rmse
from mcfs.utils import timed

logger = logging.getLogger(__name__)


class Model:
    # Models predicting on the [0, 1] scale set this to True
    normalized_predictions = False

    def train(self, train_set, valid_set=None):
        raise NotImplementedError

    def predict_ratings(self, ratings):
        """Fill in the scores of each Rating in place."""
        raise NotImplementedError

    def to_config(self):
        raise NotImplementedError

    def load_config(self, config):
        raise NotImplementedError

    def info(self):
        raise NotImplementedError

    def test(self, data):
        """
        Predict a batch of ratings in place, or evaluate on a Dataset.

        Args:
            data: A Dataset, or an iterable of Rating objects to fill in

        Returns:
            float: RMSE against the Dataset's scores (None for a batch).
        """
        if isinstance(data, Dataset):
            return self._test_dataset(data)
        self.predict_ratings(data)
        return None

    def _test_dataset(self, test_set):
        pred_set = test_set.copy()
        pred_set.erase_scores()
        with timed("Prediction seconds: ", level=logging.DEBUG):
            self.predict_ratings(pred_set)
        if self.normalized_predictions:
            # Map back with the scale the model was trained on
            pred_set.minv = self.data.minv.copy()
            pred_set.maxv = self.data.maxv.copy()
            pred_set.precision = list(self.data.precision)
            pred_set.to_original_scale()
        return rmse(test_set, pred_set)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def save(self, filename):
        path = Path(filename)
        try:
            with open(path, 'wb') as f:
                pickle.dump(self.to_config(), f)
        except OSError as e:
            logger.error(f"{type(self).__name__} \"{path}\": Failed to write. {e}")
            return False
        logger.info(f"[SAVED] {path.name}")
        return True

    def load(self, filename):
        path = Path(filename)
        try:
            with open(path, 'rb') as f:
                config = pickle.load(f)
        except (OSError, EOFError, pickle.UnpicklingError) as e:
            logger.error(f"{type(self).__name__} \"{path}\": Failed to open. {e}")
            return False
        if not isinstance(config, dict):
            logger.error(f"{type(self).__name__} \"{path}\": Failed to parse.")
            return False
        return self.load_config(config)

    def save_string(self):
        return pickle.dumps(self.to_config())

    def load_string(self, data):
        try:
            config = pickle.loads(data)
        except (EOFError, pickle.UnpicklingError) as e:
            logger.error(f"{type(self).__name__}: Failed to parse. {e}")
            return False
        return self.load_config(config)
