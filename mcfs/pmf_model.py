"""
Probabilistic Matrix Factorization
==================================
Sigmoid-link matrix factorization for multi-criteria ratings.

For criterion c, user i and item j the predicted (normalized) score is

    g = sigmoid((Y[c,i] + H[c,i]) . V[c,j])

where H[c,i] is the average of W[c,j'] over the items j' rated by user i
(implicit feedback). Y, V and W are learned with minibatch SGD plus
momentum on the L2 regularized squared error:

    0.5 * sum (g - R)^2 + 0.5 * (lY |Y|^2 + lV |V|^2 + lW |W|^2)

HY = Y + H only depends on Y, W and the rating structure, so it is cached
after every update and reused at prediction time.
"""

import logging
from enum import Enum

import numpy as np
from scipy.sparse import csr_matrix
from scipy.special import expit

from mcfs.config import (
    DEFAULT_BATCH_SIZE, DEFAULT_FACTORS, DEFAULT_LEARNING_RATE, DEFAULT_LV,
    DEFAULT_LW, DEFAULT_LY, DEFAULT_MATRIX_INIT, DEFAULT_MAX_ITERS,
    DEFAULT_MOMENTUM, make_rng
)
from mcfs.dataset import Dataset, ShapeMismatchError
from mcfs.model import Model

logger = logging.getLogger(__name__)


class MatrixInit(Enum):
    STATIC = 0
    NORMAL = 1
    UNIFORM = 2

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls[value.upper()]
        return cls(int(value))


def init_array(shape, method, rng):
    """Create a factor tensor with the given initialization strategy."""
    if method == MatrixInit.STATIC:
        n = int(np.prod(shape))
        return ((np.arange(n) + 1.0) / n).reshape(shape)
    if method == MatrixInit.NORMAL:
        return rng.standard_normal(shape)
    return rng.random(shape)


def user_item_structure(data):
    """
    Sparse N x M matrix averaging item rows per user.

    Entry (i, j) is 1/n_i for every rating of user i on item j, so that
    `structure @ W[c]` yields H[c].
    """
    counts = np.bincount(data.user_ids, minlength=data.num_users)
    weights = 1.0 / counts[data.user_ids] if len(data) else np.zeros(0)
    return csr_matrix(
        (weights, (data.user_ids, data.item_ids)),
        shape=(data.num_users, data.num_items)
    )


class PMFModel(Model):
    normalized_predictions = True

    def __init__(self, factors=DEFAULT_FACTORS, max_iters=DEFAULT_MAX_ITERS,
                 learning_rate=DEFAULT_LEARNING_RATE, momentum=DEFAULT_MOMENTUM,
                 batch_size=DEFAULT_BATCH_SIZE, ly=DEFAULT_LY, lv=DEFAULT_LV,
                 lw=DEFAULT_LW, matrix_init=DEFAULT_MATRIX_INIT):
        self.clear()
        self.D = int(factors)
        self.max_iters = int(max_iters)
        self.learning_rate = float(learning_rate)
        self.momentum = float(momentum)
        self.batch_size = int(batch_size)
        self.lY = float(ly)
        self.lV = float(lv)
        self.lW = float(lw)
        self.matrix_init = MatrixInit.parse(matrix_init)

    def clear(self):
        """Drop the factor tensors and the data, restore default parameters."""
        self.data = Dataset()
        self.D = DEFAULT_FACTORS
        self.max_iters = DEFAULT_MAX_ITERS
        self.learning_rate = DEFAULT_LEARNING_RATE
        self.momentum = DEFAULT_MOMENTUM
        self.batch_size = DEFAULT_BATCH_SIZE
        self.lY = DEFAULT_LY
        self.lV = DEFAULT_LV
        self.lW = DEFAULT_LW
        self.matrix_init = MatrixInit.parse(DEFAULT_MATRIX_INIT)
        self.y = None
        self.v = None
        self.w = None
        self.hy = None
        self.history = []
        self._structure = None
        self._user_counts = None
        self._item_counts = None

    # ========================================================================
    # Core computations
    # ========================================================================
    def _set_data(self, data):
        self.data = data
        if not self.data.is_indexed:
            self.data.prepare_aux()
        self._structure = user_item_structure(self.data)
        self._user_counts = np.bincount(self.data.user_ids, minlength=self.data.num_users)
        self._item_counts = np.bincount(self.data.item_ids, minlength=self.data.num_items)

    def _allocate(self, N, M, C, rng):
        shapes = {'y': (C, N, self.D), 'v': (C, M, self.D), 'w': (C, M, self.D)}
        for name, shape in shapes.items():
            tensor = getattr(self, name)
            if tensor is None:
                setattr(self, name, init_array(shape, self.matrix_init, rng))
            elif tensor.shape != shape:
                raise ShapeMismatchError(
                    f"Loaded {name.upper()} has shape {tensor.shape}, data needs {shape}")

    def compute_hy(self):
        """HY = Y + H, with H[c] the per-user average of the rated items' W[c] rows."""
        h = np.stack([self._structure @ self.w[c] for c in range(self.w.shape[0])])
        return self.y + h

    def _predict_arrays(self, users, items):
        # (C, n, D) . (C, n, D) -> (n, C)
        z = np.einsum('cnd,cnd->nc', self.hy[:, users], self.v[:, items])
        return expit(z)

    def compute_loss(self, norm_data):
        g = self._predict_arrays(norm_data.user_ids, norm_data.item_ids)
        loss = 0.5 * np.sum((g - norm_data.scores) ** 2)
        loss += 0.5 * self.lY * np.sum(self.y ** 2)
        loss += 0.5 * self.lV * np.sum(self.v ** 2)
        loss += 0.5 * self.lW * np.sum(self.w ** 2)
        return float(loss)

    def compute_gradient(self, users, items, scores):
        """
        Gradient of the regularized loss restricted to a batch of ratings.

        Args:
            users: User ids of the batch
            items: Item ids of the batch
            scores: (batch, C) normalized scores

        Returns:
            tuple: dY, dV, dW with the shapes of Y, V, W.
        """
        C, N, _ = self.y.shape
        M = self.v.shape[1]
        g = self._predict_arrays(users, items)
        err = (g - scores) * g * (1.0 - g)
        dY = np.zeros_like(self.y)
        dV = np.zeros_like(self.v)
        dW = np.zeros_like(self.w)
        for c in range(C):
            E = csr_matrix((err[:, c], (users, items)), shape=(N, M))
            dY[c] = E @ self.v[c]
            dV[c] = E.T @ self.hy[c]
            # Back through the per-user average that defines H
            dW[c] = self._structure.T @ dY[c]
        dY += self.lY * self.y
        dV += self.lV * self.v
        dW += self.lW * self.w
        return dY, dV, dW

    # ========================================================================
    # Training
    # ========================================================================
    def _report(self, iteration, norm_data, train_set, valid_set):
        entry = {
            'iter': iteration,
            'loss': self.compute_loss(norm_data),
            'train_rmse': self.test(train_set),
            'valid_rmse': self.test(valid_set) if valid_set is not None else None,
        }
        self.history.append(entry)
        msg = f"Iter. {iteration}: Loss = {entry['loss']:.6f} Train RMSE = {entry['train_rmse']:.6f}"
        if entry['valid_rmse'] is not None:
            msg += f" Valid RMSE = {entry['valid_rmse']:.6f}"
        logger.info(msg)
        return entry

    def train(self, train_set, valid_set=None, rng=None):
        """
        Fit Y, V and W with minibatch SGD plus momentum.

        Args:
            train_set: Training Dataset (original scale)
            valid_set: Optional validation Dataset (original scale)
            rng: numpy Generator used for initialization, shuffling and batches

        Returns:
            float: Final validation RMSE (training RMSE without validation set).
        """
        rng = rng if rng is not None else make_rng()
        N, M, C = train_set.users(), train_set.items(), train_set.criteria_size
        self._allocate(N, M, C, rng)
        self._set_data(train_set.copy())
        logger.info(self.info())

        norm_data = train_set.copy()
        norm_data.to_normal_scale()
        norm_data.shuffle(rng)
        norm_data.prepare_aux()

        self.hy = self.compute_hy()
        self.history = []
        entry = self._report(0, norm_data, train_set, valid_set)

        total = len(norm_data)
        batch_size = self.batch_size if self.batch_size > 0 else total
        step_y = np.zeros_like(self.y)
        step_v = np.zeros_like(self.v)
        step_w = np.zeros_like(self.w)
        for iteration in range(1, self.max_iters + 1):
            start = int(rng.integers(0, max(0, total - batch_size) + 1))
            batch = slice(start, start + batch_size)
            dY, dV, dW = self.compute_gradient(
                norm_data.user_ids[batch], norm_data.item_ids[batch], norm_data.scores[batch])
            step_y = dY - self.momentum * step_y
            step_v = dV - self.momentum * step_v
            step_w = dW - self.momentum * step_w
            self.y -= self.learning_rate * step_y
            self.v -= self.learning_rate * step_v
            self.w -= self.learning_rate * step_w
            self.hy = self.compute_hy()
            entry = self._report(iteration, norm_data, train_set, valid_set)

        if entry['valid_rmse'] is not None:
            return entry['valid_rmse']
        return entry['train_rmse']

    # ========================================================================
    # Prediction
    # ========================================================================
    def _predictable(self, user, item):
        return (user < len(self._user_counts) and item < len(self._item_counts)
                and self._user_counts[user] > 0 and self._item_counts[item] > 0)

    def predict_ratings(self, ratings):
        if self.hy is None:
            raise RuntimeError("PMFModel has no factors, train or load it first")
        if isinstance(ratings, Dataset):
            self._predict_dataset(ratings)
            return
        for rating in ratings:
            if not self._predictable(rating.user, rating.item):
                logger.warning(f"No prediction possible for user {rating.user}, item {rating.item}.")
                continue
            z = np.einsum('cd,cd->c', self.hy[:, rating.user], self.v[:, rating.item])
            rating.scores[:] = expit(z)

    def _predict_dataset(self, dataset):
        users, items = dataset.user_ids, dataset.item_ids
        known = (users < len(self._user_counts)) & (items < len(self._item_counts))
        known[known] = (self._user_counts[users[known]] > 0) & (self._item_counts[items[known]] > 0)
        if not known.all():
            logger.warning(f"No prediction possible for {int((~known).sum())} ratings "
                           f"(unknown users or items).")
        dataset.scores[known] = self._predict_arrays(users[known], items[known])

    # ========================================================================
    # Persistence
    # ========================================================================
    def to_config(self):
        def flat(tensor):
            return None if tensor is None else tensor.ravel().copy()

        return {
            'ratings': self.data.to_record(),
            'y': flat(self.y),
            'v': flat(self.v),
            'w': flat(self.w),
            'hy': flat(self.hy),
            'factors': self.D,
            'max_iters': self.max_iters,
            'batch_size': self.batch_size,
            'learning_rate': self.learning_rate,
            'momentum': self.momentum,
            'ly': self.lY,
            'lv': self.lV,
            'lw': self.lW,
            'matrix_init': self.matrix_init.name,
        }

    def load_config(self, config):
        data = Dataset()
        if not data.load_record(config.get('ratings', {})):
            return False
        D = int(config.get('factors', DEFAULT_FACTORS))
        C, N, M = data.criteria_size, data.num_users, data.num_items
        tensors = {}
        for name, shape in (('y', (C, N, D)), ('v', (C, M, D)),
                            ('w', (C, M, D)), ('hy', (C, N, D))):
            values = config.get(name)
            if values is None or len(values) == 0:
                tensors[name] = None
                continue
            values = np.asarray(values, dtype=float)
            if values.size != int(np.prod(shape)):
                logger.error(f"PMFModel: {name.upper()} has {values.size} values, "
                             f"expected {int(np.prod(shape))}")
                return False
            tensors[name] = values.reshape(shape).copy()
        try:
            matrix_init = MatrixInit.parse(config.get('matrix_init', DEFAULT_MATRIX_INIT))
        except (KeyError, ValueError):
            logger.error(f"PMFModel: Unknown matrix init {config.get('matrix_init')!r}")
            return False

        self.clear()
        self.D = D
        self.max_iters = int(config.get('max_iters', DEFAULT_MAX_ITERS))
        self.batch_size = int(config.get('batch_size', DEFAULT_BATCH_SIZE))
        self.learning_rate = float(config.get('learning_rate', DEFAULT_LEARNING_RATE))
        self.momentum = float(config.get('momentum', DEFAULT_MOMENTUM))
        self.lY = float(config.get('ly', DEFAULT_LY))
        self.lV = float(config.get('lv', DEFAULT_LV))
        self.lW = float(config.get('lw', DEFAULT_LW))
        self.matrix_init = matrix_init
        self.y, self.v, self.w, self.hy = (tensors[k] for k in ('y', 'v', 'w', 'hy'))
        self._set_data(data)
        if self.hy is None and self.y is not None and self.w is not None:
            self.hy = self.compute_hy()
        return True

    def info(self):
        return "\n".join([
            f"Factors = {self.D}",
            f"Max. Iters = {self.max_iters}",
            f"Learning rate = {self.learning_rate:g}",
            f"Momentum = {self.momentum:g}",
            f"Batch size = {self.batch_size}",
            f"lY = {self.lY:g}",
            f"lV = {self.lV:g}",
            f"lW = {self.lW:g}",
            f"Matrix init = {self.matrix_init.name}",
            self.data.info(),
        ])
