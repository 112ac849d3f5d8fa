"""
Multi-Criteria Rating Dataset
=============================
In-memory collection of multi-criteria ratings with:
- Per-criterion metadata (min/max values, INT/FLOAT precision)
- Ratings-by-user (sorted by item) and ratings-by-item (sorted by user) indices
- Merge-join retrieval of the scores two users gave to the same items
- Shuffling, partitioning, scale normalization and RMSE
"""

import logging
import pickle
from enum import Enum
from pathlib import Path

import numpy as np
import pandas as pd
from sklearn.metrics import mean_squared_error

from mcfs.utils import read_text_ratings, write_text_ratings

logger = logging.getLogger(__name__)


class ShapeMismatchError(ValueError):
    """Datasets or vectors that must agree in shape do not."""


class StaleIndexError(RuntimeError):
    """An index was queried after the ratings changed without prepare_aux()."""


class Precision(Enum):
    INT = 0
    FLOAT = 1


def _to_precision(value):
    if isinstance(value, Precision):
        return value
    if isinstance(value, str):
        return Precision[value.upper()]
    return Precision(int(value))


def round_half_away(x):
    return np.sign(x) * np.floor(np.abs(x) + 0.5)


class Rating:
    """
    A single (user, item, scores) rating.

    Ratings handed out by a Dataset share their scores array with the
    dataset, so writing into `rating.scores` updates the dataset.
    """
    __slots__ = ('user', 'item', 'scores')

    def __init__(self, user, item, scores):
        self.user = int(user)
        self.item = int(item)
        if isinstance(scores, np.ndarray) and scores.dtype == np.float64:
            self.scores = scores
        else:
            self.scores = np.array(scores, dtype=float)

    def __repr__(self):
        scores = ' '.join(f'{s:g}' for s in self.scores)
        return f"Rating(user={self.user}, item={self.item}, scores=[{scores}])"

    def __eq__(self, other):
        if not isinstance(other, Rating):
            return NotImplemented
        return (self.user == other.user and self.item == other.item
                and np.array_equal(self.scores, other.scores))

    __hash__ = None


def _unpack(rating):
    if isinstance(rating, Rating):
        return rating.user, rating.item, rating.scores
    if isinstance(rating, dict):
        return rating['user'], rating['item'], rating.get('scores', ())
    user, item, scores = rating
    return user, item, scores


def _ratings_to_arrays(ratings, criteria_size):
    users, items, rows = [], [], []
    for rating in ratings:
        user, item, scores = _unpack(rating)
        users.append(int(user))
        items.append(int(item))
        rows.append([float(s) for s in scores])
    if not criteria_size and rows:
        # Older files do not store the number of criteria
        criteria_size = len(rows[0])
    for k, row in enumerate(rows):
        if len(row) != criteria_size:
            raise ShapeMismatchError(
                f"Rating {k} has {len(row)} scores, expected {criteria_size}")
    users = np.array(users, dtype=np.int64)
    items = np.array(items, dtype=np.int64)
    scores = np.array(rows, dtype=float).reshape(len(rows), criteria_size)
    return users, items, scores


class Dataset:
    """
    Ordered multi-criteria ratings plus derived lookup indices.

    Ratings are stored column-wise (user ids, item ids, score matrix). The
    indices hold integer positions into that storage. Any operation that
    reorders or resizes the ratings marks the indices stale; call
    `prepare_aux()` before querying them again.
    """

    def __init__(self, ratings=(), criteria_size=0, num_users=0, num_items=0,
                 minv=None, maxv=None, precision=None):
        users, items, scores = _ratings_to_arrays(ratings, criteria_size)
        self._assign(users, items, scores, num_users, num_items, minv, maxv, precision)
        self.prepare_aux()

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    def _assign(self, users, items, scores, num_users, num_items, minv, maxv, precision):
        n_ratings, criteria = scores.shape
        if n_ratings and (users.min() < 0 or items.min() < 0):
            raise ShapeMismatchError("User and item ids must be non-negative")
        max_user = int(users.max()) + 1 if n_ratings else 0
        max_item = int(items.max()) + 1 if n_ratings else 0
        num_users = int(num_users or 0) or max_user
        num_items = int(num_items or 0) or max_item
        if num_users < max_user or num_items < max_item:
            raise ShapeMismatchError(
                f"Ids exceed declared sizes: users {max_user} > {num_users} "
                f"or items {max_item} > {num_items}")

        # Derive bounds from the data when they do not match the criteria
        if minv is None or len(minv) != criteria:
            minv = scores.min(axis=0) if n_ratings else np.zeros(criteria)
        if maxv is None or len(maxv) != criteria:
            maxv = scores.max(axis=0) if n_ratings else np.zeros(criteria)

        precision = [] if precision is None else [_to_precision(p) for p in precision]
        if not precision:
            precision = [Precision.FLOAT] * criteria
        elif len(precision) == 1:
            precision = precision * criteria
        elif len(precision) != criteria:
            raise ShapeMismatchError(
                f"{len(precision)} precision values for {criteria} criteria")

        self._users = users
        self._items = items
        self._scores = scores
        self.num_users = num_users
        self.num_items = num_items
        self.minv = np.array(minv, dtype=float)
        self.maxv = np.array(maxv, dtype=float)
        self.precision = precision
        self._dirty = True

    @property
    def criteria_size(self):
        return self._scores.shape[1]

    @property
    def user_ids(self):
        return self._users

    @property
    def item_ids(self):
        return self._items

    @property
    def scores(self):
        """(n_ratings, criteria_size) score matrix, shared with every Rating view."""
        return self._scores

    @property
    def ratings(self):
        return list(self)

    @property
    def is_indexed(self):
        return not self._dirty

    def users(self):
        return self.num_users

    def items(self):
        return self.num_items

    def rating(self, k):
        return Rating(self._users[k], self._items[k], self._scores[k])

    def __len__(self):
        return len(self._users)

    def __iter__(self):
        for k in range(len(self._users)):
            yield self.rating(k)

    def __repr__(self):
        return (f"Dataset(ratings={len(self)}, users={self.num_users}, "
                f"items={self.num_items}, criteria={self.criteria_size})")

    def copy(self):
        other = Dataset.__new__(Dataset)
        other._assign(self._users.copy(), self._items.copy(), self._scores.copy(),
                      self.num_users, self.num_items, self.minv.copy(),
                      self.maxv.copy(), list(self.precision))
        if not self._dirty:
            other._user_order = self._user_order.copy()
            other._user_offsets = self._user_offsets.copy()
            other._item_order = self._item_order.copy()
            other._item_offsets = self._item_offsets.copy()
            other._dirty = False
        return other

    def erase_scores(self):
        self._scores[...] = 0.0

    def append(self, rating):
        user, item, scores = _unpack(rating)
        scores = np.asarray(scores, dtype=float)
        if scores.shape != (self.criteria_size,):
            raise ShapeMismatchError(
                f"Rating has {scores.size} scores, expected {self.criteria_size}")
        self._users = np.append(self._users, int(user))
        self._items = np.append(self._items, int(item))
        self._scores = np.vstack([self._scores, scores[np.newaxis, :]])
        self.num_users = max(self.num_users, int(user) + 1)
        self.num_items = max(self.num_items, int(item) + 1)
        self._dirty = True

    def truncate(self, size):
        self._users = self._users[:size].copy()
        self._items = self._items[:size].copy()
        self._scores = self._scores[:size].copy()
        self._dirty = True

    # ------------------------------------------------------------------
    # Indices
    # ------------------------------------------------------------------
    def prepare_aux(self):
        """Rebuild the ratings-by-user and ratings-by-item indices."""
        # Stable lexicographic sorts: last key is the primary one
        self._user_order = np.lexsort((self._items, self._users))
        self._item_order = np.lexsort((self._users, self._items))
        user_counts = np.bincount(self._users, minlength=self.num_users)
        item_counts = np.bincount(self._items, minlength=self.num_items)
        self._user_offsets = np.concatenate(([0], np.cumsum(user_counts)))
        self._item_offsets = np.concatenate(([0], np.cumsum(item_counts)))
        self._dirty = False

    reindex = prepare_aux

    def _check_index(self):
        if self._dirty:
            raise StaleIndexError("Dataset indices are stale, call prepare_aux() first")

    def ratings_by_user(self, user):
        """Positions of the user's ratings, sorted by item."""
        self._check_index()
        if not 0 <= user < self.num_users:
            raise IndexError(f"User {user} out of range [0, {self.num_users})")
        return self._user_order[self._user_offsets[user]:self._user_offsets[user + 1]]

    def ratings_by_item(self, item):
        """Positions of the item's ratings, sorted by user."""
        self._check_index()
        if not 0 <= item < self.num_items:
            raise IndexError(f"Item {item} out of range [0, {self.num_items})")
        return self._item_order[self._item_offsets[item]:self._item_offsets[item + 1]]

    def user_rating_counts(self):
        self._check_index()
        return np.diff(self._user_offsets)

    def get_scores_from_common_ratings_by_users(self, user_a, user_b):
        """
        Merge-join the ratings of two users on the item id.

        Args:
            user_a: First user id
            user_b: Second user id

        Returns:
            tuple: Two flat score vectors of equal length, holding all the
            criteria scores of each common item in increasing item order.
        """
        pos_a = self.ratings_by_user(user_a).tolist()
        pos_b = self.ratings_by_user(user_b).tolist()
        items_a = self._items[pos_a].tolist()
        items_b = self._items[pos_b].tolist()
        common_a, common_b = [], []
        x = y = 0
        while x < len(items_a) and y < len(items_b):
            if items_a[x] == items_b[y]:
                common_a.append(pos_a[x])
                common_b.append(pos_b[y])
                x += 1
                y += 1
            elif items_a[x] < items_b[y]:
                x += 1
            else:
                y += 1
        if not common_a:
            logger.debug(f"No common ratings between users {user_a} and {user_b}")
        return self._scores[common_a].ravel(), self._scores[common_b].ravel()

    # ------------------------------------------------------------------
    # Reordering and partitioning
    # ------------------------------------------------------------------
    def shuffle(self, rng):
        """Uniform in-place permutation of the ratings (Fisher-Yates)."""
        order = rng.permutation(len(self))
        self._users = self._users[order]
        self._items = self._items[order]
        self._scores = self._scores[order]
        self._dirty = True

    @staticmethod
    def partition(original, out, f, rng):
        """
        Move a random (1 - f) fraction of `original` into `out`.

        Both datasets keep the metadata of `original` and are re-indexed.
        """
        if original is None or out is None:
            raise ValueError("partition() requires both datasets")
        original.shuffle(rng)
        start = int(f * len(original))
        out._assign(original._users[start:].copy(), original._items[start:].copy(),
                    original._scores[start:].copy(), original.num_users,
                    original.num_items, original.minv.copy(), original.maxv.copy(),
                    list(original.precision))
        original.truncate(start)
        original.prepare_aux()
        out.prepare_aux()
        if len(original) == 0 or len(out) == 0:
            logger.warning("Some partition is empty.")

    # ------------------------------------------------------------------
    # Scales
    # ------------------------------------------------------------------
    def to_normal_scale(self):
        span = self.maxv - self.minv
        safe = np.where(span != 0, span, 1.0)
        normal = np.where(span != 0, (self._scores - self.minv) / safe, 0.0)
        self._scores[...] = normal

    def to_original_scale(self):
        self._scores[...] = self._scores * (self.maxv - self.minv) + self.minv
        for c, precision in enumerate(self.precision):
            if precision == Precision.INT:
                self._scores[:, c] = round_half_away(self._scores[:, c])

    def midpoint(self):
        return (self.minv + self.maxv) / 2.0

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def to_record(self):
        return {
            'ratings': [
                {'user': int(u), 'item': int(i), 'scores': s.tolist()}
                for u, i, s in zip(self._users, self._items, self._scores)
            ],
            'criteria_size': self.criteria_size,
            'num_users': self.num_users,
            'num_items': self.num_items,
            'minv': self.minv.tolist(),
            'maxv': self.maxv.tolist(),
            'precision': [p.name for p in self.precision],
        }

    @classmethod
    def from_record(cls, record):
        dataset = cls.__new__(cls)
        if not dataset.load_record(record):
            raise ShapeMismatchError("Invalid rating collection record")
        return dataset

    def load_record(self, record):
        """Replace the contents with a rating collection record. Returns success."""
        try:
            users, items, scores = _ratings_to_arrays(
                record.get('ratings', ()), record.get('criteria_size', 0))
            self._assign(users, items, scores, record.get('num_users', 0),
                         record.get('num_items', 0), record.get('minv'),
                         record.get('maxv'), record.get('precision'))
        except ShapeMismatchError as e:
            logger.error(f"Dataset: Bad data. {e}")
            return False
        self.prepare_aux()
        return True

    def load(self, filename):
        """Load a pickled record or a text ratings file. Returns success."""
        path = Path(filename)
        try:
            with open(path, 'rb') as f:
                is_pickle = f.read(1) == b'\x80'
            if is_pickle:
                with open(path, 'rb') as f:
                    record = pickle.load(f)
            else:
                record = read_text_ratings(path)
        except (OSError, EOFError, pickle.UnpicklingError, ValueError) as e:
            logger.error(f"Dataset \"{path}\": Failed to load. {e}")
            return False
        if not isinstance(record, dict):
            logger.error(f"Dataset \"{path}\": Failed to parse.")
            return False
        return self.load_record(record)

    def save(self, filename, ascii=False):
        path = Path(filename)
        try:
            if ascii:
                logger.warning(f"Dataset \"{path}\": Text format keeps no bounds, precision or sizes.")
                write_text_ratings(path, self._users, self._items, self._scores)
            else:
                with open(path, 'wb') as f:
                    pickle.dump(self.to_record(), f)
        except OSError as e:
            logger.error(f"Dataset \"{path}\": Failed to write. {e}")
            return False
        return True

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def info(self, n=0, rng=None):
        """Multi-line summary; optionally lists `n` random ratings."""
        lines = [
            f"Ratings = {len(self):,}",
            f"Users = {self.num_users:,}",
            f"Items = {self.num_items:,}",
            f"Criteria = {self.criteria_size}",
            f"Min. values = {' '.join(f'{v:g}' for v in self.minv)}",
            f"Max. values = {' '.join(f'{v:g}' for v in self.maxv)}",
            f"Precision = {' '.join(p.name for p in self.precision)}",
        ]
        if len(self):
            n_cells = self.num_users * self.num_items
            lines.append(f"Sparsity = {1 - len(self) / n_cells:.4%}")
            stats = pd.DataFrame(self._scores, columns=[f"c{c}" for c in range(self.criteria_size)])
            lines.append(stats.describe().to_string())
        if n and len(self):
            rng = rng if rng is not None else np.random.default_rng()
            picks = rng.choice(len(self), size=min(n, len(self)), replace=False)
            lines.extend(repr(self.rating(k)) for k in picks)
        return "\n".join(lines)

    @staticmethod
    def rmse(a, b):
        return rmse(a, b)


def rmse(a, b):
    """
    Root mean squared error between two aligned datasets.

    The mean runs over every rating and criterion. Datasets with a
    different number of ratings or criteria cannot be compared.
    """
    if len(a) != len(b):
        raise ShapeMismatchError(f"Rating counts differ: {len(a)} != {len(b)}")
    if a.criteria_size != b.criteria_size:
        raise ShapeMismatchError(
            f"Criteria sizes differ: {a.criteria_size} != {b.criteria_size}")
    if len(a) == 0 or a.criteria_size == 0:
        return 0.0
    return float(np.sqrt(mean_squared_error(a.scores.ravel(), b.scores.ravel())))
