"""
Configuration
=============
Default model parameters and logging settings shared by the
command line tools. Library code receives these values as arguments.
"""

import numpy as np

# ============================================================================
# Dataset
# ============================================================================
DEFAULT_PARTITION_FRACTION = 0.8  # Fraction of ratings kept in part1
DEFAULT_SEED = 0

# ============================================================================
# Neighbours model
# ============================================================================
DEFAULT_K = 0  # 0 = use every neighbour
DEFAULT_SIMILARITY = "COSINE"

# ============================================================================
# PMF model
# ============================================================================
DEFAULT_FACTORS = 10
DEFAULT_MAX_ITERS = 100
DEFAULT_LEARNING_RATE = 0.1
DEFAULT_MOMENTUM = 0.0
DEFAULT_BATCH_SIZE = 1000
DEFAULT_LY = 0.0
DEFAULT_LV = 0.0
DEFAULT_LW = 0.0
DEFAULT_MATRIX_INIT = "STATIC"

# ============================================================================
# Synthetic data (Yahoo! Movies like)
# ============================================================================
# Criteria means reported by Lakiotaki et al.
MOVIES_AVERAGES = [9.6, 9.9, 9.5, 10.5, 9.5]
# MovieLens std. deviation scaled to the 1..13 range
MOVIES_STDDEV = 2.90446
# Upper Cholesky factor of the criteria correlation matrix
MOVIES_CORR_L = [
    [1.0, 0.834, 0.871, 0.782, 0.905],
    [0.0, 0.5518, 0.2367, 0.2425, 0.1998],
    [0.0, 0.0, 0.4305, 0.2241, 0.1753],
    [0.0, 0.0, 0.0, 0.5286, 0.0729],
    [0.0, 0.0, 0.0, 0.0, 0.3241],
]
MOVIES_MINV = 1.0
MOVIES_MAXV = 13.0

# ============================================================================
# Logging
# ============================================================================
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(message)s'
LOG_DATEFMT = '%H:%M:%S'


def make_rng(seed=DEFAULT_SEED):
    """Create the pseudo-random generator threaded through every randomized step."""
    return np.random.default_rng(seed)
