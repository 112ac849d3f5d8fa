# Utility Functions
# Text rating files, command line value parsing, timing and plotting helpers

import logging
import time
from contextlib import contextmanager
from pathlib import Path

import pandas as pd

from mcfs.config import LOG_DATEFMT, LOG_FORMAT

logger = logging.getLogger(__name__)


def setup_logging(verbose=False):
    """Configure the root logger once, for command line entry points."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT
    )


@contextmanager
def timed(message, level=logging.INFO):
    """Log the elapsed seconds spent inside the block."""
    start_time = time.time()
    yield
    logger.log(level, f"{message}{time.time() - start_time:.3f}s")


def _parse_header(path):
    """
    Read the optional `# FORMAT` and `# <criteria>` header lines.

    Returns:
        int: Number of criteria declared in the header (0 if absent).
    """
    criteria = 0
    with open(path, 'r') as f:
        for line in f:
            if not line.startswith('#'):
                break
            token = line[1:].strip()
            if token.isdigit():
                criteria = int(token)
            elif token and token != 'ASCII':
                raise ValueError(f"Bad format \"{token}\"")
    return criteria


def read_text_ratings(path, precision=None, minv=None, maxv=None):
    """
    Parse a whitespace separated ratings file into a rating collection record.

    Each line holds `user item score [score ...]`. Lines starting with '#'
    are headers or comments.

    Args:
        path: Text file to read
        precision: Optional list of per-criterion precisions
        minv: Optional list of per-criterion minimum values
        maxv: Optional list of per-criterion maximum values

    Returns:
        dict: Rating collection record.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Ratings file not found at {path}")

    criteria = _parse_header(path)
    try:
        df = pd.read_csv(path, sep=r'\s+', header=None, comment='#')
    except pd.errors.EmptyDataError:
        df = pd.DataFrame()

    if df.empty:
        ratings = []
    else:
        if df.shape[1] < 3:
            raise ValueError(f"Bad data in {path}: expected 'user item score...'")
        if df.isna().any().any():
            raise ValueError(f"Bad data in {path}: missing scores")
        if criteria and df.shape[1] - 2 != criteria:
            raise ValueError(
                f"Bad data in {path}: {df.shape[1] - 2} scores per line, header says {criteria}")
        criteria = df.shape[1] - 2
        users = df[0].astype(int).tolist()
        items = df[1].astype(int).tolist()
        scores = df.iloc[:, 2:].astype(float).values.tolist()
        ratings = [
            {'user': u, 'item': i, 'scores': s}
            for u, i, s in zip(users, items, scores)
        ]

    record = {
        'ratings': ratings,
        'criteria_size': criteria,
        'num_users': max((r['user'] for r in ratings), default=-1) + 1,
        'num_items': max((r['item'] for r in ratings), default=-1) + 1,
    }
    if precision:
        record['precision'] = list(precision)
    if minv:
        record['minv'] = list(minv)
    if maxv:
        record['maxv'] = list(maxv)
    return record


def write_text_ratings(path, users, items, scores):
    """Write ratings as an `# ASCII` text file."""
    df = pd.DataFrame(scores)
    df.insert(0, 'item', items)
    df.insert(0, 'user', users)
    with open(path, 'w') as f:
        f.write(f"# ASCII\n# {scores.shape[1]}\n")
        df.to_csv(f, sep=' ', header=False, index=False, float_format='%f')


def parse_criteria_list(text, cast=float):
    """Parse '1 1 2' or '1,1,2' into a list; empty text gives None."""
    if not text:
        return None
    return [cast(token) for token in text.replace(',', ' ').split()]


def plot_training_history(history, plot_path):
    """
    Plot loss and RMSE curves of an iterative training run.

    Args:
        history: List of dicts with 'iter', 'loss', 'train_rmse', 'valid_rmse'
        plot_path: Output image path
    """
    import matplotlib
    matplotlib.use('Agg')
    import matplotlib.pyplot as plt

    df = pd.DataFrame(history)
    fig, axes = plt.subplots(1, 2, figsize=(14, 5))

    ax1 = axes[0]
    ax1.plot(df['iter'], df['loss'], 'b-', linewidth=1.5)
    ax1.set_xlabel('Iteration', fontsize=11)
    ax1.set_ylabel('Loss', fontsize=11)
    ax1.set_title('Regularized Training Loss', fontsize=12, fontweight='bold')
    ax1.grid(True, alpha=0.3)

    ax2 = axes[1]
    ax2.plot(df['iter'], df['train_rmse'], 'g-', linewidth=1.5, label='Train')
    if df['valid_rmse'].notna().any():
        ax2.plot(df['iter'], df['valid_rmse'], 'r--', linewidth=1.5, label='Validation')
    ax2.set_xlabel('Iteration', fontsize=11)
    ax2.set_ylabel('RMSE', fontsize=11)
    ax2.set_title('RMSE (original scale)', fontsize=12, fontweight='bold')
    ax2.legend(loc='upper right')
    ax2.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(plot_path, dpi=150, bbox_inches='tight')
    logger.info(f"[SAVED] {plot_path}")
    plt.close(fig)
