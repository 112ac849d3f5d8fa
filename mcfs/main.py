"""
Command Line Front-End
======================
Single entry point for the toolkit:
1. binarize  - Convert a text ratings file into a dataset file
2. info      - Summarize a dataset
3. partition - Split a dataset in two random partitions
4. generate  - Create a synthetic multi-criteria movies dataset
5. train     - Train a neighbours or PMF model
6. test      - Report the RMSE of a trained model on a test dataset
"""

import warnings
warnings.filterwarnings("ignore")

import argparse
import logging
import sys

from mcfs.config import (
    DEFAULT_BATCH_SIZE, DEFAULT_FACTORS, DEFAULT_K, DEFAULT_LEARNING_RATE,
    DEFAULT_LV, DEFAULT_LW, DEFAULT_LY, DEFAULT_MATRIX_INIT, DEFAULT_MAX_ITERS,
    DEFAULT_MOMENTUM, DEFAULT_PARTITION_FRACTION, DEFAULT_SEED,
    DEFAULT_SIMILARITY, make_rng
)
from mcfs.dataset import Dataset, ShapeMismatchError
from mcfs.generate import generate_movies
from mcfs.neighbours_model import NeighboursModel
from mcfs.pmf_model import MatrixInit, PMFModel
from mcfs.similarities import SimilarityKind
from mcfs.utils import (
    parse_criteria_list, plot_training_history, read_text_ratings,
    setup_logging, timed
)

logger = logging.getLogger(__name__)

MODEL_TYPES = {
    'neighbours': NeighboursModel,
    'pmf': PMFModel,
}


def create_model(mtype):
    if mtype not in MODEL_TYPES:
        raise ValueError(f"Unknown model type: \"{mtype}\"")
    return MODEL_TYPES[mtype]()


def load_dataset(filename):
    dataset = Dataset()
    if not dataset.load(filename):
        logger.error(f"[ERROR] Could not load dataset {filename}")
        return None
    return dataset


# ============================================================================
# Commands
# ============================================================================
def cmd_binarize(args):
    try:
        record = read_text_ratings(
            args.input,
            precision=parse_criteria_list(args.precision, cast=str),
            minv=parse_criteria_list(args.minv),
            maxv=parse_criteria_list(args.maxv),
        )
    except (OSError, ValueError) as e:
        logger.error(f"[ERROR] {e}")
        return 1
    dataset = Dataset()
    if not dataset.load_record(record):
        return 1
    logger.info(f"[LOADED] {len(dataset):,} ratings, {dataset.criteria_size} criteria")
    return 0 if dataset.save(args.output) else 1


def cmd_info(args):
    dataset = load_dataset(args.input)
    if dataset is None:
        return 1
    print(dataset.info(args.n, make_rng(args.seed)))
    return 0


def cmd_partition(args):
    if not 0.0 < args.f < 1.0:
        logger.error("[ERROR] Fraction must be in the open range (0, 1).")
        return 1
    part1 = load_dataset(args.input)
    if part1 is None:
        return 1
    part2 = Dataset()
    Dataset.partition(part1, part2, args.f, make_rng(args.seed))
    logger.info(f"[DONE] Partition 1: {len(part1):,} ratings, partition 2: {len(part2):,} ratings")
    ok = part1.save(args.part1, ascii=args.ascii) and part2.save(args.part2, ascii=args.ascii)
    return 0 if ok else 1


def cmd_generate(args):
    try:
        dataset = generate_movies(args.users, args.movies, args.fratings, make_rng(args.seed))
    except ValueError as e:
        logger.error(f"[ERROR] {e}")
        return 1
    return 0 if dataset.save(args.output, ascii=args.ascii) else 1


def _configure_model(model, args):
    """Apply the hyper-parameters given on the command line."""
    if isinstance(model, NeighboursModel):
        if args.k is not None:
            model.K = args.k
        if args.similarity is not None:
            model.set_similarity(args.similarity)
        return
    options = {
        'D': args.factors,
        'max_iters': args.max_iters,
        'learning_rate': args.learning_rate,
        'momentum': args.momentum,
        'batch_size': args.batch_size,
        'lY': args.ly,
        'lV': args.lv,
        'lW': args.lw,
    }
    for name, value in options.items():
        if value is not None:
            setattr(model, name, value)
    if args.matrix_init is not None:
        model.matrix_init = MatrixInit.parse(args.matrix_init)


def cmd_train(args):
    model = create_model(args.mtype)
    if args.mfile and not model.load(args.mfile):
        return 1
    _configure_model(model, args)

    train_set = load_dataset(args.train)
    if train_set is None:
        return 1
    valid_set = None
    if args.valid:
        valid_set = load_dataset(args.valid)
        if valid_set is None:
            return 1

    rng = make_rng(args.seed)
    try:
        with timed("Training seconds: "):
            if isinstance(model, PMFModel):
                result = model.train(train_set, valid_set, rng=rng)
            else:
                result = model.train(train_set, valid_set)
    except ShapeMismatchError as e:
        logger.error(f"[ERROR] {e}")
        return 1
    if valid_set is not None:
        print(f"Valid RMSE: {result:f}")

    if args.plot and isinstance(model, PMFModel) and model.history:
        plot_training_history(model.history, args.plot)
    return 0 if model.save(args.output) else 1


def cmd_test(args):
    model = create_model(args.mtype)
    if not model.load(args.mfile):
        return 1
    logger.info(model.info())
    test_set = load_dataset(args.test)
    if test_set is None:
        return 1
    print(f"Test RMSE: {model.test(test_set):f}")
    return 0


# ============================================================================
# Argument parsing
# ============================================================================
def build_parser():
    parser = argparse.ArgumentParser(
        prog='mcfs', description="Multi-criteria collaborative filtering toolkit")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('binarize', help="text ratings -> dataset file")
    p.add_argument("--input", required=True, help="text file with 'user item score...' lines")
    p.add_argument("--output", required=True, help="output dataset file")
    p.add_argument("--precision", default="", help="precision of each criterion (INT/FLOAT)")
    p.add_argument("--minv", default="", help="min. value of each criterion")
    p.add_argument("--maxv", default="", help="max. value of each criterion")
    p.set_defaults(func=cmd_binarize)

    p = sub.add_parser('info', help="dataset summary")
    p.add_argument("--input", required=True, help="input dataset filename")
    p.add_argument("-n", type=int, default=0, help="print n random ratings")
    p.add_argument("--seed", type=int, default=DEFAULT_SEED)
    p.set_defaults(func=cmd_info)

    p = sub.add_parser('partition', help="split a dataset in two")
    p.add_argument("--input", required=True, help="input dataset filename")
    p.add_argument("--part1", required=True, help="partition 1 filename")
    p.add_argument("--part2", required=True, help="partition 2 filename")
    p.add_argument("-f", type=float, default=DEFAULT_PARTITION_FRACTION,
                   help="fraction of input data used for part1 (0..1)")
    p.add_argument("--ascii", action="store_true", help="write text partitions")
    p.add_argument("--seed", type=int, default=DEFAULT_SEED)
    p.set_defaults(func=cmd_partition)

    p = sub.add_parser('generate', help="synthetic multi-criteria movie ratings")
    p.add_argument("--users", type=int, required=True)
    p.add_argument("--movies", type=int, required=True)
    p.add_argument("--fratings", type=float, required=True, help="ratio of ratings to generate")
    p.add_argument("--output", required=True)
    p.add_argument("--ascii", action="store_true", help="write a text file")
    p.add_argument("--seed", type=int, default=DEFAULT_SEED)
    p.set_defaults(func=cmd_generate)

    p = sub.add_parser('train', help="train a model")
    p.add_argument("--mtype", choices=sorted(MODEL_TYPES), default='neighbours')
    p.add_argument("--train", required=True, help="train dataset")
    p.add_argument("--valid", default="", help="validation dataset")
    p.add_argument("--output", required=True, help="output model file")
    p.add_argument("--mfile", default="", help="model file to continue from")
    p.add_argument("--seed", type=int, default=DEFAULT_SEED)
    p.add_argument("--plot", default="", help="save the PMF training curves to this image")
    # Neighbours options
    p.add_argument("--k", type=int, default=None, help=f"neighbours, 0 = all (default {DEFAULT_K})")
    p.add_argument("--similarity", choices=[s.name for s in SimilarityKind], default=None,
                   help=f"similarity function (default {DEFAULT_SIMILARITY})")
    # PMF options
    p.add_argument("--factors", type=int, default=None, help=f"default {DEFAULT_FACTORS}")
    p.add_argument("--max_iters", type=int, default=None, help=f"default {DEFAULT_MAX_ITERS}")
    p.add_argument("--learning_rate", type=float, default=None,
                   help=f"default {DEFAULT_LEARNING_RATE}")
    p.add_argument("--momentum", type=float, default=None, help=f"default {DEFAULT_MOMENTUM}")
    p.add_argument("--batch_size", type=int, default=None, help=f"default {DEFAULT_BATCH_SIZE}")
    p.add_argument("--ly", type=float, default=None, help=f"default {DEFAULT_LY}")
    p.add_argument("--lv", type=float, default=None, help=f"default {DEFAULT_LV}")
    p.add_argument("--lw", type=float, default=None, help=f"default {DEFAULT_LW}")
    p.add_argument("--matrix_init", choices=[m.name for m in MatrixInit], default=None,
                   help=f"default {DEFAULT_MATRIX_INIT}")
    p.set_defaults(func=cmd_train)

    p = sub.add_parser('test', help="test a trained model")
    p.add_argument("--mtype", choices=sorted(MODEL_TYPES), default='neighbours')
    p.add_argument("--mfile", required=True, help="model file")
    p.add_argument("--test", required=True, help="test dataset")
    p.set_defaults(func=cmd_test)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
