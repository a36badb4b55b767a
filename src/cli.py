"""
Command-line entry point.

Usage:
    python -m src tabular --source data/iris.txt --epochs 50
    python -m src sequence-rnn --export models/rnn.keras --plot rnn.png
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from config import VARIANTS, get_config
from src.errors import HarnessError
from src.session import Session
from src.visualization import save_training_report

logger = logging.getLogger(__name__)


def setup_logging(level: str = 'INFO') -> None:
    """Configure root logging for command-line runs."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stdout
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='python -m src',
        description='Train and evaluate one supervised-learning exercise'
    )
    parser.add_argument('variant', choices=VARIANTS)
    parser.add_argument('--source', help='Dataset source path (overrides the default)')
    parser.add_argument('--tolerant', action='store_true', help='Drop items that fail to load')
    parser.add_argument('--epochs', type=int)
    parser.add_argument('--batch-size', type=int)
    parser.add_argument('--validation-split', type=float)
    parser.add_argument('--test-size', type=float,
                        help='Held-out size: a count if >= 1, else a fraction')
    parser.add_argument('--seed', type=int)
    parser.add_argument('--export', metavar='PATH', help='Write the trained model to PATH')
    parser.add_argument('--plot', metavar='PATH', help='Write a training report figure to PATH')
    parser.add_argument('--log-level', default='INFO')
    return parser


def build_config(args: argparse.Namespace):
    config = get_config(args.variant)

    data = config.data
    if args.source is not None:
        data = replace(data, source=args.source)
    if args.tolerant:
        data = replace(data, tolerant=True)

    training = config.training
    if args.epochs is not None:
        training = replace(training, epochs=args.epochs)
    if args.batch_size is not None:
        training = replace(training, batch_size=args.batch_size)
    if args.validation_split is not None:
        training = replace(training, validation_split=args.validation_split)

    split = config.split
    if args.test_size is not None:
        test_size = int(args.test_size) if args.test_size >= 1 else args.test_size
        split = replace(split, test_size=test_size)
    if args.seed is not None:
        split = replace(split, seed=args.seed)

    return replace(config, data=data, training=training, split=split)


def main(argv: Optional[List[str]] = None) -> int:
    args = create_parser().parse_args(argv)
    setup_logging(args.log_level)

    config = build_config(args)
    session = Session(config)

    try:
        result = asyncio.run(session.train())
    except HarnessError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1

    for record in result.predictions:
        mark = 'OK ' if record.correct else 'ERR'
        print(f"{mark} input={record.input[:40]} predicted={record.predicted} "
              f"actual={record.actual} confidence={record.confidence:.1f}%")
    print(f"Test accuracy: {result.accuracy}% over {len(result.predictions)} records")

    if args.export:
        session.export_model(args.export)
    if args.plot:
        save_training_report(args.plot, config.variant, result.epoch_log,
                             result.evaluation, config.data.class_names)
    return 0
