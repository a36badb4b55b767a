"""
Configuration for the supervised-learning exercises.

All configurable parameters in one place for easy modification and transparency.
Each exercise (variant) gets its own defaults; nothing is hardcoded in the
training or evaluation code.
"""

from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple, Union


VARIANTS = ('tabular', 'image-cnn', 'image-cnn-catdog', 'sequence-rnn')


@dataclass
class DataConfig:
    """Configuration for data sources."""

    # Path to the source: text file, pixel CSV, image root directory,
    # or sequence text file. None means "generate" for the sequence variant.
    source: Optional[str] = None

    # Drop items that fail to load instead of failing the whole load
    tolerant: bool = False

    # Ordered class names; the position of a name is its class index
    class_names: List[str] = field(default_factory=list)

    # Tabular: number of numeric columns before the label token
    num_features: int = 4

    # Pixel CSV: image shape the flattened columns reshape into
    pixel_shape: Tuple[int, int, int] = (28, 28, 1)

    # Image folder: file index range per category and file extension
    index_range: Tuple[int, int] = (1000, 1500)
    extension: str = 'jpg'
    image_size: int = 128
    fit_mode: str = 'crop'  # 'crop' (scale and centre crop) or 'pad' (letterbox)

    # Sequence: length of the generated symbol string
    sequence_length: int = 10000


@dataclass
class SplitConfig:
    """
    Configuration for the train/test partition.

    test_size always refers to the held-out test set:
    an int is a fixed sample count, a float in (0, 1) is a fraction.
    """

    test_size: Union[int, float] = 10

    # Random seed for the permutation (None = fresh entropy each run)
    seed: Optional[int] = None


@dataclass
class TrainingConfig:
    """Configuration for model training."""

    epochs: int = 10
    batch_size: int = 32

    # Fraction of the *training* set withheld each epoch for validation
    validation_split: float = 0.2

    # None keeps the optimizer's default
    learning_rate: Optional[float] = None


@dataclass
class EvaluationConfig:
    """Configuration for held-out evaluation."""

    # Maximum number of held-out samples scored (None = all)
    max_samples: Optional[int] = None

    # Sequence variant: number of leading positions scored
    sequence_positions: int = 50


@dataclass
class ExperimentConfig:
    """Master configuration combining all sub-configs for one variant."""

    variant: str = 'tabular'
    data: DataConfig = field(default_factory=DataConfig)
    split: SplitConfig = field(default_factory=SplitConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)
    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)

    def __post_init__(self):
        if self.variant not in VARIANTS:
            raise ValueError(f"Unknown variant: {self.variant}. Available: {list(VARIANTS)}")


def _tabular() -> ExperimentConfig:
    # 150 rows: 140 train / 10 test
    return ExperimentConfig(
        variant='tabular',
        data=DataConfig(
            source='data/iris.txt',
            class_names=['setosa', 'versicolor', 'virginica'],
            num_features=4,
        ),
        split=SplitConfig(test_size=10),
        training=TrainingConfig(epochs=100, batch_size=32, validation_split=0.2, learning_rate=0.05),
    )


def _digits() -> ExperimentConfig:
    return ExperimentConfig(
        variant='image-cnn',
        data=DataConfig(
            source='data/mnist.csv',
            class_names=[str(d) for d in range(10)],
            pixel_shape=(28, 28, 1),
        ),
        split=SplitConfig(test_size=50),
        training=TrainingConfig(epochs=20, batch_size=8, validation_split=0.2),
    )


def _catdog() -> ExperimentConfig:
    return ExperimentConfig(
        variant='image-cnn-catdog',
        data=DataConfig(
            source='data/cat-dog',
            class_names=['cat', 'dog'],
            index_range=(1000, 1500),
            image_size=128,
        ),
        split=SplitConfig(test_size=10),
        training=TrainingConfig(epochs=10, batch_size=4, validation_split=0.4),
    )


def _sequence() -> ExperimentConfig:
    # The whole sequence is a single training sample, so a fractional
    # validation split of it is empty and validation metrics are skipped.
    return ExperimentConfig(
        variant='sequence-rnn',
        data=DataConfig(source=None, class_names=['0', '1'], sequence_length=10000),
        split=SplitConfig(test_size=0.1),
        training=TrainingConfig(epochs=10, batch_size=1, validation_split=0.1),
        evaluation=EvaluationConfig(sequence_positions=50),
    )


VARIANT_DEFAULTS = {
    'tabular': _tabular,
    'image-cnn': _digits,
    'image-cnn-catdog': _catdog,
    'sequence-rnn': _sequence,
}


# Default configuration instance
DEFAULT_CONFIG = _tabular()


def get_config(variant: str = 'tabular', **overrides) -> ExperimentConfig:
    """
    Get a fresh default configuration for a variant.

    Args:
        variant: One of VARIANTS
        **overrides: Top-level ExperimentConfig fields to replace

    Returns:
        ExperimentConfig
    """
    if variant not in VARIANT_DEFAULTS:
        raise ValueError(f"Unknown variant: {variant}. Available: {list(VARIANTS)}")

    config = VARIANT_DEFAULTS[variant]()
    if overrides:
        config = replace(config, **overrides)
    return config
