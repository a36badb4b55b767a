"""
Samples, datasets and the train/test partition.

A dataset is produced by permuting all samples uniformly at random and
slicing off a held-out test set of a configured size or fraction.
"""

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple, Union

import numpy as np
from sklearn.model_selection import train_test_split


@dataclass(frozen=True, eq=False)
class Sample:
    """
    One labelled sample.

    Attributes:
        features: Feature vector, (H, W, C) image in [0, 1], or (T, 1) sequence
        label: Class index, or (T, 1) binary targets for sequences
        ref: Human-readable input reference (row text, file path, symbols)
    """
    features: np.ndarray
    label: Union[int, np.ndarray]
    ref: str = ''


@dataclass(frozen=True)
class Dataset:
    """Disjoint train/test partition of one sample set."""
    train: Tuple[Sample, ...]
    test: Tuple[Sample, ...]
    class_names: Tuple[str, ...] = field(default_factory=tuple)
    dropped: int = 0

    @property
    def total(self) -> int:
        return len(self.train) + len(self.test)

    @property
    def num_classes(self) -> int:
        return len(self.class_names)

    def __iter__(self):
        # Allows `train, test = dataset`
        return iter((self.train, self.test))


def resolve_test_count(n: int, test_size: Union[int, float]) -> int:
    """
    Convert a test size (count or fraction) into a sample count.

    Fractions round up, so any positive fraction holds out at least one
    sample, matching sklearn's convention.

    Raises:
        ValueError: If the test set would be empty or swallow every sample
    """
    if isinstance(test_size, bool):
        raise ValueError(f"test_size must be an int or float, got {test_size!r}")

    if isinstance(test_size, float):
        if not 0.0 < test_size < 1.0:
            raise ValueError(f"Fractional test_size must be in (0, 1), got {test_size}")
        # Round first so float noise (0.07 * 100 = 7.000000000000001) cannot add a sample
        count = math.ceil(round(test_size * n, 9))
    else:
        count = int(test_size)

    if count <= 0 or count >= n:
        raise ValueError(
            f"test_size={test_size} leaves no samples on one side of a {n}-sample split"
        )
    return count


def partition(
    samples: Sequence[Sample],
    test_size: Union[int, float],
    seed: Optional[int] = None,
    class_names: Sequence[str] = (),
    dropped: int = 0
) -> Dataset:
    """
    Shuffle samples and split them into train and test sets.

    Args:
        samples: All loaded samples
        test_size: Held-out count (int) or fraction (float)
        seed: Permutation seed (None = fresh entropy)
        class_names: Ordered class names
        dropped: Number of items dropped while loading

    Returns:
        Dataset with |train| + |test| == len(samples)
    """
    n_test = resolve_test_count(len(samples), test_size)

    train, test = train_test_split(
        list(samples),
        test_size=n_test,
        random_state=seed,
        shuffle=True
    )

    return Dataset(
        train=tuple(train),
        test=tuple(test),
        class_names=tuple(class_names),
        dropped=dropped
    )


def split_contiguous(
    length: int,
    test_size: Union[int, float]
) -> Tuple[slice, slice]:
    """
    Split positions [0, length) into a leading train span and a trailing test span.

    Used for a single ordered sequence, which cannot be permuted.
    """
    n_test = resolve_test_count(length, test_size)
    cut = length - n_test
    return slice(0, cut), slice(cut, length)


def stack_samples(samples: Sequence[Sample], num_classes: int = 0) -> Tuple[np.ndarray, np.ndarray]:
    """
    Stack samples into model-ready arrays.

    Categorical labels are one-hot encoded when num_classes > 0;
    array labels (sequences) are stacked as-is.

    Returns:
        (x, y) arrays with a leading batch dimension
    """
    if not samples:
        raise ValueError("Cannot stack an empty sample list")

    x = np.stack([s.features for s in samples]).astype(np.float32)

    if num_classes > 0:
        labels = np.array([s.label for s in samples], dtype=np.int64)
        y = np.eye(num_classes, dtype=np.float32)[labels]
    else:
        y = np.stack([np.asarray(s.label, dtype=np.float32) for s in samples])

    return x, y