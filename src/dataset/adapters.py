"""
Dataset adapters.

Each adapter turns one kind of raw source into labelled samples and
partitions them into train/test sets:

    tabular           delimited text rows, numeric features + label token
    image-cnn         pixel CSV, label first then flattened intensities
    image-cnn-catdog  image files addressed by category and index
    sequence-rnn      one generated or supplied binary sequence

Loading is asynchronous. Per-item failures raise LoadError, or are
dropped when the data config is tolerant.
"""

import asyncio
import logging
from typing import List, Optional, Tuple

import numpy as np

from config import ExperimentConfig
from src.data import gather_items, read_lines, resolve_source
from src.data.image_loading import image_path, load_image
from src.data.sequence import frame_sequence, generate_binary_sequence, load_sequence
from src.dataset.partition import Dataset, Sample, partition, split_contiguous
from src.errors import LoadError, ShapeError

logger = logging.getLogger(__name__)


class DatasetAdapter:
    """
    Base adapter: load samples, then partition them.

    Subclasses implement load_samples().

    Example:
        >>> adapter = get_adapter(get_config('tabular'))
        >>> dataset = adapter.load_sync()
        >>> len(dataset.train), len(dataset.test)
        (140, 10)
    """

    def __init__(self, config: ExperimentConfig, base_dir: Optional[str] = None):
        self.config = config
        self.source = resolve_source(config.data.source, base_dir)
        self.class_names = list(config.data.class_names)

    async def load_samples(self) -> Tuple[List[Sample], int]:
        """Return (samples, number of dropped items)."""
        raise NotImplementedError

    async def load(self) -> Dataset:
        samples, dropped = await self.load_samples()

        if not samples:
            raise LoadError(f"No samples loaded from {self.source}", item=self.source)

        dataset = partition(
            samples,
            test_size=self.config.split.test_size,
            seed=self.config.split.seed,
            class_names=self.class_names,
            dropped=dropped
        )

        logger.info(
            f"Loaded {self.config.variant}: {len(dataset.train)} train, "
            f"{len(dataset.test)} test, {dropped} dropped"
        )
        return dataset

    def load_sync(self) -> Dataset:
        """Blocking wrapper around load() for scripts and notebooks."""
        return asyncio.run(self.load())

    def _label_index(self, token: str, row: str) -> int:
        try:
            return self.class_names.index(token)
        except ValueError:
            raise LoadError(f"Unknown label {token!r} in row {row!r}", item=row) from None


def _collect_rows(parse, rows: List[str], tolerant: bool) -> Tuple[List[Sample], int]:
    """Parse rows one by one, dropping LoadErrors when tolerant."""
    samples, dropped = [], 0
    for row in rows:
        try:
            samples.append(parse(row))
        except LoadError as e:
            if not tolerant:
                raise
            dropped += 1
            logger.warning(f"Dropped row: {e}")
    return samples, dropped


class TabularAdapter(DatasetAdapter):
    """Comma-delimited rows: num_features numbers then a label token."""

    def parse_row(self, row: str) -> Sample:
        tokens = [t.strip() for t in row.split(',')]
        expected = self.config.data.num_features + 1

        if len(tokens) != expected:
            raise ShapeError(f"Expected {expected} columns, got {len(tokens)} in row {row!r}")

        try:
            features = np.array([float(t) for t in tokens[:-1]], dtype=np.float32)
        except ValueError:
            raise LoadError(f"Non-numeric feature in row {row!r}", item=row) from None

        return Sample(features=features, label=self._label_index(tokens[-1], row), ref=row.strip())

    async def load_samples(self) -> Tuple[List[Sample], int]:
        rows = await asyncio.to_thread(read_lines, self.source)
        return _collect_rows(self.parse_row, rows, self.config.data.tolerant)


class PixelCsvAdapter(DatasetAdapter):
    """Pixel CSV with a header row: integer label, then flattened intensities."""

    def parse_row(self, row: str) -> Sample:
        shape = self.config.data.pixel_shape
        tokens = row.split(',')
        expected = int(np.prod(shape)) + 1

        if len(tokens) != expected:
            raise ShapeError(f"Expected {expected} columns, got {len(tokens)}")

        try:
            values = np.array([float(t) for t in tokens], dtype=np.float32)
        except ValueError:
            raise LoadError(f"Non-numeric value in pixel row {row[:40]!r}", item=row) from None

        label = self._label_index(str(int(values[0])), row[:40])
        pixels = (values[1:] / 255.0).reshape(shape)
        return Sample(features=pixels, label=label, ref=f"{self.class_names[label]}#{row[:16]}")

    async def load_samples(self) -> Tuple[List[Sample], int]:
        rows = await asyncio.to_thread(read_lines, self.source, True)
        return _collect_rows(self.parse_row, rows, self.config.data.tolerant)


class ImageFolderAdapter(DatasetAdapter):
    """Image files at {source}/{category}/{category}.{index}.{ext}."""

    def expected_items(self) -> List[Tuple[str, int]]:
        start, stop = self.config.data.index_range
        return [
            (image_path(self.source, category, i, self.config.data.extension), label)
            for label, category in enumerate(self.class_names)
            for i in range(start, stop)
        ]

    def _load_item(self, item: Tuple[str, int]) -> Sample:
        path, label = item
        data = self.config.data
        pixels = load_image(path, size=data.image_size, mode=data.fit_mode)
        return Sample(features=pixels, label=label, ref=path)

    async def load_samples(self) -> Tuple[List[Sample], int]:
        items = self.expected_items()
        samples, failures = await gather_items(self._load_item, items, self.config.data.tolerant)
        return samples, len(failures)


class SequenceAdapter(DatasetAdapter):
    """
    One binary sequence, framed by a one-position shift.

    The sequence is split into a leading train segment and a trailing
    held-out segment; each segment becomes one sample. The input/target
    shift is applied per segment.
    """

    def __init__(self, config: ExperimentConfig, base_dir: Optional[str] = None,
                 rng: Optional[np.random.Generator] = None):
        super().__init__(config, base_dir)
        self.rng = rng or np.random.default_rng(config.split.seed)

    async def read_sequence(self) -> str:
        if self.source is None:
            return generate_binary_sequence(self.config.data.sequence_length, self.rng)
        return await asyncio.to_thread(load_sequence, self.source)

    async def load(self) -> Dataset:
        sequence = await self.read_sequence()
        train_span, test_span = split_contiguous(len(sequence), self.config.split.test_size)

        segments = []
        for span in (train_span, test_span):
            symbols = sequence[span]
            if len(symbols) < 2:
                raise ShapeError(f"Sequence segment of {len(symbols)} symbols cannot be framed")
            x, y = frame_sequence(symbols)
            segments.append(Sample(features=x, label=y, ref=symbols))

        logger.info(
            f"Loaded sequence-rnn: {len(sequence)} symbols, "
            f"{train_span.stop} train, {len(sequence) - train_span.stop} held out"
        )
        return Dataset(
            train=(segments[0],),
            test=(segments[1],),
            class_names=tuple(self.class_names)
        )


ADAPTER_REGISTRY = {
    'tabular': TabularAdapter,
    'image-cnn': PixelCsvAdapter,
    'image-cnn-catdog': ImageFolderAdapter,
    'sequence-rnn': SequenceAdapter,
}


def get_adapter(config: ExperimentConfig, base_dir: Optional[str] = None) -> DatasetAdapter:
    """
    Get the adapter for a configuration's variant.

    Args:
        config: Experiment configuration
        base_dir: Directory relative sources are resolved against

    Returns:
        DatasetAdapter instance
    """
    if config.variant not in ADAPTER_REGISTRY:
        raise ValueError(f"Unknown variant: {config.variant}. Available: {list(ADAPTER_REGISTRY.keys())}")
    return ADAPTER_REGISTRY[config.variant](config, base_dir)


async def load_dataset(config: ExperimentConfig, base_dir: Optional[str] = None) -> Dataset:
    """Load and partition the dataset for a configuration."""
    return await get_adapter(config, base_dir).load()
