"""
Dataset loading and partitioning.
"""

from .partition import Dataset, Sample, partition, stack_samples
from .adapters import (
    DatasetAdapter,
    TabularAdapter,
    PixelCsvAdapter,
    ImageFolderAdapter,
    SequenceAdapter,
    get_adapter,
    load_dataset
)

__all__ = [
    'Dataset',
    'Sample',
    'partition',
    'stack_samples',
    'DatasetAdapter',
    'TabularAdapter',
    'PixelCsvAdapter',
    'ImageFolderAdapter',
    'SequenceAdapter',
    'get_adapter',
    'load_dataset'
]
