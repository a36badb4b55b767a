"""Shared fixtures: small synthetic datasets written to tmp_path."""

import os
from dataclasses import replace

import numpy as np
import pytest
from PIL import Image

from config import get_config

IRIS_CLASSES = ['setosa', 'versicolor', 'virginica']

# Rough per-class feature means of the real iris data
IRIS_CENTERS = {
    'setosa': (5.0, 3.4, 1.5, 0.2),
    'versicolor': (5.9, 2.8, 4.3, 1.3),
    'virginica': (6.6, 3.0, 5.6, 2.0),
}


def make_iris_rows(per_class=50, seed=0):
    rng = np.random.default_rng(seed)
    rows = []
    for name in IRIS_CLASSES:
        for _ in range(per_class):
            values = np.array(IRIS_CENTERS[name]) + rng.normal(0, 0.15, size=4)
            rows.append(','.join(f"{v:.1f}" for v in values) + f",{name}")
    return rows


@pytest.fixture
def iris_file(tmp_path):
    """150 iris-like rows, CRLF line endings and a trailing blank line."""
    path = tmp_path / 'iris.txt'
    path.write_bytes(('\r\n'.join(make_iris_rows()) + '\r\n\r\n').encode())
    return str(path)


@pytest.fixture
def tabular_config(iris_file):
    config = get_config('tabular')
    return replace(
        config,
        data=replace(config.data, source=iris_file),
        split=replace(config.split, seed=7),
        training=replace(config.training, epochs=3)
    )


@pytest.fixture
def digits_csv(tmp_path):
    """40 rows of 28x28 pixel data, four rows per digit."""
    rng = np.random.default_rng(1)
    lines = ['label,' + ','.join(f"pixel{i}" for i in range(784))]
    for digit in range(10):
        for _ in range(4):
            pixels = rng.integers(0, 256, size=784)
            lines.append(f"{digit}," + ','.join(str(p) for p in pixels))
    path = tmp_path / 'mnist.csv'
    path.write_text('\n'.join(lines) + '\n')
    return str(path)


@pytest.fixture
def digits_config(digits_csv):
    config = get_config('image-cnn')
    return replace(
        config,
        data=replace(config.data, source=digits_csv),
        split=replace(config.split, test_size=10, seed=3),
        training=replace(config.training, epochs=2, batch_size=8)
    )


def write_image(path, size=(40, 30), color=(200, 100, 50)):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    Image.new('RGB', size, color).save(path, 'JPEG')


@pytest.fixture
def catdog_dir(tmp_path):
    """Six cats and six dogs, indexes 0-5."""
    root = tmp_path / 'cat-dog'
    for category, color in (('cat', (220, 40, 40)), ('dog', (40, 40, 220))):
        for i in range(6):
            write_image(str(root / category / f"{category}.{i}.jpg"), color=color)
    return str(root)


@pytest.fixture
def catdog_config(catdog_dir):
    config = get_config('image-cnn-catdog')
    return replace(
        config,
        data=replace(config.data, source=catdog_dir, index_range=(0, 6), image_size=16),
        split=replace(config.split, test_size=4, seed=5),
        training=replace(config.training, epochs=2, batch_size=4)
    )


@pytest.fixture
def sequence_config():
    config = get_config('sequence-rnn')
    return replace(
        config,
        data=replace(config.data, sequence_length=400),
        split=replace(config.split, seed=11),
        training=replace(config.training, epochs=2)
    )
