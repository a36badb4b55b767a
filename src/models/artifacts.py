"""
Model export and import.

A trained model is written as a single self-contained .keras file holding
architecture, weights and compile state, and can be loaded back for
inference without retraining.
"""

import logging
import os
import zipfile

from tensorflow import keras

from src.errors import LoadError

logger = logging.getLogger(__name__)


def export_model(model: keras.Model, path: str) -> str:
    """
    Save a model to a .keras file.

    Args:
        model: Trained Keras model
        path: Destination; '.keras' is appended if missing

    Returns:
        The path written
    """
    if not path.endswith('.keras'):
        path = f"{path}.keras"

    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    model.save(path)
    logger.info(f"Exported {model.name} to {path}")
    return path


def import_model(path: str) -> keras.Model:
    """
    Load a model previously written by export_model().

    Raises:
        LoadError: If the file is missing or not a valid model archive
    """
    if not os.path.exists(path):
        raise LoadError(f"Model file not found: {path}", item=path)

    try:
        model = keras.models.load_model(path)
    except (OSError, ValueError, zipfile.BadZipFile) as e:
        raise LoadError(f"Failed to load model {path}: {e}", item=path) from e

    logger.info(f"Imported {model.name} from {path}")
    return model
