"""
Image file loading and preprocessing.

Images are addressed by category and index, decoded with Pillow, resized
to a fixed square while preserving aspect ratio, and normalised to [0, 1].
"""

import os

import numpy as np
from PIL import Image, UnidentifiedImageError

from src.errors import LoadError


def image_path(root: str, category: str, index: int, extension: str = 'jpg') -> str:
    """
    Build the path of one image.

    Example:
        >>> image_path('data/cat-dog', 'cat', 1000)
        'data/cat-dog/cat/cat.1000.jpg'
    """
    return os.path.join(root, category, f"{category}.{index}.{extension}")


def fit_to_square(img: Image.Image, size: int, mode: str = 'crop') -> Image.Image:
    """
    Resize an image to size x size without distorting it.

    Modes:
    - 'crop': scale so the shorter side equals size, then centre crop
    - 'pad': scale so the longer side equals size, then centre on black

    Args:
        img: PIL Image (RGB)
        size: Output side length
        mode: 'crop' or 'pad'

    Returns:
        PIL Image of shape (size, size)
    """
    w, h = img.size

    if mode == 'crop':
        ratio = max(size / w, size / h)
    elif mode == 'pad':
        ratio = min(size / w, size / h)
    else:
        raise ValueError(f"Unknown fit mode: {mode}")

    new_w = max(1, round(w * ratio))
    new_h = max(1, round(h * ratio))
    resized = img.resize((new_w, new_h), Image.BILINEAR)

    if mode == 'crop':
        left = (new_w - size) // 2
        top = (new_h - size) // 2
        return resized.crop((left, top, left + size, top + size))

    canvas = Image.new('RGB', (size, size))
    canvas.paste(resized, ((size - new_w) // 2, (size - new_h) // 2))
    return canvas


def preprocess_image(img: Image.Image, size: int = 128, mode: str = 'crop') -> np.ndarray:
    """
    Preprocess an image for model input.

    Returns:
        NumPy array of shape (size, size, 3), dtype float32, range [0, 1]
    """
    arr = np.asarray(fit_to_square(img.convert('RGB'), size, mode), dtype=np.float32)
    return arr / 255.0


def load_image(path: str, size: int = 128, mode: str = 'crop') -> np.ndarray:
    """
    Load and preprocess one image file.

    Raises:
        LoadError: If the file is missing or cannot be decoded
    """
    try:
        with Image.open(path) as img:
            img.load()
            return preprocess_image(img, size, mode)
    except (OSError, UnidentifiedImageError) as e:
        raise LoadError(f"Failed to load image {path}: {e}", item=path) from e