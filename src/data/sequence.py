"""
Binary symbol sequences for the recurrent exercise.

The generated sequences follow one local rule: after two equal symbols the
next symbol is forced to the opposite value; otherwise it is a fair coin
flip. A model that learns the rule can predict roughly 3/4 of positions.
"""

from typing import Optional, Tuple

import numpy as np

from src.data import read_text_source
from src.errors import LoadError


def generate_binary_sequence(length: int, rng: Optional[np.random.Generator] = None) -> str:
    """
    Generate a binary string under the "no three equal in a row" rule.

    Args:
        length: Number of symbols
        rng: Random generator (a fresh one if None)

    Returns:
        String of '0'/'1' characters

    Example:
        >>> seq = generate_binary_sequence(10)
        >>> '000' in seq or '111' in seq
        False
    """
    if length < 0:
        raise ValueError(f"length must be >= 0, got {length}")

    rng = rng or np.random.default_rng()
    coins = rng.integers(0, 2, size=length)

    symbols = []
    for i in range(length):
        if i >= 2 and symbols[i - 2] == symbols[i - 1]:
            symbols.append(1 - symbols[i - 1])
        else:
            symbols.append(int(coins[i]))

    return ''.join(str(s) for s in symbols)


def follows_rule(sequence: str) -> bool:
    """Check that no symbol follows two equal predecessors of the same value."""
    return all(
        not (sequence[i - 2] == sequence[i - 1] == sequence[i])
        for i in range(2, len(sequence))
    )


def load_sequence(path: str) -> str:
    """
    Load an externally supplied binary sequence.

    Whitespace is ignored; any other non-binary character is rejected.

    Raises:
        LoadError: If the file is missing or contains other symbols
    """
    text = ''.join(read_text_source(path).split())
    bad = set(text) - {'0', '1'}
    if bad:
        raise LoadError(f"Sequence {path} contains non-binary symbols: {sorted(bad)}", item=path)
    if len(text) < 2:
        raise LoadError(f"Sequence {path} is too short to frame ({len(text)} symbols)", item=path)
    return text


def frame_sequence(sequence: str) -> Tuple[np.ndarray, np.ndarray]:
    """
    Frame a sequence as input/target pairs by a one-position shift.

    Position t of the input is symbol t; position t of the target is
    symbol t + 1.

    Returns:
        (inputs, targets), each of shape (len - 1, 1), dtype float32
    """
    values = np.array([int(c) for c in sequence], dtype=np.float32)
    return values[:-1].reshape(-1, 1), values[1:].reshape(-1, 1)
