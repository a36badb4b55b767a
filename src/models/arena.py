"""
Scoped lifetime for the numeric buffers of one training or inference pass.

Every tensor a pass creates is acquired through its arena. When the pass's
results have been copied into plain Python structures the arena is closed
and all of its buffers are released, whichever way the pass exits.

Usage:
    with ResourceArena('evaluate') as arena:
        x = arena.tensor(features)
        probs = arena.keep(model(x, training=False))
        records = decode(probs.numpy())
    # x and probs are released here
"""

import gc
import logging

import numpy as np
import tensorflow as tf

logger = logging.getLogger(__name__)


class ResourceArena:
    """Owns the intermediate buffers of a single pass."""

    def __init__(self, name: str = 'pass'):
        self.name = name
        self._buffers = []
        self._closed = False

    @property
    def live(self) -> int:
        """Number of buffers currently held."""
        return len(self._buffers)

    @property
    def closed(self) -> bool:
        return self._closed

    def keep(self, buffer):
        """Register an existing buffer with this arena and return it."""
        if self._closed:
            raise RuntimeError(f"Arena '{self.name}' is already released")
        self._buffers.append(buffer)
        return buffer

    def tensor(self, value, dtype=tf.float32) -> tf.Tensor:
        """Create a tensor owned by this arena."""
        return self.keep(tf.convert_to_tensor(value, dtype=dtype))

    def array(self, value, dtype=np.float32) -> np.ndarray:
        """Create a numpy buffer owned by this arena."""
        return self.keep(np.asarray(value, dtype=dtype))

    def release(self) -> int:
        """Drop every buffer. Safe to call more than once."""
        released = len(self._buffers)
        self._buffers.clear()
        self._closed = True
        # Help garbage collection release tensor memory
        gc.collect()
        if released:
            logger.debug(f"Arena '{self.name}' released {released} buffers")
        return released

    def __enter__(self) -> 'ResourceArena':
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release()
        return False
