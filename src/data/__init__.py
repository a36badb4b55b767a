"""
Source access utilities.

Reads raw dataset sources from local storage and loads individually
addressable items concurrently. Item loads complete in any order; the
caller always gets results back in request order.
"""

import asyncio
import logging
import os
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from src.errors import LoadError

logger = logging.getLogger(__name__)

T = TypeVar('T')


def read_text_source(path: str) -> str:
    """
    Read a whole text source.

    Args:
        path: Local file path

    Returns:
        File contents

    Raises:
        LoadError: If the file is missing or unreadable
    """
    if not path or not os.path.exists(path):
        raise LoadError(f"Source not found: {path}", item=path)

    try:
        with open(path, encoding='utf-8') as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise LoadError(f"Failed to read {path}: {e}", item=path) from e


def read_lines(path: str, skip_header: bool = False) -> List[str]:
    """
    Read non-blank lines from a text source.

    Handles both LF and CRLF line endings.
    """
    lines = [line for line in read_text_source(path).splitlines() if line.strip()]
    if skip_header:
        lines = lines[1:]
    return lines


async def gather_items(
    loader: Callable[[T], object],
    items: Sequence[T],
    tolerant: bool = False
) -> Tuple[list, List[LoadError]]:
    """
    Load items concurrently and wait for every one of them.

    Each item is loaded in a worker thread. The load is only declared
    finished once every item has either completed or failed.

    Args:
        loader: Blocking function loading one item (raises LoadError on failure)
        items: Item keys passed to the loader
        tolerant: If True, failed items are dropped; otherwise the first
            failure (in request order) is raised

    Returns:
        (loaded values in request order, list of absorbed failures)

    Raises:
        LoadError: On any failure when not tolerant
    """
    results = await asyncio.gather(
        *(asyncio.to_thread(loader, item) for item in items),
        return_exceptions=True
    )

    loaded, failures = [], []
    for item, result in zip(items, results):
        if isinstance(result, LoadError):
            failures.append(result)
        elif isinstance(result, BaseException):
            # Anything else is a bug, not a bad item
            raise result
        else:
            loaded.append(result)

    if failures and not tolerant:
        raise failures[0]

    for failure in failures:
        logger.warning(f"Dropped item {failure.item}: {failure}")

    return loaded, failures


def resolve_source(source: Optional[str], base_dir: Optional[str] = None) -> Optional[str]:
    """Resolve a configured source path relative to base_dir."""
    if source is None or base_dir is None or os.path.isabs(source):
        return source
    return os.path.join(base_dir, source)
