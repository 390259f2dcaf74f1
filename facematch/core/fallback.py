"""Ordered fallback over alternative strategies."""

import logging
from typing import Awaitable, Callable, Optional, Sequence, Tuple, TypeVar

# Configure logging
logger = logging.getLogger(__name__)

T = TypeVar("T")

Strategy = Tuple[str, Callable[[], Awaitable[Optional[T]]]]

async def first_successful(strategies: Sequence[Strategy]) -> Optional[Tuple[str, T]]:
    """Run strategies in order until one produces a value.

    A strategy fails when it raises or returns None. Each one is attempted
    at most once.

    Args:
        strategies: (name, zero-argument coroutine function) pairs.

    Returns:
        (name, value) of the first success, or None if every strategy failed.
    """
    for name, attempt in strategies:
        try:
            value = await attempt()
        except Exception as e:
            logger.warning(f"Strategy '{name}' failed: {str(e)}")
            continue
        if value is not None:
            return name, value
        logger.info(f"Strategy '{name}' produced no result")
    return None
