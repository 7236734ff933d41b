"""Small shared helpers: tiered fallback chains and order-preserving dedupe."""

import logging
from typing import Awaitable, Callable, Hashable, Iterable, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')

Strategy = tuple[str, Callable[[], Awaitable[T]]]


async def first_usable(
    strategies: Sequence[Strategy],
    usable: Callable[[T], bool] = bool,
    default=None,
    label: str = "fallback",
) -> tuple[str | None, T]:
    """
    Run strategies in order and return the first result that is usable.

    Args:
        strategies: Ordered (name, zero-arg coroutine factory) pairs
        usable: Predicate deciding whether a result ends the chain
        default: Returned when no strategy produced a usable result
        label: Name used in log messages

    Returns:
        (name of the winning strategy, its result), or (None, default)

    Example:
        tier, films = await first_usable([
            ("feed", lambda: read_feed(user)),
            ("markup", lambda: read_pages(user)),
        ], default=[])
    """
    for name, strategy in strategies:
        result = await strategy()
        if usable(result):
            logger.debug(f"{label}: '{name}' produced a usable result")
            return name, result
        logger.debug(f"{label}: '{name}' produced nothing, trying next")

    logger.debug(f"{label}: all {len(strategies)} strategies exhausted")
    return None, default


def dedupe(items: Iterable[T], key: Callable[[T], Hashable] | None = None) -> list[T]:
    """Drop repeated items, keeping the first occurrence and original order."""
    seen: set = set()
    result = []
    for item in items:
        marker = key(item) if key else item
        if marker in seen:
            continue
        seen.add(marker)
        result.append(item)
    return result
