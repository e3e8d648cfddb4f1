"""Primary -> fallback -> static default, the degrade path every extractor uses."""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Step = Callable[[], "T | Awaitable[T]"]


async def _run(step: Step) -> T:
    result = step()
    if inspect.isawaitable(result):
        result = await result
    return result


async def degrade(
    label: str,
    primary: Step,
    fallback: Step,
    default: Callable[[], T],
) -> T:
    """Run primary; on any exception run fallback; if that fails too, default().

    primary and fallback may be sync or async zero-arg callables. default must
    be sync and must not raise. Never raises.
    """
    try:
        return await _run(primary)
    except Exception as exc:
        logger.warning("%s: primary path failed, using fallback: %s", label, exc)

    try:
        return await _run(fallback)
    except Exception as exc:
        logger.warning("%s: fallback failed, using static default: %s", label, exc)

    return default()
