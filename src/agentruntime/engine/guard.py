"""Isolated invocation of plugin-supplied callables."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


async def call_guarded(
    factory: Callable[[], Any],
    *,
    label: str,
    timeout: float | None,
) -> tuple[bool, Any]:
    """Run ``factory()`` (awaiting it if needed) under an optional deadline.

    Returns ``(True, result)`` on success and ``(False, None)`` when the
    call raised or timed out.  Cancellation of the caller propagates.
    """
    try:
        result = factory()
        if inspect.isawaitable(result):
            if timeout is None:
                result = await result
            else:
                result = await asyncio.wait_for(result, timeout)
    except asyncio.TimeoutError:
        logger.warning("%s timed out after %.1fs", label, timeout)
        return False, None
    except Exception:
        logger.exception("%s failed", label)
        return False, None
    return True, result
