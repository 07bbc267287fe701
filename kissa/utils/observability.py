"""
Structured logging for best-effort side effects.

Side effects such as invitation emails or visit counters must never abort the
operation that triggered them. ``run_best_effort`` awaits the side effect and,
on failure, emits a WARNING record with machine-readable ``extra`` fields
instead of propagating.
"""

import logging
from typing import Any, Awaitable, Optional, TypeVar

logger = logging.getLogger("kissa.events")

T = TypeVar("T")


def log_event(event: str, outcome: str, level: int = logging.INFO, **fields: Any) -> None:
    """Emit one structured event record."""
    logger.log(
        level,
        f"{event} {outcome}",
        extra={"event": event, "outcome": outcome, "fields": fields},
    )


async def run_best_effort(event: str, awaitable: Awaitable[T], **fields: Any) -> Optional[T]:
    """
    Await a side effect whose failure must not abort the caller.

    Args:
        event: Stable event name, e.g. ``"editor_invitation_email"``
        awaitable: The side effect to run
        **fields: Context attached to the log record

    Returns:
        The side effect's result, or None if it raised
    """
    try:
        return await awaitable
    except Exception as e:
        log_event(event, "failed", level=logging.WARNING, error=repr(e), **fields)
        return None
