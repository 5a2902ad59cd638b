import functools
from typing import Any, Awaitable, Callable
import structlog

from contentflow.domain.errors import REJECTION_ERRORS

logger = structlog.get_logger(__name__)


def degrade_to_baseline(baseline: str) -> Callable:
    """Run the decorated enhanced coroutine; on failure run ``self.<baseline>`` with the same arguments.

    Rejections (not-found, conflict, invariant violation) are re-raised untouched.
    The instance may expose a ``metrics`` collector; fallbacks are counted there.
    """

    def decorator(enhanced: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:

        @functools.wraps(enhanced)
        async def wrapper(self, *args, **kwargs):
            try:
                return await enhanced(self, *args, **kwargs)
            except REJECTION_ERRORS:
                raise
            except Exception as e:
                logger.warning(
                    "Enhanced path failed, degrading to baseline",
                    operation=enhanced.__name__,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                collector = getattr(self, "metrics", None)
                if collector is not None:
                    collector.increment_counter("workflow.fallback", tags={"operation": enhanced.__name__})
                return await getattr(self, baseline)(*args, **kwargs)

        return wrapper

    return decorator
