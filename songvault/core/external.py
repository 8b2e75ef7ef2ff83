"""Run blocking collaborator calls off the event loop."""
import asyncio
from typing import Any, Callable, TypeVar

from songvault.config import EXTERNAL_TIMEOUT_SEC
from songvault.errors import DependencyFailure

T = TypeVar("T")


async def call_external(what: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Await ``fn(*args, **kwargs)`` in a worker thread; raise DependencyFailure on timeout.

    Only for reads and idempotent deletes: on timeout the thread is abandoned,
    not stopped, so its effect may still land later.
    """
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(fn, *args, **kwargs),
            timeout=EXTERNAL_TIMEOUT_SEC,
        )
    except asyncio.TimeoutError:
        raise DependencyFailure(f"{what} timed out after {EXTERNAL_TIMEOUT_SEC:g}s") from None


async def call_write(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Await a storing call (upload, insert, update) in a worker thread until it returns.

    The deadline is enforced by the driver itself (pymongo ``timeoutMS``,
    boto3 ``read_timeout``), so when this returns or raises the write has
    either happened or not, and compensation can rely on that.
    """
    return await asyncio.to_thread(fn, *args, **kwargs)
