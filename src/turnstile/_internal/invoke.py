"""Call sync or async user callables uniformly.

Route handlers and authentication handlers may be ``def`` or
``async def``. Everything that calls user code goes through ``invoke``
so the sync/async check lives in one place::

    result = await invoke(route.handler, request, *args)
"""

import inspect
from typing import Any


async def invoke(func: Any, *args: Any, **kwargs: Any) -> Any:
    """Call ``func`` and await the result if it is awaitable."""
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
