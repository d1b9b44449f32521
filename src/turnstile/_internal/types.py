"""Shared type aliases."""

from collections.abc import Callable
from typing import Any, TypeAlias

# Route handler: called as handler(request, *path_args)
Handler: TypeAlias = Callable[..., Any]
