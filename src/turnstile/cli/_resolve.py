"""Locate the App a CLI command serves or inspects."""

import importlib

from turnstile.app import App

DEFAULT_ATTRIBUTE = "app"


def resolve_app(target: str) -> App:
    """Import ``target`` (``module`` or ``module:name``) and return its App.

    The name defaults to ``app``. Anything other than an ``App`` instance
    is rejected; factories are not called.

    Raises:
        ModuleNotFoundError: If the module cannot be imported.
        AttributeError: If the module has no such name.
        TypeError: If the name is bound to something other than an App.
    """
    module_name, _, name = target.partition(":")
    module = importlib.import_module(module_name)
    try:
        found = getattr(module, name or DEFAULT_ATTRIBUTE)
    except AttributeError:
        msg = f"module {module_name!r} has no attribute {name or DEFAULT_ATTRIBUTE!r}"
        raise AttributeError(msg) from None

    if not isinstance(found, App):
        msg = f"expected turnstile.App at {target!r}, found {type(found).__name__}"
        raise TypeError(msg)
    return found
