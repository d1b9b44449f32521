"""Serve an App with uvicorn.

uvicorn's ``run()`` accepts either a live ASGI callable or an import
string. Reload needs the import string so code changes are re-imported.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from turnstile.app import App


def run_server(
    app: App,
    host: str,
    port: int,
    *,
    log_level: str = "info",
    app_path: str | None = None,
) -> None:
    """Start uvicorn for ``app``.

    Args:
        app: The turnstile App instance.
        host: Bind host address.
        port: Bind port number.
        log_level: uvicorn log level (``"info"``, ``"debug"``, ...).
        app_path: Optional ``"module:attribute"`` import string. With
            ``app.config.debug`` set, uvicorn serves the import string
            with auto-reload instead of the live object.
    """
    import uvicorn

    reload = bool(app.config.debug and app_path)
    uvicorn.run(
        app_path if reload else app,
        host=host,
        port=port,
        log_level=log_level.lower(),
        reload=reload,
        lifespan="on",
    )
