"""``turnstile run`` — serve an app with uvicorn."""

import argparse
import sys

from turnstile.cli._resolve import resolve_app


def run_app(args: argparse.Namespace) -> None:
    """Resolve ``args.app`` and serve it. CLI flags override AppConfig."""
    try:
        app = resolve_app(args.app)
    except (ModuleNotFoundError, AttributeError, TypeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    from turnstile.server.runner import run_server

    run_server(
        app,
        args.host or app.config.host,
        args.port or app.config.port,
        log_level=args.log_level or app.config.log_level,
        app_path=args.app,
    )
