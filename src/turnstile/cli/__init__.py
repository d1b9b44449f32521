"""Turnstile CLI — route listing and server startup.

Entry point registered as ``turnstile`` in ``pyproject.toml``::

    [project.scripts]
    turnstile = "turnstile.cli:main"
"""

import argparse
import sys


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ``turnstile`` command."""
    parser = argparse.ArgumentParser(
        prog="turnstile",
        description="Turnstile — routing and rate limiting for HTTP backends.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # -- turnstile routes -------------------------------------------------
    routes_parser = subparsers.add_parser("routes", help="List routes in resolution order")
    routes_parser.add_argument("app", help="Import string (e.g. myapp:app)")

    # -- turnstile run ----------------------------------------------------
    run_parser = subparsers.add_parser("run", help="Serve the app with uvicorn")
    run_parser.add_argument("app", help="Import string (e.g. myapp:app)")
    run_parser.add_argument("--host", default=None, help="Bind host address")
    run_parser.add_argument("--port", type=int, default=None, help="Bind port number")
    run_parser.add_argument(
        "--log-level",
        default=None,
        help="uvicorn log level (defaults to AppConfig.log_level)",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "routes":
        from turnstile.cli._routes import run_routes

        run_routes(args)
    elif args.command == "run":
        from turnstile.cli._run import run_app

        run_app(args)
