"""``turnstile routes`` — list registered routes in resolution order."""

import argparse
import sys

from turnstile.cli._resolve import resolve_app
from turnstile.routing.route import Route

_HEADERS = ("METHOD", "PATH", "ACCESS", "LIMITS", "HANDLER")


def _limits(route: Route) -> str:
    if not route.rate_limits:
        return "-"
    return ", ".join(
        f"{rule.key}={rule.max_requests}/{rule.window_ms}ms" for rule in route.rate_limits
    )


def format_routes(routes: tuple[Route, ...]) -> list[str]:
    """Render routes as aligned table lines, header first."""
    rows = [
        (
            route.method.value,
            route.template,
            route.access_level.name,
            _limits(route),
            route.handler_name,
        )
        for route in routes
    ]
    widths = [max([len(h), *(len(r[i]) for r in rows)]) for i, h in enumerate(_HEADERS)]
    fmt = "  ".join(f"{{:<{w}}}" for w in widths[:-1]) + "  {}"
    lines = [fmt.format(*_HEADERS), "-" * min(sum(widths) + 2 * (len(widths) - 1), 80)]
    lines.extend(fmt.format(*row) for row in rows)
    return lines


def run_routes(args: argparse.Namespace) -> None:
    """Print METHOD / PATH / ACCESS / LIMITS / HANDLER for ``args.app``."""
    try:
        app = resolve_app(args.app)
    except (ModuleNotFoundError, AttributeError, TypeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    routes = app.routes.routes
    if not routes:
        print("No routes registered.")
        return

    for line in format_routes(routes):
        print(line)
    if app.rate_limits is not None and app.rate_limits.default_rule is not None:
        rule = app.rate_limits.default_rule
        print(
            f"\nDefault rate limit: {rule.max_requests} per {rule.window_ms}ms "
            f"({rule.algorithm.value})"
        )
