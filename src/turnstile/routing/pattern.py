"""Path template compilation.

A template such as ``/user/{id}/info`` compiles to a regex that matches
``/user/42/info/`` and captures ``"42"``. Compiled patterns are pure
functions of the template and carry the two integers used for
specificity ordering.
"""

import re
from dataclasses import dataclass, field

from turnstile.errors import ConfigurationError

# One or more word characters or hyphens, never a slash
PARAM_REGEX = r"([\w-]+)"

_FLASK_STYLE = re.compile(r"<[^>]*>")


@dataclass(frozen=True, slots=True)
class Segment:
    """A parsed segment of a path template.

    Literal:  ``users``  (is_param=False)
    Capture:  ``{id}``   (is_param=True, name="id")
    """

    value: str
    is_param: bool = False
    name: str | None = None


@dataclass(frozen=True, slots=True)
class CompiledPattern:
    """Matcher derived deterministically from a path template."""

    template: str
    segments: tuple[Segment, ...]
    regex: re.Pattern[str] = field(repr=False, compare=False)

    @property
    def dynamic_segment_count(self) -> int:
        return sum(1 for seg in self.segments if seg.is_param)

    @property
    def total_segment_count(self) -> int:
        return len(self.segments)

    @property
    def param_names(self) -> tuple[str, ...]:
        """Declared placeholder names, in capture order."""
        return tuple(seg.name for seg in self.segments if seg.name is not None)

    def match(self, path: str) -> tuple[str, ...] | None:
        """Match a normalized path. Returns the captures or ``None``."""
        m = self.regex.match(path.strip())
        if m is None:
            return None
        return m.groups()

    def specificity(self) -> tuple[int, int, str]:
        """Sort key: fewer captures first, then deeper paths, then template."""
        return (self.dynamic_segment_count, -self.total_segment_count, self.template)


def normalize_path(path: str) -> str:
    """Ensure the path ends with exactly the trailing-slash terminator."""
    if not path:
        return "/"
    if path.endswith("/"):
        return path
    return path + "/"


def parse_template(template: str) -> tuple[Segment, ...]:
    """Split a template into literal and capture segments.

    Examples::

        "/users"        -> (Segment("users"),)
        "/users/{id}"   -> (Segment("users"), Segment("{id}", is_param=True, name="id"))
        "/"             -> ()
    """
    if _FLASK_STYLE.search(template):
        msg = (
            f"Route template {template!r} uses <param> syntax. "
            "Turnstile templates use {param} placeholders, e.g. /users/{id}."
        )
        raise ConfigurationError(msg)

    segments: list[Segment] = []
    for part in template.split("/"):
        if not part:
            continue
        if part.startswith("{") and part.endswith("}"):
            name = part[1:-1]
            if not name.strip() or "{" in name or "}" in name:
                msg = f"Invalid placeholder {part!r} in route template {template!r}."
                raise ConfigurationError(msg)
            segments.append(Segment(value=part, is_param=True, name=name))
        else:
            segments.append(Segment(value=part))
    return tuple(segments)


def compile_template(template: str) -> CompiledPattern:
    """Compile a path template into a ``CompiledPattern``.

    Literal segments match by exact, case-sensitive equality. The
    resulting regex always requires a trailing slash, so incoming paths
    must go through ``normalize_path`` first.
    """
    segments = parse_template(template)
    parts = ["^"]
    for seg in segments:
        parts.append("/")
        parts.append(PARAM_REGEX if seg.is_param else re.escape(seg.value))
    parts.append("/$")
    return CompiledPattern(
        template=template,
        segments=segments,
        regex=re.compile("".join(parts)),
    )
