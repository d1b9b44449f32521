"""Field selection — clients pick optional response fields via a header.

A field route declares required, optional and default field names. The
client sends e.g. ``X-Fields: email,avatar``; the response always holds
the required fields plus whichever requested fields are optional.
Unknown names are silently ignored.

Usage::

    @app.field_route("/users/{id}", required=["id", "name"], optional=["email"])
    def user(request, user_id):
        u = load(user_id)
        return (
            FieldResponse()
            .required("id", lambda: u.id)
            .required("name", lambda: u.name)
            .optional("email", lambda: u.email)
        )
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

DEFAULT_FIELDS_HEADER = "X-Fields"


def normalize(names: Iterable[str | None] | None) -> tuple[str, ...]:
    """Trim names, drop empties and duplicates, keep first-seen order."""
    if not names:
        return ()
    seen: dict[str, None] = {}
    for name in names:
        if name is None:
            continue
        name = name.strip()
        if name:
            seen.setdefault(name, None)
    return tuple(seen)


def parse_csv(value: str | None) -> tuple[str, ...]:
    """Parse a comma-separated header value into normalized names."""
    if value is None or not value.strip():
        return ()
    return normalize(value.split(","))


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """Declared fields of a field-selection route."""

    required: tuple[str, ...] = ()
    optional: tuple[str, ...] = ()
    defaults: tuple[str, ...] = ()
    header_name: str = DEFAULT_FIELDS_HEADER

    @classmethod
    def create(
        cls,
        required: Iterable[str] = (),
        optional: Iterable[str] = (),
        defaults: Iterable[str] = (),
        header_name: str = DEFAULT_FIELDS_HEADER,
    ) -> FieldSpec:
        return cls(normalize(required), normalize(optional), normalize(defaults), header_name)

    def requested(self, header_value: str | None) -> tuple[str, ...]:
        """Fields the client asked for, falling back to the defaults."""
        return parse_csv(header_value) or self.defaults

    def resolve(self, requested: Iterable[str]) -> tuple[str, ...]:
        """Required fields plus the requested optional ones, in that order."""
        emitted = dict.fromkeys(self.required)
        for name in requested:
            if name in self.optional:
                emitted.setdefault(name, None)
        return tuple(emitted)


class FieldResponse:
    """Lazily evaluated response fields.

    Suppliers run only for fields that end up in the response, so an
    expensive optional field costs nothing unless requested.
    """

    __slots__ = ("_optional", "_required")

    def __init__(self) -> None:
        self._required: dict[str, Callable[[], Any]] = {}
        self._optional: dict[str, Callable[[], Any]] = {}

    def required(self, name: str, supplier: Callable[[], Any]) -> FieldResponse:
        self._required[name] = supplier
        return self

    def optional(self, name: str, supplier: Callable[[], Any]) -> FieldResponse:
        self._optional[name] = supplier
        return self

    @property
    def required_names(self) -> tuple[str, ...]:
        return tuple(self._required)

    @property
    def optional_names(self) -> tuple[str, ...]:
        return tuple(self._optional)

    def build(self, requested: Iterable[str], required_names: Iterable[str]) -> dict[str, Any]:
        """Evaluate the suppliers for required names plus requested optionals."""
        emit = dict.fromkeys(required_names)
        for name in requested:
            if name in self._optional:
                emit.setdefault(name, None)
        out: dict[str, Any] = {}
        for name in emit:
            supplier = self._required.get(name) or self._optional.get(name)
            if supplier is not None:
                out[name] = supplier()
        return out


def filter_mapping(data: Mapping[str, Any], spec: FieldSpec, requested: Iterable[str]) -> dict[str, Any]:
    """Apply a ``FieldSpec`` to a plain mapping returned by a handler."""
    return {name: data[name] for name in spec.resolve(requested) if name in data}

