"""Access levels and the authentication collaborator contract.

Turnstile does not authenticate anyone itself. Routes declare an
``AccessLevel``; for ``AUTHENTICATED`` and ``SYSTEM`` routes the
dispatcher asks an application-supplied ``AuthenticationHandler`` and
passes the granted answer on to the handler as ``request.auth``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from turnstile.http.request import Request


class AccessLevel(Enum):
    """Who may reach a route."""

    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    SYSTEM = "system"
    DISABLED = "disabled"

    @property
    def requires_authentication(self) -> bool:
        return self in (AccessLevel.AUTHENTICATED, AccessLevel.SYSTEM)


@dataclass(frozen=True, slots=True)
class AuthenticationAnswer:
    """Grant or deny decision returned by an ``AuthenticationHandler``.

    ``obj`` is an arbitrary context object (a user, a token payload) that
    the handler receives as ``request.auth.obj``. ``status`` lets the
    collaborator choose between 401 and 403 on denial.
    """

    has_access: bool
    obj: Any = None
    message: str | None = None
    status: int = 401

    @classmethod
    def grant(cls, obj: Any = None) -> AuthenticationAnswer:
        return cls(has_access=True, obj=obj)

    @classmethod
    def deny(cls, message: str | None = None, *, status: int = 401) -> AuthenticationAnswer:
        return cls(has_access=False, message=message, status=status)


@runtime_checkable
class AuthenticationHandler(Protocol):
    """Protocol for the external authentication collaborator.

    ``has_general_access`` may be sync or async. Returning ``None`` is
    treated as a denial and logged as a misconfiguration.
    """

    def has_general_access(
        self,
        request: Request,
        access_level: AccessLevel,
    ) -> AuthenticationAnswer | None | Awaitable[AuthenticationAnswer | None]: ...
