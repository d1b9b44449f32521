"""Tests for turnstile.routing.route — Route, RequestMethod and resolution results."""

import pytest

from turnstile.auth import AccessLevel
from turnstile.errors import ConfigurationError
from turnstile.routing.route import Matched, MethodMismatch, RequestMethod, Route


def _handler(request) -> str:
    return "ok"


class TestRequestMethod:
    def test_parse_is_case_insensitive(self) -> None:
        assert RequestMethod.parse("post") is RequestMethod.POST
        assert RequestMethod.parse(RequestMethod.GET) is RequestMethod.GET

    def test_parse_unknown(self) -> None:
        with pytest.raises(ConfigurationError, match="BREW"):
            RequestMethod.parse("BREW")

    def test_accepts(self) -> None:
        assert RequestMethod.GET.accepts("get")
        assert not RequestMethod.GET.accepts("POST")
        assert RequestMethod.ANY.accepts("PATCH")
        assert RequestMethod.ANY.accepts("QUERY")


class TestRoute:
    def test_pattern_compiled_on_creation(self) -> None:
        route = Route("/users/{id}", RequestMethod.GET, _handler)
        assert route.pattern.param_names == ("id",)
        assert route.access_level is AccessLevel.PUBLIC
        assert route.rate_limits == ()

    def test_bad_template(self) -> None:
        with pytest.raises(ConfigurationError):
            Route("/users/{}", RequestMethod.GET, _handler)

    def test_frozen(self) -> None:
        route = Route("/", RequestMethod.GET, _handler)
        with pytest.raises(AttributeError):
            route.template = "/other"  # type: ignore[misc]

    def test_handler_name(self) -> None:
        assert Route("/", RequestMethod.GET, _handler).handler_name == "_handler"


class TestResults:
    def test_named_captures(self) -> None:
        route = Route("/orgs/{org}/repos/{repo}", RequestMethod.GET, _handler)
        match = Matched(route, ("acme", "widgets"))
        assert match.named() == {"org": "acme", "repo": "widgets"}

    def test_allow_header_sorted(self) -> None:
        mismatch = MethodMismatch(frozenset({"PUT", "DELETE", "GET"}))
        assert mismatch.allow_header == "DELETE, GET, PUT"
