"""Tests for turnstile.app — end-to-end through the ASGI interface."""

import json
import threading

import pytest

from turnstile.app import App
from turnstile.auth import AccessLevel, AuthenticationAnswer
from turnstile.config import AppConfig
from turnstile.errors import ConfigurationError
from turnstile.fields import FieldResponse
from turnstile.http.request import Request
from turnstile.ratelimit.registry import Allowed, Denied
from turnstile.ratelimit.rule import RateLimitAlgorithm, RateLimitRule
from turnstile.routing.route import Matched, MethodMismatch, RequestMethod
from turnstile.testing import TestClient


class TestRegistration:
    def test_decorator_returns_function(self) -> None:
        app = App()

        @app.route("/")
        def index(request):
            return "hi"

        assert index(None) == "hi"
        assert len(app.routes) == 1

    def test_bad_template_fails_at_registration(self) -> None:
        app = App()
        with pytest.raises(ConfigurationError):
            app.add_route("/users/<id>", lambda request, user_id: "x")

    def test_resolve(self) -> None:
        app = App()
        app.add_route("/users/{id}", lambda request, user_id: user_id)
        app.add_route("/users/me", lambda request: "me", method="POST")
        result = app.resolve("GET", "/users/42")
        assert isinstance(result, Matched)
        assert result.args == ("42",)
        assert isinstance(app.resolve("PUT", "/users/42"), MethodMismatch)

    def test_route_rate_limits_are_bound(self) -> None:
        app = App()
        rule = RateLimitRule("login", 1, 60_000)
        app.add_route("/login", lambda request: "ok", method="POST", rate_limits=[rule])
        assert app.rate_limits is not None
        assert app.rate_limits.applicable_rules("/login") == (rule,)

    def test_check_rate_limit_without_limits(self) -> None:
        assert isinstance(App().check_rate_limit("a", "/"), Allowed)

    def test_use_rate_limit_keeps_bindings(self) -> None:
        app = App()
        app.bind_rate_limit("/login", RateLimitRule("login", 1, 60_000))
        app.use_rate_limit(10, 1000, RateLimitAlgorithm.SLIDING_WINDOW)
        assert app.rate_limits is not None
        keys = [r.key for r in app.rate_limits.applicable_rules("/login")]
        assert keys == ["default", "login"]

    def test_conflicting_route_rules_register_nothing(self) -> None:
        app = App()
        app.add_route("/a", lambda request: "a", rate_limits=[RateLimitRule("shared", 1, 1000)])
        with pytest.raises(ConfigurationError):
            app.add_route(
                "/b",
                lambda request: "b",
                rate_limits=[RateLimitRule("fresh", 1, 1000), RateLimitRule("shared", 2, 1000)],
            )
        assert [route.template for route in app.routes] == ["/a"]
        assert app.rate_limits is not None
        assert [b.rule.key for b in app.rate_limits.bindings] == ["shared"]
        assert app.rate_limits.applicable_rules("/b") == ()

    def test_concurrent_binds_share_one_registry(self) -> None:
        app = App()
        barrier = threading.Barrier(8)

        def worker(n: int) -> None:
            barrier.wait()
            app.bind_rate_limit(f"/r{n}", RateLimitRule(f"k{n}", 1, 1000))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert app.rate_limits is not None
        assert sorted(b.rule.key for b in app.rate_limits.bindings) == [f"k{n}" for n in range(8)]

    @pytest.mark.anyio
    async def test_middleware_frozen_after_first_request(self) -> None:
        app = App()
        app.add_route("/", lambda request: "ok")
        async with TestClient(app) as client:
            await client.get("/")
        with pytest.raises(ConfigurationError):
            app.add_middleware(lambda request, next: next(request))

    @pytest.mark.anyio
    async def test_routes_can_be_added_while_serving(self) -> None:
        app = App()
        app.add_route("/a", lambda request: "a")
        async with TestClient(app) as client:
            assert (await client.get("/b")).status == 404
            app.add_route("/b", lambda request: "b")
            response = await client.get("/b")
        assert response.status == 200
        assert response.text == "b"


class TestServing:
    @pytest.mark.anyio
    async def test_dict_becomes_json(self) -> None:
        app = App()

        @app.route("/users/{id}")
        def user(request: Request, user_id: str) -> dict:
            return {"id": user_id}

        async with TestClient(app) as client:
            response = await client.get("/users/42")

        assert response.status == 200
        assert response.content_type == "application/json;charset=utf-8"
        assert json.loads(response.text) == {"id": "42"}

    @pytest.mark.anyio
    async def test_specificity_end_to_end(self) -> None:
        app = App()

        @app.route("/users/{id}")
        def user(request, user_id):
            return f"user {user_id}"

        @app.route("/users/me")
        def me(request):
            return "me"

        async with TestClient(app) as client:
            assert (await client.get("/users/me")).text == "me"
            assert (await client.get("/users/7")).text == "user 7"

    @pytest.mark.anyio
    async def test_post_body(self) -> None:
        app = App()

        @app.route("/echo", method=RequestMethod.POST)
        async def echo(request: Request) -> dict:
            return await request.json()

        async with TestClient(app) as client:
            response = await client.post("/echo", json={"a": 1})
        assert json.loads(response.text) == {"a": 1}

    @pytest.mark.anyio
    async def test_405_lists_allowed(self) -> None:
        app = App()
        app.add_route("/items", lambda request: "ok", method="POST")
        async with TestClient(app) as client:
            response = await client.get("/items")
        assert response.status == 405
        assert response.header("allow") == "POST"

    @pytest.mark.anyio
    async def test_preflight(self) -> None:
        app = App()
        app.add_route("/items", lambda request: "ok")
        async with TestClient(app) as client:
            response = await client.options("/items")
        assert response.status == 202

    @pytest.mark.anyio
    async def test_middleware_wraps_every_response(self) -> None:
        app = App()
        order: list[str] = []

        async def outer(request, next):
            order.append("outer")
            response = await next(request)
            return response.with_header("X-Outer", "1")

        async def inner(request, next):
            order.append("inner")
            return await next(request)

        app.add_middleware(outer)
        app.add_middleware(inner)

        async with TestClient(app) as client:
            response = await client.get("/missing")

        assert response.status == 404
        assert response.header("x-outer") == "1"
        assert order == ["outer", "inner"]

    @pytest.mark.anyio
    async def test_middleware_fault_is_500(self) -> None:
        app = App()

        async def broken(request, next):
            raise RuntimeError("boom")

        app.add_middleware(broken)
        async with TestClient(app) as client:
            response = await client.get("/")
        assert response.status == 500

    @pytest.mark.anyio
    async def test_lifespan_hooks_run(self) -> None:
        app = App()
        events: list[str] = []

        @app.on_startup
        async def start():
            events.append("start")

        @app.on_shutdown
        def stop():
            events.append("stop")

        async with TestClient(app):
            assert events == ["start"]
        assert events == ["start", "stop"]


class TestRateLimiting:
    @pytest.mark.anyio
    async def test_default_rule_per_forwarded_ip(self) -> None:
        app = App(AppConfig(rate_limit_enabled=True, rate_limit_max_requests=2, rate_limit_window_ms=60_000))
        app.add_route("/", lambda request: "ok")

        async with TestClient(app) as client:
            a = {"X-Forwarded-For": "10.0.0.1, 192.168.0.1"}
            b = {"X-Forwarded-For": "10.0.0.2"}
            statuses_a = [(await client.get("/", headers=a)).status for _ in range(3)]
            status_b = (await client.get("/", headers=b)).status

        assert statuses_a == [200, 200, 429]
        assert status_b == 200
        assert app.rate_limits is not None
        assert "10.0.0.1" in app.rate_limits

    @pytest.mark.anyio
    async def test_peer_address_without_forwarding_header(self) -> None:
        app = App(AppConfig(rate_limit_enabled=True, rate_limit_max_requests=1, rate_limit_window_ms=60_000))
        app.add_route("/", lambda request: "ok")

        async with TestClient(app) as client:
            first = await client.request("GET", "/", client=("10.1.1.1", 5000))
            second = await client.request("GET", "/", client=("10.1.1.1", 5001))
            other = await client.request("GET", "/", client=("10.1.1.2", 5000))

        assert [first.status, second.status, other.status] == [200, 429, 200]
        assert second.header("retry-after") is not None

    @pytest.mark.anyio
    async def test_forwarding_header_can_be_ignored(self) -> None:
        app = App(
            AppConfig(
                rate_limit_enabled=True,
                rate_limit_max_requests=1,
                rate_limit_window_ms=60_000,
                forwarded_header=None,
            )
        )
        app.add_route("/", lambda request: "ok")

        async with TestClient(app) as client:
            first = await client.get("/", headers={"X-Forwarded-For": "1.1.1.1"})
            second = await client.get("/", headers={"X-Forwarded-For": "2.2.2.2"})

        assert [first.status, second.status] == [200, 429]

    @pytest.mark.anyio
    async def test_route_rule_only_limits_its_path(self) -> None:
        app = App()

        @app.route("/login", method="POST", rate_limits=[RateLimitRule("login", 1, 60_000)])
        def login(request):
            return "ok"

        @app.route("/home")
        def home(request):
            return "home"

        async with TestClient(app) as client:
            assert (await client.post("/login")).status == 200
            assert (await client.post("/login")).status == 429
            assert (await client.get("/home")).status == 200

    def test_check_rate_limit(self) -> None:
        app = App()
        app.use_rate_limit(1, 60_000)
        assert isinstance(app.check_rate_limit("x", "/"), Allowed)
        assert isinstance(app.check_rate_limit("x", "/"), Denied)


class TestAuthentication:
    @pytest.mark.anyio
    async def test_authenticated_route(self) -> None:
        class TokenAuth:
            def has_general_access(self, request, access_level):
                if request.headers.get("authorization") == "Bearer good":
                    return AuthenticationAnswer.grant({"name": "alice"})
                return AuthenticationAnswer.deny("Invalid token")

        app = App(auth_handler=TokenAuth())

        @app.route("/me", access=AccessLevel.AUTHENTICATED)
        def me(request):
            return request.auth.obj

        async with TestClient(app) as client:
            ok = await client.get("/me", headers={"Authorization": "Bearer good"})
            bad = await client.get("/me", headers={"Authorization": "Bearer bad"})

        assert ok.status == 200
        assert json.loads(ok.text) == {"name": "alice"}
        assert bad.status == 401
        assert bad.text == "Invalid token"

    @pytest.mark.anyio
    async def test_set_authentication_handler(self) -> None:
        class Deny:
            async def has_general_access(self, request, access_level):
                return AuthenticationAnswer.deny(status=403)

        app = App()
        app.add_route("/admin", lambda request: "ok", access=AccessLevel.SYSTEM)
        app.set_authentication_handler(Deny())
        async with TestClient(app) as client:
            response = await client.get("/admin")
        assert response.status == 403


class TestFieldRoute:
    @pytest.mark.anyio
    async def test_x_fields_header(self) -> None:
        app = App()

        @app.field_route("/users/{id}", required=["id", "name"], optional=["email"])
        def user(request, user_id):
            return (
                FieldResponse()
                .required("id", lambda: user_id)
                .required("name", lambda: "Ada")
                .optional("email", lambda: "ada@example.com")
            )

        async with TestClient(app) as client:
            plain = await client.get("/users/1")
            full = await client.get("/users/1", headers={"X-Fields": "email"})

        assert json.loads(plain.text) == {"id": "1", "name": "Ada"}
        assert json.loads(full.text) == {"id": "1", "name": "Ada", "email": "ada@example.com"}
        assert full.header("x-fields-resolved") == "id,name,email"


class TestDiscovery:
    @pytest.mark.anyio
    async def test_lists_endpoints(self) -> None:
        app = App(AppConfig(discovery_endpoint=True))

        @app.route("/users/{id}", description="One user")
        def user(request, user_id):
            return {}

        async with TestClient(app) as client:
            response = await client.get("/endpoints")

        listing = json.loads(response.text)
        assert listing["/users/{id}"] == {
            "method": "GET",
            "accessLevel": "PUBLIC",
            "description": "One user",
        }
        assert "/endpoints" in listing

    @pytest.mark.anyio
    async def test_disabled_at_runtime(self) -> None:
        app = App(AppConfig(discovery_endpoint=True))
        app.discovery_enabled = False
        async with TestClient(app) as client:
            response = await client.get("/endpoints")
        assert response.status == 503

    @pytest.mark.anyio
    async def test_not_registered_by_default(self) -> None:
        app = App()
        async with TestClient(app) as client:
            response = await client.get("/endpoints")
        assert response.status == 404
