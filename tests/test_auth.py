"""Tests for turnstile.auth — access levels and authentication answers."""

from turnstile.auth import AccessLevel, AuthenticationAnswer, AuthenticationHandler


class TestAccessLevel:
    def test_requires_authentication(self) -> None:
        assert not AccessLevel.PUBLIC.requires_authentication
        assert AccessLevel.AUTHENTICATED.requires_authentication
        assert AccessLevel.SYSTEM.requires_authentication
        assert not AccessLevel.DISABLED.requires_authentication


class TestAuthenticationAnswer:
    def test_grant(self) -> None:
        answer = AuthenticationAnswer.grant({"user": "alice"})
        assert answer.has_access
        assert answer.obj == {"user": "alice"}

    def test_deny_defaults_to_401(self) -> None:
        answer = AuthenticationAnswer.deny("Bad token")
        assert not answer.has_access
        assert answer.message == "Bad token"
        assert answer.status == 401

    def test_deny_forbidden(self) -> None:
        assert AuthenticationAnswer.deny(status=403).status == 403


class TestProtocol:
    def test_structural_check(self) -> None:
        class Handler:
            def has_general_access(self, request, access_level):
                return AuthenticationAnswer.grant()

        assert isinstance(Handler(), AuthenticationHandler)
        assert not isinstance(object(), AuthenticationHandler)
