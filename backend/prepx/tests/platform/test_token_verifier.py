"""Tests for bearer token verification."""

from unittest.mock import MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import JWT_SECRET, USER_ID, make_token
from prepx.main import create_app
from prepx.platform.auth import TokenVerifier, extract_bearer_token
from prepx.platform.errors import AuthenticationError


class TestExtractBearerToken:

    def test_extracts_token(self):
        assert extract_bearer_token("Bearer abc.def") == "abc.def"
        assert extract_bearer_token("bearer abc.def") == "abc.def"

    def test_missing_header(self):
        assert extract_bearer_token(None) is None
        assert extract_bearer_token("") is None
        assert extract_bearer_token("Bearer ") is None
        assert extract_bearer_token("  bearer   ") is None

    def test_other_schemes_rejected(self):
        assert extract_bearer_token("Basic dXNlcjpwYXNz") is None
        assert extract_bearer_token("abc.def") is None


class TestLocalVerification:

    @pytest.fixture
    def verifier(self):
        return TokenVerifier(jwt_secret=JWT_SECRET)

    def test_valid_token(self, verifier):
        principal = verifier.verify(make_token())

        assert principal.user_id == USER_ID
        assert principal.email == "aspirant@example.com"

    def test_missing_token(self, verifier):
        with pytest.raises(AuthenticationError):
            verifier.verify(None)

    def test_expired_token(self, verifier):
        with pytest.raises(AuthenticationError, match="expired"):
            verifier.verify(make_token(expires_in=-10))

    def test_wrong_secret(self, verifier):
        with pytest.raises(AuthenticationError):
            verifier.verify(make_token(secret="a-different-secret-of-adequate-length"))

    def test_wrong_audience(self, verifier):
        with pytest.raises(AuthenticationError):
            verifier.verify(make_token(audience="anon"))


class TestRemoteVerification:

    def _verifier(self, response=None, error=None):
        client = MagicMock(spec=httpx.Client)
        if error is not None:
            client.get.side_effect = error
        else:
            client.get.return_value = response
        verifier = TokenVerifier(api_url="https://auth.example.com/", api_key="anon-key", http_client=client)
        return verifier, client

    def test_valid_token(self):
        response = httpx.Response(200, json={"id": USER_ID, "email": "aspirant@example.com"})
        verifier, client = self._verifier(response)

        principal = verifier.verify("opaque-token")

        assert principal.user_id == USER_ID
        url = client.get.call_args.args[0]
        headers = client.get.call_args.kwargs["headers"]
        assert url == "https://auth.example.com/auth/v1/user"
        assert headers["Authorization"] == "Bearer opaque-token"
        assert headers["apikey"] == "anon-key"

    def test_rejected_token(self):
        verifier, _ = self._verifier(httpx.Response(401, json={"msg": "invalid"}))

        with pytest.raises(AuthenticationError):
            verifier.verify("opaque-token")

    def test_network_error_fails_closed(self):
        verifier, _ = self._verifier(error=httpx.ConnectError("refused"))

        with pytest.raises(AuthenticationError):
            verifier.verify("opaque-token")

    @pytest.mark.parametrize("response", [
        httpx.Response(200, text="<html>ok</html>"),
        httpx.Response(200, json=["not", "an", "object"]),
        httpx.Response(200, json="plain string"),
    ])
    def test_malformed_provider_body_is_rejected(self, response):
        verifier, _ = self._verifier(response)

        with pytest.raises(AuthenticationError, match="Invalid token"):
            verifier.verify("opaque-token")


class TestRemoteVerificationThroughApi:

    def test_malformed_provider_body_returns_unauthorized(self, config, session_factory):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>ok</html>"))
        verifier = TokenVerifier(
            api_url="https://auth.example.com",
            http_client=httpx.Client(transport=transport),
        )
        client = TestClient(create_app(config=config, session_factory=session_factory, token_verifier=verifier))

        response = client.post(
            "/entitlements/check",
            json={"feature_slug": "notes_generation"},
            headers={"Authorization": "Bearer opaque-token"},
        )

        assert response.status_code == 401
        body = response.json()
        assert body["allowed"] is False
        assert body["reason"] == "unauthorized"


class TestUnconfigured:

    def test_no_verifier_rejects_everything(self):
        with pytest.raises(AuthenticationError):
            TokenVerifier().verify(make_token())
