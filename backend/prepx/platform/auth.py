"""
Bearer token verification for end-user requests.

Tokens are issued by the managed auth provider. Two verification modes:
- local: HS256 signature check with AUTH_JWT_SECRET (PyJWT)
- remote: GET {AUTH_API_URL}/auth/v1/user with the token (httpx)

The resolved Principal is passed explicitly to the gate; nothing reads
ambient session state.

SECURITY:
- Any verification failure is a 401; there is no default-allow path
- Token contents are never logged
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
import jwt

from prepx.config.settings import AppConfig
from prepx.platform.errors import AuthenticationError

logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"


@dataclass(frozen=True)
class Principal:
    """Authenticated end user."""
    user_id: str
    email: Optional[str] = None


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != BEARER_SCHEME:
        return None
    return token.strip() or None


class TokenVerifier:
    """Resolves bearer tokens to principals."""

    def __init__(
        self,
        jwt_secret: str = "",
        audience: Optional[str] = "authenticated",
        api_url: str = "",
        api_key: str = "",
        http_client: Optional[httpx.Client] = None,
    ):
        self.jwt_secret = jwt_secret
        self.audience = audience
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self._http_client = http_client

    @classmethod
    def from_config(cls, config: AppConfig) -> "TokenVerifier":
        return cls(
            jwt_secret=config.auth_jwt_secret,
            audience=config.auth_jwt_audience,
            api_url=config.auth_api_url,
            api_key=config.auth_api_key,
        )

    def verify(self, token: Optional[str]) -> Principal:
        """
        Verify a bearer token.

        Raises:
            AuthenticationError: token missing, invalid, expired, or no verifier configured
        """
        if not token:
            raise AuthenticationError("Missing bearer token")

        if self.jwt_secret:
            return self._verify_local(token)
        if self.api_url:
            return self._verify_remote(token)

        logger.error("Bearer token rejected: no auth verifier configured")
        raise AuthenticationError("Authentication is not configured")

    def _verify_local(self, token: str) -> Principal:
        options = {"require": ["sub", "exp"]}
        try:
            claims = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=["HS256"],
                audience=self.audience,
                options=options,
            )
        except jwt.ExpiredSignatureError:
            logger.info("Bearer token expired")
            raise AuthenticationError("Token expired")
        except jwt.PyJWTError as e:
            logger.info("Bearer token rejected", extra={"error_type": type(e).__name__})
            raise AuthenticationError("Invalid token")

        user_id = str(claims.get("sub") or "").strip()
        if not user_id:
            raise AuthenticationError("Invalid token")
        return Principal(user_id=user_id, email=claims.get("email"))

    def _verify_remote(self, token: str) -> Principal:
        headers = {"Authorization": f"Bearer {token}"}
        if self.api_key:
            headers["apikey"] = self.api_key

        client = self._http_client or httpx.Client(timeout=10.0)
        try:
            response = client.get(f"{self.api_url}/auth/v1/user", headers=headers)
        except httpx.HTTPError as e:
            logger.error("Auth provider request failed", extra={"error": str(e)})
            raise AuthenticationError("Unable to verify token")
        finally:
            if self._http_client is None:
                client.close()

        if response.status_code != 200:
            logger.info("Auth provider rejected token", extra={"status_code": response.status_code})
            raise AuthenticationError("Invalid token")

        try:
            data = response.json()
        except ValueError:
            logger.error("Auth provider returned a non-JSON body")
            raise AuthenticationError("Invalid token")
        if not isinstance(data, dict):
            logger.error("Auth provider returned an unexpected body", extra={"body_type": type(data).__name__})
            raise AuthenticationError("Invalid token")

        user_id = str(data.get("id") or "").strip()
        if not user_id:
            raise AuthenticationError("Invalid token")
        return Principal(user_id=user_id, email=data.get("email"))
