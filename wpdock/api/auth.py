"""Dashboard authentication: HS256 bearer tokens for the single admin account."""

import hmac
import logging
import time
import uuid

import jwt  # PyJWT
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger(__name__)

TOKEN_TTL_SECONDS = 8 * 60 * 60
ALGORITHM = "HS256"


class AuthError(Exception):
    """A bearer token is missing, malformed, expired or revoked."""


class TokenIssuer:
    """Issues and verifies session tokens.

    Logout revokes a token by its ``jti``. Revocations are held in memory
    and only need to outlive the token, so they are pruned once expired.
    """

    def __init__(self, secret, ttl_seconds=TOKEN_TTL_SECONDS):
        self._secret = secret
        self.ttl_seconds = ttl_seconds
        self._revoked: dict[str, int] = {}

    def issue(self, username) -> str:
        now = int(time.time())
        claims = {
            "sub": username,
            "iat": now,
            "exp": now + self.ttl_seconds,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def verify(self, token) -> dict:
        try:
            claims = jwt.decode(token, self._secret, algorithms=[ALGORITHM], options={"require": ["exp", "sub", "jti"]})
        except jwt.ExpiredSignatureError as e:
            raise AuthError("Token expired") from e
        except jwt.InvalidTokenError as e:
            raise AuthError("Invalid token") from e
        if claims["jti"] in self._revoked:
            raise AuthError("Token revoked")
        return claims

    def revoke(self, token) -> bool:
        """Revoke a valid token. Returns False if it was already unusable."""
        try:
            claims = self.verify(token)
        except AuthError:
            return False
        self._prune()
        self._revoked[claims["jti"]] = claims["exp"]
        logger.info(f"Session for {claims['sub']} logged out")
        return True

    def _prune(self):
        now = int(time.time())
        self._revoked = {jti: exp for jti, exp in self._revoked.items() if exp > now}


def check_credentials(config, username, password) -> bool:
    """Compare against the configured admin account. No password configured means no login."""
    if not config.admin_password:
        logger.warning("Login attempted but WPDOCK_ADMIN_PASSWORD is not set")
        return False
    user_ok = hmac.compare_digest(username.encode(), config.admin_username.encode())
    password_ok = hmac.compare_digest(password.encode(), config.admin_password.encode())
    return user_ok and password_ok


_bearer = HTTPBearer(auto_error=False)


def bearer_token(credentials: HTTPAuthorizationCredentials | None = Depends(_bearer)) -> str | None:
    return credentials.credentials if credentials else None


def require_auth(request: Request, token: str | None = Depends(bearer_token)) -> dict:
    """Route dependency: the verified token claims, or 401."""
    if token is None:
        raise HTTPException(status_code=401, detail="Authorization header required")
    issuer: TokenIssuer = request.app.state.token_issuer
    try:
        return issuer.verify(token)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
