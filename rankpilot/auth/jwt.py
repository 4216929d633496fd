"""
Supabase access token validation.

HS* tokens are checked against the project's JWT secret; asymmetric
tokens (RS*, ES*, PS*) against the public keys Supabase publishes as JWKS.
"""

import logging
from functools import lru_cache
from typing import Any, Dict

import jwt
from jwt import PyJWKClient, PyJWTError

from rankpilot.auth.config import AuthConfig, get_auth_config

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["exp", "sub"]

# Most specific first: InvalidSignatureError is a DecodeError
_FAILURE_MESSAGES = (
    (jwt.ExpiredSignatureError, "Token has expired"),
    (jwt.InvalidAudienceError, "Invalid token audience"),
    (jwt.InvalidSignatureError, "Invalid token signature"),
    (jwt.MissingRequiredClaimError, None),
    (jwt.DecodeError, "Token decode error"),
)


class JWTError(Exception):
    """The bearer token was rejected."""
    pass


@lru_cache(maxsize=4)
def get_jwks_client(jwks_url: str) -> PyJWKClient:
    return PyJWKClient(jwks_url, cache_keys=True, lifespan=3600)


def get_verification_key(token: str, config: AuthConfig) -> Any:
    if config.jwt_algorithm.startswith("HS"):
        if not config.supabase_jwt_secret:
            raise JWTError("SUPABASE_JWT_SECRET not configured")
        return config.supabase_jwt_secret

    if not config.jwks_url:
        raise JWTError(f"SUPABASE_URL is required to verify {config.jwt_algorithm} tokens")

    try:
        return get_jwks_client(config.jwks_url).get_signing_key_from_jwt(token).key
    except PyJWTError as e:
        logger.error(f"Failed to fetch JWKS from {config.jwks_url}: {e}")
        raise JWTError(f"Failed to fetch public key from Supabase: {e}")


def _describe_failure(error: PyJWTError, config: AuthConfig, token: str) -> str:
    if isinstance(error, jwt.InvalidAlgorithmError):
        try:
            token_alg = jwt.get_unverified_header(token).get("alg", "unknown")
        except PyJWTError:
            token_alg = "unknown"
        return (
            f"JWT algorithm mismatch: token uses '{token_alg}', server expects "
            f"'{config.jwt_algorithm}'. Set JWT_ALGORITHM={token_alg}."
        )

    for error_type, message in _FAILURE_MESSAGES:
        if isinstance(error, error_type):
            return message or str(error)
    return f"Token validation error: {error}"


def verify_supabase_token(token: str) -> Dict[str, Any]:
    """
    Verify a Supabase access token and return its claims.

    Raises:
        JWTError: Bad signature, wrong audience, expired, malformed, or
            missing the exp/sub claims
    """
    config = get_auth_config()
    key = get_verification_key(token, config)

    try:
        return jwt.decode(
            token,
            key,
            algorithms=[config.jwt_algorithm],
            audience=config.jwt_audience,
            options={"require": REQUIRED_CLAIMS},
        )
    except PyJWTError as e:
        raise JWTError(_describe_failure(e, config, token)) from e


def extract_user_info(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Profile fields from verified claims.

    Supabase puts the display name and avatar in user_metadata (OAuth
    providers use "name"/"picture") and the sign-in provider in
    app_metadata.
    """
    user_metadata = payload.get("user_metadata") or {}
    app_metadata = payload.get("app_metadata") or {}

    return {
        "id": payload.get("sub"),
        "email": (payload.get("email") or "").lower(),
        "full_name": user_metadata.get("full_name") or user_metadata.get("name"),
        "avatar_url": user_metadata.get("avatar_url") or user_metadata.get("picture"),
        "provider": app_metadata.get("provider", "email"),
    }
