"""
Caller resolution for request handlers

Every handler receives the caller's identity explicitly: either a verified
AuthenticatedCaller (from the bearer token) or a DemoCaller for the
account-less demo. The two variants never share the credit path.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from fastapi import Header, Request

from auth_utils import decode_jwt
from utils.errors import AuthError, ServiceNotConfigured

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedCaller:
    user_id: str


@dataclass(frozen=True)
class DemoCaller:
    client_key: str


Caller = Union[AuthenticatedCaller, DemoCaller]


def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer "):].strip()
        return token or None
    return None


def authenticate(authorization: Optional[str]) -> AuthenticatedCaller:
    """
    Verify the bearer token and return the caller.

    Raises:
        AuthError: Missing, invalid or expired token
    """
    token = _extract_bearer(authorization)
    if not token:
        raise AuthError("Unauthorized - Missing token")

    try:
        payload = decode_jwt(token)
    except ValueError as e:
        logger.error(f"Token verification unavailable: {e}")
        raise ServiceNotConfigured("Authentication is not configured") from e

    if not payload:
        raise AuthError("Unauthorized - Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Unauthorized - Invalid token payload")

    return AuthenticatedCaller(user_id=str(user_id))


def _client_ip(request: Request) -> str:
    # Rightmost X-Forwarded-For hop is the one appended by our own proxy
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[-1].strip()
    client = request.client
    return client.host if client else "unknown"


def resolve_caller(request: Request, is_demo_mode: bool) -> Caller:
    """
    Build the tagged caller for a request.

    Demo requests skip authentication entirely and are keyed by client IP.
    Nothing the client sends (such as a session header) picks the key, so a
    new session cannot reset the demo allowance.
    """
    if is_demo_mode:
        return DemoCaller(client_key=_client_ip(request))
    return authenticate(request.headers.get("authorization"))


async def get_current_caller(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> AuthenticatedCaller:
    """Dependency for routes that always require a signed-in user."""
    return authenticate(authorization)
