"""Bearer-token principal extraction.

Tokens are HS256 JWTs issued elsewhere; this module only verifies them and
reads the owner id from the ``userId`` claim (``sub`` as a fallback).

Key Behaviours
===============
- ``require_owner_id``: missing or invalid token → AuthenticationRequired (401).
- ``optional_owner_id``: missing or invalid token → anonymous (None); an
  invalid token is logged at WARNING and otherwise ignored.
"""

import logging

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shortener.config import Settings, get_settings
from shortener.exceptions import AuthenticationRequired

__all__ = ["bearer_scheme", "decode_owner_id", "optional_owner_id", "require_owner_id"]

bearer_scheme = HTTPBearer(auto_error=False)


def decode_owner_id(token: str, settings: Settings) -> int:
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError as exc:
        raise AuthenticationRequired("Invalid or expired token") from exc

    raw_owner = claims.get("userId", claims.get("sub"))
    try:
        owner_id = int(raw_owner)
    except (TypeError, ValueError) as exc:
        raise AuthenticationRequired("Token does not identify a user") from exc
    if owner_id <= 0:
        raise AuthenticationRequired("Token does not identify a user")
    return owner_id


async def require_owner_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> int:
    if credentials is None:
        raise AuthenticationRequired("Access token required")
    return decode_owner_id(credentials.credentials, settings)


async def optional_owner_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> int | None:
    if credentials is None:
        return None
    try:
        return decode_owner_id(credentials.credentials, settings)
    except AuthenticationRequired as exc:
        logging.getLogger(settings.APP_NAME).warning(f"Ignoring bearer token on optional route: {exc}")
        return None
