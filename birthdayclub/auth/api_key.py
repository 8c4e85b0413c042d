"""Shared-secret API key guard for maintenance endpoints."""

import hmac
import logging
import os

from dotenv import load_dotenv
from fastapi import Depends, Header, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from birthdayclub.auth.security_log import SecurityEventType, client_ip, log_security_event
from birthdayclub.errors import AuthorizationError

load_dotenv()

logger = logging.getLogger(__name__)

# HTTP Bearer token security scheme (optional; x-api-key works too)
security = HTTPBearer(auto_error=False)


def _configured_api_key() -> str:
    return os.getenv("API_KEY", "").strip()


def _allow_missing_api_key() -> bool:
    return os.getenv("ALLOW_MISSING_API_KEY", "False").lower() == "true"


def is_valid_api_key(provided: str) -> bool:
    """Check a caller-supplied key against API_KEY.

    With no API_KEY configured, access is allowed only when
    ALLOW_MISSING_API_KEY=true (local development).
    """
    expected = _configured_api_key()
    if not expected:
        if _allow_missing_api_key():
            logger.warning("No API_KEY configured - allowing maintenance access (ALLOW_MISSING_API_KEY=true)")
            return True
        logger.error("No API_KEY configured - maintenance endpoints are locked")
        return False
    if not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def require_api_key(
    request: Request,
    x_api_key: str = Header(default="", alias="x-api-key"),
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> None:
    """FastAPI dependency rejecting callers without a valid API key.

    Raises:
        AuthorizationError: If the key is missing or wrong
    """
    provided = x_api_key or (credentials.credentials if credentials else "")
    if not is_valid_api_key(provided):
        log_security_event(
            SecurityEventType.AUTH_FAILURE,
            client_ip(request),
            endpoint=request.url.path,
            method=request.method,
        )
        raise AuthorizationError()
