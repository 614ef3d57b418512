"""
Token authentication for the write endpoints.
"""

from typing import Optional

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = structlog.get_logger(__name__)

# Security scheme; missing credentials are reported by verify_api_token
security = HTTPBearer(auto_error=False)


def mask_token(token: str) -> str:
    """Shorten a token for log output."""
    return token[:6] + "..."


async def verify_api_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> str:
    """
    Verify the bearer token against the configured allow-list.

    Args:
        request: Incoming request, used to reach the app settings
        credentials: HTTP authorization credentials

    Returns:
        The token if valid

    Raises:
        HTTPException: 401 if no token was sent, 403 if it is not allowed
    """
    if credentials is None or not credentials.credentials:
        logger.info("Missing API token", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials
    valid_tokens = request.app.state.settings.get_api_tokens()

    if token not in valid_tokens:
        logger.warning("Invalid API token attempted", token=mask_token(token), path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid authentication token",
        )

    return token
