"""Bearer-token gate in front of the observability routes."""

from typing import Awaitable, Callable, Optional, Sequence

import structlog
from fastapi import HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = structlog.get_logger(__name__)

_bearer = HTTPBearer(auto_error=False)


def create_bearer_auth(tokens: Sequence[str]) -> Callable[[Request], Awaitable[str]]:
    """Create a dependency that requires an ``Authorization: Bearer`` header.

    Args:
        tokens: Accepted tokens. When empty, any non-empty bearer token passes
            and validation is left to the host application.

    Returns:
        FastAPI dependency returning the presented token
    """
    accepted = frozenset(tokens)

    async def require_bearer_token(request: Request) -> str:
        credentials: Optional[HTTPAuthorizationCredentials] = await _bearer(request)
        if credentials is None or not credentials.credentials.strip():
            raise HTTPException(
                status_code=401,
                detail="missing or invalid authorization header",
                headers={"WWW-Authenticate": "Bearer"},
            )

        token = credentials.credentials.strip()
        if accepted and token not in accepted:
            logger.warning("Rejected bearer token", path=request.url.path)
            raise HTTPException(
                status_code=401,
                detail="invalid bearer token",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return token

    return require_bearer_token
