"""
Authentication middleware for the commission API.
"""

import logging
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from commissiondesk.auth.jwt import get_token_from_request, verify_token

logger = logging.getLogger(__name__)

# Route prefixes that require a valid token
PROTECTED_PREFIXES = (
    "/api/commission",
)


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Rejects unauthenticated requests to protected routes with 401.

    Role checks live in the route dependencies; this only makes sure no
    protected route is reached without a valid token.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        path = request.url.path

        if not path.startswith(PROTECTED_PREFIXES):
            return await call_next(request)

        token = get_token_from_request(request)
        payload = verify_token(token) if token else None

        if not payload:
            logger.debug(f"Rejected unauthenticated request to {path}")
            return Response(
                content='{"detail": "Not authenticated"}',
                status_code=401,
                media_type="application/json",
            )

        return await call_next(request)
