"""
FastAPI dependencies for authentication and request context.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from commissiondesk.auth.jwt import get_token_from_request, verify_token
from commissiondesk.services.tenancy import RequestContext, Role
from commissiondesk.utils.audit import get_client_ip


async def get_request_context(request: Request) -> RequestContext:
    """
    Build the caller's RequestContext from the access token.

    Raises 401 if no valid token is present.
    """
    token = get_token_from_request(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    payload = verify_token(token)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    return RequestContext(
        tenant_id=payload["tenant_id"],
        actor_id=payload["actor_id"],
        role=Role(payload["role"]),
        ip_address=get_client_ip(request),
    )


async def require_manager(
    ctx: RequestContext = Depends(get_request_context),
) -> RequestContext:
    """
    Require the caller to be a manager (or admin).

    Raises 403 for employees.
    """
    if not ctx.is_manager:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Manager access required",
        )
    return ctx


def scope_employee(ctx: RequestContext, employee_id: Optional[str]) -> Optional[str]:
    """
    Narrow an employee filter to what the caller may see.

    Managers keep whatever filter they asked for. Employees are pinned to
    themselves and get 403 for asking about anyone else.
    """
    if ctx.is_manager:
        return employee_id
    if employee_id is not None and employee_id != ctx.actor_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Employees may only view their own records",
        )
    return ctx.actor_id
