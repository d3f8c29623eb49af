"""
Audit logging utilities.

Every mutating commission operation is logged for review.
"""

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.models.audit import AuditAction, AuditLog
from commissiondesk.services.tenancy import RequestContext


async def log_action(
    db: AsyncSession,
    ctx: RequestContext,
    action: AuditAction,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    action_metadata: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """
    Log an auditable action.

    Args:
        db: Database session
        ctx: Caller context; supplies tenant, actor and client IP
        action: Type of action being performed
        target_type: Type of entity affected (e.g., "calculation", "dispute")
        target_id: ID of the affected entity
        action_metadata: Additional context about the action

    Returns:
        Created AuditLog entry
    """
    log_entry = AuditLog(
        tenant_id=ctx.tenant_id,
        actor_id=ctx.actor_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        action_metadata=action_metadata,
        ip_address=ctx.ip_address,
    )
    db.add(log_entry)
    # Note: commit should happen in the calling context
    return log_entry


def get_client_ip(request) -> Optional[str]:
    """
    Extract client IP from request.

    Handles X-Forwarded-For header for reverse proxy setups.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # First IP in the list is the client
        return forwarded_for.split(",")[0].strip()

    if hasattr(request, "client") and request.client:
        return request.client.host

    return None
