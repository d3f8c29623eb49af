"""
Request context and tenant-checked loading.

Every service call receives a RequestContext. Rows are always filtered by
ctx.tenant_id; loading a row by id that belongs to another tenant is a hard
error rather than a silent "not found".
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Type, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from commissiondesk.services.errors import NotFound, TenantMismatch

T = TypeVar("T")


class Role(str, Enum):
    """Caller roles carried in the access token."""
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


@dataclass(frozen=True)
class RequestContext:
    """Who is calling, and on behalf of which tenant."""

    tenant_id: str
    actor_id: str
    role: Role = Role.EMPLOYEE
    ip_address: Optional[str] = None

    @property
    def is_manager(self) -> bool:
        """Managers and admins may run and settle calculations."""
        return self.role in (Role.ADMIN, Role.MANAGER)


async def get_scoped(
    db: AsyncSession,
    model: Type[T],
    obj_id: int,
    ctx: RequestContext,
    label: Optional[str] = None,
) -> T:
    """
    Load a tenant-owned row by primary key.

    Raises:
        NotFound: no row with that id
        TenantMismatch: the row belongs to another tenant
    """
    name = label or model.__name__
    obj = await db.get(model, obj_id)
    if obj is None:
        raise NotFound(f"{name} {obj_id} not found")
    if obj.tenant_id != ctx.tenant_id:
        raise TenantMismatch(f"{name} {obj_id} belongs to another tenant")
    return obj
