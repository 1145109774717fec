from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from stockflow.core.deps import get_db
from stockflow.core.errors import NotFoundError
from stockflow.models.tenant import Tenant
from stockflow.services.tenant_service import ensure_active_tenant

KNOWN_ROLES = ("owner", "manager", "staff")


@dataclass(frozen=True)
class RequestContext:
    tenant: Tenant
    actor_id: str
    role: str

    @property
    def tenant_id(self) -> str:
        return self.tenant.id


def get_request_context(
    x_tenant_id: str | None = Header(default=None),
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> RequestContext:
    # Identity is resolved upstream; the gateway forwards the caller as headers.
    tenant_id = (x_tenant_id or "").strip()
    actor_id = (x_actor_id or "").strip()
    if not tenant_id or not actor_id:
        raise HTTPException(status_code=401, detail="X-Tenant-ID and X-Actor-ID headers are required")

    role = (x_actor_role or "staff").strip().lower()
    if role not in KNOWN_ROLES:
        raise HTTPException(status_code=403, detail="Unknown actor role")

    try:
        tenant = ensure_active_tenant(db, tenant_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Tenant not found") from exc
    return RequestContext(tenant=tenant, actor_id=actor_id, role=role)
