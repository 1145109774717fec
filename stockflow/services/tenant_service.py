import re

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockflow.core.errors import NotFoundError, ValidationError
from stockflow.core.id_utils import generate_shortuuid
from stockflow.db.session import atomic
from stockflow.models.tenant import Tenant

TENANT_STATUSES = ("active", "suspended")

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    return _SLUG_PATTERN.sub("-", value.strip().lower()).strip("-")


def create_tenant(db: Session, *, name: str, slug: str | None = None) -> Tenant:
    cleaned_name = name.strip()
    if not cleaned_name:
        raise ValidationError("Tenant name is required", field="name")
    cleaned_slug = slugify(slug or cleaned_name)
    if not cleaned_slug:
        raise ValidationError("Tenant slug must contain letters or digits", field="slug")

    tenant = Tenant(id=generate_shortuuid(), name=cleaned_name, slug=cleaned_slug, status="active")
    with atomic(db):
        db.add(tenant)
    db.refresh(tenant)
    return tenant


def set_tenant_status(db: Session, *, tenant_id: str, status: str) -> Tenant:
    if status not in TENANT_STATUSES:
        raise ValidationError(f"Unknown tenant status: {status}", field="status", allowed=list(TENANT_STATUSES))
    with atomic(db):
        tenant = db.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant", tenant_id)
        tenant.status = status
    db.refresh(tenant)
    return tenant


def ensure_active_tenant(db: Session, tenant_id: str) -> Tenant:
    tenant = db.execute(select(Tenant).where(Tenant.id == tenant_id)).scalar_one_or_none()
    if tenant is None or tenant.status != "active":
        raise NotFoundError("Tenant", tenant_id)
    return tenant
