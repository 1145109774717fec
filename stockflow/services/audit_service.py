from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockflow.core.id_utils import generate_shortuuid
from stockflow.core.observability import get_request_id
from stockflow.models.audit_log import AuditLog


def log_audit_event(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    action: str,
    target_type: str,
    target_id: str | None = None,
    metadata_json: dict[str, Any] | None = None,
) -> AuditLog:
    # Added to the caller's transaction; committed or rolled back with the write it describes.
    request_id = get_request_id()
    event = AuditLog(
        id=generate_shortuuid(),
        tenant_id=tenant_id,
        actor_id=actor_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        request_id=None if request_id == "-" else request_id,
        metadata_json=metadata_json,
    )
    db.add(event)
    return event


def list_audit_events(
    db: Session,
    *,
    tenant_id: str,
    target_type: str | None = None,
    target_id: str | None = None,
) -> list[AuditLog]:
    stmt = select(AuditLog).where(AuditLog.tenant_id == tenant_id)
    if target_type:
        stmt = stmt.where(AuditLog.target_type == target_type)
    if target_id:
        stmt = stmt.where(AuditLog.target_id == target_id)
    return list(db.execute(stmt.order_by(AuditLog.created_at.asc(), AuditLog.id.asc())).scalars().all())
