from collections.abc import Callable

from fastapi import Depends, HTTPException, status

from stockflow.core.tenancy import RequestContext, get_request_context


def require_roles(*allowed_roles: str) -> Callable[[RequestContext], RequestContext]:
    normalized_allowed = {role.strip().lower() for role in allowed_roles if role.strip()}
    if not normalized_allowed:
        raise ValueError("At least one allowed role is required")

    def dependency(context: RequestContext = Depends(get_request_context)) -> RequestContext:
        if context.role not in normalized_allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role for this action",
            )
        return context

    return dependency


PERMISSION_MATRIX: dict[str, set[str]] = {
    "owner": {"*"},
    "manager": {
        "products.view",
        "products.create",
        "products.edit",
        "inventory.view",
        "inventory.adjust",
        "inventory.reserve",
        "suppliers.view",
        "suppliers.create",
        "suppliers.edit",
        "purchase_orders.view",
        "purchase_orders.create",
        "purchase_orders.edit",
        "purchase_orders.delete",
        "purchase_orders.receive",
        "analytics.view",
    },
    "staff": {
        "products.view",
        "inventory.view",
        "inventory.reserve",
        "suppliers.view",
        "purchase_orders.view",
        "purchase_orders.receive",
        "analytics.view",
    },
}


def role_permissions(role: str) -> set[str]:
    normalized = (role or "").strip().lower()
    return set(PERMISSION_MATRIX.get(normalized, set()))


def has_permission(*, role: str, permission: str) -> bool:
    permissions = role_permissions(role)
    if "*" in permissions:
        return True
    return permission in permissions


def require_permission(permission: str) -> Callable[[RequestContext], RequestContext]:
    normalized_permission = (permission or "").strip().lower()
    if not normalized_permission:
        raise ValueError("Permission key is required")

    def dependency(context: RequestContext = Depends(get_request_context)) -> RequestContext:
        if not has_permission(role=context.role, permission=normalized_permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permission for this action",
            )
        return context

    return dependency
