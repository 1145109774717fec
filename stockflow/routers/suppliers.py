from typing import Literal

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from stockflow.core.api_docs import error_responses
from stockflow.core.deps import get_db
from stockflow.core.permissions import require_permission
from stockflow.core.tenancy import RequestContext
from stockflow.models.product import Product
from stockflow.models.supplier import Supplier, SupplierProductPrice
from stockflow.schemas.common import PaginationMeta
from stockflow.schemas.supplier import (
    SupplierCreate,
    SupplierListOut,
    SupplierOut,
    SupplierPriceIn,
    SupplierProductListOut,
    SupplierProductOut,
    SupplierUpdate,
)
from stockflow.services import catalog_service

router = APIRouter(prefix="/suppliers", tags=["suppliers"])


def _supplier_out(supplier: Supplier) -> SupplierOut:
    return SupplierOut(
        id=supplier.id,
        supplier_code=supplier.supplier_code,
        name=supplier.name,
        contact_email=supplier.contact_email,
        contact_phone=supplier.contact_phone,
        address=supplier.address,
        status=supplier.status,
        notes=supplier.notes,
        created_at=supplier.created_at,
        updated_at=supplier.updated_at,
    )


def _supplier_product_out(product: Product, entry: SupplierProductPrice) -> SupplierProductOut:
    return SupplierProductOut(
        product_id=product.id,
        product_code=product.product_code,
        name=product.name,
        price=float(entry.price),
        updated_at=entry.updated_at,
    )


@router.post(
    "",
    response_model=SupplierOut,
    status_code=201,
    summary="Create supplier",
    responses=error_responses(400, 401, 403, 404, 409, 422, 500),
)
def create_supplier(
    payload: SupplierCreate,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("suppliers.create")),
):
    supplier = catalog_service.create_supplier(
        db,
        tenant_id=context.tenant_id,
        actor_id=context.actor_id,
        **payload.model_dump(),
    )
    return _supplier_out(supplier)


@router.get(
    "",
    response_model=SupplierListOut,
    summary="List suppliers",
    responses=error_responses(401, 403, 404, 422, 500),
)
def list_suppliers(
    status: Literal["active", "inactive"] | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("suppliers.view")),
):
    suppliers, total = catalog_service.list_suppliers(
        db,
        tenant_id=context.tenant_id,
        status=status,
        limit=limit,
        offset=offset,
    )
    return SupplierListOut(
        items=[_supplier_out(supplier) for supplier in suppliers],
        pagination=PaginationMeta.build(total=total, limit=limit, offset=offset, count=len(suppliers)),
    )


@router.get(
    "/{supplier_id}",
    response_model=SupplierOut,
    summary="Get supplier",
    responses=error_responses(401, 403, 404, 500),
)
def get_supplier(
    supplier_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("suppliers.view")),
):
    return _supplier_out(catalog_service.get_supplier(db, tenant_id=context.tenant_id, supplier_id=supplier_id))


@router.put(
    "/{supplier_id}",
    response_model=SupplierOut,
    summary="Edit supplier contact details or status",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def update_supplier(
    supplier_id: str,
    payload: SupplierUpdate,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("suppliers.edit")),
):
    supplier = catalog_service.update_supplier(
        db,
        tenant_id=context.tenant_id,
        actor_id=context.actor_id,
        supplier_id=supplier_id,
        **payload.model_dump(exclude_unset=True),
    )
    return _supplier_out(supplier)


@router.delete(
    "/{supplier_id}",
    status_code=204,
    summary="Delete a supplier that has no purchase orders",
    responses=error_responses(401, 403, 404, 409, 500),
)
def delete_supplier(
    supplier_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("suppliers.delete")),
):
    catalog_service.delete_supplier(db, tenant_id=context.tenant_id, actor_id=context.actor_id, supplier_id=supplier_id)
    return Response(status_code=204)


@router.post(
    "/{supplier_id}/pricing",
    response_model=SupplierProductOut,
    summary="Set the price a supplier quotes for a product",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def set_supplier_price(
    supplier_id: str,
    payload: SupplierPriceIn,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("suppliers.edit")),
):
    entry = catalog_service.set_supplier_price(
        db,
        tenant_id=context.tenant_id,
        actor_id=context.actor_id,
        supplier_id=supplier_id,
        product_id=payload.product_id,
        price=payload.price,
    )
    product = catalog_service.get_product(db, tenant_id=context.tenant_id, product_id=entry.product_id)
    return _supplier_product_out(product, entry)


@router.delete(
    "/{supplier_id}/pricing/{product_id}",
    status_code=204,
    summary="Remove a supplier's price for a product",
    responses=error_responses(401, 403, 404, 500),
)
def remove_supplier_price(
    supplier_id: str,
    product_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("suppliers.edit")),
):
    catalog_service.remove_supplier_price(
        db,
        tenant_id=context.tenant_id,
        actor_id=context.actor_id,
        supplier_id=supplier_id,
        product_id=product_id,
    )
    return Response(status_code=204)


@router.get(
    "/{supplier_id}/products",
    response_model=SupplierProductListOut,
    summary="List products a supplier has quoted prices for",
    responses=error_responses(401, 403, 404, 500),
)
def list_supplier_products(
    supplier_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("suppliers.view")),
):
    rows = catalog_service.list_supplier_products(db, tenant_id=context.tenant_id, supplier_id=supplier_id)
    return SupplierProductListOut(
        supplier_id=supplier_id,
        items=[_supplier_product_out(product, entry) for product, entry in rows],
    )
