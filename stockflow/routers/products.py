from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from stockflow.core.api_docs import error_responses
from stockflow.core.deps import get_db, get_event_notifier
from stockflow.core.permissions import require_permission
from stockflow.core.tenancy import RequestContext
from stockflow.models.product import Product, ProductVariant
from stockflow.schemas.common import PaginationMeta
from stockflow.schemas.product import (
    PriceOverrideIn,
    PriceOverrideOut,
    ProductCreate,
    ProductDetailOut,
    ProductListOut,
    ProductOut,
    ProductUpdate,
    VariantCreate,
    VariantListOut,
    VariantOut,
)
from stockflow.services import catalog_service
from stockflow.services.event_notifier import EventNotifier

router = APIRouter(prefix="/products", tags=["products"])
MAX_PRODUCT_PAGE_SIZE = 500


def _product_out(product: Product) -> ProductOut:
    return ProductOut(
        id=product.id,
        name=product.name,
        product_code=product.product_code,
        base_price=float(product.base_price or 0),
        description=product.description,
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


def _variant_out(variant: ProductVariant) -> VariantOut:
    return VariantOut(
        id=variant.id,
        product_id=variant.product_id,
        sku=variant.sku,
        size=variant.size,
        color=variant.color,
        stock=variant.stock,
        reserved_stock=variant.reserved_stock,
        available_stock=variant.available_stock,
        created_at=variant.created_at,
    )


@router.post(
    "",
    response_model=ProductOut,
    status_code=201,
    summary="Create product",
    responses=error_responses(400, 401, 403, 404, 409, 422, 500),
)
def create_product(
    payload: ProductCreate,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("products.create")),
):
    product = catalog_service.create_product(
        db,
        tenant_id=context.tenant_id,
        actor_id=context.actor_id,
        name=payload.name,
        product_code=payload.product_code,
        base_price=payload.base_price,
        description=payload.description,
    )
    return _product_out(product)


@router.get(
    "",
    response_model=ProductListOut,
    summary="List products",
    responses=error_responses(401, 403, 404, 422, 500),
)
def list_products(
    q: str | None = Query(default=None, description="Match on name or product code"),
    limit: int = Query(default=50, ge=1, le=MAX_PRODUCT_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("products.view")),
):
    products, total = catalog_service.list_products(
        db,
        tenant_id=context.tenant_id,
        q=q,
        limit=limit,
        offset=offset,
    )
    return ProductListOut(
        items=[_product_out(product) for product in products],
        pagination=PaginationMeta.build(total=total, limit=limit, offset=offset, count=len(products)),
    )


def _detail_out(product: Product, variants: list[ProductVariant]) -> ProductDetailOut:
    return ProductDetailOut(
        **_product_out(product).model_dump(),
        variants=[_variant_out(variant) for variant in variants],
    )


@router.get(
    "/{product_id}",
    response_model=ProductDetailOut,
    summary="Get product with its variants",
    responses=error_responses(401, 403, 404, 500),
)
def get_product(
    product_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("products.view")),
):
    product = catalog_service.get_product(db, tenant_id=context.tenant_id, product_id=product_id)
    variants = catalog_service.list_variants(db, tenant_id=context.tenant_id, product_id=product.id)
    return _detail_out(product, variants)


@router.put(
    "/{product_id}",
    response_model=ProductDetailOut,
    summary="Edit product name, description or base price",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def update_product(
    product_id: str,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("products.edit")),
):
    product = catalog_service.update_product(
        db,
        tenant_id=context.tenant_id,
        actor_id=context.actor_id,
        product_id=product_id,
        **payload.model_dump(exclude_unset=True),
    )
    variants = catalog_service.list_variants(db, tenant_id=context.tenant_id, product_id=product.id)
    return _detail_out(product, variants)


@router.delete(
    "/{product_id}",
    status_code=204,
    summary="Delete a product that has no stock history",
    responses=error_responses(401, 403, 404, 409, 500),
)
def delete_product(
    product_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("products.delete")),
):
    catalog_service.delete_product(db, tenant_id=context.tenant_id, actor_id=context.actor_id, product_id=product_id)
    return Response(status_code=204)


@router.post(
    "/{product_id}/variants",
    response_model=VariantOut,
    status_code=201,
    summary="Create product variant with optional opening stock",
    responses=error_responses(400, 401, 403, 404, 409, 422, 500),
)
def create_variant(
    product_id: str,
    payload: VariantCreate,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("products.create")),
    notifier: EventNotifier = Depends(get_event_notifier),
):
    variant = catalog_service.create_variant(
        db,
        tenant_id=context.tenant_id,
        actor_id=context.actor_id,
        product_id=product_id,
        sku=payload.sku,
        size=payload.size,
        color=payload.color,
        opening_stock=payload.opening_stock,
        notifier=notifier,
    )
    return _variant_out(variant)


@router.get(
    "/{product_id}/variants",
    response_model=VariantListOut,
    summary="List product variants",
    responses=error_responses(401, 403, 404, 500),
)
def list_variants(
    product_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("products.view")),
):
    variants = catalog_service.list_variants(db, tenant_id=context.tenant_id, product_id=product_id)
    return VariantListOut(items=[_variant_out(variant) for variant in variants])


@router.put(
    "/{product_id}/pricing/{sku}",
    response_model=PriceOverrideOut,
    summary="Set a per-SKU price override",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def set_price_override(
    product_id: str,
    sku: str,
    payload: PriceOverrideIn,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("products.edit")),
):
    override = catalog_service.set_price_override(
        db,
        tenant_id=context.tenant_id,
        actor_id=context.actor_id,
        product_id=product_id,
        sku=sku,
        price=payload.price,
    )
    return PriceOverrideOut(product_id=override.product_id, sku=override.sku, price=float(override.price))
