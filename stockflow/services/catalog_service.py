from decimal import Decimal

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from stockflow.core.errors import DuplicateKeyError, NotFoundError, RecordInUseError, ValidationError
from stockflow.core.id_utils import generate_shortuuid, normalize_code
from stockflow.core.money import to_money
from stockflow.db.session import atomic
from stockflow.models.inventory import StockMovement
from stockflow.models.product import Product, ProductVariant, VariantPriceOverride
from stockflow.models.purchase_order import PurchaseOrder, PurchaseOrderLine
from stockflow.models.supplier import Supplier, SupplierProductPrice
from stockflow.services.audit_service import log_audit_event
from stockflow.services.event_notifier import EventNotifier, publish_after_commit
from stockflow.services.field_updates import UNSET, apply_changes
from stockflow.services.stock_service import apply_movement
from stockflow.services.tenant_service import ensure_active_tenant

SUPPLIER_STATUSES = ("active", "inactive")


def _required_code(value: str, *, field: str) -> str:
    cleaned = normalize_code(value)
    if not cleaned:
        raise ValidationError(f"{field} is required", field=field)
    return cleaned


def _non_negative_money(value: Decimal | int | float | str, *, field: str) -> Decimal:
    amount = to_money(value)
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative", field=field, value=str(amount))
    return amount


def get_product(db: Session, *, tenant_id: str, product_id: str) -> Product:
    product = db.execute(
        select(Product).where(Product.tenant_id == tenant_id, Product.id == product_id)
    ).scalar_one_or_none()
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


def create_product(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    name: str,
    product_code: str,
    base_price: Decimal | int | float | str = 0,
    description: str | None = None,
) -> Product:
    code = _required_code(product_code, field="product_code")
    price = _non_negative_money(base_price, field="base_price")
    if not name or not name.strip():
        raise ValidationError("name is required", field="name")

    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        existing = db.execute(
            select(Product.id).where(Product.tenant_id == tenant_id, Product.product_code == code)
        ).scalar_one_or_none()
        if existing:
            raise DuplicateKeyError(f"Product code already exists: {code}", field="product_code", value=code)

        product = Product(
            id=generate_shortuuid(),
            tenant_id=tenant_id,
            name=name.strip(),
            description=description,
            product_code=code,
            base_price=price,
        )
        db.add(product)
        log_audit_event(
            db,
            tenant_id=tenant_id,
            actor_id=actor_id,
            action="product.create",
            target_type="product",
            target_id=product.id,
            metadata_json={"name": product.name, "product_code": code, "base_price": str(price)},
        )
    db.refresh(product)
    return product


def list_products(
    db: Session,
    *,
    tenant_id: str,
    q: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Product], int]:
    stmt = select(Product).where(Product.tenant_id == tenant_id)
    if q and q.strip():
        pattern = f"%{q.strip().lower()}%"
        stmt = stmt.where(
            or_(func.lower(Product.name).like(pattern), func.lower(Product.product_code).like(pattern))
        )
    total = int(db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one())
    rows = db.execute(stmt.order_by(Product.created_at.desc(), Product.id.asc()).offset(offset).limit(limit))
    return list(rows.scalars().all()), total


def _required_name(value: str | None) -> str:
    if value is None or not value.strip():
        raise ValidationError("name is required", field="name")
    return value.strip()


def _in_use(db: Session, stmt) -> bool:
    return db.execute(stmt.limit(1)).first() is not None


def update_product(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    product_id: str,
    name: str | None = UNSET,
    description: str | None = UNSET,
    base_price: Decimal | int | float | str | None = UNSET,
) -> Product:
    """Edit the catalog fields of a product. Only the keywords passed are touched."""
    if name is not UNSET:
        name = _required_name(name)
    if base_price is not UNSET:
        if base_price is None:
            raise ValidationError("base_price cannot be cleared", field="base_price")
        base_price = _non_negative_money(base_price, field="base_price")

    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        product = get_product(db, tenant_id=tenant_id, product_id=product_id)
        changes = apply_changes(product, name=name, description=description, base_price=base_price)
        if changes:
            log_audit_event(
                db,
                tenant_id=tenant_id,
                actor_id=actor_id,
                action="product.update",
                target_type="product",
                target_id=product.id,
                metadata_json={"changes": changes},
            )
    db.refresh(product)
    return product


def delete_product(db: Session, *, tenant_id: str, actor_id: str, product_id: str) -> None:
    """Remove a product with its variants and prices. Refused once stock has moved or a PO names it."""
    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        product = get_product(db, tenant_id=tenant_id, product_id=product_id)
        if _in_use(
            db,
            select(StockMovement.id).where(
                StockMovement.tenant_id == tenant_id,
                StockMovement.product_id == product.id,
            ),
        ):
            raise RecordInUseError(
                "Cannot delete product with stock movement history",
                product_id=product.id,
                referenced_by="stock_movements",
            )
        if _in_use(
            db,
            select(PurchaseOrderLine.id).where(
                PurchaseOrderLine.tenant_id == tenant_id,
                PurchaseOrderLine.product_id == product.id,
            ),
        ):
            raise RecordInUseError(
                "Cannot delete product referenced by a purchase order",
                product_id=product.id,
                referenced_by="purchase_order_lines",
            )

        for model in (VariantPriceOverride, SupplierProductPrice, ProductVariant):
            db.execute(
                delete(model)
                .where(model.tenant_id == tenant_id, model.product_id == product.id)
                .execution_options(synchronize_session=False)
            )
        db.delete(product)
        log_audit_event(
            db,
            tenant_id=tenant_id,
            actor_id=actor_id,
            action="product.delete",
            target_type="product",
            target_id=product.id,
            metadata_json={"product_code": product.product_code, "name": product.name},
        )


def create_variant(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    product_id: str,
    sku: str,
    size: str,
    color: str,
    notifier: EventNotifier,
    opening_stock: int = 0,
) -> ProductVariant:
    """Create a variant; any opening stock is booked as an ``adjustment`` movement."""
    normalized_sku = _required_code(sku, field="sku")
    if opening_stock < 0:
        raise ValidationError("opening_stock cannot be negative", field="opening_stock", value=opening_stock)

    events = []
    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        product = get_product(db, tenant_id=tenant_id, product_id=product_id)
        sku_exists = db.execute(
            select(ProductVariant.id).where(
                ProductVariant.tenant_id == tenant_id,
                ProductVariant.sku == normalized_sku,
            )
        ).scalar_one_or_none()
        if sku_exists:
            raise DuplicateKeyError(f"SKU already exists: {normalized_sku}", field="sku", value=normalized_sku)

        variant = ProductVariant(
            id=generate_shortuuid(),
            tenant_id=tenant_id,
            product_id=product.id,
            sku=normalized_sku,
            size=size.strip(),
            color=color.strip(),
            stock=0,
            reserved_stock=0,
        )
        db.add(variant)
        db.flush()

        if opening_stock:
            _, event = apply_movement(
                db,
                tenant_id=tenant_id,
                actor_id=actor_id,
                variant_id=variant.id,
                quantity=opening_stock,
                movement_type="adjustment",
                notes="Opening stock",
            )
            events.append(event)

        log_audit_event(
            db,
            tenant_id=tenant_id,
            actor_id=actor_id,
            action="product.variant.create",
            target_type="product_variant",
            target_id=variant.id,
            metadata_json={
                "product_id": product.id,
                "sku": normalized_sku,
                "size": variant.size,
                "color": variant.color,
                "opening_stock": opening_stock,
            },
        )

    publish_after_commit(notifier, events)
    db.refresh(variant)
    return variant


def list_variants(db: Session, *, tenant_id: str, product_id: str) -> list[ProductVariant]:
    get_product(db, tenant_id=tenant_id, product_id=product_id)
    stmt = (
        select(ProductVariant)
        .where(ProductVariant.tenant_id == tenant_id, ProductVariant.product_id == product_id)
        .order_by(ProductVariant.sku.asc())
        .execution_options(populate_existing=True)
    )
    return list(db.execute(stmt).scalars().all())


def set_price_override(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    product_id: str,
    sku: str,
    price: Decimal | int | float | str,
) -> VariantPriceOverride:
    normalized_sku = _required_code(sku, field="sku")
    amount = _non_negative_money(price, field="price")

    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        product = get_product(db, tenant_id=tenant_id, product_id=product_id)
        variant_exists = db.execute(
            select(ProductVariant.id).where(
                ProductVariant.tenant_id == tenant_id,
                ProductVariant.product_id == product.id,
                ProductVariant.sku == normalized_sku,
            )
        ).scalar_one_or_none()
        if not variant_exists:
            raise NotFoundError("Variant", normalized_sku, product_id=product.id)

        override = db.execute(
            select(VariantPriceOverride).where(
                VariantPriceOverride.tenant_id == tenant_id,
                VariantPriceOverride.sku == normalized_sku,
            )
        ).scalar_one_or_none()
        previous = None if override is None else str(to_money(override.price))
        if override is None:
            override = VariantPriceOverride(
                id=generate_shortuuid(),
                tenant_id=tenant_id,
                product_id=product.id,
                sku=normalized_sku,
                price=amount,
            )
            db.add(override)
        else:
            override.price = amount

        log_audit_event(
            db,
            tenant_id=tenant_id,
            actor_id=actor_id,
            action="product.price_override.set",
            target_type="product",
            target_id=product.id,
            metadata_json={"sku": normalized_sku, "price": str(amount), "previous_price": previous},
        )
    db.refresh(override)
    return override


def get_supplier(db: Session, *, tenant_id: str, supplier_id: str) -> Supplier:
    supplier = db.execute(
        select(Supplier).where(Supplier.tenant_id == tenant_id, Supplier.id == supplier_id)
    ).scalar_one_or_none()
    if supplier is None:
        raise NotFoundError("Supplier", supplier_id)
    return supplier


def create_supplier(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    supplier_code: str,
    name: str,
    contact_email: str | None = None,
    contact_phone: str | None = None,
    address: str | None = None,
    status: str = "active",
    notes: str | None = None,
) -> Supplier:
    code = _required_code(supplier_code, field="supplier_code")
    _supplier_status(status)
    _required_name(name)

    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        existing = db.execute(
            select(Supplier.id).where(Supplier.tenant_id == tenant_id, Supplier.supplier_code == code)
        ).scalar_one_or_none()
        if existing:
            raise DuplicateKeyError(f"Supplier code already exists: {code}", field="supplier_code", value=code)

        supplier = Supplier(
            id=generate_shortuuid(),
            tenant_id=tenant_id,
            supplier_code=code,
            name=name.strip(),
            contact_email=contact_email,
            contact_phone=contact_phone,
            address=address,
            status=status,
            notes=notes,
        )
        db.add(supplier)
        log_audit_event(
            db,
            tenant_id=tenant_id,
            actor_id=actor_id,
            action="supplier.create",
            target_type="supplier",
            target_id=supplier.id,
            metadata_json={"supplier_code": code, "name": supplier.name, "status": status},
        )
    db.refresh(supplier)
    return supplier


def list_suppliers(
    db: Session,
    *,
    tenant_id: str,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Supplier], int]:
    stmt = select(Supplier).where(Supplier.tenant_id == tenant_id)
    if status:
        stmt = stmt.where(Supplier.status == status)
    total = int(db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one())
    rows = db.execute(stmt.order_by(Supplier.name.asc(), Supplier.id.asc()).offset(offset).limit(limit))
    return list(rows.scalars().all()), total


def _supplier_status(status: str) -> str:
    if status not in SUPPLIER_STATUSES:
        raise ValidationError(f"Unknown supplier status: {status}", field="status", allowed=list(SUPPLIER_STATUSES))
    return status


def update_supplier(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    supplier_id: str,
    name: str | None = UNSET,
    contact_email: str | None = UNSET,
    contact_phone: str | None = UNSET,
    address: str | None = UNSET,
    status: str | None = UNSET,
    notes: str | None = UNSET,
) -> Supplier:
    """Edit a supplier. Deactivating one blocks new purchase orders; open ones are left alone."""
    if name is not UNSET:
        name = _required_name(name)
    if status is not UNSET:
        status = _supplier_status(status)
    if isinstance(contact_email, str):
        contact_email = contact_email.strip().lower() or None

    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        supplier = get_supplier(db, tenant_id=tenant_id, supplier_id=supplier_id)
        changes = apply_changes(
            supplier,
            name=name,
            contact_email=contact_email,
            contact_phone=contact_phone,
            address=address,
            status=status,
            notes=notes,
        )
        if changes:
            log_audit_event(
                db,
                tenant_id=tenant_id,
                actor_id=actor_id,
                action="supplier.update",
                target_type="supplier",
                target_id=supplier.id,
                metadata_json={"changes": changes},
            )
    db.refresh(supplier)
    return supplier


def delete_supplier(db: Session, *, tenant_id: str, actor_id: str, supplier_id: str) -> None:
    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        supplier = get_supplier(db, tenant_id=tenant_id, supplier_id=supplier_id)
        if _in_use(
            db,
            select(PurchaseOrder.id).where(
                PurchaseOrder.tenant_id == tenant_id,
                PurchaseOrder.supplier_id == supplier.id,
            ),
        ):
            raise RecordInUseError(
                "Cannot delete a supplier with purchase orders; deactivate it instead",
                supplier_id=supplier.id,
                referenced_by="purchase_orders",
            )

        db.execute(
            delete(SupplierProductPrice)
            .where(SupplierProductPrice.tenant_id == tenant_id, SupplierProductPrice.supplier_id == supplier.id)
            .execution_options(synchronize_session=False)
        )
        db.delete(supplier)
        log_audit_event(
            db,
            tenant_id=tenant_id,
            actor_id=actor_id,
            action="supplier.delete",
            target_type="supplier",
            target_id=supplier.id,
            metadata_json={"supplier_code": supplier.supplier_code, "name": supplier.name},
        )


def _supplier_price(db: Session, *, tenant_id: str, supplier_id: str, product_id: str) -> SupplierProductPrice | None:
    return db.execute(
        select(SupplierProductPrice).where(
            SupplierProductPrice.tenant_id == tenant_id,
            SupplierProductPrice.supplier_id == supplier_id,
            SupplierProductPrice.product_id == product_id,
        )
    ).scalar_one_or_none()


def set_supplier_price(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    supplier_id: str,
    product_id: str,
    price: Decimal | int | float | str,
) -> SupplierProductPrice:
    """Record or replace the price a supplier quotes for a product."""
    amount = _non_negative_money(price, field="price")

    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        supplier = get_supplier(db, tenant_id=tenant_id, supplier_id=supplier_id)
        product = get_product(db, tenant_id=tenant_id, product_id=product_id)
        entry = _supplier_price(db, tenant_id=tenant_id, supplier_id=supplier.id, product_id=product.id)
        previous = None if entry is None else str(to_money(entry.price))
        if entry is None:
            entry = SupplierProductPrice(
                id=generate_shortuuid(),
                tenant_id=tenant_id,
                supplier_id=supplier.id,
                product_id=product.id,
                price=amount,
            )
            db.add(entry)
        else:
            entry.price = amount

        log_audit_event(
            db,
            tenant_id=tenant_id,
            actor_id=actor_id,
            action="supplier.pricing.set",
            target_type="supplier",
            target_id=supplier.id,
            metadata_json={"product_id": product.id, "price": str(amount), "previous_price": previous},
        )
    db.refresh(entry)
    return entry


def remove_supplier_price(db: Session, *, tenant_id: str, actor_id: str, supplier_id: str, product_id: str) -> None:
    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        supplier = get_supplier(db, tenant_id=tenant_id, supplier_id=supplier_id)
        entry = _supplier_price(db, tenant_id=tenant_id, supplier_id=supplier.id, product_id=product_id)
        if entry is None:
            raise NotFoundError("Supplier price", product_id, supplier_id=supplier.id)
        db.delete(entry)
        log_audit_event(
            db,
            tenant_id=tenant_id,
            actor_id=actor_id,
            action="supplier.pricing.remove",
            target_type="supplier",
            target_id=supplier.id,
            metadata_json={"product_id": product_id, "price": str(to_money(entry.price))},
        )


def list_supplier_products(
    db: Session, *, tenant_id: str, supplier_id: str
) -> list[tuple[Product, SupplierProductPrice]]:
    supplier = get_supplier(db, tenant_id=tenant_id, supplier_id=supplier_id)
    stmt = (
        select(Product, SupplierProductPrice)
        .join(SupplierProductPrice, SupplierProductPrice.product_id == Product.id)
        .where(
            SupplierProductPrice.tenant_id == tenant_id,
            SupplierProductPrice.supplier_id == supplier.id,
            Product.tenant_id == tenant_id,
        )
        .order_by(Product.name.asc(), Product.id.asc())
    )
    return [(product, entry) for product, entry in db.execute(stmt).all()]
