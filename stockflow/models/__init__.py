from stockflow.models.tenant import Tenant
from stockflow.models.audit_log import AuditLog
from stockflow.models.product import Product, ProductVariant, VariantPriceOverride
from stockflow.models.supplier import Supplier, SupplierProductPrice
from stockflow.models.inventory import StockMovement
from stockflow.models.purchase_order import (
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderReceipt,
    PurchaseOrderReceiptLine,
)
