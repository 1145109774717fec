import datetime as dt

from pydantic import BaseModel, ConfigDict, Field


class InventoryValueOut(BaseModel):
    total_value: float
    total_units: int
    variant_count: int


class LowStockItemOut(BaseModel):
    variant_id: str
    variant_sku: str
    product_id: str
    product_name: str
    product_code: str
    size: str
    color: str
    current_stock: int
    reserved_stock: int
    available_stock: int
    pending_quantity: int
    total_available: int
    price: float
    is_low_stock: bool


class LowStockOut(BaseModel):
    threshold: int
    items: list[LowStockItemOut]


class TopSellerOut(BaseModel):
    product_id: str
    product_name: str
    product_code: str
    base_price: float
    total_quantity_sold: int


class TopSellersOut(BaseModel):
    days: int
    items: list[TopSellerOut]


class MovementSeriesPointOut(BaseModel):
    date: dt.date
    purchase: int
    sale: int
    return_: int = Field(alias="return")
    adjustment: int

    model_config = ConfigDict(populate_by_name=True)


class MovementSeriesOut(BaseModel):
    days: int
    items: list[MovementSeriesPointOut]


class DashboardOut(BaseModel):
    # Null unless the caller may read the valuation (owner or manager).
    inventory_value: InventoryValueOut | None = None
    low_stock_items: list[LowStockItemOut]
    top_sellers: list[TopSellerOut]
    movement_series: list[MovementSeriesPointOut]
