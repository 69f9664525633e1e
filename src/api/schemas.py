"""Request and response bodies shared by the API routes."""

import datetime as dt
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from src.schemas import Product, TimeSeriesPoint, Transaction

ProductId = Union[int, str]


class HistoryPoint(BaseModel):
    """One day of sales history."""

    date: dt.date
    sales: float = Field(..., ge=0, description="Units sold on this day")
    is_holiday: bool = False
    has_promotion: bool = False

    def to_point(self) -> TimeSeriesPoint:
        return TimeSeriesPoint(
            date=self.date,
            sales=self.sales,
            is_holiday=self.is_holiday,
            has_promotion=self.has_promotion,
        )


class ProductBody(BaseModel):
    """Catalog entry."""

    product_id: ProductId
    name: str = ""
    category: Optional[str] = None
    price: float = Field(default=0.0, ge=0)
    tags: List[str] = Field(default_factory=list)
    on_promotion: bool = False

    def to_product(self) -> Product:
        return Product(
            product_id=self.product_id,
            name=self.name,
            category=self.category,
            price=self.price,
            tags=tuple(self.tags),
            on_promotion=self.on_promotion,
        )


class TransactionBody(BaseModel):
    """One purchase line."""

    customer_id: ProductId
    product_id: ProductId
    quantity: float = Field(default=1.0, gt=0)
    timestamp: Optional[dt.datetime] = None

    def to_transaction(self) -> Transaction:
        return Transaction(
            customer_id=self.customer_id,
            product_id=self.product_id,
            quantity=self.quantity,
            timestamp=self.timestamp,
        )


class ErrorResponse(BaseModel):
    """Body returned for every engine error."""

    error: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


# Error statuses every engine-backed route can return.
ERROR_RESPONSES: Dict[Union[int, str], Dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    422: {"model": ErrorResponse, "description": "Not enough history"},
    503: {"model": ErrorResponse, "description": "Model unavailable"},
    500: {"model": ErrorResponse, "description": "Engine error"},
    504: {"model": ErrorResponse, "description": "Operation timed out"},
}
