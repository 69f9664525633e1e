"""Domain types shared by the forecasting, recommendation and demand modules.

All entities are transient values computed per request. Records coming from
the order and inventory subsystems may use either snake_case or camelCase
keys, so the ``from_dict`` constructors accept both.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from src.exceptions import InvalidInputError

DateLike = Union[date, datetime, str, pd.Timestamp]

_MISSING = object()


def lookup(record: Any, *names: str, default: Any = _MISSING) -> Any:
    """Return the first present field among ``names`` from a mapping or object.

    Raises:
        KeyError: If none of the names is present and no default is given.
    """
    for name in names:
        if isinstance(record, dict):
            if name in record and record[name] is not None:
                return record[name]
        else:
            value = getattr(record, name, None)
            if value is not None:
                return value
    if default is _MISSING:
        raise KeyError(names[0])
    return default


def to_date(value: DateLike) -> date:
    """Coerce strings, datetimes and pandas timestamps to a calendar date."""
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return pd.Timestamp(value).date()
    except (ValueError, TypeError) as e:
        raise InvalidInputError(f"Invalid date: {value!r}") from e


@dataclass(frozen=True)
class TimeSeriesPoint:
    """One day of sales history."""

    date: date
    sales: float
    is_holiday: bool = False
    has_promotion: bool = False

    def __post_init__(self) -> None:
        try:
            sales = float(self.sales)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Sales must be numeric, got {self.sales!r}") from e
        if not np.isfinite(sales) or sales < 0:
            raise InvalidInputError(
                f"Sales must be a finite non-negative number, got {self.sales!r}",
                details={"date": str(self.date)},
            )
        object.__setattr__(self, "sales", sales)
        object.__setattr__(self, "date", to_date(self.date))

    @property
    def day_of_week(self) -> int:
        return self.date.weekday()

    @property
    def month(self) -> int:
        return self.date.month

    @classmethod
    def from_dict(cls, record: Any) -> "TimeSeriesPoint":
        if isinstance(record, cls):
            return record
        try:
            return cls(
                date=to_date(lookup(record, "date")),
                sales=lookup(record, "sales", "quantity"),
                is_holiday=bool(lookup(record, "is_holiday", "isHoliday", default=False)),
                has_promotion=bool(
                    lookup(record, "has_promotion", "hasPromotion", default=False)
                ),
            )
        except KeyError as e:
            raise InvalidInputError(
                f"History record missing required field: {e.args[0]}"
            ) from e


def to_history(records: Sequence[Any]) -> List[TimeSeriesPoint]:
    """Parse records into points sorted by date."""
    points = [TimeSeriesPoint.from_dict(r) for r in records]
    return sorted(points, key=lambda p: p.date)


@dataclass(frozen=True)
class ForecastResult:
    """Forecast for a single future day."""

    date: date
    predicted_sales: int
    confidence: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "predicted_sales": self.predicted_sales,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class Product:
    """Catalog entry. Identity is ``product_id``."""

    product_id: Any
    name: str = ""
    category: Optional[str] = None
    price: float = 0.0
    tags: Tuple[str, ...] = ()
    on_promotion: bool = False

    @classmethod
    def from_dict(cls, record: Any) -> "Product":
        if isinstance(record, cls):
            return record
        try:
            product_id = lookup(record, "product_id", "productId", "id", "_id")
        except KeyError as e:
            raise InvalidInputError("Product record missing an identifier") from e
        tags = lookup(record, "tags", default=())
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(",") if t.strip()]
        try:
            price = float(lookup(record, "price", default=0.0))
        except (TypeError, ValueError) as e:
            raise InvalidInputError(
                f"Invalid price for product {product_id!r}"
            ) from e
        return cls(
            product_id=product_id,
            name=str(lookup(record, "name", default="")),
            category=lookup(record, "category", default=None),
            price=price,
            tags=tuple(str(t) for t in tags),
            on_promotion=bool(
                lookup(record, "on_promotion", "onPromotion", "hasPromotion", default=False)
            ),
        )


@dataclass(frozen=True)
class Transaction:
    """One purchase line from the order subsystem."""

    customer_id: Any
    product_id: Any
    quantity: float = 1.0
    timestamp: Optional[datetime] = None


def id_sort_key(product_id: Any) -> Tuple[int, Any]:
    """Ascending order for identifiers that may mix numbers and strings."""
    if isinstance(product_id, (int, float, np.integer, np.floating)) and not isinstance(
        product_id, bool
    ):
        return (0, product_id)
    return (1, str(product_id))


@dataclass(frozen=True)
class RecommendationCandidate:
    """A product with its score from one of the recommenders."""

    product: Product
    score: float

    @property
    def product_id(self) -> Any:
        return self.product.product_id

    def to_dict(self) -> Dict[str, Any]:
        return {"product_id": self.product_id, "score": self.score}


def rank_candidates(
    candidates: Sequence[RecommendationCandidate],
) -> List[RecommendationCandidate]:
    """Sort by score descending, ties broken by product id ascending."""
    return sorted(candidates, key=lambda c: (-c.score, id_sort_key(c.product_id)))


@dataclass(frozen=True)
class DemandFeatures:
    """Fixed-length demand feature vector with its feature names."""

    values: np.ndarray
    names: Tuple[str, ...]
    warnings: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        values = np.asarray(self.values, dtype=float)
        if values.ndim != 1 or len(values) != len(self.names):
            raise InvalidInputError(
                f"Feature vector of length {values.size} does not match "
                f"{len(self.names)} feature names"
            )
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    def as_dict(self) -> Dict[str, float]:
        return {name: float(v) for name, v in zip(self.names, self.values)}


@dataclass(frozen=True)
class DemandPrediction:
    """Demand estimate with its confidence and factor breakdown."""

    predicted_demand: int
    confidence: int
    factors: List[Tuple[str, float]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predicted_demand": self.predicted_demand,
            "confidence": self.confidence,
            "factors": [{"feature": n, "contribution": c} for n, c in self.factors],
        }
