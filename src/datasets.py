"""CSV loaders for sales history, product catalogs and transactions.

Used by the command-line scripts; the engine itself only ever sees the
parsed records.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List

import pandas as pd

from src.schemas import Product, TimeSeriesPoint, to_history

# Configure module logger
logger = logging.getLogger(__name__)

HISTORY_COLUMNS = ("date", "sales")
CATALOG_COLUMNS = ("product_id",)
TRANSACTION_COLUMNS = ("customer_id", "product_id")


def _read_csv(csv_path: str, required: Iterable[str]) -> pd.DataFrame:
    """Read a CSV file and check it has the required columns.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If required columns are missing.
    """
    csv_file = Path(csv_path)
    if not csv_file.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    logger.info(f"Loading CSV from {csv_path}")
    df = pd.read_csv(csv_file)

    missing = set(required) - set(df.columns)
    if missing:
        raise ValueError(
            f"CSV {csv_path} is missing required columns: {sorted(missing)}. "
            f"Found columns: {list(df.columns)}"
        )
    return df


def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    # NaN cells become None so optional fields fall back to their defaults.
    return df.astype(object).where(pd.notna(df), None).to_dict(orient="records")


def load_history(csv_path: str) -> List[TimeSeriesPoint]:
    """Load daily sales history (``date``, ``sales`` and optional flags)."""
    df = _read_csv(csv_path, HISTORY_COLUMNS)
    history = to_history(_records(df))
    logger.info(f"Loaded {len(history)} days of history")
    return history


def load_catalog(csv_path: str) -> List[Product]:
    """Load a product catalog; ``tags`` may be a comma-separated string."""
    df = _read_csv(csv_path, CATALOG_COLUMNS)
    products = [Product.from_dict(r) for r in _records(df)]
    logger.info(f"Loaded {len(products)} products")
    return products


def load_transactions(csv_path: str) -> List[Dict[str, Any]]:
    """Load purchase lines as plain records for the recommender."""
    df = _read_csv(csv_path, TRANSACTION_COLUMNS)
    records = _records(df)
    logger.info(f"Loaded {len(records)} transactions")
    return records
