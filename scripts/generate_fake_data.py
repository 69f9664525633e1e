"""Generate fake sales, catalog and purchase data for testing and development.

Creates three CSV files under ``data/``:

* ``fake_sales.csv``: daily sales with weekly seasonality, holidays and promotions
* ``fake_catalog.csv``: products with category, price and tags
* ``fake_transactions.csv``: customer purchases biased towards a favourite category

Example:
    Run the script directly to generate default data:
        $ python scripts/generate_fake_data.py

    Or import and use programmatically:
        from scripts.generate_fake_data import generate_fake_sales
        df = generate_fake_sales(num_days=120)
"""

import argparse
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

# Default configuration constants
DEFAULT_NUM_DAYS = 120
DEFAULT_NUM_CUSTOMERS = 50
DEFAULT_NUM_PRODUCTS = 100
DEFAULT_NUM_PURCHASES = 1000
DEFAULT_SEED = 42
SECONDS_PER_DAY = 86400

CATEGORIES = ["electronics", "books", "clothing", "home", "sports"]
TAGS = ["new", "bestseller", "eco", "premium", "budget", "gift", "outdoor", "kids"]


def generate_fake_sales(
    num_days: int = DEFAULT_NUM_DAYS,
    base_sales: float = 100.0,
    end_date: Optional[datetime] = None,
    seed: int = DEFAULT_SEED,
) -> pd.DataFrame:
    """Generate a daily sales series.

    Args:
        num_days: Number of consecutive days. Must be positive.
        base_sales: Average daily sales before seasonality.
        end_date: Last day of the series (default: today).
        seed: Random seed.

    Returns:
        DataFrame with columns date, sales, is_holiday, has_promotion,
        sorted by date.

    Raises:
        ValueError: If num_days is not positive.
    """
    if num_days <= 0:
        raise ValueError("num_days must be positive")

    rng = np.random.default_rng(seed)
    end = (end_date or datetime.now()).date()
    dates = pd.date_range(end=end, periods=num_days, freq="D")

    weekly = 1.0 + 0.2 * np.sin(2 * np.pi * dates.dayofweek.to_numpy() / 7)
    trend = np.linspace(1.0, 1.15, num_days)
    is_holiday = ((dates.month == 12) & (dates.day == 25)) | (
        (dates.month == 1) & (dates.day == 1)
    )
    has_promotion = rng.random(num_days) < 0.1

    sales = base_sales * weekly * trend
    sales *= np.where(has_promotion, 1.3, 1.0) * np.where(is_holiday, 0.5, 1.0)
    sales += rng.normal(scale=base_sales * 0.05, size=num_days)

    return pd.DataFrame(
        {
            "date": dates.date,
            "sales": np.clip(np.round(sales), 0, None).astype(int),
            "is_holiday": is_holiday,
            "has_promotion": has_promotion,
        }
    )


def generate_fake_catalog(
    num_products: int = DEFAULT_NUM_PRODUCTS,
    seed: int = DEFAULT_SEED,
) -> pd.DataFrame:
    """Generate a product catalog with ids 1..num_products."""
    if num_products <= 0:
        raise ValueError("num_products must be positive")

    rng = np.random.default_rng(seed)
    rows = []
    for product_id in range(1, num_products + 1):
        category = CATEGORIES[rng.integers(len(CATEGORIES))]
        tags = rng.choice(TAGS, size=rng.integers(1, 4), replace=False)
        rows.append(
            {
                "product_id": product_id,
                "name": f"{category.title()} item {product_id}",
                "category": category,
                "price": round(float(rng.lognormal(mean=3.5, sigma=0.8)), 2),
                "tags": ",".join(sorted(tags)),
                "on_promotion": bool(rng.random() < 0.1),
            }
        )
    return pd.DataFrame(rows)


def generate_fake_transactions(
    catalog: pd.DataFrame,
    num_customers: int = DEFAULT_NUM_CUSTOMERS,
    num_purchases: int = DEFAULT_NUM_PURCHASES,
    days_back: int = 90,
    seed: int = DEFAULT_SEED,
) -> pd.DataFrame:
    """Generate purchases; each customer buys mostly from one favourite category.

    Returns:
        DataFrame with columns customer_id, product_id, quantity, timestamp,
        sorted by timestamp.
    """
    if num_customers <= 0 or num_purchases <= 0:
        raise ValueError("num_customers and num_purchases must be positive")

    rng = np.random.default_rng(seed)
    end_date = datetime.now()
    start_date = end_date - timedelta(days=days_back)
    by_category = catalog.groupby("category")["product_id"].apply(list).to_dict()
    all_products = catalog["product_id"].tolist()
    favourites = {
        c: list(by_category)[rng.integers(len(by_category))]
        for c in range(1, num_customers + 1)
    }

    purchases = []
    for _ in range(num_purchases):
        customer_id = int(rng.integers(1, num_customers + 1))
        pool = by_category[favourites[customer_id]] if rng.random() < 0.7 else all_products
        timestamp = start_date + timedelta(
            days=int(rng.integers(days_back)), seconds=int(rng.integers(SECONDS_PER_DAY))
        )
        purchases.append(
            {
                "customer_id": customer_id,
                "product_id": int(pool[rng.integers(len(pool))]),
                "quantity": int(rng.integers(1, 4)),
                "timestamp": timestamp,
            }
        )

    df = pd.DataFrame(purchases)
    return df.sort_values("timestamp").reset_index(drop=True)


def main() -> None:
    """Generate all three datasets and print a short summary."""
    parser = argparse.ArgumentParser(description="Generate fake ShopSense data.")
    parser.add_argument("--output-dir", default=str(Path(__file__).parent.parent / "data"))
    parser.add_argument("--days", type=int, default=DEFAULT_NUM_DAYS)
    parser.add_argument("--customers", type=int, default=DEFAULT_NUM_CUSTOMERS)
    parser.add_argument("--products", type=int, default=DEFAULT_NUM_PRODUCTS)
    parser.add_argument("--purchases", type=int, default=DEFAULT_NUM_PURCHASES)
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED)
    args = parser.parse_args()

    try:
        sales = generate_fake_sales(num_days=args.days, seed=args.seed)
        catalog = generate_fake_catalog(num_products=args.products, seed=args.seed)
        transactions = generate_fake_transactions(
            catalog,
            num_customers=args.customers,
            num_purchases=args.purchases,
            seed=args.seed,
        )
    except ValueError as e:
        print(f"Error generating data: {e}")
        return

    data_dir = Path(args.output_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    sales.to_csv(data_dir / "fake_sales.csv", index=False)
    catalog.to_csv(data_dir / "fake_catalog.csv", index=False)
    transactions.to_csv(data_dir / "fake_transactions.csv", index=False)

    print(f"\nData generated successfully in {data_dir}")
    print(f"  Sales days:     {len(sales)} ({sales['date'].min()} to {sales['date'].max()})")
    print(f"  Products:       {len(catalog)}")
    print(f"  Transactions:   {len(transactions)}")
    print(f"  Customers:      {transactions['customer_id'].nunique()}")


if __name__ == "__main__":
    main()
