"""CLI script for forecasts, recommendations and demand estimates.

Useful for testing and evaluation. Reads CSV files, runs one engine
operation and prints the result to the console. Saved snapshots in
``--model-dir`` are used when present; otherwise models are trained on the
supplied data.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.config import DEFAULT_HORIZON_DAYS, DEFAULT_MODEL_DIR, DEFAULT_TOP_N, EngineConfig
from src.datasets import load_catalog, load_history, load_transactions
from src.engine.artifacts import check_snapshots_exist
from src.engine.service import ShopSenseEngine
from src.exceptions import ShopSenseError

# Setup logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s"
)
logger = logging.getLogger(__name__)


def _parse_customer(raw: str):
    return int(raw) if raw.isdigit() else raw


def run_forecast(engine: ShopSenseEngine, args: argparse.Namespace) -> None:
    results = engine.forecast_sales(load_history(args.history), args.days)
    print(f"\nForecast for the next {len(results)} days:")
    print(f"  {'date':<12} {'sales':>8} {'confidence':>11}")
    for r in results:
        print(f"  {r.date.isoformat():<12} {r.predicted_sales:>8} {r.confidence:>10}%")


def run_recommend(engine: ShopSenseEngine, args: argparse.Namespace) -> None:
    customer = _parse_customer(args.customer_id)
    result = engine.recommend_products(
        customer,
        load_catalog(args.catalog),
        load_transactions(args.transactions),
        top_n=args.top_n,
        return_scores=args.explain,
    )
    scores = None
    if args.explain:
        result, scores = result

    print(f"\nRecommendations for customer {customer}:")
    for rank, candidate in enumerate(result, start=1):
        print(f"  {rank:>2}. product {candidate.product_id} (score {candidate.score:.4f})")

    if scores:
        print(f"\nScore breakdown:")
        print(f"  Method: {scores['method']}")
        print(f"  CF scores: {scores['collab_scores']}")
        print(f"  Content scores: {scores['content_scores']}")
        if scores["skipped_transactions"]:
            print(f"  Skipped transactions: {len(scores['skipped_transactions'])}")


def run_demand(engine: ShopSenseEngine, args: argparse.Namespace) -> None:
    catalog = {str(p.product_id): p for p in load_catalog(args.catalog)}
    if args.product_id not in catalog:
        raise ValueError(f"Product {args.product_id} not in catalog")
    factors = {
        name: value
        for name, value in (("season", args.season), ("weather", args.weather), ("trend", args.trend))
        if value is not None
    }
    prediction = engine.predict_demand(
        catalog[args.product_id], load_history(args.history), factors
    )
    print(f"\nDemand for product {args.product_id}: {prediction.predicted_demand}")
    print(f"  Confidence: {prediction.confidence}%")
    print(f"  Top factors:")
    for name, contribution in prediction.factors[:5]:
        print(f"    {name:<24} {contribution:>10.3f}")


def main() -> None:
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Run a ShopSense forecast, recommendation or demand estimate",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/predict_cli.py forecast data/fake_sales.csv --days 14
  python scripts/predict_cli.py recommend 42 data/fake_catalog.csv data/fake_transactions.csv
  python scripts/predict_cli.py recommend 42 data/fake_catalog.csv data/fake_transactions.csv --explain
  python scripts/predict_cli.py demand 7 data/fake_catalog.csv data/fake_sales.csv --season 1.2
        """
    )
    parser.add_argument(
        "--model-dir",
        type=str,
        default=DEFAULT_MODEL_DIR,
        help=f"Directory containing model snapshots (default: {DEFAULT_MODEL_DIR})"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    commands = parser.add_subparsers(dest="command", required=True)

    forecast = commands.add_parser("forecast", help="Forecast daily sales")
    forecast.add_argument("history", help="Sales history CSV")
    forecast.add_argument("--days", type=int, default=DEFAULT_HORIZON_DAYS)
    forecast.set_defaults(handler=run_forecast)

    recommend = commands.add_parser("recommend", help="Recommend products to a customer")
    recommend.add_argument("customer_id")
    recommend.add_argument("catalog", help="Catalog CSV")
    recommend.add_argument("transactions", help="Transactions CSV")
    recommend.add_argument("--top-n", type=int, default=DEFAULT_TOP_N)
    recommend.add_argument("--explain", action="store_true", help="Show score breakdown")
    recommend.set_defaults(handler=run_recommend)

    demand = commands.add_parser("demand", help="Estimate demand for a product")
    demand.add_argument("product_id")
    demand.add_argument("catalog", help="Catalog CSV")
    demand.add_argument("history", help="Demand history CSV for the product")
    demand.add_argument("--season", type=float, default=None)
    demand.add_argument("--weather", type=float, default=None)
    demand.add_argument("--trend", type=float, default=None)
    demand.set_defaults(handler=run_demand)

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    engine = ShopSenseEngine(EngineConfig.from_env())
    try:
        if check_snapshots_exist(args.model_dir):
            engine.load_models(args.model_dir)
        args.handler(engine, args)
    except (FileNotFoundError, ValueError, ShopSenseError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        engine.shutdown()

    print()


if __name__ == "__main__":
    main()
