"""Command-line interface for training the ShopSense models.

Trains the sales forecaster (and optionally the demand model) from CSV data
and saves the snapshots so the API can serve them with ``POST /models/reload``.

Example:
    Train the forecaster with default settings:
        $ python scripts/train_model.py data/fake_sales.csv

    Also train the demand model for one catalog product:
        $ python scripts/train_model.py data/fake_sales.csv \\
            --catalog data/fake_catalog.csv --demand-product 7 \\
            --regressor gbr --output-dir models/production
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.config import DEFAULT_MODEL_DIR, DEFAULT_WINDOW_LENGTH, EngineConfig
from src.datasets import load_catalog, load_history
from src.engine.service import ShopSenseEngine
from src.exceptions import ShopSenseError
from src.forecasting.regressors import REGRESSORS


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the script.

    Args:
        verbose: If True, set log level to DEBUG. Otherwise, use INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_arguments() -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Namespace object containing parsed arguments.
    """
    parser = argparse.ArgumentParser(
        description="Train ShopSense models from CSV data.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Train the sales forecaster
  python scripts/train_model.py data/sales.csv

  # Use gradient boosting and a 14-day window
  python scripts/train_model.py data/sales.csv --regressor gbr --window-length 14

  # Also train the demand model for product 7
  python scripts/train_model.py data/sales.csv --catalog data/catalog.csv --demand-product 7
        """,
    )

    parser.add_argument(
        "csv_path",
        type=str,
        help="Path to CSV file with daily sales: date, sales[, is_holiday, has_promotion]",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=DEFAULT_MODEL_DIR,
        help=f"Directory where model snapshots will be saved (default: {DEFAULT_MODEL_DIR})",
    )
    parser.add_argument(
        "--regressor",
        choices=sorted(REGRESSORS),
        default=None,
        help="Regressor family (default: SHOPSENSE_REGRESSOR or ridge)",
    )
    parser.add_argument(
        "--window-length",
        type=int,
        default=None,
        help=f"Days per input window (default: {DEFAULT_WINDOW_LENGTH})",
    )
    parser.add_argument(
        "--catalog",
        type=str,
        default=None,
        help="Catalog CSV, required with --demand-product",
    )
    parser.add_argument(
        "--demand-product",
        type=str,
        default=None,
        help="Also train the demand model on this product's sales history",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args()


def main() -> int:
    """Main entry point for the training script.

    Returns:
        Exit code: 0 on success, 1 on error.
    """
    try:
        args = parse_arguments()
        setup_logging(verbose=args.verbose)
        logger = logging.getLogger(__name__)

        config = EngineConfig.from_env()
        overrides = {"model_dir": args.output_dir}
        if args.regressor is not None:
            overrides["regressor"] = args.regressor
        if args.window_length is not None:
            overrides["window_length"] = args.window_length
        config = replace(config, **overrides)

        logger.info("=" * 70)
        logger.info("Training Configuration")
        logger.info("=" * 70)
        logger.info(f"CSV path:         {args.csv_path}")
        logger.info(f"Output directory: {config.model_dir}")
        logger.info(f"Regressor:        {config.regressor}")
        logger.info(f"Window length:    {config.window_length}")
        logger.info("=" * 70)

        history = load_history(args.csv_path)
        engine = ShopSenseEngine(config)
        try:
            snapshot = engine.train_sales_forecaster(history, background=False)
            logger.info(f"Sales forecaster trained: version {snapshot.version}")

            if args.demand_product is not None:
                if args.catalog is None:
                    raise ValueError("--demand-product requires --catalog")
                catalog = {str(p.product_id): p for p in load_catalog(args.catalog)}
                if args.demand_product not in catalog:
                    raise ValueError(f"Product {args.demand_product} not in catalog")
                snapshot = engine.train_demand_model(
                    catalog[args.demand_product], history, background=False
                )
                logger.info(f"Demand model trained: version {snapshot.version}")

            paths = engine.save_models()
        finally:
            engine.shutdown()

        logger.info("=" * 70)
        logger.info("Training Summary")
        logger.info("=" * 70)
        logger.info(f"History days:   {len(history)}")
        for path in paths:
            logger.info(f"Saved snapshot: {path.absolute()}")
        logger.info("=" * 70)

        logger.info("Training completed successfully!")
        return 0

    except FileNotFoundError as e:
        logging.error(f"File error: {e}")
        return 1
    except (ValueError, ShopSenseError) as e:
        logging.error(f"Validation error: {e}")
        return 1
    except KeyboardInterrupt:
        logging.warning("Training interrupted by user")
        return 130
    except Exception as e:
        logging.error(f"Unexpected error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
