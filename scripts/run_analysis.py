#!/usr/bin/env python
"""
Main CLI entrypoint for the biomarker classification analysis.

Usage:
    python scripts/run_analysis.py --data dataR2.csv --config configs/default.yaml --seed 42
"""

import argparse
import json
import logging
import random
import sys
from datetime import datetime
from pathlib import Path
from uuid import uuid4

import matplotlib
import numpy as np
import yaml

matplotlib.use("Agg")

from biomarker_ml import CLASSIFICATION_THRESHOLD
from biomarker_ml.evaluation import run_evaluation
from biomarker_ml.io import prepare_dataset
from biomarker_ml.models import MODEL_FACTORY
from biomarker_ml.plotting import plot_all_figures
from biomarker_ml.reporting import generate_all_reports

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler("biomarker_ml.log", encoding="utf-8"),
    ],
)

logger = logging.getLogger(__name__)


def set_random_seeds(seed: int):
    """Set all random seeds for reproducibility."""
    random.seed(seed)
    np.random.seed(seed)
    logger.info(f"Set random seeds to {seed}")


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Train and evaluate biomarker classifiers and their averaging ensemble"
    )

    parser.add_argument(
        "--data",
        type=str,
        default="dataR2.csv",
        help="Path to input CSV data file (default: dataR2.csv)",
    )

    parser.add_argument(
        "--config",
        type=str,
        default="configs/default.yaml",
        help="Path to configuration YAML file (default: configs/default.yaml)",
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed (overrides config)",
    )

    parser.add_argument(
        "--models",
        type=str,
        default="all",
        help="Comma-separated list of models to train (lr,rf,svm,bag) or 'all'. "
        "Overrides config file if provided.",
    )

    parser.add_argument(
        "--cv-folds",
        type=int,
        default=None,
        help="Number of stratified CV folds; 1 uses a single holdout split (overrides config)",
    )

    parser.add_argument(
        "--tune",
        action="store_true",
        help="Tune hyperparameters with Optuna (overrides config)",
    )

    parser.add_argument(
        "--no-ensemble",
        action="store_true",
        help="Skip ensemble scoring",
    )

    parser.add_argument(
        "--output-dir",
        type=str,
        default="reports",
        help="Output directory for reports and figures (default: reports)",
    )

    return parser.parse_args(argv)


def load_config(config_path: str) -> dict:
    """Load configuration from YAML file."""
    config_file = Path(config_path)

    if not config_file.exists():
        logger.warning(f"Config file {config_path} not found. Using defaults.")
        return {}

    with open(config_file, "r") as f:
        config = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def resolve_model_types(models_arg: str, config: dict) -> list:
    """Command-line argument > config file > all models."""
    if models_arg.lower() != "all":
        model_types = [m.strip() for m in models_arg.split(",") if m.strip()]
    elif config.get("models"):
        model_types = [m for m in config["models"] if m is not None]
    else:
        model_types = list(MODEL_FACTORY.keys())

    unknown = [m for m in model_types if m not in MODEL_FACTORY]
    if unknown:
        raise ValueError(
            f"Unknown model type(s): {unknown}. Available: {list(MODEL_FACTORY.keys())}"
        )
    return model_types


def main(argv=None):
    """Main execution function."""
    args = parse_args(argv)

    logger.info("=" * 100)
    logger.info("BIOMARKER ML: Classifier and Ensemble Evaluation")
    logger.info("=" * 100)

    config = load_config(args.config)

    # Override config with command-line arguments
    if args.seed is not None:
        config["random_state"] = args.seed
    if args.cv_folds is not None:
        config["cv_folds"] = args.cv_folds
    if args.tune:
        config["tune_hyperparameters"] = True

    config.setdefault("random_state", 42)
    config.setdefault("cv_folds", 1)
    config.setdefault("validation_size", 0.3)
    config.setdefault("outcome_column", "Classification")

    set_random_seeds(config["random_state"])

    model_types = resolve_model_types(args.models, config)
    logger.info(f"Selected models: {model_types}")

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_id = f"{timestamp}_{str(uuid4())[:8]}"
    output_dir = Path(args.output_dir) / f"run_{run_id}"
    output_dir.mkdir(parents=True, exist_ok=True)

    run_info = {
        "run_id": run_id,
        "timestamp": timestamp,
        "config_file": args.config,
        "data_file": args.data,
        "models": model_types,
        "ensemble": not args.no_ensemble,
        "config": config,
    }
    with open(output_dir / "run_info.json", "w") as f:
        json.dump(run_info, f, indent=2, default=str)

    logger.info(f"Run ID: {run_id}")
    logger.info(f"Output directory: {output_dir}")

    # Step 1: Load and prepare data
    logger.info(f"\nStep 1: Loading data from {args.data}")
    data_path = Path(args.data)

    if not data_path.exists():
        logger.error(f"Data file not found: {args.data}")
        return 1

    df, feature_names = prepare_dataset(filepath=data_path, config=config)
    X = df[feature_names]
    y = df[config["outcome_column"]].values

    # Step 2: Fit and evaluate models and ensemble
    logger.info("\nStep 2: Fitting and evaluating models")
    evaluation = run_evaluation(
        X=X,
        y=y,
        model_types=model_types,
        config=config,
        build_ensemble=not args.no_ensemble,
    )

    # Step 3: Reports
    logger.info("\nStep 3: Generating reports and tables")
    generate_all_reports(
        results=evaluation["models"],
        output_dir=output_dir,
        baseline_results=evaluation["baseline"],
        threshold=config.get("threshold", CLASSIFICATION_THRESHOLD),
        ci=config.get("ci_level", 0.95),
    )

    # Step 4: Figures
    logger.info("\nStep 4: Generating figures")
    plot_all_figures(evaluation["models"], output_dir / "figures")

    logger.info("\n" + "=" * 100)
    logger.info("Pipeline complete!")
    logger.info(f"All outputs saved to: {output_dir}")
    logger.info("=" * 100 + "\n")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.info("\nInterrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)
