"""
Reporting module for generating tables and summaries.

Includes:
- Aggregated metrics tables (CSV, Markdown)
- JSON metrics and hyperparameters
- Per-split predictions
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from biomarker_ml import CLASSIFICATION_THRESHOLD
from biomarker_ml.evaluation import _to_serializable
from biomarker_ml.metrics import aggregate_metrics_across_folds
from biomarker_ml.models import get_model_name

logger = logging.getLogger(__name__)

METRIC_ORDER = [
    "Model",
    "ACCURACY",
    "KAPPA",
    "ROC_AUC",
    "SENSITIVITY",
    "SPECIFICITY",
    "F1",
    "PR_AUC",
    "BRIER",
]


def create_metrics_summary_table(
    results: Dict[str, List[Dict]],
    baseline_results: Optional[List[Dict]] = None,
    ci: float = 0.95,
) -> pd.DataFrame:
    """
    Create summary table with aggregated metrics across splits.

    Parameters
    ----------
    results : dict
        Dictionary of model_type: list of split results
    baseline_results : list, optional
        Baseline model results
    ci : float
        Confidence interval level

    Returns
    -------
    pd.DataFrame
        Summary table with mean (CI) for all metrics
    """
    rows = []

    named_results = []
    if baseline_results:
        named_results.append(("Baseline (Majority Class)", baseline_results))
    for model_type, fold_results in results.items():
        named_results.append((get_model_name(model_type), fold_results))

    for name, fold_results in named_results:
        if not fold_results:
            continue
        agg_metrics = aggregate_metrics_across_folds(
            [r["metrics"] for r in fold_results], ci=ci
        )

        row = {"Model": name}
        for metric_name, (mean_val, lower_ci, upper_ci) in agg_metrics.items():
            if len(fold_results) > 1:
                row[metric_name.upper()] = f"{mean_val:.3f} ({lower_ci:.3f}-{upper_ci:.3f})"
            else:
                row[metric_name.upper()] = f"{mean_val:.3f}"
        rows.append(row)

    df = pd.DataFrame(rows)

    cols = [c for c in METRIC_ORDER if c in df.columns]
    return df[cols]


def save_summary_table(
    df: pd.DataFrame,
    output_dir: Path,
    filename_stem: str = "summary",
    n_splits: int = 1,
    threshold: float = CLASSIFICATION_THRESHOLD,
    ci: float = 0.95,
):
    """
    Save summary table to CSV and Markdown.

    Parameters
    ----------
    df : pd.DataFrame
        Summary table
    output_dir : Path
        Output directory
    filename_stem : str
        Filename stem (without extension)
    n_splits : int
        Number of evaluation splits, for the Markdown header
    threshold : float
        Classification threshold used for the labels
    ci : float
        Confidence interval level used in the table
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    csv_path = output_dir / f"{filename_stem}.csv"
    df.to_csv(csv_path, index=False)
    logger.info(f"Saved summary table (CSV) to {csv_path}")

    md_path = output_dir / f"{filename_stem}.md"
    with open(md_path, "w") as f:
        f.write("# Biomarker Classification Performance Summary\n\n")
        if n_splits > 1:
            f.write(f"## Aggregated Metrics Across {n_splits}-Fold Cross-Validation\n\n")
        else:
            f.write("## Metrics on the Validation Split\n\n")
        f.write(f"**Classification Threshold**: {threshold} (strict)\n\n")
        f.write(df.to_markdown(index=False))
        f.write("\n\n")
        if n_splits > 1:
            level = f"{ci:.0%}"
            f.write(
                f"Values shown as: **Mean ({level} CI Lower - {level} CI Upper)** across folds.\n\n"
            )
        f.write("**Metrics:**\n")
        f.write("- **ACCURACY**: Overall classification accuracy\n")
        f.write("- **KAPPA**: Cohen's Kappa (chance-corrected agreement)\n")
        f.write("- **ROC_AUC**: Area under the ROC curve\n")
        f.write("- **SENSITIVITY**: True positive rate (recall for patients)\n")
        f.write("- **SPECIFICITY**: True negative rate (recall for controls)\n")
        f.write("- **F1**: Harmonic mean of precision and recall\n")
        f.write("- **PR_AUC**: Area under the Precision-Recall curve\n")
        f.write("- **BRIER**: Brier score (lower is better)\n")
    logger.info(f"Saved summary table (Markdown) to {md_path}")


def save_best_params_summary(results: Dict[str, List[Dict]], output_dir: Path):
    """Save the hyperparameters used per model and split as JSON."""
    output_dir.mkdir(parents=True, exist_ok=True)

    for model_type, fold_results in results.items():
        if model_type == "ensemble":
            continue
        params_data = {
            "model_type": model_type,
            "model_name": get_model_name(model_type),
            "folds": [
                {"fold": r["fold"], "params": r.get("best_params", {})}
                for r in fold_results
            ],
        }
        output_path = output_dir / f"best_params_{model_type}.json"
        with open(output_path, "w") as f:
            json.dump(_to_serializable(params_data), f, indent=2)


def save_fold_level_predictions(results: Dict[str, List[Dict]], output_dir: Path):
    """Save predictions and metrics for each model and split."""
    for model_type, fold_results in results.items():
        for fold_result in fold_results:
            fold_dir = output_dir / f"fold_{fold_result['fold']}" / model_type
            fold_dir.mkdir(parents=True, exist_ok=True)

            pred_df = pd.DataFrame(
                {
                    "row_index": fold_result["test_indices"],
                    "y_true": fold_result["y_true"],
                    "y_pred": fold_result["y_pred"],
                    "y_proba": fold_result["y_proba"],
                }
            )
            pred_df.to_csv(fold_dir / "predictions.csv", index=False)

            with open(fold_dir / "metrics.json", "w") as f:
                json.dump(_to_serializable(fold_result["metrics"]), f, indent=2)


def print_console_summary(summary_df: pd.DataFrame):
    """Log the summary table."""
    logger.info("\n" + "=" * 100)
    logger.info("MODEL PERFORMANCE SUMMARY")
    logger.info("=" * 100)
    logger.info("\n" + summary_df.to_string(index=False))
    logger.info("=" * 100 + "\n")


def generate_all_reports(
    results: Dict[str, List[Dict]],
    output_dir: Path,
    baseline_results: Optional[List[Dict]] = None,
    threshold: float = CLASSIFICATION_THRESHOLD,
    ci: float = 0.95,
):
    """
    Generate all reports and tables.

    Parameters
    ----------
    results : dict
        Model results keyed by model type (including "ensemble")
    output_dir : Path
        Output directory
    baseline_results : list, optional
        Majority-class baseline results
    threshold : float
        Classification threshold used for the labels
    ci : float
        Confidence interval level for aggregated metrics
    """
    tables_dir = output_dir / "tables"
    n_splits = max((len(v) for v in results.values()), default=1)

    summary_df = create_metrics_summary_table(results, baseline_results, ci=ci)
    save_summary_table(
        summary_df, tables_dir, n_splits=n_splits, threshold=threshold, ci=ci
    )
    save_best_params_summary(results, tables_dir)
    save_fold_level_predictions(results, output_dir / "predictions")
    print_console_summary(summary_df)

    logger.info(f"All reports saved to {output_dir}")
    return summary_df
