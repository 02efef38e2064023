"""
Plotting module for evaluation figures.

Includes:
- ROC curves (mean ± 95% band when more than one split)
- Confusion matrices
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import matplotlib.pyplot as plt
import numpy as np
from sklearn.metrics import confusion_matrix

from biomarker_ml import NEGATIVE_CLASS, POSITIVE_CLASS
from biomarker_ml.metrics import calculate_roc_curve_data
from biomarker_ml.models import get_model_name

logger = logging.getLogger(__name__)

CLASS_NAMES = ["Control (1)", "Patient (2)"]

plt.rcParams.update(
    {
        "font.size": 12,
        "axes.labelsize": 13,
        "axes.titlesize": 14,
        "legend.fontsize": 11,
        "figure.dpi": 150,
    }
)


def _save_figure(fig: plt.Figure, output_path: Optional[Path], description: str):
    """Save PNG and SVG variants for a figure."""
    if not output_path:
        return

    fig.savefig(output_path, dpi=300, bbox_inches="tight")
    svg_path = output_path.with_suffix(".svg")
    fig.savefig(svg_path, dpi=300, bbox_inches="tight")
    logger.info(f"Saved {description} to {output_path} and {svg_path}")


def plot_roc_curves(
    results: Dict[str, List[Dict]],
    output_path: Optional[Path] = None,
    title: str = "ROC Curves",
):
    """
    Plot ROC curves for all models.

    Parameters
    ----------
    results : dict
        Dictionary of model_type: list of split results
    output_path : Path, optional
        Path to save figure
    title : str
        Figure title
    """
    fig, ax = plt.subplots(figsize=(8, 7))

    colors = plt.cm.tab10(np.linspace(0, 1, max(len(results), 1)))
    mean_fpr = np.linspace(0, 1, 100)

    for (model_type, fold_results), color in zip(results.items(), colors):
        tpr_interp_list = []
        auc_list = []

        for fold_result in fold_results:
            if len(np.unique(fold_result["y_true"])) < 2:
                continue
            fpr, tpr, _ = calculate_roc_curve_data(
                fold_result["y_true"], fold_result["y_proba"]
            )
            tpr_interp = np.interp(mean_fpr, fpr, tpr)
            tpr_interp[0] = 0.0
            tpr_interp_list.append(tpr_interp)
            auc_list.append(fold_result["metrics"]["roc_auc"])

        if not tpr_interp_list:
            logger.warning(f"No ROC curve for {model_type}: single-class splits only")
            continue

        mean_tpr = np.mean(tpr_interp_list, axis=0)
        mean_tpr[-1] = 1.0
        mean_auc = np.nanmean(auc_list)

        label = f"{get_model_name(model_type)} (AUC = {mean_auc:.3f})"
        ax.plot(mean_fpr, mean_tpr, color=color, lw=2, label=label)

        if len(tpr_interp_list) > 1:
            std_tpr = np.std(tpr_interp_list, axis=0)
            ax.fill_between(
                mean_fpr,
                np.maximum(mean_tpr - 1.96 * std_tpr, 0),
                np.minimum(mean_tpr + 1.96 * std_tpr, 1),
                color=color,
                alpha=0.2,
            )

    ax.plot([0, 1], [0, 1], "k--", lw=1, label="Chance (AUC = 0.500)")

    ax.set_xlabel("False Positive Rate")
    ax.set_ylabel("True Positive Rate")
    ax.set_title(title)
    ax.legend(loc="lower right")
    ax.grid(alpha=0.3)

    plt.tight_layout()

    _save_figure(fig, output_path, "ROC curves")

    plt.close(fig)


def plot_confusion_matrices(
    results: Dict[str, List[Dict]],
    output_path: Optional[Path] = None,
):
    """
    Plot confusion matrices for all models (pooled across splits).

    Parameters
    ----------
    results : dict
        Dictionary of model_type: list of split results
    output_path : Path, optional
        Path to save figure
    """
    n_models = len(results)
    n_cols = min(3, n_models)
    n_rows = int(np.ceil(n_models / n_cols))

    fig, axes = plt.subplots(n_rows, n_cols, figsize=(5 * n_cols, 4 * n_rows), squeeze=False)
    axes = axes.flatten()

    for idx, (model_type, fold_results) in enumerate(results.items()):
        y_true_all = np.concatenate([r["y_true"] for r in fold_results])
        y_pred_all = np.concatenate([r["y_pred"] for r in fold_results])

        cm = confusion_matrix(y_true_all, y_pred_all, labels=[NEGATIVE_CLASS, POSITIVE_CLASS])

        ax = axes[idx]
        im = ax.imshow(cm, cmap="Blues", interpolation="nearest", vmin=0)
        plt.colorbar(im, ax=ax).set_label("Count")

        ax.set_xticks([0, 1])
        ax.set_yticks([0, 1])
        ax.set_xticklabels(CLASS_NAMES)
        ax.set_yticklabels(CLASS_NAMES)
        ax.set_xlabel("Predicted")
        ax.set_ylabel("True")
        ax.set_title(get_model_name(model_type))

        text_threshold = cm.max() / 2
        for i in range(2):
            for j in range(2):
                ax.text(
                    j,
                    i,
                    f"{cm[i, j]}",
                    ha="center",
                    va="center",
                    color="white" if cm[i, j] > text_threshold else "black",
                    fontsize=16,
                )

    # Hide unused subplots
    for idx in range(n_models, len(axes)):
        axes[idx].axis("off")

    plt.tight_layout()

    _save_figure(fig, output_path, "confusion matrices")

    plt.close(fig)


def plot_all_figures(results: Dict[str, List[Dict]], output_dir: Path):
    """Generate every figure into ``output_dir``."""
    output_dir.mkdir(parents=True, exist_ok=True)

    if not results:
        logger.warning("No results to plot")
        return

    plot_roc_curves(results, output_dir / "roc_curves.png")
    plot_confusion_matrices(results, output_dir / "confusion_matrices.png")
