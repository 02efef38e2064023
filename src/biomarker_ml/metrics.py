"""
Evaluation metrics module.

Metrics for the binary 1 (control) / 2 (patient) target:
- Accuracy, Sensitivity, Specificity, F1-score, Cohen's Kappa
- ROC-AUC, PR-AUC
- Brier score
- Confusion matrix
"""

import logging
from typing import Dict, Tuple

import numpy as np
from sklearn.metrics import (
    accuracy_score,
    auc,
    brier_score_loss,
    cohen_kappa_score,
    confusion_matrix,
    f1_score,
    precision_recall_curve,
    recall_score,
    roc_auc_score,
    roc_curve,
)

from biomarker_ml import CLASSIFICATION_THRESHOLD, NEGATIVE_CLASS, POSITIVE_CLASS

logger = logging.getLogger(__name__)


def apply_threshold(
    y_proba: np.ndarray,
    threshold: float = CLASSIFICATION_THRESHOLD,
) -> np.ndarray:
    """
    Convert positive-class probabilities into 1/2 labels.

    The comparison is strict: a probability equal to the threshold is
    assigned to the negative class.
    """
    y_proba = np.asarray(y_proba, dtype=float)
    return np.where(y_proba > threshold, POSITIVE_CLASS, NEGATIVE_CLASS)


def calculate_sensitivity(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """
    Calculate sensitivity (recall for the patient class).

    Sensitivity = TP / (TP + FN)

    Parameters
    ----------
    y_true : np.ndarray
        True labels
    y_pred : np.ndarray
        Predicted labels

    Returns
    -------
    float
        Sensitivity score
    """
    return recall_score(
        y_true,
        y_pred,
        labels=[NEGATIVE_CLASS, POSITIVE_CLASS],
        pos_label=POSITIVE_CLASS,
        zero_division=0,
    )


def calculate_specificity(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """
    Calculate specificity (recall for the control class).

    Specificity = TN / (TN + FP)
    """
    return recall_score(
        y_true,
        y_pred,
        labels=[NEGATIVE_CLASS, POSITIVE_CLASS],
        pos_label=NEGATIVE_CLASS,
        zero_division=0,
    )


def calculate_kappa(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Cohen's Kappa between true and predicted labels."""
    kappa = cohen_kappa_score(y_true, y_pred, labels=[NEGATIVE_CLASS, POSITIVE_CLASS])
    # sklearn returns nan when both raters use a single identical label
    if np.isnan(kappa):
        logger.warning("Cohen's Kappa undefined for a single-class prediction")
    return kappa


def calculate_all_metrics(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    y_proba: np.ndarray,
    threshold: float = CLASSIFICATION_THRESHOLD,
) -> Dict[str, float]:
    """
    Calculate all evaluation metrics.

    Parameters
    ----------
    y_true : np.ndarray
        True labels (1/2)
    y_pred : np.ndarray
        Predicted labels (or will be thresholded from y_proba)
    y_proba : np.ndarray
        Predicted probabilities for the patient class
    threshold : float
        Classification threshold (default: 0.5)

    Returns
    -------
    dict
        Dictionary of metric names and values
    """
    y_true = np.asarray(y_true)
    y_proba = np.asarray(y_proba, dtype=float)

    # Ensure predictions are thresholded consistently
    if y_pred is None or len(y_pred) == 0:
        y_pred = apply_threshold(y_proba, threshold)

    metrics = {}

    # Basic metrics
    metrics["accuracy"] = accuracy_score(y_true, y_pred)
    metrics["sensitivity"] = calculate_sensitivity(y_true, y_pred)
    metrics["specificity"] = calculate_specificity(y_true, y_pred)
    metrics["f1"] = f1_score(
        y_true,
        y_pred,
        labels=[NEGATIVE_CLASS, POSITIVE_CLASS],
        pos_label=POSITIVE_CLASS,
        zero_division=0,
    )
    metrics["kappa"] = calculate_kappa(y_true, y_pred)

    # Probabilistic metrics
    try:
        metrics["roc_auc"] = roc_auc_score(y_true == POSITIVE_CLASS, y_proba)
    except ValueError as e:
        logger.warning(f"Could not calculate ROC-AUC: {e}")
        metrics["roc_auc"] = np.nan

    try:
        precision, recall, _ = precision_recall_curve(
            y_true, y_proba, pos_label=POSITIVE_CLASS
        )
        metrics["pr_auc"] = auc(recall, precision)
    except ValueError as e:
        logger.warning(f"Could not calculate PR-AUC: {e}")
        metrics["pr_auc"] = np.nan

    try:
        metrics["brier"] = brier_score_loss(y_true == POSITIVE_CLASS, y_proba)
    except ValueError as e:
        logger.warning(f"Could not calculate Brier score: {e}")
        metrics["brier"] = np.nan

    # Confusion matrix elements, patient class as "positive"
    cm = confusion_matrix(y_true, y_pred, labels=[NEGATIVE_CLASS, POSITIVE_CLASS])
    tn, fp, fn, tp = cm.ravel()
    metrics["tn"] = tn
    metrics["fp"] = fp
    metrics["fn"] = fn
    metrics["tp"] = tp

    metrics["threshold"] = threshold

    return metrics


def calculate_roc_curve_data(
    y_true: np.ndarray,
    y_proba: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Calculate ROC curve data.

    Returns
    -------
    fpr : np.ndarray
        False positive rates
    tpr : np.ndarray
        True positive rates
    thresholds : np.ndarray
        Thresholds
    """
    fpr, tpr, thresholds = roc_curve(y_true, y_proba, pos_label=POSITIVE_CLASS)
    return fpr, tpr, thresholds


class MajorityClassBaseline:
    """
    Baseline classifier that always predicts the majority class.

    Used to contextualize model performance relative to a trivial strategy.
    """

    def __init__(self):
        self.majority_class_ = None

    def fit(self, y: np.ndarray):
        """Fit by finding the majority class."""
        classes, counts = np.unique(y, return_counts=True)
        self.majority_class_ = classes[np.argmax(counts)]
        logger.debug(f"Majority class baseline: always predict class {self.majority_class_}")
        return self

    def predict(self, n_samples: int) -> np.ndarray:
        """Predict majority class for all samples."""
        if self.majority_class_ is None:
            raise ValueError("Baseline not fitted yet.")
        return np.full(n_samples, self.majority_class_)

    def predict_proba(self, n_samples: int) -> np.ndarray:
        """Return the patient-class probability implied by the majority class."""
        if self.majority_class_ is None:
            raise ValueError("Baseline not fitted yet.")

        if self.majority_class_ == POSITIVE_CLASS:
            return np.ones(n_samples)
        else:
            return np.zeros(n_samples)


def aggregate_metrics_across_folds(
    fold_metrics: list,
    ci: float = 0.95,
) -> Dict[str, Tuple[float, float, float]]:
    """
    Aggregate metrics across folds with confidence intervals.

    Parameters
    ----------
    fold_metrics : list
        List of metric dictionaries from each fold
    ci : float
        Confidence interval level (default: 0.95 for 95% CI)

    Returns
    -------
    dict
        Dictionary with metric_name: (mean, lower_ci, upper_ci)
    """
    import scipy.stats as stats

    aggregated = {}

    metric_names = fold_metrics[0].keys()

    for metric_name in metric_names:
        if metric_name in ["tn", "fp", "fn", "tp", "threshold"]:
            continue

        values = [fold[metric_name] for fold in fold_metrics if not np.isnan(fold[metric_name])]

        if not values:
            aggregated[metric_name] = (np.nan, np.nan, np.nan)
            continue

        mean_val = np.mean(values)
        std_val = np.std(values, ddof=1) if len(values) > 1 else 0

        if len(values) > 1:
            sem = std_val / np.sqrt(len(values))
            ci_delta = sem * stats.t.ppf((1 + ci) / 2, len(values) - 1)
            lower_ci = mean_val - ci_delta
            upper_ci = mean_val + ci_delta
        else:
            lower_ci = mean_val
            upper_ci = mean_val

        aggregated[metric_name] = (mean_val, lower_ci, upper_ci)

    return aggregated
