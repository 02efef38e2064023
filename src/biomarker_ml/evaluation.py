"""
Evaluation runner for the individual models and the averaging ensemble.

Supports a single stratified holdout split (cv_folds <= 1) or stratified
k-fold CV. Within each split, preprocessing, PCA, hyperparameter tuning and
model fitting use ONLY the training rows.
"""

import logging
from typing import Any, Dict, Iterator, List, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import StratifiedKFold, train_test_split
from tqdm import tqdm

from biomarker_ml import CLASSIFICATION_THRESHOLD
from biomarker_ml.ensemble import Dataset, FittedModel, evaluate_ensemble
from biomarker_ml.metrics import MajorityClassBaseline, calculate_all_metrics
from biomarker_ml.models import MODEL_FACTORY, fit_model, get_model_name
from biomarker_ml.pca import create_dimensionality_reduction
from biomarker_ml.preprocessing import create_preprocessing_pipeline
from biomarker_ml.tuning import tune_hyperparameters

logger = logging.getLogger(__name__)


def _to_serializable(obj: Any) -> Any:
    """Recursively convert numpy/pandas objects into JSON-serializable types."""
    if isinstance(obj, dict):
        return {k: _to_serializable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_serializable(v) for v in obj]
    if isinstance(obj, (np.generic,)):
        return obj.item()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    return obj


def _format_metrics(metrics: Dict[str, float]) -> str:
    return (
        f"Acc={metrics['accuracy']:.3f}, "
        f"Kappa={metrics['kappa']:.3f}, "
        f"Sens={metrics['sensitivity']:.3f}, "
        f"Spec={metrics['specificity']:.3f}, "
        f"ROC-AUC={metrics['roc_auc']:.3f}"
    )


class EvaluationRunner:
    """
    Fits every model per split and scores it alone and inside the ensemble.

    Parameters
    ----------
    X : pd.DataFrame
        Feature matrix
    y : np.ndarray
        Target labels (1/2)
    model_types : list
        Model type codes to train ('lr', 'rf', 'svm', 'bag')
    config : dict
        Configuration dictionary
    build_ensemble : bool
        Whether to score the averaging ensemble on each split
    """

    def __init__(
        self,
        X: pd.DataFrame,
        y: np.ndarray,
        model_types: List[str],
        config: Dict[str, Any],
        build_ensemble: bool = True,
    ):
        unknown = [m for m in model_types if m not in MODEL_FACTORY]
        if unknown:
            raise ValueError(
                f"Unknown model type(s): {unknown}. "
                f"Available: {list(MODEL_FACTORY.keys())}"
            )
        if not model_types:
            raise ValueError("At least one model type is required")

        self.X = X.reset_index(drop=True)
        self.y = np.asarray(y)
        self.model_types = model_types
        self.config = config
        self.build_ensemble = build_ensemble

        self.cv_folds = config.get("cv_folds", 1)
        self.validation_size = config.get("validation_size", 0.3)
        self.random_state = config.get("random_state", 42)
        self.tune = config.get("tune_hyperparameters", False)
        self.use_pca = config.get("use_pca", False)
        self.threshold = config.get("threshold", CLASSIFICATION_THRESHOLD)

        # Results storage
        self.results_ = {model_type: [] for model_type in model_types}
        if build_ensemble:
            self.results_["ensemble"] = []
        self.baseline_results_ = []
        self.fitted_models_: Dict[int, List[FittedModel]] = {}

    def _splits(self) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
        indices = np.arange(len(self.y))
        if self.cv_folds <= 1:
            train_idx, test_idx = train_test_split(
                indices,
                test_size=self.validation_size,
                stratify=self.y,
                random_state=self.random_state,
            )
            yield np.sort(train_idx), np.sort(test_idx)
            return

        cv = StratifiedKFold(
            n_splits=self.cv_folds,
            shuffle=True,
            random_state=self.random_state,
        )
        yield from cv.split(self.X, self.y)

    @property
    def n_splits(self) -> int:
        return max(1, self.cv_folds)

    def run(self) -> Dict[str, List[Dict[str, Any]]]:
        """
        Run the evaluation for all models.

        Returns
        -------
        dict
            model_type: list of per-split result dicts
        """
        logger.info(
            f"Starting evaluation over {self.n_splits} split(s) "
            f"with {len(self.model_types)} models"
        )
        logger.info(f"Models: {[get_model_name(m) for m in self.model_types]}")

        for fold_idx, (train_idx, test_idx) in tqdm(
            enumerate(self._splits(), start=1),
            total=self.n_splits,
            desc="Evaluation splits",
        ):
            logger.info(f"\n{'='*80}")
            logger.info(f"Split {fold_idx}/{self.n_splits}")
            logger.info(f"{'='*80}")
            self._run_split(fold_idx, train_idx, test_idx)

        logger.info("Evaluation complete!")
        return self.results_

    def _run_split(self, fold_idx: int, train_idx: np.ndarray, test_idx: np.ndarray):
        X_train, X_test = self.X.iloc[train_idx], self.X.iloc[test_idx]
        y_train, y_test = self.y[train_idx], self.y[test_idx]

        logger.info(f"Train: {len(y_train)} samples, Test: {len(y_test)} samples")

        preprocessor = create_preprocessing_pipeline(self.config)
        X_train_prep, y_train_prep = preprocessor.fit_transform(X_train, y_train)
        X_test_prep = preprocessor.transform(X_test)

        if self.use_pca:
            reducer = create_dimensionality_reduction(
                variance_threshold=self.config.get("pca_variance_threshold", 0.95),
                random_state=self.random_state,
            )
            X_train_prep = reducer.fit_transform(X_train_prep)
            X_test_prep = reducer.transform(X_test_prep)

        test_data = Dataset(features=X_test_prep, labels=y_test)

        self._train_baseline(fold_idx, y_train_prep, y_test)

        fitted = []
        for model_type in self.model_types:
            logger.info(f"--- Training {get_model_name(model_type)} ---")

            if self.tune:
                params = tune_hyperparameters(model_type, X_train_prep, y_train_prep, self.config)
            else:
                params = (self.config.get("model_params") or {}).get(model_type) or {}

            model = fit_model(
                model_type,
                X_train_prep,
                y_train_prep,
                params=params,
                random_state=self.random_state,
            )
            fitted.append(model)

            # A one-member ensemble is the model's own thresholded probability
            result, metrics = evaluate_ensemble([model], test_data, threshold=self.threshold)
            self.results_[model_type].append(
                self._fold_result(fold_idx, model_type, test_idx, y_test, result, metrics, params)
            )
            logger.info(f"Split {fold_idx} {get_model_name(model_type)}: {_format_metrics(metrics)}")

        self.fitted_models_[fold_idx] = fitted

        if self.build_ensemble:
            result, metrics = evaluate_ensemble(fitted, test_data, threshold=self.threshold)
            self.results_["ensemble"].append(
                self._fold_result(fold_idx, "ensemble", test_idx, y_test, result, metrics)
            )
            logger.info(f"Split {fold_idx} Ensemble: {_format_metrics(metrics)}")

    @staticmethod
    def _fold_result(fold_idx, model_type, test_idx, y_test, result, metrics, params=None):
        return {
            "fold": fold_idx,
            "model_type": model_type,
            "best_params": _to_serializable(params or {}),
            "y_true": y_test,
            "y_pred": result.labels,
            "y_proba": result.probabilities,
            "metrics": metrics,
            "test_indices": test_idx,
        }

    def _train_baseline(self, fold_idx: int, y_train: np.ndarray, y_test: np.ndarray):
        """Train and evaluate majority-class baseline."""
        baseline = MajorityClassBaseline().fit(y_train)

        metrics = calculate_all_metrics(
            y_true=y_test,
            y_pred=baseline.predict(len(y_test)),
            y_proba=baseline.predict_proba(len(y_test)),
            threshold=self.threshold,
        )
        self.baseline_results_.append({"fold": fold_idx, "metrics": metrics})

        logger.info(
            f"Baseline (majority class): Acc={metrics['accuracy']:.3f}"
        )


def run_evaluation(
    X: pd.DataFrame,
    y: np.ndarray,
    model_types: List[str],
    config: Dict[str, Any],
    build_ensemble: bool = True,
) -> Dict[str, Any]:
    """
    Convenience function to run the evaluation.

    Returns
    -------
    dict
        ``{"models": per-model results, "baseline": baseline results}``
    """
    runner = EvaluationRunner(
        X=X,
        y=y,
        model_types=model_types,
        config=config,
        build_ensemble=build_ensemble,
    )
    results = runner.run()

    return {
        "models": results,
        "baseline": runner.baseline_results_,
    }
