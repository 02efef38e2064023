"""
Hyperparameter optimization with Optuna and inner stratified CV.
"""

import logging
from typing import Any, Dict

import numpy as np
import optuna
import pandas as pd
from sklearn.model_selection import StratifiedKFold, cross_val_score

from biomarker_ml import POSITIVE_CLASS
from biomarker_ml.models import create_model, get_model_name
from biomarker_ml.search_space import get_search_space

logger = logging.getLogger(__name__)

optuna.logging.set_verbosity(optuna.logging.WARNING)

VALID_METRICS = ["accuracy", "roc_auc", "balanced_accuracy", "f1"]


def _search_params_to_model_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """Collapse helper trial parameters into estimator keyword arguments."""
    params = dict(params)
    max_features_type = params.pop("max_features_type", None)
    max_features_float = params.pop("max_features_float", None)
    if max_features_type is not None:
        params["max_features"] = (
            max_features_float if max_features_type == "float" else max_features_type
        )
    return params


def tune_hyperparameters(
    model_type: str,
    X: pd.DataFrame,
    y: np.ndarray,
    config: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Optimize hyperparameters using Optuna with inner CV.

    Parameters
    ----------
    model_type : str
        Model type code
    X : pd.DataFrame
        Training features (already preprocessed)
    y : np.ndarray
        Training labels
    config : dict
        Configuration (n_trials, inner_cv_folds, optimization_metric,
        random_state, early_stopping_patience, search-space sections)

    Returns
    -------
    dict
        Best hyperparameters, ready for ``create_model``
    """
    optimization_metric = config.get("optimization_metric", "roc_auc")
    if optimization_metric not in VALID_METRICS:
        raise ValueError(
            f"Invalid optimization_metric: {optimization_metric}. "
            f"Must be one of: {VALID_METRICS}"
        )

    random_state = config.get("random_state", 42)
    n_trials = config.get("n_trials", 30)
    early_stopping_patience = config.get("early_stopping_patience", 10)

    # f1 and friends need a 0/1 target with the patient class as 1
    y_binary = (np.asarray(y) == POSITIVE_CLASS).astype(int)
    min_class_count = np.bincount(y_binary).min()
    n_splits = max(2, min(config.get("inner_cv_folds", 5), int(min_class_count)))

    inner_cv = StratifiedKFold(
        n_splits=n_splits,
        shuffle=True,
        random_state=random_state,
    )

    def objective(trial: optuna.Trial) -> float:
        params = _search_params_to_model_params(get_search_space(model_type, trial, config))
        model = create_model(model_type=model_type, params=params, random_state=random_state)

        scores = cross_val_score(
            model,
            X,
            y_binary,
            cv=inner_cv,
            scoring=optimization_metric,
            n_jobs=1,
        )
        return scores.mean()

    # Track best trial for logging and early stopping
    best_trial_number = [None]

    def callback(study: optuna.Study, trial: optuna.trial.FrozenTrial) -> None:
        if study.best_trial.number != best_trial_number[0]:
            best_trial_number[0] = study.best_trial.number
            logger.debug(
                f"  Trial {best_trial_number[0]}: New best {optimization_metric} = "
                f"{study.best_value:.4f}"
            )
        elif trial.number - best_trial_number[0] >= early_stopping_patience:
            logger.info(
                f"  Early stopping: no improvement for {early_stopping_patience} trials"
            )
            study.stop()

    study = optuna.create_study(
        direction="maximize",
        sampler=optuna.samplers.TPESampler(seed=random_state),
    )
    study.optimize(
        objective,
        n_trials=n_trials,
        show_progress_bar=False,
        callbacks=[callback],
    )

    best_params = _search_params_to_model_params(study.best_params)
    logger.info(
        f"  {get_model_name(model_type)} HPO complete: best {optimization_metric} = "
        f"{study.best_value:.4f} ({len(study.trials)}/{n_trials} trials)"
    )
    logger.debug(f"  Best params: {best_params}")

    return best_params
