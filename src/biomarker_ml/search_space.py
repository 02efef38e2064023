"""
Optuna hyperparameter search spaces for all models.

All ranges are configurable via the config dictionary.
"""

import optuna
from typing import Dict, Any


def get_logistic_regression_search_space(trial: optuna.Trial, config: Dict[str, Any] = None) -> dict:
    """
    Logistic Regression search space.

    Parameters
    ----------
    trial : optuna.Trial
        Optuna trial object
    config : dict, optional
        Configuration dictionary with search ranges

    Returns
    -------
    dict
        Hyperparameter dictionary
    """
    if config is None:
        config = {}

    cfg = config.get("logistic_regression", {})

    return {
        "C": trial.suggest_float(
            "C",
            cfg.get("C_min", 1e-3),
            cfg.get("C_max", 1e2),
            log=True
        ),
        "class_weight": trial.suggest_categorical(
            "class_weight",
            cfg.get("class_weight", [None, "balanced"])
        ),
    }


def get_random_forest_search_space(trial: optuna.Trial, config: Dict[str, Any] = None) -> dict:
    """
    Random Forest search space.

    Parameters
    ----------
    trial : optuna.Trial
        Optuna trial object
    config : dict, optional
        Configuration dictionary with search ranges

    Returns
    -------
    dict
        Hyperparameter dictionary
    """
    if config is None:
        config = {}

    cfg = config.get("random_forest", {})

    params = {
        "n_estimators": trial.suggest_int(
            "n_estimators",
            cfg.get("n_estimators_min", 100),
            cfg.get("n_estimators_max", 500)
        ),
        "min_samples_split": trial.suggest_int(
            "min_samples_split",
            cfg.get("min_samples_split_min", 2),
            cfg.get("min_samples_split_max", 10)
        ),
        "min_samples_leaf": trial.suggest_int(
            "min_samples_leaf",
            cfg.get("min_samples_leaf_min", 1),
            cfg.get("min_samples_leaf_max", 5)
        ),
        "class_weight": trial.suggest_categorical(
            "class_weight",
            cfg.get("class_weight", [None, "balanced"])
        ),
    }

    # mtry equivalent: categorical rule or fraction of features
    max_features_options = cfg.get("max_features_options", ["sqrt", "log2", "float"])
    max_features_type = trial.suggest_categorical("max_features_type", max_features_options)

    if max_features_type in ["sqrt", "log2"]:
        params["max_features"] = max_features_type
    else:
        params["max_features"] = trial.suggest_float(
            "max_features_float",
            cfg.get("max_features_float_min", 0.3),
            cfg.get("max_features_float_max", 1.0)
        )

    return params


def get_svm_search_space(trial: optuna.Trial, config: Dict[str, Any] = None) -> dict:
    """Support Vector Machine search space (C, gamma, kernel)."""
    if config is None:
        config = {}

    cfg = config.get("svm", {})

    return {
        "C": trial.suggest_float(
            "C",
            cfg.get("C_min", 1e-2),
            cfg.get("C_max", 1e2),
            log=True
        ),
        "gamma": trial.suggest_float(
            "gamma",
            cfg.get("gamma_min", 1e-4),
            cfg.get("gamma_max", 1.0),
            log=True
        ),
        "kernel": trial.suggest_categorical(
            "kernel",
            cfg.get("kernel", ["rbf", "linear"])
        ),
    }


def get_bagging_search_space(trial: optuna.Trial, config: Dict[str, Any] = None) -> dict:
    """Bagged decision trees search space."""
    if config is None:
        config = {}

    cfg = config.get("bagging", {})

    return {
        "n_estimators": trial.suggest_int(
            "n_estimators",
            cfg.get("n_estimators_min", 10),
            cfg.get("n_estimators_max", 200)
        ),
        "max_samples": trial.suggest_float(
            "max_samples",
            cfg.get("max_samples_min", 0.5),
            cfg.get("max_samples_max", 1.0)
        ),
        "max_features": trial.suggest_float(
            "max_features",
            cfg.get("max_features_min", 0.5),
            cfg.get("max_features_max", 1.0)
        ),
    }


SEARCH_SPACE_FACTORY = {
    "lr": get_logistic_regression_search_space,
    "rf": get_random_forest_search_space,
    "svm": get_svm_search_space,
    "bag": get_bagging_search_space,
}


def get_search_space(model_type: str, trial: optuna.Trial, config: Dict[str, Any] = None) -> dict:
    """
    Get search space for a given model type.

    Parameters
    ----------
    model_type : str
        Model type code ('lr', 'rf', 'svm', 'bag')
    trial : optuna.Trial
        Optuna trial object
    config : dict, optional
        Configuration dictionary with search ranges

    Returns
    -------
    dict
        Hyperparameter dictionary for the trial
    """
    if model_type not in SEARCH_SPACE_FACTORY:
        raise ValueError(
            f"Unknown model type: {model_type}. "
            f"Available: {list(SEARCH_SPACE_FACTORY.keys())}"
        )

    return SEARCH_SPACE_FACTORY[model_type](trial, config)
