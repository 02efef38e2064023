"""
Model definitions for biomarker classification.

Includes:
- Logistic Regression
- Random Forest
- Support Vector Machine (RBF, probability estimates enabled)
- Bagged decision trees
"""

import logging
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
from sklearn.ensemble import BaggingClassifier, RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.svm import SVC
from sklearn.tree import DecisionTreeClassifier

from biomarker_ml import POSITIVE_CLASS
from biomarker_ml.ensemble import (
    BAGGING,
    LOGISTIC_REGRESSION,
    RANDOM_FOREST,
    SUPPORT_VECTOR_MACHINE,
    FittedModel,
)

logger = logging.getLogger(__name__)


def create_logistic_regression(
    params: Dict[str, Any],
    random_state: int = 42,
) -> LogisticRegression:
    """
    Create Logistic Regression model.

    Parameters
    ----------
    params : dict
        Hyperparameters (C, class_weight)
    random_state : int
        Random state

    Returns
    -------
    LogisticRegression
        Configured model
    """
    return LogisticRegression(
        C=params.get("C", 1.0),
        class_weight=params.get("class_weight", None),
        solver="lbfgs",
        max_iter=1000,
        random_state=random_state,
    )


def create_random_forest_classifier(
    params: Dict[str, Any],
    random_state: int = 42,
) -> RandomForestClassifier:
    """
    Create Random Forest classifier.

    Parameters
    ----------
    params : dict
        Hyperparameters (n_estimators, max_depth, max_features,
                         min_samples_split, min_samples_leaf, class_weight)
    random_state : int
        Random state

    Returns
    -------
    RandomForestClassifier
        Configured model
    """
    return RandomForestClassifier(
        n_estimators=params.get("n_estimators", 500),
        max_depth=params.get("max_depth", None),
        max_features=params.get("max_features", "sqrt"),
        min_samples_split=params.get("min_samples_split", 2),
        min_samples_leaf=params.get("min_samples_leaf", 1),
        class_weight=params.get("class_weight", None),
        random_state=random_state,
        n_jobs=-1,
    )


def create_svm_classifier(
    params: Dict[str, Any],
    random_state: int = 42,
) -> SVC:
    """
    Create Support Vector Machine classifier.

    Probability estimation is always enabled; the ensemble cannot use an
    SVM without it.
    """
    return SVC(
        C=params.get("C", 1.0),
        kernel=params.get("kernel", "rbf"),
        gamma=params.get("gamma", "scale"),
        class_weight=params.get("class_weight", None),
        probability=True,
        random_state=random_state,
    )


def create_bagging_classifier(
    params: Dict[str, Any],
    random_state: int = 42,
) -> BaggingClassifier:
    """
    Create bagged decision trees.

    Parameters
    ----------
    params : dict
        Hyperparameters (n_estimators, max_samples, max_features, max_depth)
    random_state : int
        Random state

    Returns
    -------
    BaggingClassifier
        Configured model
    """
    return BaggingClassifier(
        estimator=DecisionTreeClassifier(
            max_depth=params.get("max_depth", None),
            random_state=random_state,
        ),
        n_estimators=params.get("n_estimators", 25),
        max_samples=params.get("max_samples", 1.0),
        max_features=params.get("max_features", 1.0),
        bootstrap=True,
        random_state=random_state,
        n_jobs=-1,
    )


MODEL_FACTORY = {
    "lr": create_logistic_regression,
    "rf": create_random_forest_classifier,
    "svm": create_svm_classifier,
    "bag": create_bagging_classifier,
}

MODEL_NAMES = {
    "lr": "Logistic Regression",
    "rf": "Random Forest",
    "svm": "Support Vector Machine",
    "bag": "Bagged Trees",
    "ensemble": "Averaging Ensemble",
}

MODEL_KINDS = {
    "lr": LOGISTIC_REGRESSION,
    "rf": RANDOM_FOREST,
    "svm": SUPPORT_VECTOR_MACHINE,
    "bag": BAGGING,
}


def create_model(
    model_type: str,
    params: Optional[Dict[str, Any]] = None,
    random_state: int = 42,
):
    """
    Factory function to create any model by type.

    Parameters
    ----------
    model_type : str
        Model type code ('lr', 'rf', 'svm', 'bag')
    params : dict, optional
        Hyperparameters
    random_state : int
        Random state

    Returns
    -------
    estimator
        Configured sklearn estimator
    """
    if model_type not in MODEL_FACTORY:
        raise ValueError(
            f"Unknown model type: {model_type}. "
            f"Available: {list(MODEL_FACTORY.keys())}"
        )

    return MODEL_FACTORY[model_type](params or {}, random_state=random_state)


def fit_model(
    model_type: str,
    X: pd.DataFrame,
    y: np.ndarray,
    params: Optional[Dict[str, Any]] = None,
    random_state: int = 42,
) -> FittedModel:
    """
    Create, fit and wrap a model for the ensemble.

    Parameters
    ----------
    model_type : str
        Model type code
    X : pd.DataFrame
        Training features; its columns become the model's schema
    y : np.ndarray
        Training labels (1/2)
    params : dict, optional
        Hyperparameters
    random_state : int
        Random state

    Returns
    -------
    FittedModel
        Fitted, kind-tagged model handle
    """
    estimator = create_model(model_type, params=params, random_state=random_state)
    estimator.fit(X, y)

    logger.debug(
        f"Fitted {get_model_name(model_type)} on {X.shape[0]} samples, "
        f"{X.shape[1]} features"
    )

    return FittedModel(
        kind=MODEL_KINDS[model_type],
        estimator=estimator,
        feature_names=tuple(X.columns),
        positive_label=POSITIVE_CLASS,
        name=model_type,
    )


def get_model_name(model_type: str) -> str:
    """Get human-readable model name."""
    return MODEL_NAMES.get(model_type, model_type)
