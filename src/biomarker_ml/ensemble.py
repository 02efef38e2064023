"""
Ensemble methods for combining model predictions.

Implements an unweighted probability-averaging ensemble over heterogeneous,
already-fitted binary classifiers. Each member is tagged with a model kind,
and the kind selects how its patient-class probability is extracted.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.ensemble import BaggingClassifier, RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.svm import SVC

from biomarker_ml import CLASSIFICATION_THRESHOLD, POSITIVE_CLASS
from biomarker_ml.metrics import apply_threshold, calculate_all_metrics

logger = logging.getLogger(__name__)

LOGISTIC_REGRESSION = "logistic_regression"
RANDOM_FOREST = "random_forest"
SUPPORT_VECTOR_MACHINE = "svm"
BAGGING = "bagging"


class EnsembleError(ValueError):
    """Base class for failures that abort an ensemble scoring call."""

    def __init__(self, message: str, kind: Optional[str] = None, index: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.index = index


class UnrecognizedModelKind(EnsembleError):
    """A model's kind has no registered probability extractor."""


class CapabilityError(EnsembleError):
    """A model of a known kind cannot produce a patient-class probability."""


class SchemaMismatch(EnsembleError):
    """Features expected by a model are absent from the scored data."""

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        index: Optional[int] = None,
        missing: Sequence[str] = (),
    ):
        super().__init__(message, kind=kind, index=index)
        self.missing = list(missing)


class ProbabilityRangeError(EnsembleError):
    """A member returned a probability outside [0, 1] (or NaN)."""


@dataclass(frozen=True)
class FittedModel:
    """
    Read-only handle to a trained binary classifier.

    Parameters
    ----------
    kind : str
        Model kind used to pick the probability extractor
    estimator : object
        Fitted estimator
    feature_names : tuple of str
        Ordered feature schema the estimator was trained on
    positive_label : int
        Label value of the patient class (default: 2)
    name : str, optional
        Display name used in logs and reports
    """

    kind: str
    estimator: Any
    feature_names: Tuple[str, ...]
    positive_label: Any = POSITIVE_CLASS
    name: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "feature_names", tuple(self.feature_names))

    @property
    def label(self) -> str:
        return self.name or self.kind

    @classmethod
    def from_estimator(
        cls,
        estimator: Any,
        feature_names: Sequence[str],
        positive_label: Any = POSITIVE_CLASS,
        name: Optional[str] = None,
    ) -> "FittedModel":
        """Wrap a fitted scikit-learn estimator, inferring its kind from its class."""
        return cls(
            kind=kind_for_estimator(estimator),
            estimator=estimator,
            feature_names=tuple(feature_names),
            positive_label=positive_label,
            name=name,
        )


@dataclass
class Dataset:
    """Feature rows plus optional ground-truth labels (1/2)."""

    features: pd.DataFrame
    labels: Optional[np.ndarray] = None

    def __post_init__(self):
        if self.labels is not None:
            self.labels = np.asarray(self.labels)
            if len(self.labels) != len(self.features):
                raise ValueError(
                    f"Got {len(self.labels)} labels for {len(self.features)} rows"
                )

    def __len__(self) -> int:
        return len(self.features)

    @property
    def feature_names(self) -> List[str]:
        return self.features.columns.tolist()


@dataclass
class EnsembleResult:
    """
    Output of one scoring call.

    Attributes
    ----------
    probabilities : np.ndarray
        Averaged patient-class probability per row
    labels : np.ndarray
        Thresholded 1/2 label per row
    member_probabilities : np.ndarray
        Per-model probabilities, shape (n_models, n_rows)
    member_names : list
        Model labels in input order
    threshold : float
        Threshold used for the labels
    """

    probabilities: np.ndarray
    labels: np.ndarray
    member_probabilities: np.ndarray
    member_names: List[str] = field(default_factory=list)
    threshold: float = CLASSIFICATION_THRESHOLD

    def __len__(self) -> int:
        return len(self.labels)


Extractor = Callable[[Any, pd.DataFrame, Any], np.ndarray]


def _positive_column(estimator: Any, positive_label: Any) -> int:
    """Locate the patient-class column of predict_proba by label value."""
    classes = getattr(estimator, "classes_", None)
    if classes is None:
        raise CapabilityError(
            f"{type(estimator).__name__} exposes no classes_; is it fitted?"
        )

    matches = np.flatnonzero(np.asarray(classes) == positive_label)
    if len(matches) == 0:
        raise CapabilityError(
            f"Positive label {positive_label!r} not among classes {list(classes)}"
        )
    return int(matches[0])


def _predict_proba_column(estimator: Any, X: pd.DataFrame, positive_label: Any) -> np.ndarray:
    if not hasattr(estimator, "predict_proba"):
        raise CapabilityError(
            f"{type(estimator).__name__} cannot produce class probabilities"
        )
    column = _positive_column(estimator, positive_label)
    return np.asarray(estimator.predict_proba(X))[:, column]


def _logistic_regression_probability(estimator, X, positive_label):
    # Logistic output is already a calibrated class probability
    return _predict_proba_column(estimator, X, positive_label)


def _random_forest_probability(estimator, X, positive_label):
    return _predict_proba_column(estimator, X, positive_label)


def _svm_probability(estimator, X, positive_label):
    # probA_ is empty unless Platt scaling was run during fit
    fitted_with_probability = getattr(estimator, "probA_", np.empty(0)).size > 0
    if not getattr(estimator, "probability", False) or not fitted_with_probability:
        raise CapabilityError(
            "SVM was fit without probability estimation (probability=False)"
        )
    return _predict_proba_column(estimator, X, positive_label)


def _bagging_probability(estimator, X, positive_label):
    # predict_proba already averages over the bootstrap learners
    return _predict_proba_column(estimator, X, positive_label)


_EXTRACTORS: Dict[str, Extractor] = {
    LOGISTIC_REGRESSION: _logistic_regression_probability,
    RANDOM_FOREST: _random_forest_probability,
    SUPPORT_VECTOR_MACHINE: _svm_probability,
    BAGGING: _bagging_probability,
}

_ESTIMATOR_KINDS = {
    LogisticRegression: LOGISTIC_REGRESSION,
    RandomForestClassifier: RANDOM_FOREST,
    SVC: SUPPORT_VECTOR_MACHINE,
    BaggingClassifier: BAGGING,
}


def register_extractor(kind: str, extractor: Extractor, replace: bool = False) -> None:
    """
    Register a probability extractor for a new model kind.

    Parameters
    ----------
    kind : str
        Kind identifier
    extractor : callable
        ``extractor(estimator, X, positive_label) -> np.ndarray``
    replace : bool
        Allow overriding an existing registration
    """
    if kind in _EXTRACTORS and not replace:
        raise ValueError(
            f"Model kind '{kind}' is already registered. "
            "Pass replace=True to override it."
        )
    _EXTRACTORS[kind] = extractor
    logger.debug(f"Registered probability extractor for kind '{kind}'")


def registered_kinds() -> List[str]:
    """Kinds the ensemble knows how to score."""
    return list(_EXTRACTORS.keys())


def kind_for_estimator(estimator: Any) -> str:
    """Map a scikit-learn estimator to its model kind."""
    for estimator_cls, kind in _ESTIMATOR_KINDS.items():
        if isinstance(estimator, estimator_cls):
            return kind
    raise UnrecognizedModelKind(
        f"No model kind known for {type(estimator).__name__}. "
        f"Known estimators: {[cls.__name__ for cls in _ESTIMATOR_KINDS]}",
        kind=type(estimator).__name__,
    )


def extract_positive_probability(
    model: FittedModel,
    data: Dataset,
    index: int = 0,
) -> np.ndarray:
    """
    Patient-class probability of every row of ``data`` for one model.

    Parameters
    ----------
    model : FittedModel
        Ensemble member
    data : Dataset
        Rows to score
    index : int
        Position of ``model`` in the ensemble, for diagnostics

    Returns
    -------
    np.ndarray
        Probabilities, one per row, in row order
    """
    extractor = _EXTRACTORS.get(model.kind)
    if extractor is None:
        raise UnrecognizedModelKind(
            f"Model {index} has unrecognized kind '{model.kind}'. "
            f"Available: {registered_kinds()}",
            kind=model.kind,
            index=index,
        )

    missing = [f for f in model.feature_names if f not in data.features.columns]
    if missing:
        raise SchemaMismatch(
            f"Model {index} ({model.label}) expects features missing from data: {missing}",
            kind=model.kind,
            index=index,
            missing=missing,
        )

    X = data.features[list(model.feature_names)]

    try:
        proba = extractor(model.estimator, X, model.positive_label)
    except EnsembleError as e:
        e.kind = model.kind
        e.index = index
        raise
    except Exception as e:
        raise EnsembleError(
            f"Model {index} ({model.label}) failed to produce probabilities: {e}",
            kind=model.kind,
            index=index,
        ) from e

    proba = np.asarray(proba, dtype=float).reshape(-1)
    if len(proba) != len(data):
        raise EnsembleError(
            f"Model {index} ({model.label}) returned {len(proba)} probabilities "
            f"for {len(data)} rows",
            kind=model.kind,
            index=index,
        )

    invalid = np.isnan(proba) | (proba < 0.0) | (proba > 1.0)
    if invalid.any():
        raise ProbabilityRangeError(
            f"Model {index} ({model.label}) returned probabilities outside [0, 1] "
            f"at rows {np.flatnonzero(invalid).tolist()}",
            kind=model.kind,
            index=index,
        )

    return proba


def score(
    models: Sequence[FittedModel],
    data: Dataset,
    threshold: float = CLASSIFICATION_THRESHOLD,
) -> EnsembleResult:
    """
    Combine fitted models by averaging their patient-class probabilities.

    Every model contributes equally. A row is labelled as the patient class
    only when its averaged probability is strictly greater than ``threshold``.
    Any member failure aborts the whole call.

    Parameters
    ----------
    models : sequence of FittedModel
        Non-empty, ordered ensemble members
    data : Dataset
        Rows to score (labels, if any, are ignored)
    threshold : float
        Classification threshold (default: 0.5)

    Returns
    -------
    EnsembleResult
        Averaged probabilities and labels in row order
    """
    models = list(models)
    if not models:
        raise ValueError("Cannot score an empty ensemble")
    if len(data) == 0:
        raise ValueError("Cannot score a dataset with no rows")

    member_probabilities = np.vstack(
        [
            extract_positive_probability(model, data, index=i)
            for i, model in enumerate(models)
        ]
    )

    # fsum is exactly rounded, so the mean does not depend on member order
    n_models = len(models)
    probabilities = np.array(
        [math.fsum(column) / n_models for column in member_probabilities.T]
    )
    labels = apply_threshold(probabilities, threshold)

    logger.debug(
        f"Ensemble: {n_models} models combined by probability averaging "
        f"over {len(data)} rows"
    )

    return EnsembleResult(
        probabilities=probabilities,
        labels=labels,
        member_probabilities=member_probabilities,
        member_names=[model.label for model in models],
        threshold=threshold,
    )


def evaluate_ensemble(
    models: Sequence[FittedModel],
    data: Dataset,
    threshold: float = CLASSIFICATION_THRESHOLD,
) -> Tuple[EnsembleResult, Dict[str, float]]:
    """
    Score ``data`` and compute metrics against its labels.

    Returns
    -------
    result : EnsembleResult
        Ensemble output
    metrics : dict
        Metrics from ``calculate_all_metrics``
    """
    if data.labels is None:
        raise ValueError("Dataset has no labels to evaluate against")

    result = score(models, data, threshold=threshold)
    metrics = calculate_all_metrics(
        y_true=data.labels,
        y_pred=result.labels,
        y_proba=result.probabilities,
        threshold=threshold,
    )
    return result, metrics
