"""Shared fixtures: a synthetic biomarker table and fixed-probability models."""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from biomarker_ml.ensemble import RANDOM_FOREST, Dataset, FittedModel

FEATURES = [
    "Age",
    "BMI",
    "Glucose",
    "Insulin",
    "HOMA",
    "Leptin",
    "Adiponectin",
    "Resistin",
    "MCP.1",
]


def make_biomarker_frame(n_controls: int = 52, n_patients: int = 64, seed: int = 0) -> pd.DataFrame:
    """Positive-valued, right-skewed columns with a class shift in a few of them."""
    rng = np.random.default_rng(seed)
    y = np.array([1] * n_controls + [2] * n_patients)
    patient = (y == 2).astype(float)
    n = len(y)

    glucose = rng.lognormal(np.log(88) + 0.15 * patient, 0.12)
    insulin = rng.lognormal(np.log(6.5) + 0.3 * patient, 0.6)
    df = pd.DataFrame(
        {
            "Age": rng.normal(57, 16, n).clip(24, 89).round(),
            "BMI": rng.normal(27, 5, n).clip(18, 40),
            "Glucose": glucose,
            "Insulin": insulin,
            "HOMA": glucose * insulin / 405,
            "Leptin": rng.lognormal(np.log(20), 0.7, n),
            "Adiponectin": rng.lognormal(np.log(8), 0.6, n),
            "Resistin": rng.lognormal(np.log(10) + 0.4 * patient, 0.6),
            "MCP.1": rng.lognormal(np.log(500), 0.5, n),
            "Classification": y,
        }
    )
    return df.sample(frac=1.0, random_state=seed).reset_index(drop=True)


class FixedProbabilityEstimator:
    """Fitted-classifier stand-in returning preset patient-class probabilities."""

    def __init__(self, probabilities, classes=(1, 2)):
        self.probabilities = np.asarray(probabilities, dtype=float)
        self.classes_ = np.asarray(classes)
        self.calls = 0

    def predict_proba(self, X):
        self.calls += 1
        p = self.probabilities[: len(X)]
        columns = {2: p, 1: 1.0 - p}
        return np.column_stack([columns[c] for c in self.classes_])


@pytest.fixture
def biomarker_df():
    return make_biomarker_frame()


@pytest.fixture
def feature_names():
    return list(FEATURES)


@pytest.fixture
def fixed_model():
    """Factory: ``fixed_model([0.9, 0.2])`` -> FittedModel over columns a, b."""

    def _make(probabilities, kind=RANDOM_FOREST, classes=(1, 2), name=None):
        return FittedModel(
            kind=kind,
            estimator=FixedProbabilityEstimator(probabilities, classes=classes),
            feature_names=("a", "b"),
            name=name,
        )

    return _make


@pytest.fixture
def ab_dataset():
    """Factory: dataset with ``n_rows`` rows over columns a, b."""

    def _make(n_rows, labels=None):
        features = pd.DataFrame(
            {"a": np.arange(n_rows, dtype=float), "b": np.ones(n_rows)}
        )
        return Dataset(features=features, labels=labels)

    return _make
