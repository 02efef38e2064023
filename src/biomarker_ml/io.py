"""
Data I/O module for loading the biomarker dataset.

Responsibilities:
- Load data from CSV file
- Validate the 1 (control) / 2 (patient) outcome column
- Detect numeric feature columns
- Wrap feature/label pairs as ensemble Datasets
"""

import logging
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from biomarker_ml import NEGATIVE_CLASS, POSITIVE_CLASS
from biomarker_ml.ensemble import Dataset

logger = logging.getLogger(__name__)

DEFAULT_OUTCOME_COLUMN = "Classification"


def load_data(
    filepath: Path,
    outcome_col: str = DEFAULT_OUTCOME_COLUMN,
) -> pd.DataFrame:
    """
    Load biomarker dataset from CSV file.

    Parameters
    ----------
    filepath : Path
        Path to CSV file
    outcome_col : str
        Column holding the 1/2 class label

    Returns
    -------
    pd.DataFrame
        Loaded dataframe with an integer outcome column
    """
    logger.info(f"Loading data from {filepath}")

    df = pd.read_csv(filepath)
    logger.info(f"Loaded data with shape {df.shape}")

    if outcome_col not in df.columns:
        raise ValueError(
            f"Outcome column '{outcome_col}' not found. "
            f"Available columns: {list(df.columns)}"
        )

    n_missing = df[outcome_col].isna().sum()
    if n_missing:
        logger.warning(f"Dropping {n_missing} rows with missing '{outcome_col}'")
        df = df.dropna(subset=[outcome_col]).reset_index(drop=True)

    unique_values = set(df[outcome_col].unique())
    if not unique_values.issubset({NEGATIVE_CLASS, POSITIVE_CLASS}):
        raise ValueError(
            f"Outcome column '{outcome_col}' must only contain "
            f"{NEGATIVE_CLASS} and {POSITIVE_CLASS}; found {sorted(unique_values)}"
        )
    df[outcome_col] = df[outcome_col].astype(int)

    n_patients = (df[outcome_col] == POSITIVE_CLASS).sum()
    logger.info(
        f"Patient prevalence: {n_patients}/{len(df)} "
        f"({n_patients / len(df) * 100:.1f}%)"
    )

    return df


def detect_feature_columns(
    df: pd.DataFrame,
    outcome_col: str = DEFAULT_OUTCOME_COLUMN,
    exclude: Optional[list] = None,
) -> List[str]:
    """
    Detect numeric feature columns.

    Parameters
    ----------
    df : pd.DataFrame
        Input dataframe
    outcome_col : str
        Outcome column, never a feature
    exclude : list, optional
        Further columns to leave out (identifiers, notes)

    Returns
    -------
    list
        Feature names in file order
    """
    exclude = set(exclude or [])
    exclude.add(outcome_col)

    features = []
    for col in df.columns:
        if col in exclude:
            continue
        if not pd.api.types.is_numeric_dtype(df[col]):
            logger.info(f"Skipping non-numeric column '{col}'")
            continue
        features.append(col)

    logger.info(f"Detected {len(features)} feature columns")
    logger.debug(f"Feature columns: {features}")

    return features


def prepare_dataset(
    filepath: Path,
    config: Optional[dict] = None,
) -> Tuple[pd.DataFrame, List[str]]:
    """
    Complete data preparation step.

    Parameters
    ----------
    filepath : Path
        Path to CSV data file
    config : dict, optional
        Configuration dictionary (``outcome_column``, ``exclude_columns``)

    Returns
    -------
    df : pd.DataFrame
        Loaded dataframe
    feature_names : list
        Feature column names
    """
    config = config or {}
    outcome_col = config.get("outcome_column", DEFAULT_OUTCOME_COLUMN)

    df = load_data(filepath=filepath, outcome_col=outcome_col)
    feature_names = detect_feature_columns(
        df,
        outcome_col=outcome_col,
        exclude=config.get("exclude_columns"),
    )

    if not feature_names:
        raise ValueError("No numeric feature columns detected!")

    if df[outcome_col].nunique() < 2:
        raise ValueError(
            f"Only one class found in '{outcome_col}'. "
            "Cannot train a classifier without both controls and patients."
        )

    logger.info(f"Final dataset: {df.shape[0]} samples, {len(feature_names)} features")

    return df, feature_names


def to_dataset(
    df: pd.DataFrame,
    feature_names: List[str],
    outcome_col: Optional[str] = DEFAULT_OUTCOME_COLUMN,
) -> Dataset:
    """Build an ensemble Dataset from a dataframe."""
    labels = None
    if outcome_col is not None and outcome_col in df.columns:
        labels = df[outcome_col].to_numpy(dtype=np.int64)
    return Dataset(features=df[feature_names].reset_index(drop=True), labels=labels)
