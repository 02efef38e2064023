"""
Preprocessing module for the biomarker pipeline.

All transformers are fitted ONLY on training data and applied to test data.

Includes:
- IQR outlier removal (training rows only)
- KNN imputation for numeric features (k=10)
- Ratio feature engineering
- log1p transform of skewed, non-negative features
- StandardScaler
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.stats import skew
from sklearn.impute import KNNImputer
from sklearn.preprocessing import StandardScaler

logger = logging.getLogger(__name__)


class PreprocessingPipeline:
    """
    Complete preprocessing pipeline for the biomarker data.

    Steps (all fitted on training data only):
    1. Drop training rows with extreme values (IQR rule)
    2. Impute missing values with KNN
    3. Add ratio features
    4. log1p-transform skewed non-negative features
    5. Standardize

    Parameters
    ----------
    outlier_iqr_factor : float, optional
        Multiplier k of the IQR fence; None disables outlier removal
    knn_neighbors : int
        Number of neighbors for KNN imputation (default: 10)
    engineered_ratios : dict, optional
        ``{new_name: (numerator, denominator)}``
    skew_threshold : float
        Absolute skewness above which a feature is log-transformed
    log_transform_columns : list, optional
        Explicit columns to log-transform; overrides skew detection
    """

    def __init__(
        self,
        outlier_iqr_factor: Optional[float] = 3.0,
        knn_neighbors: int = 10,
        engineered_ratios: Optional[Dict[str, Sequence[str]]] = None,
        skew_threshold: float = 1.0,
        log_transform_columns: Optional[List[str]] = None,
    ):
        self.outlier_iqr_factor = outlier_iqr_factor
        self.knn_neighbors = knn_neighbors
        self.engineered_ratios = engineered_ratios or {}
        self.skew_threshold = skew_threshold
        self.log_transform_columns = log_transform_columns

        self.imputer = None
        self.scaler = StandardScaler()

        # Feature tracking
        self.input_features_ = None
        self.ratio_features_ = None
        self.ratio_fill_values_ = None
        self.log_features_ = None
        self.feature_names_ = None
        self.outlier_bounds_ = None
        self.n_outliers_removed_ = 0

    def fit_transform(
        self,
        X: pd.DataFrame,
        y: np.ndarray,
    ) -> Tuple[pd.DataFrame, np.ndarray]:
        """
        Fit preprocessing pipeline on training data and transform.

        Parameters
        ----------
        X : pd.DataFrame
            Feature matrix (training data)
        y : np.ndarray
            Target labels (training data)

        Returns
        -------
        X_transformed : pd.DataFrame
            Transformed features
        y_transformed : np.ndarray
            Labels of the rows kept after outlier removal
        """
        logger.debug(f"Fitting preprocessing on {X.shape[0]} samples")

        self.input_features_ = X.columns.tolist()
        y = np.asarray(y)

        # Step 1: Outlier removal
        X, y = self._remove_outliers(X.reset_index(drop=True), y)

        # Step 2: Imputation
        n_neighbors = max(1, min(self.knn_neighbors, len(X) - 1))
        if n_neighbors < self.knn_neighbors:
            logger.debug(f"Reduced KNN imputation neighbors to {n_neighbors}")
        self.imputer = KNNImputer(n_neighbors=n_neighbors, keep_empty_features=True)
        X_imputed = pd.DataFrame(
            self.imputer.fit_transform(X),
            columns=self.input_features_,
        )

        # Step 3: Feature engineering
        X_engineered = self._add_ratios(X_imputed, fit=True)

        # Step 4: Log transform
        self.log_features_ = self._select_log_features(X_engineered)
        X_logged = self._log_transform(X_engineered)

        # Step 5: Standardization
        self.feature_names_ = X_logged.columns.tolist()
        X_scaled = pd.DataFrame(
            self.scaler.fit_transform(X_logged),
            columns=self.feature_names_,
        )

        logger.debug(
            f"Preprocessing complete: {X_scaled.shape[0]} samples, "
            f"{X_scaled.shape[1]} features after transformations"
        )

        return X_scaled, y

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """
        Transform new data using fitted preprocessing pipeline.

        No rows are removed, so the output keeps the input's row order.
        """
        if self.feature_names_ is None:
            raise ValueError("Pipeline not fitted yet. Call fit_transform first.")

        # Ensure same feature order
        X = X[self.input_features_].reset_index(drop=True)

        X_imputed = pd.DataFrame(
            self.imputer.transform(X),
            columns=self.input_features_,
        )
        X_engineered = self._add_ratios(X_imputed, fit=False)
        X_logged = self._log_transform(X_engineered)

        return pd.DataFrame(
            self.scaler.transform(X_logged[self.feature_names_]),
            columns=self.feature_names_,
        )

    def _remove_outliers(
        self, X: pd.DataFrame, y: np.ndarray
    ) -> Tuple[pd.DataFrame, np.ndarray]:
        """Drop rows with any value beyond the IQR fences."""
        if self.outlier_iqr_factor is None:
            return X, y

        q1 = X.quantile(0.25)
        q3 = X.quantile(0.75)
        iqr = q3 - q1
        lower = q1 - self.outlier_iqr_factor * iqr
        upper = q3 + self.outlier_iqr_factor * iqr
        self.outlier_bounds_ = {
            col: (lower[col], upper[col]) for col in X.columns
        }

        # NaNs compare False and are left for the imputer
        is_outlier = ((X < lower) | (X > upper)).any(axis=1).to_numpy()
        self.n_outliers_removed_ = int(is_outlier.sum())

        if self.n_outliers_removed_ == len(X):
            logger.warning("Outlier rule would remove every row. Skipping outlier removal.")
            self.n_outliers_removed_ = 0
            return X, y

        if len(np.unique(y[~is_outlier])) < len(np.unique(y)):
            logger.warning(
                "Outlier rule would remove an entire class. Skipping outlier removal."
            )
            self.n_outliers_removed_ = 0
            return X, y

        if self.n_outliers_removed_:
            logger.info(
                f"Removed {self.n_outliers_removed_}/{len(X)} training rows "
                f"outside {self.outlier_iqr_factor}×IQR"
            )

        return X.loc[~is_outlier].reset_index(drop=True), y[~is_outlier]

    def _add_ratios(self, X: pd.DataFrame, fit: bool) -> pd.DataFrame:
        """Append configured ratio features."""
        X = X.copy()

        if fit:
            self.ratio_features_ = {}
            self.ratio_fill_values_ = {}
            for name, (numerator, denominator) in self.engineered_ratios.items():
                if numerator not in X.columns or denominator not in X.columns:
                    logger.warning(
                        f"Skipping ratio '{name}': needs '{numerator}' and '{denominator}'"
                    )
                    continue
                self.ratio_features_[name] = (numerator, denominator)

        for name, (numerator, denominator) in self.ratio_features_.items():
            ratio = X[numerator] / X[denominator].replace(0, np.nan)
            ratio = ratio.replace([np.inf, -np.inf], np.nan)
            if fit:
                self.ratio_fill_values_[name] = float(ratio.median()) if ratio.notna().any() else 0.0
            X[name] = ratio.fillna(self.ratio_fill_values_[name])

        return X

    def _select_log_features(self, X: pd.DataFrame) -> List[str]:
        """Pick non-negative features to log-transform."""
        if self.log_transform_columns is not None:
            candidates = [c for c in self.log_transform_columns if c in X.columns]
        else:
            candidates = [
                col
                for col in X.columns
                if X[col].nunique() > 1 and abs(skew(X[col])) > self.skew_threshold
            ]

        selected = [col for col in candidates if X[col].min() >= 0]
        skipped = set(candidates) - set(selected)
        if skipped:
            logger.info(f"Not log-transforming features with negative values: {sorted(skipped)}")

        logger.debug(f"Log-transforming {len(selected)} features: {selected}")
        return selected

    def _log_transform(self, X: pd.DataFrame) -> pd.DataFrame:
        X = X.copy()
        for col in self.log_features_:
            # Clip at zero so unseen negative values stay finite
            X[col] = np.log1p(X[col].clip(lower=0))
        return X


def create_preprocessing_pipeline(config: Optional[dict] = None) -> PreprocessingPipeline:
    """
    Factory function to create preprocessing pipeline from a config dict.

    Parameters
    ----------
    config : dict, optional
        Keys: outlier_iqr_factor, knn_neighbors, engineered_ratios,
        skew_threshold, log_transform_columns

    Returns
    -------
    PreprocessingPipeline
        Configured preprocessing pipeline
    """
    config = config or {}
    return PreprocessingPipeline(
        outlier_iqr_factor=config.get("outlier_iqr_factor", 3.0),
        knn_neighbors=config.get("knn_neighbors", 10),
        engineered_ratios=config.get("engineered_ratios"),
        skew_threshold=config.get("skew_threshold", 1.0),
        log_transform_columns=config.get("log_transform_columns"),
    )
