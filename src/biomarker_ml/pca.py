"""
Dimensionality reduction module.

PCA retaining the smallest number of components that reaches a configured
explained-variance fraction. Components are returned as named columns
(PC1, PC2, ...) so downstream models carry an explicit feature schema.
"""

import logging

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA

logger = logging.getLogger(__name__)


class DimensionalityReduction:
    """
    Variance-threshold PCA.

    Parameters
    ----------
    variance_threshold : float
        Minimum cumulative explained variance to retain (default: 0.95)
    random_state : int
        Random state for reproducibility
    """

    def __init__(
        self,
        variance_threshold: float = 0.95,
        random_state: int = 42,
    ):
        if not 0.0 < variance_threshold <= 1.0:
            raise ValueError(
                f"variance_threshold must be in (0, 1], got {variance_threshold}"
            )
        self.variance_threshold = variance_threshold
        self.random_state = random_state

        self.pca = None
        self.n_components_ = None
        self.component_names_ = None

    def fit_transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """
        Fit PCA on training data and transform.

        Parameters
        ----------
        X : pd.DataFrame
            Feature matrix (training data, already scaled)

        Returns
        -------
        pd.DataFrame
            Principal component scores
        """
        n_samples, n_features = X.shape
        max_components = min(n_samples, n_features)

        # Fit PCA with all components to get explained variance
        pca_full = PCA(random_state=self.random_state)
        pca_full.fit(X)

        cumulative_variance = np.cumsum(pca_full.explained_variance_ratio_)
        reached = cumulative_variance >= self.variance_threshold - 1e-12
        n_components = int(np.argmax(reached)) + 1 if reached.any() else max_components
        n_components = max(1, min(n_components, max_components))

        logger.info(
            f"PCA: {n_components}/{max_components} components retain "
            f"{cumulative_variance[n_components - 1]:.4f} variance "
            f"(threshold: {self.variance_threshold})"
        )

        self.pca = PCA(n_components=n_components, random_state=self.random_state)
        scores = self.pca.fit_transform(X)
        self.n_components_ = n_components
        self.component_names_ = [f"PC{i + 1}" for i in range(n_components)]

        return pd.DataFrame(scores, columns=self.component_names_)

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Project new data onto the fitted components."""
        if self.pca is None:
            raise ValueError("PCA not fitted yet. Call fit_transform first.")

        return pd.DataFrame(self.pca.transform(X), columns=self.component_names_)


def create_dimensionality_reduction(
    variance_threshold: float = 0.95,
    random_state: int = 42,
) -> DimensionalityReduction:
    """Factory function to create the PCA step."""
    return DimensionalityReduction(
        variance_threshold=variance_threshold,
        random_state=random_state,
    )
