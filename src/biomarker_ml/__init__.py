"""
Biomarker ML: classification of a clinical biomarker dataset

A small, reproducible framework for preprocessing a clinical biomarker table,
fitting logistic regression, random forest, SVM and bagged-tree classifiers,
and combining them with a probability-averaging ensemble.
"""

__version__ = "1.0.0"

# Explicit classification threshold used throughout the pipeline
CLASSIFICATION_THRESHOLD = 0.5

# Target encoding of the source dataset: 1 = healthy control, 2 = patient
NEGATIVE_CLASS = 1
POSITIVE_CLASS = 2

__all__ = [
    "__version__",
    "CLASSIFICATION_THRESHOLD",
    "NEGATIVE_CLASS",
    "POSITIVE_CLASS",
]
