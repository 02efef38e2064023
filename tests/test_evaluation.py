"""End-to-end tests for the evaluation runner, reports and figures."""

import numpy as np
import pytest

from biomarker_ml.evaluation import EvaluationRunner, run_evaluation
from biomarker_ml.plotting import plot_all_figures
from biomarker_ml.reporting import create_metrics_summary_table, generate_all_reports

FAST_CONFIG = {
    "random_state": 0,
    "model_params": {"rf": {"n_estimators": 20}, "bag": {"n_estimators": 5}},
    "engineered_ratios": {"Leptin_Adiponectin_Ratio": ["Leptin", "Adiponectin"]},
}


@pytest.fixture
def Xy(biomarker_df, feature_names):
    return biomarker_df[feature_names], biomarker_df["Classification"].values


def test_holdout_split(Xy):
    X, y = Xy
    config = dict(FAST_CONFIG, cv_folds=1, validation_size=0.3)

    evaluation = run_evaluation(X, y, ["lr", "rf", "svm", "bag"], config)
    results = evaluation["models"]

    assert set(results) == {"lr", "rf", "svm", "bag", "ensemble"}
    ensemble_fold = results["ensemble"][0]
    assert len(ensemble_fold["y_pred"]) == len(ensemble_fold["test_indices"]) == 35
    for metric in ("accuracy", "kappa", "roc_auc"):
        assert metric in ensemble_fold["metrics"]
    assert 0.0 <= ensemble_fold["metrics"]["accuracy"] <= 1.0
    assert len(evaluation["baseline"]) == 1


def test_ensemble_is_mean_of_members(Xy):
    X, y = Xy
    results = run_evaluation(X, y, ["lr", "svm"], dict(FAST_CONFIG))["models"]

    expected = (results["lr"][0]["y_proba"] + results["svm"][0]["y_proba"]) / 2
    np.testing.assert_allclose(results["ensemble"][0]["y_proba"], expected)


def test_cross_validation_with_pca(Xy):
    X, y = Xy
    config = dict(FAST_CONFIG, cv_folds=3, use_pca=True, pca_variance_threshold=0.9)

    runner = EvaluationRunner(X, y, ["lr", "rf"], config)
    results = runner.run()

    assert len(results["ensemble"]) == 3
    tested = np.concatenate([r["test_indices"] for r in results["ensemble"]])
    assert sorted(tested.tolist()) == list(range(len(y)))
    assert runner.fitted_models_[1][0].feature_names[0] == "PC1"


def test_no_ensemble(Xy):
    X, y = Xy
    results = run_evaluation(X, y, ["lr"], dict(FAST_CONFIG), build_ensemble=False)["models"]
    assert "ensemble" not in results


def test_unknown_model_rejected(Xy):
    X, y = Xy
    with pytest.raises(ValueError, match="Unknown model type"):
        EvaluationRunner(X, y, ["lr", "knn"], FAST_CONFIG)


def test_reports_and_figures(tmp_path, Xy):
    X, y = Xy
    evaluation = run_evaluation(X, y, ["lr", "rf"], dict(FAST_CONFIG, cv_folds=2))

    summary = generate_all_reports(
        results=evaluation["models"],
        output_dir=tmp_path,
        baseline_results=evaluation["baseline"],
    )
    plot_all_figures(evaluation["models"], tmp_path / "figures")

    assert summary["Model"].tolist() == [
        "Baseline (Majority Class)",
        "Logistic Regression",
        "Random Forest",
        "Averaging Ensemble",
    ]
    assert "KAPPA" in summary.columns
    assert (tmp_path / "tables" / "summary.csv").exists()
    assert (tmp_path / "tables" / "summary.md").exists()
    assert (tmp_path / "tables" / "best_params_rf.json").exists()
    assert (tmp_path / "predictions" / "fold_2" / "ensemble" / "predictions.csv").exists()
    assert (tmp_path / "figures" / "roc_curves.png").exists()
    assert (tmp_path / "figures" / "confusion_matrices.png").exists()


def test_single_split_summary_has_plain_values(Xy):
    X, y = Xy
    evaluation = run_evaluation(X, y, ["lr"], dict(FAST_CONFIG))

    summary = create_metrics_summary_table(evaluation["models"])

    assert "(" not in summary.loc[0, "ACCURACY"]


def test_markdown_report_shows_configured_threshold_and_ci(tmp_path, Xy):
    X, y = Xy
    evaluation = run_evaluation(
        X, y, ["lr"], dict(FAST_CONFIG, cv_folds=2, threshold=0.4)
    )

    generate_all_reports(
        results=evaluation["models"],
        output_dir=tmp_path,
        threshold=0.4,
        ci=0.9,
    )

    report = (tmp_path / "tables" / "summary.md").read_text()
    assert "**Classification Threshold**: 0.4 (strict)" in report
    assert "Mean (90% CI Lower - 90% CI Upper)" in report
    assert "95%" not in report
