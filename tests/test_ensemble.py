"""Tests for the probability-averaging ensemble."""

import itertools

import numpy as np
import pandas as pd
import pytest
from sklearn.ensemble import BaggingClassifier, RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.svm import SVC
from sklearn.tree import DecisionTreeClassifier

from biomarker_ml import ensemble
from biomarker_ml.ensemble import (
    BAGGING,
    LOGISTIC_REGRESSION,
    RANDOM_FOREST,
    SUPPORT_VECTOR_MACHINE,
    CapabilityError,
    Dataset,
    EnsembleError,
    FittedModel,
    ProbabilityRangeError,
    SchemaMismatch,
    UnrecognizedModelKind,
    evaluate_ensemble,
    extract_positive_probability,
    kind_for_estimator,
    register_extractor,
    score,
)
from biomarker_ml.metrics import apply_threshold


class TestScore:
    def test_two_models_two_rows(self, fixed_model, ab_dataset):
        models = [fixed_model([0.9, 0.2]), fixed_model([0.7, 0.4])]

        result = score(models, ab_dataset(2))

        assert result.probabilities == pytest.approx([0.8, 0.3])
        assert result.labels.tolist() == [2, 1]
        assert result.member_probabilities.shape == (2, 2)

    def test_exact_half_is_negative(self, fixed_model, ab_dataset):
        models = [fixed_model([0.6]), fixed_model([0.6]), fixed_model([0.3])]

        result = score(models, ab_dataset(1))

        assert result.probabilities[0] == 0.5
        assert result.labels.tolist() == [1]

    def test_exact_half_is_negative_in_every_order(self, fixed_model, ab_dataset):
        probabilities = [[0.6], [0.6], [0.3]]
        for order in itertools.permutations(probabilities):
            result = score([fixed_model(p) for p in order], ab_dataset(1))
            assert result.probabilities[0] == 0.5
            assert result.labels[0] == 1

    def test_permutation_invariance(self, fixed_model, ab_dataset):
        rng = np.random.default_rng(7)
        member_probs = rng.uniform(size=(4, 5))
        data = ab_dataset(5)

        reference = score([fixed_model(p) for p in member_probs], data)
        for order in itertools.permutations(range(4)):
            result = score([fixed_model(member_probs[i]) for i in order], data)
            np.testing.assert_array_equal(result.probabilities, reference.probabilities)
            np.testing.assert_array_equal(result.labels, reference.labels)

    def test_single_model_matches_own_threshold(self, biomarker_df, feature_names):
        X = biomarker_df[feature_names]
        y = biomarker_df["Classification"].values
        estimator = LogisticRegression(max_iter=5000).fit(X, y)
        model = FittedModel.from_estimator(estimator, feature_names)

        result = score([model], Dataset(features=X))

        own = estimator.predict_proba(X)[:, 1]
        np.testing.assert_array_equal(result.probabilities, own)
        np.testing.assert_array_equal(result.labels, apply_threshold(own))

    def test_row_order_and_length_preserved(self, fixed_model, ab_dataset):
        probs = [0.1, 0.9, 0.4, 0.6, 0.51]
        result = score([fixed_model(probs)], ab_dataset(5))

        assert len(result) == 5
        assert result.labels.tolist() == [1, 2, 1, 2, 2]

    def test_inputs_not_mutated(self, fixed_model, ab_dataset):
        data = ab_dataset(3)
        before = data.features.copy()
        model = fixed_model([0.2, 0.5, 0.8])

        score([model], data)

        pd.testing.assert_frame_equal(data.features, before)
        assert model.feature_names == ("a", "b")

    def test_member_names_follow_input_order(self, fixed_model, ab_dataset):
        models = [fixed_model([0.2], name="first"), fixed_model([0.4], name="second")]
        result = score(models, ab_dataset(1))
        assert result.member_names == ["first", "second"]

    def test_positive_column_selected_by_label(self, fixed_model, ab_dataset):
        # classes_ reported as [2, 1]: patient probability sits in column 0
        model = fixed_model([0.9, 0.1], classes=(2, 1))
        result = score([model], ab_dataset(2))
        assert result.probabilities == pytest.approx([0.9, 0.1])

    def test_empty_models_rejected(self, ab_dataset):
        with pytest.raises(ValueError):
            score([], ab_dataset(2))

    def test_empty_data_rejected(self, fixed_model, ab_dataset):
        with pytest.raises(ValueError):
            score([fixed_model([0.5])], ab_dataset(0))


class TestErrors:
    def test_unrecognized_kind_is_not_skipped(self, fixed_model, ab_dataset):
        models = [fixed_model([0.9]), fixed_model([0.9], kind="gradient_boosting")]

        with pytest.raises(UnrecognizedModelKind) as excinfo:
            score(models, ab_dataset(1))

        assert excinfo.value.kind == "gradient_boosting"
        assert excinfo.value.index == 1

    def test_out_of_range_probability_surfaced(self, fixed_model, ab_dataset):
        models = [fixed_model([0.5, 0.5]), fixed_model([0.2, 1.2])]

        with pytest.raises(ProbabilityRangeError) as excinfo:
            score(models, ab_dataset(2))

        assert excinfo.value.index == 1

    @pytest.mark.parametrize("bad", [-0.1, np.nan])
    def test_negative_or_nan_probability_surfaced(self, fixed_model, ab_dataset, bad):
        with pytest.raises(ProbabilityRangeError):
            score([fixed_model([bad])], ab_dataset(1))

    def test_schema_mismatch(self, fixed_model):
        data = Dataset(features=pd.DataFrame({"a": [1.0, 2.0]}))

        with pytest.raises(SchemaMismatch) as excinfo:
            score([fixed_model([0.1, 0.2])], data)

        assert excinfo.value.missing == ["b"]
        assert excinfo.value.index == 0

    def test_schema_check_runs_before_model_call(self, fixed_model):
        model = fixed_model([0.1])
        with pytest.raises(SchemaMismatch):
            score([model], Dataset(features=pd.DataFrame({"a": [1.0]})))
        assert model.estimator.calls == 0

    def test_extra_columns_are_ignored(self, fixed_model):
        data = Dataset(features=pd.DataFrame({"z": [0.0], "b": [1.0], "a": [2.0]}))
        result = score([fixed_model([0.7])], data)
        assert result.labels.tolist() == [2]

    def test_svm_without_probability_estimation(self, biomarker_df, feature_names):
        X = biomarker_df[feature_names]
        y = biomarker_df["Classification"].values
        model = FittedModel.from_estimator(SVC(probability=False).fit(X, y), feature_names)

        with pytest.raises(CapabilityError) as excinfo:
            score([model], Dataset(features=X))

        assert excinfo.value.kind == SUPPORT_VECTOR_MACHINE

    def test_svm_probability_enabled_after_fit(self, biomarker_df, feature_names):
        X = biomarker_df[feature_names]
        y = biomarker_df["Classification"].values
        svc = SVC(probability=False).fit(X, y).set_params(probability=True)
        model = FittedModel.from_estimator(svc, feature_names)

        with pytest.raises(CapabilityError) as excinfo:
            score([model], Dataset(features=X))

        assert excinfo.value.kind == SUPPORT_VECTOR_MACHINE
        assert excinfo.value.index == 0

    def test_member_failure_carries_kind_and_index(self, biomarker_df, feature_names):
        X = biomarker_df[feature_names]
        y = biomarker_df["Classification"].values
        reduced = feature_names[1:]
        lr_reduced = FittedModel.from_estimator(
            LogisticRegression(max_iter=1000).fit(X[reduced], y), reduced
        )
        lr = FittedModel.from_estimator(
            LogisticRegression(max_iter=1000).fit(X, y), feature_names
        )
        X_missing = X.copy()
        X_missing.iloc[0, 0] = np.nan

        with pytest.raises(EnsembleError) as excinfo:
            score([lr_reduced, lr], Dataset(features=X_missing))

        assert excinfo.value.kind == LOGISTIC_REGRESSION
        assert excinfo.value.index == 1
        assert isinstance(excinfo.value.__cause__, ValueError)

    def test_positive_label_missing_from_classes(self, fixed_model, ab_dataset):
        model = FittedModel(
            kind=RANDOM_FOREST,
            estimator=fixed_model([0.5]).estimator,
            feature_names=("a", "b"),
            positive_label=3,
        )
        with pytest.raises(CapabilityError):
            score([model], ab_dataset(1))

    def test_estimator_without_predict_proba(self, ab_dataset):
        model = FittedModel(kind=BAGGING, estimator=object(), feature_names=("a", "b"))
        with pytest.raises(CapabilityError):
            score([model], ab_dataset(1))

    def test_wrong_number_of_probabilities(self, ab_dataset, monkeypatch):
        monkeypatch.setattr(ensemble, "_EXTRACTORS", dict(ensemble._EXTRACTORS))
        register_extractor("short", lambda est, X, pos: np.array([0.5]))
        model = FittedModel(kind="short", estimator=None, feature_names=("a",))

        with pytest.raises(EnsembleError):
            score([model], ab_dataset(3))

    def test_errors_are_value_errors(self):
        assert issubclass(EnsembleError, ValueError)
        for error in (UnrecognizedModelKind, CapabilityError, SchemaMismatch, ProbabilityRangeError):
            assert issubclass(error, EnsembleError)


class TestRegistry:
    def test_register_new_kind(self, ab_dataset, monkeypatch):
        monkeypatch.setattr(ensemble, "_EXTRACTORS", dict(ensemble._EXTRACTORS))
        register_extractor("constant", lambda est, X, pos: np.full(len(X), 0.75))
        model = FittedModel(kind="constant", estimator=None, feature_names=("a",))

        result = score([model], ab_dataset(2))

        assert result.probabilities.tolist() == [0.75, 0.75]
        assert "constant" in ensemble.registered_kinds()

    def test_duplicate_registration_fails(self, monkeypatch):
        monkeypatch.setattr(ensemble, "_EXTRACTORS", dict(ensemble._EXTRACTORS))
        with pytest.raises(ValueError):
            register_extractor(RANDOM_FOREST, lambda est, X, pos: None)

    def test_replace_registration(self, fixed_model, ab_dataset, monkeypatch):
        monkeypatch.setattr(ensemble, "_EXTRACTORS", dict(ensemble._EXTRACTORS))
        register_extractor(RANDOM_FOREST, lambda est, X, pos: np.zeros(len(X)), replace=True)
        result = score([fixed_model([0.9])], ab_dataset(1))
        assert result.probabilities.tolist() == [0.0]

    @pytest.mark.parametrize(
        "estimator, kind",
        [
            (LogisticRegression(), LOGISTIC_REGRESSION),
            (RandomForestClassifier(), RANDOM_FOREST),
            (SVC(), SUPPORT_VECTOR_MACHINE),
            (BaggingClassifier(), BAGGING),
        ],
    )
    def test_kind_for_estimator(self, estimator, kind):
        assert kind_for_estimator(estimator) == kind

    def test_kind_for_unknown_estimator(self):
        with pytest.raises(UnrecognizedModelKind):
            kind_for_estimator(DecisionTreeClassifier())


class TestExtraction:
    def test_probabilities_in_unit_interval(self, biomarker_df, feature_names):
        X = biomarker_df[feature_names]
        y = biomarker_df["Classification"].values
        rf = RandomForestClassifier(n_estimators=20, random_state=0).fit(X, y)
        model = FittedModel.from_estimator(rf, feature_names)

        proba = extract_positive_probability(model, Dataset(features=X))

        assert proba.shape == (len(X),)
        assert ((proba >= 0) & (proba <= 1)).all()


def test_evaluate_ensemble_reports_metrics(fixed_model, ab_dataset):
    data = ab_dataset(4, labels=[2, 1, 2, 1])
    models = [fixed_model([0.9, 0.2, 0.8, 0.4]), fixed_model([0.7, 0.4, 0.6, 0.2])]

    result, metrics = evaluate_ensemble(models, data)

    assert result.labels.tolist() == [2, 1, 2, 1]
    assert metrics["accuracy"] == 1.0
    assert metrics["kappa"] == pytest.approx(1.0)
    assert metrics["roc_auc"] == 1.0


def test_evaluate_ensemble_requires_labels(fixed_model, ab_dataset):
    with pytest.raises(ValueError):
        evaluate_ensemble([fixed_model([0.5])], ab_dataset(1))
