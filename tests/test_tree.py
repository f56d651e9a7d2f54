import copy

import numpy as np
import pytest
from sklearn.base import clone
from sklearn.exceptions import NotFittedError
from sklearn.utils.validation import check_is_fitted

from giniforest import DecisionTree, TreeNode
from giniforest.splitter import SplitRule


def _accuracy(model, records):
    return float(np.mean(model.predict(records) == np.array([r.label for r in records])))


def test_worked_example_is_learned_exactly(example_records, small_schema):
    clf = DecisionTree(max_depth=3, min_samples_split=2, min_samples_leaf=1,
                       schema=small_schema, random_state=0)
    clf.fit(example_records)
    root = clf.tree_
    assert not root.is_leaf
    assert root.feature_index in (1, 2)  # sex, or the equally pure age <= 29
    assert root.left.is_leaf and root.right.is_leaf
    assert root.left.predicted_class is True
    assert root.right.predicted_class is False
    assert clf.get_depth() == 1
    assert clf.get_n_leaves() == 2
    assert _accuracy(clf, example_records) == 1.0


def test_max_depth_zero_is_a_majority_leaf(small_schema):
    recs = [small_schema.record(lbl, pclass=i, sex="male", age=i)
            for i, lbl in enumerate([True, True, True, False, False])]
    clf = DecisionTree(max_depth=0, schema=small_schema).fit(recs)
    assert clf.tree_.is_leaf
    assert clf.tree_.predicted_class is True
    assert clf.predict(recs).all()


def test_majority_ties_default_to_false(small_schema):
    recs = [small_schema.record(lbl, pclass=1, sex="male", age=10)
            for lbl in [True, False, True, False]]
    clf = DecisionTree(max_depth=0, schema=small_schema).fit(recs)
    assert clf.tree_.predicted_class is False


def test_empty_dataset_yields_false_leaf(small_schema):
    clf = DecisionTree(schema=small_schema).fit([])
    assert clf.tree_.is_leaf
    assert clf.predict_record(small_schema.record(True, pclass=1)) is False


@pytest.mark.parametrize("params", [
    {"min_samples_leaf": 1000},
    {"min_samples_split": 1000},
])
def test_infeasible_split_settings_terminate(passengers, params):
    clf = DecisionTree(random_state=0, **params).fit(passengers)
    assert clf.tree_.is_leaf
    n_true = sum(r.label for r in passengers)
    assert clf.tree_.predicted_class == (n_true > len(passengers) - n_true)


def test_not_fitted_raises(small_schema):
    clf = DecisionTree(schema=small_schema)
    with pytest.raises(NotFittedError):
        clf.predict_record(small_schema.record(True, pclass=1))
    with pytest.raises(ValueError):
        clf.predict([small_schema.record(True, pclass=1)])
    with pytest.raises(ValueError):
        clf.export_rules()


@pytest.mark.parametrize("params", [
    {"max_depth": -1},
    {"min_samples_leaf": -2},
    {"min_samples_split": 1.5},
    {"feature_sample_ratio": 0.0},
    {"feature_sample_ratio": -0.3},
])
def test_invalid_hyperparameters(passengers, params):
    with pytest.raises(ValueError):
        DecisionTree(**params).fit(passengers)


def test_ratio_above_one_is_clamped(passengers):
    a = DecisionTree(feature_sample_ratio=5.0, random_state=1).fit(passengers)
    b = DecisionTree(feature_sample_ratio=1.0, random_state=1).fit(passengers)
    assert a.export_rules() == b.export_rules()


def test_record_arity_is_checked(small_schema, passengers):
    with pytest.raises(ValueError):
        DecisionTree(schema=small_schema).fit(passengers)


def test_deep_copy_is_independent(passengers):
    clf = DecisionTree(random_state=0).fit(passengers)
    before = clf.predict(passengers)
    dup = copy.deepcopy(clf)
    assert dup.tree_ is not clf.tree_
    assert (dup.predict(passengers) == before).all()

    flipped = [type(r)(not r.label, r.features) for r in passengers]
    dup.fit(flipped)
    assert (dup.predict(passengers) != before).any()
    assert (clf.predict(passengers) == before).all()


def test_refit_resets_importances(passengers):
    clf = DecisionTree(random_state=0).fit(passengers)
    assert sum(clf.importances_.values()) > 0
    same = [type(r)(True, r.features) for r in passengers]
    clf.fit(same)
    assert clf.tree_.is_leaf
    assert sum(clf.importances_.values()) == pytest.approx(0.0)


def test_seeded_fits_are_reproducible(passengers):
    a = DecisionTree(feature_sample_ratio=0.4, random_state=7).fit(passengers)
    b = DecisionTree(feature_sample_ratio=0.4, random_state=7).fit(passengers)
    assert a.export_rules() == b.export_rules()
    assert a.importances_ == b.importances_


def test_fits_synthetic_passengers(passengers):
    clf = DecisionTree(max_depth=4, random_state=0).fit(passengers)
    assert _accuracy(clf, passengers) > 0.8
    assert clf.score(passengers, [r.label for r in passengers]) == pytest.approx(
        _accuracy(clf, passengers))


def test_missing_value_routes_right_at_inference(small_schema):
    rule = SplitRule.numeric(2, small_schema[2], 30.0)
    root = TreeNode.internal(rule, TreeNode.leaf(True), TreeNode.leaf(False))
    clf = DecisionTree.from_node(root, schema=small_schema)
    assert clf.predict_record(small_schema.record(False, age=12)) is True
    assert clf.predict_record(small_schema.record(False, age=None)) is False
    assert clf.predict_record(small_schema.record(False, age="unknown")) is False


def test_rule_export_and_print(example_records, small_schema, capsys):
    clf = DecisionTree(schema=small_schema, random_state=0).fit(example_records)
    rules = clf.export_rules(class_names=["died", "survived"])
    assert len(rules) == clf.get_n_leaves()
    assert all("=>" in r for r in rules)
    assert any(r.endswith("=> survived") for r in rules)
    clf.print_tree()
    out = capsys.readouterr().out
    assert out.startswith("if ")
    assert "Predict True" in out


def test_clone_keeps_hyperparameters(small_schema):
    clf = DecisionTree(max_depth=3, min_samples_leaf=2, schema=small_schema, random_state=4)
    dup = clone(clf)
    assert dup.get_params() == clf.get_params()
    assert not hasattr(dup, "tree_")


def test_check_is_fitted_follows_fit(example_records, small_schema):
    clf = DecisionTree(schema=small_schema)
    with pytest.raises(NotFittedError):
        check_is_fitted(clf)
    check_is_fitted(clf.fit(example_records))
