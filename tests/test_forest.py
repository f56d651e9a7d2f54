import numpy as np
import pytest
from sklearn.base import clone
from sklearn.exceptions import NotFittedError
from sklearn.utils.validation import check_is_fitted

from giniforest import DecisionTree, RandomForest
from giniforest.config import FOREST_CONFIG, TREE_CONFIG


def _labelled(records, label):
    return [type(r)(label, r.features) for r in records]


def _forest_with(trees, schema):
    forest = RandomForest(schema=schema)
    forest.trees_ = trees
    forest.schema_ = forest._get_schema()
    return forest


def test_evaluate_is_fraction_correct(make_records):
    train = _labelled(make_records(30, seed=1), True)
    forest = RandomForest(n_trees=5, random_state=0).fit(train)
    test = make_records(10, seed=2)
    test = _labelled(test[:7], True) + _labelled(test[7:], False)
    assert forest.predict(test).all()
    assert forest.evaluate(test) == pytest.approx(0.7)


def test_evaluate_empty_raises(passengers):
    forest = RandomForest(n_trees=3, random_state=0).fit(passengers)
    with pytest.raises(ValueError):
        forest.evaluate([])


def test_vote_ties_go_to_false(small_schema):
    rec = small_schema.record(True, pclass=1, sex="female", age=30)
    yes = DecisionTree(max_depth=0, schema=small_schema).fit([rec])
    no = DecisionTree(max_depth=0, schema=small_schema).fit(_labelled([rec], False))

    assert _forest_with([yes, no], small_schema).predict_record(rec) is False
    assert _forest_with([yes, yes, no], small_schema).predict_record(rec) is True
    assert _forest_with([no, no, yes], small_schema).predict_record(rec) is False
    assert _forest_with([], small_schema).predict_record(rec) is False


def test_forest_learns_synthetic_passengers(passengers):
    forest = RandomForest(n_trees=15, max_depth=4, random_state=0).fit(passengers)
    assert len(forest.trees_) == 15
    assert forest.evaluate(passengers) > 0.8
    labels = [r.label for r in passengers]
    assert forest.score(passengers, labels) == pytest.approx(forest.evaluate(passengers))


def test_importances_are_normalized(passengers):
    forest = RandomForest(n_trees=10, feature_sample_ratio=0.5, random_state=0).fit(passengers)
    imp = forest.compute_feature_importances()
    assert set(imp) == set(range(7))
    assert sum(imp.values()) == pytest.approx(1.0)
    assert all(v >= 0 for v in imp.values())
    named = forest.compute_feature_importances(by_name=True)
    assert max(named, key=named.get) in ("sex", "pclass", "age")
    assert np.allclose(forest.feature_importances_, list(imp.values()))


def test_importances_stay_zero_without_splits(passengers):
    forest = RandomForest(n_trees=4, max_depth=0, random_state=0).fit(passengers)
    imp = forest.compute_feature_importances()
    assert all(v == 0.0 for v in imp.values())


def test_seeded_forest_is_reproducible_across_n_jobs(passengers):
    params = dict(n_trees=8, feature_sample_ratio=0.4, random_state=123)
    a = RandomForest(n_jobs=1, **params).fit(passengers)
    b = RandomForest(n_jobs=2, **params).fit(passengers)
    assert [t.export_rules() for t in a.trees_] == [t.export_rules() for t in b.trees_]
    assert (a.predict(passengers) == b.predict(passengers)).all()
    assert a.compute_feature_importances() == b.compute_feature_importances()


def test_trees_differ_through_bootstrap(passengers):
    forest = RandomForest(n_trees=6, random_state=0).fit(passengers)
    rules = {tuple(t.export_rules()) for t in forest.trees_}
    assert len(rules) > 1


def test_fit_on_empty_dataset(small_schema):
    forest = RandomForest(n_trees=3, schema=small_schema, random_state=0).fit([])
    assert all(t.tree_.is_leaf for t in forest.trees_)
    assert forest.predict_record(small_schema.record(True, pclass=1)) is False


def test_not_fitted_raises(passengers):
    forest = RandomForest()
    with pytest.raises(NotFittedError):
        forest.predict(passengers)
    with pytest.raises(ValueError):
        forest.evaluate(passengers)
    with pytest.raises(ValueError):
        forest.compute_feature_importances()


@pytest.mark.parametrize("params", [
    {"n_trees": 0},
    {"n_trees": -3},
    {"max_depth": -1},
    {"feature_sample_ratio": 0},
])
def test_invalid_parameters(passengers, params):
    with pytest.raises(ValueError):
        RandomForest(**params).fit(passengers)


def test_configs_build_estimators():
    forest = RandomForest(**FOREST_CONFIG)
    assert forest.get_params()["n_trees"] == FOREST_CONFIG["n_trees"]
    tree = DecisionTree(**TREE_CONFIG)
    assert tree.get_params()["max_depth"] == TREE_CONFIG["max_depth"]
    assert clone(forest).get_params() == forest.get_params()


def test_check_is_fitted_follows_fit(passengers):
    forest = RandomForest(n_trees=3, random_state=0)
    with pytest.raises(NotFittedError):
        check_is_fitted(forest)
    check_is_fitted(forest.fit(passengers))
