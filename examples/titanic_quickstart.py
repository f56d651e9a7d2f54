import logging
from time import perf_counter

from giniforest import DecisionTree, RandomForest, load_titanic, split_dataset
from giniforest.config import DEFAULT_SEED, FOREST_CONFIG, TRAINING_CONFIG, TREE_CONFIG

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

records = load_titanic("titanic.csv")
train, test = split_dataset(records, random_state=DEFAULT_SEED, **TRAINING_CONFIG)

tree = DecisionTree(random_state=DEFAULT_SEED, **TREE_CONFIG)
t0 = perf_counter(); tree.fit(train); print(f"tree fit: {perf_counter()-t0:.3f} s")
print(f"Decision Tree Accuracy: {tree.score(test, [r.label for r in test]):.4f}")
tree.print_tree(class_names=["No", "Yes"])

forest = RandomForest(random_state=DEFAULT_SEED, verbose=1, **FOREST_CONFIG)
t0 = perf_counter(); forest.fit(train); print(f"forest fit: {perf_counter()-t0:.3f} s")
print(f"Random Forest Accuracy: {forest.evaluate(test):.4f}")
for name, score in sorted(forest.compute_feature_importances(by_name=True).items(),
                          key=lambda kv: -kv[1]):
    print(f"  {name:<10} {score:.4f}")

forest.save("titanic_forest.bin")
restored = RandomForest.load("titanic_forest.bin")
assert (restored.predict(test) == forest.predict(test)).all()
print(f"Reloaded forest accuracy: {restored.evaluate(test):.4f}")
