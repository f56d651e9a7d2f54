"""Default hyperparameters for the Titanic experiment."""
import os

DEFAULT_SEED = int(os.getenv("SEED", 42))

TREE_CONFIG = {
    "max_depth": 7,
    "min_samples_split": 3,
    "min_samples_leaf": 3,
    "feature_sample_ratio": 1.0,
}

FOREST_CONFIG = {
    "n_trees": 100,
    "max_depth": 7,
    "min_samples_split": 3,
    "min_samples_leaf": 3,
    # roughly sqrt(n_features) / n_features for the 7-feature schema
    "feature_sample_ratio": 0.4,
    "n_jobs": -1,
}

TRAINING_CONFIG = {
    "test_size": 0.2,
}
