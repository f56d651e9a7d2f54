# -*- coding: utf-8 -*-
"""
giniforest.forest
=================

Bagging ensemble of :class:`~giniforest.tree.DecisionTree` members.

Every tree is grown on its own bootstrap resample of the training records
and scans a random subset of features at each node.  Predictions are a
strict majority vote (ties go to ``False``).  Trees share nothing but the
read-only hyperparameters, so they are fitted as independent joblib tasks;
each task seeds its own generator from a per-tree seed drawn up front, which
keeps a seeded fit identical for any ``n_jobs``.
"""

from __future__ import annotations
import io
import logging
from numbers import Integral
from typing import BinaryIO, Iterable, Sequence

import numpy as np
from joblib import Parallel, delayed
from sklearn.base import BaseEstimator, ClassifierMixin
from sklearn.exceptions import NotFittedError
from sklearn.metrics import accuracy_score
from sklearn.utils import check_random_state

from .persistence import dump_trees, load_trees
from .schema import TITANIC_SCHEMA, Record, Schema
from .tree import DecisionTree

logger = logging.getLogger(__name__)

MAX_INT = np.iinfo(np.int32).max


def _bootstrap_indices(n: int, rng: np.random.RandomState) -> np.ndarray:
    if n == 0:
        return np.empty(0, dtype=int)
    return rng.randint(0, n, n)


def _fit_tree(tree: DecisionTree, records: Sequence[Record], seed: int) -> DecisionTree:
    rng = check_random_state(seed)
    sample = [records[i] for i in _bootstrap_indices(len(records), rng)]
    tree.set_params(random_state=rng.randint(MAX_INT))
    return tree.fit(sample)


class RandomForest(ClassifierMixin, BaseEstimator):
    """
    Random forest of binary decision trees.

    Parameters
    ----------
    n_trees : int, default=100
        Number of trees in the ensemble.
    max_depth : int, default=5
        Maximum depth of every tree.
    min_samples_split : int, default=2
        Minimum number of records required to split a node.
    min_samples_leaf : int, default=1
        Minimum number of records in each child after a split.
    feature_sample_ratio : float, default=1.0
        Fraction of features scanned per node, clamped to 1.
    schema : Schema or None, default=None
        Record layout; ``None`` means :data:`~giniforest.schema.TITANIC_SCHEMA`.
    random_state : int, RandomState or None, default=None
        Seed for the bootstrap draws and per-node feature subsampling.
    n_jobs : int or None, default=None
        Number of joblib workers (threads) used to fit trees.  ``None``
        means 1, ``-1`` all cores.
    verbose : int, default=0
        Passed to :class:`joblib.Parallel`; positive values also log
        training summaries at INFO level.

    Attributes
    ----------
    trees_ : list of DecisionTree
        Fitted members, in seed order.
    schema_ : Schema
        Schema the forest was fitted or loaded with.
    """

    def __init__(
        self,
        *,
        n_trees: int = 100,
        max_depth: int = 5,
        min_samples_split: int = 2,
        min_samples_leaf: int = 1,
        feature_sample_ratio: float = 1.0,
        schema: Schema | None = None,
        random_state=None,
        n_jobs: int | None = None,
        verbose: int = 0,
    ):
        self.n_trees = n_trees
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.min_samples_leaf = min_samples_leaf
        self.feature_sample_ratio = feature_sample_ratio
        self.schema = schema
        self.random_state = random_state
        self.n_jobs = n_jobs
        self.verbose = verbose

    def _get_schema(self) -> Schema:
        return TITANIC_SCHEMA if self.schema is None else self.schema

    def _make_tree(self, random_state=None) -> DecisionTree:
        return DecisionTree(
            max_depth=self.max_depth,
            min_samples_split=self.min_samples_split,
            min_samples_leaf=self.min_samples_leaf,
            feature_sample_ratio=self.feature_sample_ratio,
            schema=self.schema,
            random_state=random_state,
        )

    def _check_fitted(self):
        if getattr(self, "trees_", None) is None:
            raise NotFittedError("Estimator not fitted. Call fit(...) first.")

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------
    def fit(self, records: Iterable[Record]):
        """Fit ``n_trees`` trees, each on a bootstrap resample of ``records``."""
        records = list(records)
        if not isinstance(self.n_trees, Integral) or self.n_trees < 1:
            raise ValueError(f"n_trees must be a positive integer, got {self.n_trees!r}")
        self._make_tree()._check_params()
        schema = self._get_schema()
        schema.check(records)

        rng = check_random_state(self.random_state)
        seeds = rng.randint(MAX_INT, size=self.n_trees)

        trees = Parallel(n_jobs=self.n_jobs, verbose=self.verbose, prefer="threads")(
            delayed(_fit_tree)(self._make_tree(), records, int(seed))
            for seed in seeds
        )
        self.trees_ = list(trees)
        self.schema_ = schema
        self.classes_ = np.array([False, True])

        if self.verbose > 0:
            depths = [t.get_depth() for t in self.trees_]
            logger.info("fitted %d trees on %d records (mean depth %.2f)",
                        len(self.trees_), len(records), float(np.mean(depths)))
        return self

    # ------------------------------------------------------------------
    # Prediction / evaluation
    # ------------------------------------------------------------------
    def predict_record(self, record: Record) -> bool:
        """Majority vote of the trees; ties resolve to ``False``."""
        self._check_fitted()
        votes_true = sum(1 for tree in self.trees_ if tree.predict_record(record))
        return votes_true > len(self.trees_) - votes_true

    def predict(self, records: Iterable[Record]) -> np.ndarray:
        self._check_fitted()
        return np.array([self.predict_record(r) for r in records], dtype=bool)

    def evaluate(self, records: Iterable[Record]) -> float:
        """
        Fraction of ``records`` whose label matches :meth:`predict`.

        Raises
        ------
        ValueError
            If ``records`` is empty; the ratio is undefined.
        """
        records = list(records)
        if not records:
            raise ValueError("cannot evaluate on an empty set of records")
        y = np.array([r.label for r in records], dtype=bool)
        return float(accuracy_score(y, self.predict(records)))

    def compute_feature_importances(self, by_name: bool = False) -> dict:
        """
        Sum every tree's impurity gains per feature and normalize to 1.

        If no tree recorded any gain the raw (all-zero) sums are returned
        unchanged.

        Parameters
        ----------
        by_name : bool, default=False
            Key the result by feature name instead of feature id.

        Returns
        -------
        dict
            One entry per schema feature.
        """
        self._check_fitted()
        schema = self.schema_
        total = np.zeros(len(schema), dtype=float)
        for tree in self.trees_:
            for feat, gain in tree.importances_.items():
                total[feat] += gain
        grand = total.sum()
        if grand > 0:
            total /= grand
        keys = schema.names if by_name else range(len(schema))
        return {k: float(v) for k, v in zip(keys, total)}

    @property
    def feature_importances_(self) -> np.ndarray:
        return np.array(list(self.compute_feature_importances().values()))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def save(self, destination: str | BinaryIO) -> None:
        """Write the forest to a path or binary file object.

        Only the tree structures are stored; hyperparameters and feature
        importances are not.
        """
        self._check_fitted()
        roots = [tree.tree_ for tree in self.trees_]
        if hasattr(destination, "write"):
            dump_trees(roots, destination)
        else:
            with open(destination, "wb") as fh:
                dump_trees(roots, fh)
            logger.info("saved %d trees to %s", len(roots), destination)

    def dumps(self) -> bytes:
        buf = io.BytesIO()
        self.save(buf)
        return buf.getvalue()

    @classmethod
    def load(cls, source: str | BinaryIO, **params) -> "RandomForest":
        """
        Rebuild a forest written by :meth:`save`.

        Parameters
        ----------
        source : str or binary file object
            Path or stream positioned at the start of the model.
        **params
            Constructor arguments; ``schema`` must match the one the model
            was trained with.  ``n_trees`` is taken from the file.

        Returns
        -------
        RandomForest
            A fitted forest whose predictions match the saved one.  Feature
            importances are empty (all zero).

        Raises
        ------
        ModelFormatError
            If the data is truncated or malformed.
        """
        forest = cls(**params)
        schema = forest._get_schema()
        if hasattr(source, "read"):
            roots = load_trees(source, schema)
        else:
            with open(source, "rb") as fh:
                roots = load_trees(fh, schema)
            logger.info("loaded %d trees from %s", len(roots), source)

        forest.set_params(n_trees=len(roots))
        forest.trees_ = [
            DecisionTree.from_node(
                root,
                max_depth=forest.max_depth,
                min_samples_split=forest.min_samples_split,
                min_samples_leaf=forest.min_samples_leaf,
                feature_sample_ratio=forest.feature_sample_ratio,
                schema=forest.schema,
            )
            for root in roots
        ]
        forest.schema_ = schema
        forest.classes_ = np.array([False, True])
        return forest

    @classmethod
    def loads(cls, data: bytes, **params) -> "RandomForest":
        return cls.load(io.BytesIO(data), **params)
