# -*- coding: utf-8 -*-
"""
giniforest.tree
===============

This module implements a binary CART-style decision tree classifier over
fixed-schema records.  Splits are chosen greedily by weighted Gini impurity;
at every node only a random subset of the features is scanned (the
``feature_sample_ratio`` argument), which is what makes the tree usable as a
random forest member.  Growth stops on ``max_depth``, ``min_samples_split``
and ``min_samples_leaf``; there is no post-pruning.

Besides training and prediction the classifier exposes rule export and
pretty printing of the learned structure, plus the per-feature impurity gain
accumulated while it was grown.

The module also contains the ``TreeNode`` dataclass which holds the data
structure for each node in the tree (internal or leaf).
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from numbers import Integral, Real
from typing import Iterable, Sequence

import numpy as np
from sklearn.base import BaseEstimator, ClassifierMixin
from sklearn.exceptions import NotFittedError
from sklearn.utils import check_random_state

from .schema import TITANIC_SCHEMA, Record, Schema, SplitKind
from .splitter import SplitRule, find_best_split

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Node
# -----------------------------------------------------------------------------
@dataclass
class TreeNode:
    """A single node of a binary decision tree.

    A leaf carries ``predicted_class``; an internal node carries its split
    ``rule`` and owns exactly two children.  Nodes are never shared between
    trees, so ``copy.deepcopy`` of a tree yields an independent structure.
    """

    is_leaf: bool
    predicted_class: bool = False
    rule: SplitRule | None = None
    left: "TreeNode | None" = None
    right: "TreeNode | None" = None

    @classmethod
    def leaf(cls, predicted_class: bool) -> "TreeNode":
        return cls(is_leaf=True, predicted_class=bool(predicted_class))

    @classmethod
    def internal(cls, rule: SplitRule, left: "TreeNode", right: "TreeNode") -> "TreeNode":
        return cls(is_leaf=False, rule=rule, left=left, right=right)

    @property
    def feature_index(self) -> int | None:
        return None if self.rule is None else self.rule.feature_index

    @property
    def split_kind(self) -> SplitKind | None:
        return None if self.rule is None else self.rule.kind

    def walk(self):
        """Yield ``(node, depth)`` for this subtree in pre-order, without recursion."""
        stack = [(self, 0)]
        while stack:
            node, depth = stack.pop()
            yield node, depth
            if not node.is_leaf:
                stack.append((node.right, depth + 1))
                stack.append((node.left, depth + 1))

    @property
    def n_leaves(self) -> int:
        return sum(1 for node, _ in self.walk() if node.is_leaf)

    @property
    def depth(self) -> int:
        # a lone leaf has depth 0, matching max_depth=0
        return max(depth for _, depth in self.walk())


# -----------------------------------------------------------------------------
# Classifier
# -----------------------------------------------------------------------------
class DecisionTree(ClassifierMixin, BaseEstimator):
    """
    Binary decision tree over :class:`~giniforest.schema.Record` objects.

    Parameters
    ----------
    max_depth : int, default=5
        Nodes at this depth become leaves.  ``0`` yields a single majority
        leaf.  The tree is grown recursively, so depths beyond roughly
        900 exceed Python's default recursion limit
        (:func:`sys.getrecursionlimit`) and raise :class:`RecursionError`.
    min_samples_split : int, default=2
        Nodes with fewer records become leaves.
    min_samples_leaf : int, default=1
        Minimum number of records in each child of a split.
    feature_sample_ratio : float, default=1.0
        Fraction of features scanned at each node; at least one feature is
        always scanned.  Values above 1 are clamped to 1, values ``<= 0`` are
        rejected by :meth:`fit`.
    schema : Schema or None, default=None
        Feature definitions of the records.  ``None`` means
        :data:`~giniforest.schema.TITANIC_SCHEMA`.
    random_state : int, RandomState or None, default=None
        Seed for the per-node feature subsampling.
    verbose : int, default=0
        When positive, log a summary of every fit at INFO level.

    Attributes
    ----------
    tree_ : TreeNode
        Root of the fitted tree.
    importances_ : dict
        Accumulated impurity gain per feature id for the last fit.
    classes_ : ndarray
        Always ``[False, True]`` once fitted.

    Notes
    -----
    - Majority ties (including an empty node) resolve to ``False``.
    - Predicting before fitting raises
      :class:`sklearn.exceptions.NotFittedError`.
    """

    def __init__(
        self,
        *,
        max_depth: int = 5,
        min_samples_split: int = 2,
        min_samples_leaf: int = 1,
        feature_sample_ratio: float = 1.0,
        schema: Schema | None = None,
        random_state=None,
        verbose: int = 0,
    ):
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.min_samples_leaf = min_samples_leaf
        self.feature_sample_ratio = feature_sample_ratio
        self.schema = schema
        self.random_state = random_state
        self.verbose = verbose

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------
    def fit(self, records: Iterable[Record]):
        """Grow the tree on ``records``, replacing any previous fit."""
        records = list(records)
        self._check_params()
        schema = self._get_schema()
        schema.check(records)

        self.schema_ = schema
        self.n_features_ = len(schema)
        self.classes_ = np.array([False, True])
        self.importances_ = {}
        if self.feature_sample_ratio > 1.0:
            logger.debug("feature_sample_ratio=%s clamped to 1.0", self.feature_sample_ratio)

        rng = check_random_state(self.random_state)
        columns = schema.columns(records)
        y = np.fromiter((r.label for r in records), dtype=bool, count=len(records))
        self.tree_ = self._build_tree(columns, y, np.arange(y.size), 0, rng)

        if self.verbose > 0:
            logger.info("fitted tree on %d records: depth=%d leaves=%d",
                        y.size, self.tree_.depth, self.tree_.n_leaves)
        return self

    @classmethod
    def from_node(cls, root: TreeNode, **params) -> "DecisionTree":
        """Wrap an already built node structure (e.g. a deserialized one)."""
        tree = cls(**params)
        tree.schema_ = tree._get_schema()
        tree.n_features_ = len(tree.schema_)
        tree.classes_ = np.array([False, True])
        tree.importances_ = {}
        tree.tree_ = root
        return tree

    def _get_schema(self) -> Schema:
        return TITANIC_SCHEMA if self.schema is None else self.schema

    def _check_params(self):
        for name in ("max_depth", "min_samples_split", "min_samples_leaf"):
            value = getattr(self, name)
            if not isinstance(value, Integral) or isinstance(value, bool) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
        ratio = self.feature_sample_ratio
        if not isinstance(ratio, Real) or not ratio > 0:
            raise ValueError(f"feature_sample_ratio must be > 0, got {ratio!r}")

    def _build_tree(self, columns, y, idx: np.ndarray, depth: int, rng) -> TreeNode:
        """
        Recursively grow the subtree for the records at positions ``idx``.

        Parameters
        ----------
        columns : list of ndarray
            Full-length feature columns of the training set.
        y : ndarray of bool
            Full-length labels.
        idx : ndarray of int
            Positions of the records reaching this node.
        depth : int
            Depth of this node; the root is at depth 0.
        rng : numpy.random.RandomState
            Generator shared by the whole fit.

        Returns
        -------
        TreeNode
            A fully populated subtree or a leaf node.
        """
        labels = y[idx]
        if depth >= self.max_depth or idx.size < self.min_samples_split:
            return self._create_leaf(labels)

        node_cols = [c[idx] for c in columns]
        cand = find_best_split(node_cols, labels, self.schema_,
                               min_samples_leaf=self.min_samples_leaf,
                               feature_sample_ratio=self.feature_sample_ratio,
                               rng=rng, importances=self.importances_)
        if cand is None:
            return self._create_leaf(labels)

        rule = cand.rule
        go_left = rule.mask(node_cols[rule.feature_index])
        left_idx, right_idx = idx[go_left], idx[~go_left]
        if left_idx.size < self.min_samples_leaf or right_idx.size < self.min_samples_leaf:
            return self._create_leaf(labels)

        return TreeNode.internal(
            rule,
            self._build_tree(columns, y, left_idx, depth + 1, rng),
            self._build_tree(columns, y, right_idx, depth + 1, rng),
        )

    @staticmethod
    def _create_leaf(labels: np.ndarray) -> TreeNode:
        n_true = int(labels.sum())
        return TreeNode.leaf(n_true > labels.size - n_true)

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------
    def _check_fitted(self):
        if getattr(self, "tree_", None) is None:
            raise NotFittedError("Estimator not fitted. Call fit(...) first.")

    def predict_record(self, record: Record) -> bool:
        """Walk from the root to a leaf and return its class."""
        self._check_fitted()
        node = self.tree_
        while not node.is_leaf:
            node = node.left if node.rule.goes_left(record) else node.right
        return node.predicted_class

    def predict(self, records: Iterable[Record]) -> np.ndarray:
        """
        Predict labels for the provided records.

        Parameters
        ----------
        records : iterable of Record
            Records laid out according to the tree's schema.

        Returns
        -------
        ndarray of bool
            Predicted labels.

        Raises
        ------
        NotFittedError
            If the estimator has not been fitted.
        """
        self._check_fitted()
        return np.array([self.predict_record(r) for r in records], dtype=bool)

    def get_depth(self) -> int:
        self._check_fitted()
        return self.tree_.depth

    def get_n_leaves(self) -> int:
        self._check_fitted()
        return self.tree_.n_leaves

    # ------------------------------------------------------------------
    # Rule export / printing helpers
    # ------------------------------------------------------------------
    def export_rules(self, *, class_names: Sequence[str] | None = None) -> list[str]:
        """
        Export every root-to-leaf path as ``<antecedent> => <class>``.

        Parameters
        ----------
        class_names : sequence of two str, optional
            Names for ``False`` and ``True`` in that order.

        Returns
        -------
        list[str]
            One rule per leaf, left subtrees first.
        """
        self._check_fitted()
        rules: list[str] = []
        self._collect_rules(self.tree_, [], rules, class_names)
        return rules

    def print_tree(self, class_names: Sequence[str] | None = None):
        """Pretty-print the tree to ``stdout``."""
        self._check_fitted()
        self._print_node(self.tree_, "", class_names)

    @staticmethod
    def _class_name(value: bool, cn) -> str:
        return cn[int(value)] if cn is not None else str(value)

    def _collect_rules(self, node: TreeNode, parts, rules, cn):
        if node.is_leaf:
            body = " AND ".join(parts) if parts else "<root>"
            rules.append(f"{body} => {self._class_name(node.predicted_class, cn)}")
            return
        self._collect_rules(node.left, parts + [node.rule.describe(left=True)], rules, cn)
        self._collect_rules(node.right, parts + [node.rule.describe(left=False)], rules, cn)

    def _print_node(self, node: TreeNode, indent="", cn=None):
        if node.is_leaf:
            print(f"{indent}Predict {self._class_name(node.predicted_class, cn)}")
            return
        print(f"{indent}if {node.rule.describe(left=True)}:")
        self._print_node(node.left, indent + "  ", cn)
        print(f"{indent}else:")
        self._print_node(node.right, indent + "  ", cn)
