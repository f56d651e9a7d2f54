# -*- coding: utf-8 -*-
"""
giniforest.splitter
===================

Stateless split machinery: Gini impurity, binary split rules, partitioning
and the greedy best-split search with per-node feature subsampling.

The search works on column arrays (see :meth:`giniforest.schema.Schema.columns`)
so that every distinct threshold of a numeric feature is scored in one
vectorized pass over the sorted values.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .schema import Feature, Record, Schema, SplitKind

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Impurity
# -----------------------------------------------------------------------------
def _gini_counts(pos, n) -> np.ndarray:
    pos = np.asarray(pos, dtype=float)
    n = np.asarray(n, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        p1 = pos / n
        p0 = (n - pos) / n
        g = 1.0 - (p0 * p0 + p1 * p1)
    return np.where(n > 0, g, 0.0)


def impurity(labels) -> float:
    """Gini impurity ``1 - p0² - p1²`` of a boolean label sequence.

    An empty sequence is pure by definition and scores ``0.0``.
    """
    y = np.asarray(labels, dtype=bool)
    return float(_gini_counts(y.sum(), y.size))


def weighted_impurity(left, right) -> float:
    """Size-weighted Gini of a two-way partition of labels."""
    nl, nr = len(left), len(right)
    if nl + nr == 0:
        return 0.0
    return (nl * impurity(left) + nr * impurity(right)) / (nl + nr)


def _round_half_up(x: float) -> int:
    return int(np.floor(x + 0.5))


# -----------------------------------------------------------------------------
# Rules
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class SplitRule:
    """Binary test on one feature.

    Numeric rules send a record left when its value is present and
    ``<= threshold``.  Categorical rules send it left when its token equals
    ``category`` (or the feature's reference category if ``category`` is
    ``None``; one of the two must be set).
    """

    feature_index: int
    feature: Feature
    threshold: float | None = None
    category: str | None = None

    def __post_init__(self):
        if (self.feature.kind == SplitKind.CATEGORICAL and self.category is None
                and self.feature.reference is None):
            raise ValueError(
                f"categorical rule on {self.feature.name!r} needs a category or a reference")

    @classmethod
    def numeric(cls, feature_index: int, feature: Feature, threshold: float) -> "SplitRule":
        return cls(feature_index, feature, threshold=float(threshold))

    @classmethod
    def categorical(cls, feature_index: int, feature: Feature,
                    category: str | None = None) -> "SplitRule":
        return cls(feature_index, feature, category=category)

    @property
    def kind(self) -> SplitKind:
        return self.feature.kind

    @property
    def value(self):
        return self.threshold if self.kind == SplitKind.NUMERIC else self.category

    def goes_left(self, record: Record) -> bool:
        return self.feature.compare(record.features[self.feature_index], self.value)

    def mask(self, column: np.ndarray) -> np.ndarray:
        return self.feature.compare_column(column, self.value)

    def describe(self, left: bool = True) -> str:
        name = self.feature.name
        if self.kind == SplitKind.NUMERIC:
            return f"{name} <= {self.threshold:.4f}" if left else f"{name} > {self.threshold:.4f}"
        cat = self.category if self.category is not None else self.feature.reference
        return f"{name} == {cat}" if left else f"{name} != {cat}"


def partition(records: Sequence[Record], rule: SplitRule) -> tuple[list[Record], list[Record]]:
    """Split ``records`` into ``(left, right)`` by ``rule``, keeping order."""
    left, right = [], []
    for r in records:
        (left if rule.goes_left(r) else right).append(r)
    return left, right


# -----------------------------------------------------------------------------
# Split search
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class SplitCandidate:
    rule: SplitRule
    impurity: float
    gain: float


def sample_features(n_features: int, ratio: float, rng: np.random.RandomState) -> np.ndarray:
    """Draw ``max(1, round(ratio * n_features))`` feature ids without replacement.

    All ids are shuffled and the head is kept.  ``ratio`` is clamped to 1.
    """
    if not ratio > 0:
        raise ValueError(f"feature_sample_ratio must be > 0, got {ratio}")
    ratio = min(float(ratio), 1.0)
    k = max(1, _round_half_up(ratio * n_features))
    order = rng.permutation(n_features)
    return order[:k]


def _scan_numeric(col: np.ndarray, y: np.ndarray, min_samples_leaf: int):
    present = ~np.isnan(col)
    v = col[present]
    if v.size == 0:
        return None
    order = np.argsort(v, kind="mergesort")
    v = v[order]
    yp = y[present][order]

    n = y.size
    # last position of each distinct value: everything up to it goes left
    last = np.r_[np.nonzero(v[:-1] != v[1:])[0], v.size - 1]
    n_left = last + 1
    pos_left = np.cumsum(yp)[last]
    n_right = n - n_left
    pos_right = y.sum() - pos_left

    score = (n_left * _gini_counts(pos_left, n_left) + n_right * _gini_counts(pos_right, n_right)) / n
    valid = (n_left >= min_samples_leaf) & (n_right >= min_samples_leaf)
    if not valid.any():
        return None
    score = np.where(valid, score, np.inf)
    k = int(np.argmin(score))
    return float(v[last[k]]), float(score[k])


def _scan_categorical(col: np.ndarray, y: np.ndarray, min_samples_leaf: int):
    if col.size == 0:
        return None
    cats, inverse, counts = np.unique(col, return_inverse=True, return_counts=True)
    inverse = inverse.reshape(-1)
    pos = np.bincount(inverse, weights=y.astype(float), minlength=len(cats))

    n = y.size
    n_left, pos_left = counts, pos
    n_right, pos_right = n - counts, y.sum() - pos

    score = (n_left * _gini_counts(pos_left, n_left) + n_right * _gini_counts(pos_right, n_right)) / n
    valid = (counts >= min_samples_leaf) & (n_right >= min_samples_leaf)
    if not valid.any():
        return None
    score = np.where(valid, score, np.inf)
    k = int(np.argmin(score))
    return str(cats[k]), float(score[k])


def find_best_split(columns: Sequence[np.ndarray], labels, schema: Schema, *,
                    min_samples_leaf: int, feature_sample_ratio: float,
                    rng: np.random.RandomState,
                    importances: dict | None = None) -> SplitCandidate | None:
    """
    Search a random subset of features for the lowest weighted-Gini split.

    Parameters
    ----------
    columns : sequence of ndarray
        One column per schema feature, restricted to the node's records.
    labels : array-like of bool
        Labels of the node's records.
    schema : Schema
        Feature definitions; ``columns[j]`` belongs to ``schema[j]``.
    min_samples_leaf : int
        Candidates leaving fewer records on either side are rejected.
    feature_sample_ratio : float
        Fraction of features scanned at this node (clamped to 1).
    rng : numpy.random.RandomState
        Generator for the feature subsample.
    importances : dict, optional
        Accumulator ``feature id -> gain``.  The winning feature is credited
        with ``impurity(labels) - best`` as soon as a winner exists.

    Returns
    -------
    SplitCandidate or None
        ``None`` when no candidate strictly improves on the parent impurity.

    Notes
    -----
    Ties keep the first candidate found: features in sampled order,
    thresholds ascending, categories in sorted order.
    """
    y = np.asarray(labels, dtype=bool)
    parent = impurity(y)

    best_score, best_feat, best_value = np.inf, None, None
    for j in sample_features(len(schema), feature_sample_ratio, rng):
        j = int(j)
        feature = schema[j]
        if feature.is_numeric:
            found = _scan_numeric(columns[j], y, min_samples_leaf)
        else:
            found = _scan_categorical(columns[j], y, min_samples_leaf)
        if found is None:
            continue
        value, score = found
        if score < best_score:
            best_score, best_feat, best_value = score, j, value

    if best_feat is None:
        return None

    gain = parent - best_score
    if importances is not None:
        importances[best_feat] = importances.get(best_feat, 0.0) + gain

    if not best_score < parent:
        return None

    feature = schema[best_feat]
    if feature.is_numeric:
        rule = SplitRule.numeric(best_feat, feature, best_value)
    else:
        rule = SplitRule.categorical(best_feat, feature, best_value)
    logger.debug("best split %s (gini %.4f -> %.4f, n=%d)",
                 rule.describe(), parent, best_score, y.size)
    return SplitCandidate(rule, best_score, gain)
