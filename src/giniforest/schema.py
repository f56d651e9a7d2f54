# -*- coding: utf-8 -*-
"""
giniforest.schema
=================

Fixed-schema tabular records.  A :class:`Schema` is an ordered tuple of
:class:`Feature` accessors; the position of a feature in the schema is its
feature id, the integer stored in split rules and in serialized models.

Each feature pairs a *read* (the value of its slot in a record, or a whole
column over many records) with a *compare* (does a value satisfy a rule
value).  Split search, partitioning and inference all go through the same
pair, so a numeric test treats an absent value identically everywhere.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Iterable, Sequence

import numpy as np


def is_missing(v) -> bool:
    """``None`` and ``NaN`` both mark an absent numeric value."""
    return (v is None) or (isinstance(v, float) and np.isnan(v))


class SplitKind(IntEnum):
    NUMERIC = 0
    CATEGORICAL = 1


@dataclass(frozen=True)
class Feature:
    """A named slot in a feature vector.

    Parameters
    ----------
    name : str
        Feature name, used by :meth:`Schema.record` and in rule export.
    kind : SplitKind
        Whether the feature is split by threshold or by category.
    reference : str or None, default=None
        Default reference category for categorical splits whose rule does
        not carry one.
    fallback : str or None, default=None
        Token stored for an absent categorical value.
    """

    name: str
    kind: SplitKind
    reference: str | None = None
    fallback: str | None = None

    @classmethod
    def numeric(cls, name: str) -> "Feature":
        return cls(name, SplitKind.NUMERIC)

    @classmethod
    def categorical(cls, name: str, reference: str | None = None,
                    fallback: str = "") -> "Feature":
        return cls(name, SplitKind.CATEGORICAL, reference, fallback)

    @property
    def is_numeric(self) -> bool:
        return self.kind == SplitKind.NUMERIC

    def coerce(self, value):
        """Normalize a raw value into what a record stores for this slot."""
        if self.is_numeric:
            if is_missing(value):
                return None
            try:
                value = float(value)
            except (TypeError, ValueError):
                return None
            return None if np.isnan(value) else value
        if is_missing(value) or value == "":
            return self.fallback or ""
        return str(value)

    def compare(self, value, rule_value) -> bool:
        """Return True when ``value`` goes to the left child."""
        if self.is_numeric:
            return (not is_missing(value)) and float(value) <= rule_value
        if rule_value is None:
            rule_value = self.reference
        return value == rule_value

    def compare_column(self, column: np.ndarray, rule_value) -> np.ndarray:
        """Vectorized :meth:`compare` over a column built by :meth:`column`."""
        if self.is_numeric:
            # NaN compares False, so absent values land on the right
            return column <= rule_value
        if rule_value is None:
            rule_value = self.reference
        return column == rule_value

    def column(self, records: Sequence["Record"], index: int) -> np.ndarray:
        """Read this feature from every record.

        Numeric columns are float arrays with ``NaN`` for absent values;
        categorical columns are object arrays of tokens.
        """
        if self.is_numeric:
            return np.array([np.nan if is_missing(r.features[index]) else r.features[index]
                             for r in records], dtype=float)
        out = np.empty(len(records), dtype=object)
        for i, r in enumerate(records):
            out[i] = r.features[index]
        return out


@dataclass(frozen=True)
class Record:
    """An immutable labelled observation; ``features`` follows schema order."""

    label: bool
    features: tuple = field(default_factory=tuple)

    def __getitem__(self, index: int):
        return self.features[index]


class Schema:
    """Ordered, fixed set of features shared by a dataset and its models."""

    def __init__(self, features: Iterable[Feature]):
        self.features: tuple[Feature, ...] = tuple(features)
        if not self.features:
            raise ValueError("a schema needs at least one feature")
        names = [f.name for f in self.features]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate feature names in schema: {names}")
        self._index = {n: i for i, n in enumerate(names)}

    def __len__(self) -> int:
        return len(self.features)

    def __iter__(self):
        return iter(self.features)

    def __getitem__(self, index: int) -> Feature:
        return self.features[index]

    def __eq__(self, other) -> bool:
        return isinstance(other, Schema) and self.features == other.features

    def __hash__(self) -> int:
        return hash(self.features)

    def __repr__(self) -> str:
        return f"Schema({', '.join(f.name for f in self.features)})"

    @property
    def names(self) -> list[str]:
        return [f.name for f in self.features]

    def index(self, name: str) -> int:
        try:
            return self._index[name]
        except KeyError:
            raise KeyError(f"unknown feature {name!r}; schema has {self.names}") from None

    def record(self, label: Any, **values) -> Record:
        """Build a record from keyword values; omitted slots are absent."""
        unknown = set(values) - set(self._index)
        if unknown:
            raise ValueError(f"unknown features: {sorted(unknown)}")
        feats = tuple(f.coerce(values.get(f.name)) for f in self.features)
        return Record(bool(label), feats)

    def from_values(self, label: Any, values: Sequence) -> Record:
        """Build a record from values given in schema order."""
        if len(values) != len(self.features):
            raise ValueError(f"expected {len(self.features)} feature values, got {len(values)}")
        return Record(bool(label), tuple(f.coerce(v) for f, v in zip(self.features, values)))

    def check(self, records: Sequence[Record]) -> None:
        n = len(self.features)
        for r in records:
            if len(r.features) != n:
                raise ValueError(
                    f"record has {len(r.features)} feature values but the schema has {n}")

    def columns(self, records: Sequence[Record]) -> list[np.ndarray]:
        return [f.column(records, i) for i, f in enumerate(self.features)]


TITANIC_SCHEMA = Schema([
    Feature.numeric("pclass"),
    Feature.categorical("sex", reference="female"),
    Feature.numeric("age"),
    Feature.numeric("sibsp"),
    Feature.numeric("parch"),
    Feature.numeric("fare"),
    Feature.categorical("embarked", reference="C", fallback="U"),
])
