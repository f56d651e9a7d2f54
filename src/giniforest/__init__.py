# giniforest/__init__.py
"""
giniforest: Gini decision trees and random forests over fixed-schema records.

Exports:
    - DecisionTree
    - RandomForest
    - Schema, Feature, Record, TITANIC_SCHEMA
    - load_titanic, split_dataset
    - ModelFormatError
"""
from .schema import Feature, Record, Schema, SplitKind, TITANIC_SCHEMA
from .tree import DecisionTree, TreeNode
from .forest import RandomForest
from .persistence import ModelFormatError
from .datasets import load_titanic, split_dataset

__all__ = [
    "DecisionTree", "TreeNode", "RandomForest",
    "Feature", "Record", "Schema", "SplitKind", "TITANIC_SCHEMA",
    "load_titanic", "split_dataset", "ModelFormatError",
]
__version__ = "0.1.0"
