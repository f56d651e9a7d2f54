"""Binary model format for forests of decision trees.

Layout (little-endian)::

    int32 treeCount
    repeat treeCount times, one pre-order tree:
        uint8 nodeKind            0 = leaf, 1 = internal
        leaf:     uint8 predictedClass (0/1)
        internal: int32 featureId
                  uint8 splitKind  0 = numeric, 1 = categorical
                  float64 threshold            (numeric)
                  int32 length + UTF-8 bytes   (categorical)
                  left subtree, right subtree

Split rules are rebuilt against a :class:`~giniforest.schema.Schema`, so the
loader checks every feature id and split kind against it.  Nodes are written
and read with an explicit stack, so any depth the trainer can grow survives a
round trip; every node costs at least two bytes, which bounds a tree by the
size of its stream.
"""
from __future__ import annotations
import logging
import struct
from typing import BinaryIO, Sequence

from .schema import Schema, SplitKind
from .splitter import SplitRule
from .tree import TreeNode

logger = logging.getLogger(__name__)

_INT32 = struct.Struct("<i")
_UINT8 = struct.Struct("<B")
_FLOAT64 = struct.Struct("<d")

LEAF, INTERNAL = 0, 1
MAX_TOKEN_BYTES = 1 << 16


class ModelFormatError(ValueError):
    """Raised when a serialized model is truncated or malformed."""


# ----------------------------- Writing -----------------------------

def _write_node(fh: BinaryIO, node: TreeNode) -> None:
    if node.is_leaf:
        fh.write(_UINT8.pack(LEAF))
        fh.write(_UINT8.pack(int(node.predicted_class)))
        return
    rule = node.rule
    fh.write(_UINT8.pack(INTERNAL))
    fh.write(_INT32.pack(rule.feature_index))
    fh.write(_UINT8.pack(int(rule.kind)))
    if rule.kind == SplitKind.NUMERIC:
        fh.write(_FLOAT64.pack(rule.threshold))
    else:
        category = rule.category if rule.category is not None else rule.feature.reference
        token = category.encode("utf-8")
        fh.write(_INT32.pack(len(token)))
        fh.write(token)


def _write_tree(fh: BinaryIO, root: TreeNode) -> None:
    stack = [root]
    while stack:
        node = stack.pop()
        _write_node(fh, node)
        if not node.is_leaf:
            # pre-order: left subtree is written first
            stack.append(node.right)
            stack.append(node.left)


def dump_trees(roots: Sequence[TreeNode], fh: BinaryIO) -> None:
    """Write ``roots`` to the binary stream ``fh``."""
    fh.write(_INT32.pack(len(roots)))
    for root in roots:
        _write_tree(fh, root)


# ----------------------------- Reading -----------------------------

class _Reader:
    def __init__(self, fh: BinaryIO, schema: Schema):
        self.fh = fh
        self.schema = schema

    def _read(self, n: int) -> bytes:
        data = self.fh.read(n)
        if len(data) != n:
            raise ModelFormatError(f"truncated model: expected {n} bytes, got {len(data)}")
        return data

    def unpack(self, st: struct.Struct):
        return st.unpack(self._read(st.size))[0]

    def node(self) -> TreeNode:
        """Read one node header; internal nodes come back without children."""
        kind = self.unpack(_UINT8)
        if kind == LEAF:
            value = self.unpack(_UINT8)
            if value not in (0, 1):
                raise ModelFormatError(f"invalid leaf class byte {value}")
            return TreeNode.leaf(bool(value))
        if kind != INTERNAL:
            raise ModelFormatError(f"invalid node kind byte {kind}")

        feature_id = self.unpack(_INT32)
        if not 0 <= feature_id < len(self.schema):
            raise ModelFormatError(
                f"feature id {feature_id} outside schema of {len(self.schema)} features")
        split_kind = self.unpack(_UINT8)
        if split_kind not in (SplitKind.NUMERIC, SplitKind.CATEGORICAL):
            raise ModelFormatError(f"invalid split kind byte {split_kind}")
        feature = self.schema[feature_id]
        if split_kind != feature.kind:
            raise ModelFormatError(
                f"split kind {SplitKind(split_kind).name} does not match feature {feature.name!r}")

        if split_kind == SplitKind.NUMERIC:
            rule = SplitRule.numeric(feature_id, feature, self.unpack(_FLOAT64))
        else:
            length = self.unpack(_INT32)
            if not 0 <= length <= MAX_TOKEN_BYTES:
                raise ModelFormatError(f"invalid category length {length}")
            try:
                category = self._read(length).decode("utf-8")
            except UnicodeDecodeError as exc:
                raise ModelFormatError(f"category token is not valid UTF-8: {exc}") from exc
            rule = SplitRule.categorical(feature_id, feature, category)
        return TreeNode.internal(rule, None, None)

    def tree(self) -> TreeNode:
        """Read one pre-order tree."""
        root = self.node()
        # internal nodes still waiting for a child
        pending = [] if root.is_leaf else [root]
        while pending:
            node = self.node()
            parent = pending[-1]
            if parent.left is None:
                parent.left = node
            else:
                parent.right = node
                pending.pop()
            if not node.is_leaf:
                pending.append(node)
        return root


def load_trees(fh: BinaryIO, schema: Schema) -> list[TreeNode]:
    """Read the tree roots written by :func:`dump_trees`.

    Raises
    ------
    ModelFormatError
        If the stream is truncated, malformed, has trailing bytes, or
        references features absent from ``schema``.
    """
    reader = _Reader(fh, schema)
    count = reader.unpack(_INT32)
    if count < 0:
        raise ModelFormatError(f"negative tree count {count}")
    roots = [reader.tree() for _ in range(count)]
    if fh.read(1):
        raise ModelFormatError("trailing bytes after the last tree")
    logger.debug("decoded %d trees", count)
    return roots
