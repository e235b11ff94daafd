"""
Append-only incremental Merkle tree mirroring the pool's commitment tree.

Leaves must be inserted in exactly the order the pool contract assigns them
(deposit and shielded-output order as they appear in calldata); any
divergence silently invalidates every later proof.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from shieldnet.crypto_core.field import check_field
from shieldnet.crypto_core.poseidon import hash2
from shieldnet.errors import IndexOutOfRange, InvalidFieldValue

LOG = logging.getLogger("shieldnet.merkle")
LOG.addHandler(logging.NullHandler())

_zero_cache: Dict[int, Tuple[int, ...]] = {}


def zero_values(depth: int) -> Tuple[int, ...]:
    """zero_values[0] = 0, zero_values[i] = H2(z[i-1], z[i-1]); length depth + 1."""
    if depth < 1:
        raise InvalidFieldValue(f"depth must be >= 1, got {depth}")
    cached = _zero_cache.get(depth)
    if cached is not None:
        return cached
    zeros = [0]
    for _ in range(depth):
        zeros.append(hash2(zeros[-1], zeros[-1]))
    cached = tuple(zeros)
    _zero_cache[depth] = cached
    return cached


@dataclass(frozen=True)
class MerkleProof:
    leaf: int
    index: int
    siblings: List[int]
    path_bits: List[int]
    root: int

    def compute_root(self) -> int:
        node = self.leaf
        for sibling, bit in zip(self.siblings, self.path_bits):
            node = hash2(sibling, node) if bit else hash2(node, sibling)
        return node


class MerkleAccumulator:
    """
    layers[0] holds the leaves; layers[l][i] = H2(layers[l-1][2i], layers[l-1][2i+1])
    with zero_values[l-1] standing in for a missing right child. Only the
    path from a new leaf to the root is rehashed on insert.
    """

    def __init__(self, depth: int):
        self.depth = depth
        self.zero_values = zero_values(depth)
        self.capacity = 1 << depth
        self._layers: List[List[int]] = [[] for _ in range(depth + 1)]

    @classmethod
    def from_leaves(cls, depth: int, leaves: Iterable[int]) -> "MerkleAccumulator":
        tree = cls(depth)
        for leaf in leaves:
            tree.insert(leaf)
        return tree

    def __len__(self) -> int:
        return len(self._layers[0])

    @property
    def leaves(self) -> List[int]:
        return list(self._layers[0])

    def insert(self, leaf: int) -> int:
        """Append `leaf`; returns its zero-based index."""
        leaf = check_field(leaf, name="leaf")
        index = len(self._layers[0])
        if index >= self.capacity:
            raise IndexOutOfRange(f"Merkle tree of depth {self.depth} is full ({self.capacity} leaves)")

        self._layers[0].append(leaf)
        node, pos = leaf, index
        for level in range(self.depth):
            layer = self._layers[level]
            if pos % 2 == 0:
                left, right = node, self.zero_values[level]
            else:
                left, right = layer[pos - 1], node
            node = hash2(left, right)
            pos //= 2
            parent = self._layers[level + 1]
            if pos == len(parent):
                parent.append(node)
            else:
                parent[pos] = node
        LOG.debug("inserted leaf %d", index)
        return index

    def get_root(self) -> int:
        if not self._layers[0]:
            return self.zero_values[self.depth]
        return self._layers[self.depth][0]

    def get_proof(self, index: int) -> MerkleProof:
        n = len(self._layers[0])
        if index < 0 or index >= n:
            raise IndexOutOfRange(f"leaf index {index} out of range (leaf count {n})")

        siblings: List[int] = []
        path_bits: List[int] = []
        pos = index
        for level in range(self.depth):
            layer = self._layers[level]
            sib = pos ^ 1
            siblings.append(layer[sib] if sib < len(layer) else self.zero_values[level])
            path_bits.append(pos & 1)
            pos //= 2
        return MerkleProof(
            leaf=self._layers[0][index],
            index=index,
            siblings=siblings,
            path_bits=path_bits,
            root=self.get_root(),
        )

    def find(self, leaf: int) -> int:
        """Index of the first occurrence of `leaf`."""
        try:
            return self._layers[0].index(leaf)
        except ValueError:
            raise IndexOutOfRange(f"leaf {hex(leaf)} is not in the tree") from None


def verify_proof(leaf: int, proof: MerkleProof, root: int) -> bool:
    if len(proof.siblings) != len(proof.path_bits):
        return False
    return proof.leaf == leaf and proof.compute_root() == root


def root_from_scratch(depth: int, leaves: Iterable[int]) -> int:
    """Batch recomputation, level by level, without the incremental cache."""
    zeros = zero_values(depth)
    layer = [check_field(x, name="leaf") for x in leaves]
    if len(layer) > (1 << depth):
        raise IndexOutOfRange(f"{len(layer)} leaves do not fit a tree of depth {depth}")
    if not layer:
        return zeros[depth]
    for level in range(depth):
        if len(layer) % 2:
            layer.append(zeros[level])
        layer = [hash2(layer[i], layer[i + 1]) for i in range(0, len(layer), 2)]
    return layer[0]


__all__ = [
    "MerkleAccumulator",
    "MerkleProof",
    "zero_values",
    "verify_proof",
    "root_from_scratch",
]
