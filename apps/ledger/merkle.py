"""Address allow-list Merkle trees.

Leaves are ``keccak256`` of the 20 address bytes (case-insensitive input),
internal nodes hash the sorted pair of children, and an unpaired node is
carried up to the next level unchanged. Roots and proofs produced here are
what ``MerkleRegistry.verify_proof`` checks against registered roots.
"""
from __future__ import annotations

from typing import Iterable

from web3 import Web3

from .models import normalize_address, normalize_root


def _to_hex(value: bytes) -> str:
    return '0x' + bytes(value).hex()


def _node_bytes(value: str | bytes) -> bytes:
    return bytes.fromhex(normalize_root(value)[2:])


def hash_pair(left: bytes, right: bytes) -> bytes:
    first, second = (left, right) if left <= right else (right, left)
    return bytes(Web3.keccak(first + second))


def leaf_bytes(address: str) -> bytes:
    normalized = normalize_address(address)
    return bytes(Web3.keccak(bytes.fromhex(normalized[2:].lower())))


def leaf_for_address(address: str) -> str:
    return _to_hex(leaf_bytes(address))


def verify_proof(root: str | bytes, proof: Iterable[str | bytes], leaf: str | bytes) -> bool:
    computed = _node_bytes(leaf)
    for sibling in proof:
        computed = hash_pair(computed, _node_bytes(sibling))
    return computed == _node_bytes(root)


class MerkleTree:
    def __init__(self, leaves: list[bytes]) -> None:
        if not leaves:
            raise ValueError('cannot build a merkle tree without leaves')
        self.levels: list[list[bytes]] = [list(leaves)]
        while len(self.levels[-1]) > 1:
            level = self.levels[-1]
            parents: list[bytes] = []
            for i in range(0, len(level), 2):
                if i + 1 < len(level):
                    parents.append(hash_pair(level[i], level[i + 1]))
                else:
                    parents.append(level[i])
            self.levels.append(parents)

    @classmethod
    def from_addresses(cls, addresses: Iterable[str]) -> 'MerkleTree':
        return cls([leaf_bytes(address) for address in addresses])

    @property
    def leaves(self) -> list[bytes]:
        return self.levels[0]

    @property
    def root(self) -> str:
        return _to_hex(self.levels[-1][0])

    def proof_for_leaf(self, leaf: str | bytes) -> list[str]:
        target = _node_bytes(leaf)
        try:
            index = self.leaves.index(target)
        except ValueError:
            raise KeyError(f'leaf {_to_hex(target)} is not in the tree') from None

        proof: list[str] = []
        for level in self.levels[:-1]:
            sibling = index ^ 1
            if sibling < len(level):
                proof.append(_to_hex(level[sibling]))
            index //= 2
        return proof

    def proof(self, address: str) -> list[str]:
        return self.proof_for_leaf(leaf_bytes(address))
