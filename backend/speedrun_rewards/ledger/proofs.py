"""
Registry of proofs consumed by committed grants.
"""

import hashlib
from typing import Iterable, List, Set

from ..core.exceptions import DuplicateProofError


def make_proof_hash(recipient: str, week: int, submission_id: object, salt: str = "") -> str:
    """
    Bind a grant to the submission that earned it.

    The salt separates otherwise identical proofs, e.g. the same submission
    rewarded under two different categories.
    """
    material = f"{recipient.strip().lower()}|{week}|{submission_id}|{salt}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


class ProofRegistry:
    """
    Append-only set of used proofs.

    There is no removal: once a proof backs a committed grant it stays
    consumed. Not thread-safe on its own; the owning ledger serialises
    access.
    """

    def __init__(self, used: Iterable[str] = ()):
        self._used: Set[str] = set(used)

    def __len__(self) -> int:
        return len(self._used)

    def __contains__(self, proof: object) -> bool:
        return proof in self._used

    def is_used(self, proof: str) -> bool:
        return proof in self._used

    def mark_used(self, proof: str) -> None:
        if proof in self._used:
            raise DuplicateProofError(f"Proof already used: {proof}", proofs=[proof])
        self._used.add(proof)

    def find_duplicates(self, proofs: Iterable[str]) -> List[str]:
        """Proofs already consumed or repeated within ``proofs``, first-seen order."""
        seen: Set[str] = set()
        duplicates: List[str] = []
        for proof in proofs:
            if (proof in self._used or proof in seen) and proof not in duplicates:
                duplicates.append(proof)
            seen.add(proof)
        return duplicates

    def snapshot(self) -> frozenset:
        return frozenset(self._used)
