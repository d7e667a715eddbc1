"""
Key Ring
========

Ordered list of candidate data keys.

    encrypt: always under the first (current) candidate
    decrypt: try each candidate in order, stop at the first tag that verifies

An authentication failure on an earlier candidate is expected while a store
still holds records written under an older scheme, so it is swallowed and the
next candidate is tried. Only when every candidate fails does DecryptionError
reach the caller. Further key generations are added by appending candidates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Tuple

from clipvault.core.crypto.aes_gcm import AesGcmCipher, DecryptionError


@dataclass(frozen=True, slots=True)
class KeyCandidate:
    """A labelled data key."""

    label: str
    key: bytes

    def __repr__(self) -> str:
        """Safe representation without exposing key material."""
        return f"KeyCandidate(label={self.label!r})"


class KeyRing:
    """
    Encrypt with the current key, decrypt with any known key.

    Usage:
        ring = KeyRing([KeyCandidate("current", k1), KeyCandidate("legacy", k0)])
        blob = ring.encrypt("text")           # uses k1
        text = ring.decrypt(old_blob)         # k1, then k0
    """

    __slots__ = ("_candidates", "_cipher")

    def __init__(self, candidates: Iterable[KeyCandidate]) -> None:
        self._candidates: Tuple[KeyCandidate, ...] = tuple(candidates)
        if not self._candidates:
            raise ValueError("KeyRing needs at least one key candidate")
        self._cipher = AesGcmCipher()

    @property
    def current(self) -> KeyCandidate:
        return self._candidates[0]

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(c.label for c in self._candidates)

    def candidate(self, label: str) -> KeyCandidate:
        for candidate in self._candidates:
            if candidate.label == label:
                return candidate
        raise KeyError(label)

    def current_only(self) -> "KeyRing":
        """Ring restricted to the current key."""
        return KeyRing([self.current])

    def encrypt(self, plaintext: str) -> str:
        return self._cipher.encrypt_text(plaintext, self.current.key)

    def decrypt_with_label(self, blob: str) -> Tuple[str, str]:
        """
        Decrypt ``blob`` and report which candidate verified it.

        Raises:
            DecryptionError: If no candidate can authenticate the blob
        """
        for candidate in self._candidates:
            try:
                return self._cipher.decrypt_text(blob, candidate.key), candidate.label
            except DecryptionError:
                continue
        raise DecryptionError(
            f"No key candidate could decrypt the record (tried {', '.join(self.labels)})"
        )

    def decrypt(self, blob: str) -> str:
        return self.decrypt_with_label(blob)[0]

    def __repr__(self) -> str:
        return f"KeyRing(labels={self.labels!r})"
