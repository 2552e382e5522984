"""Path segment decryption.

Paths carry no schema before routing, so every segment is tried. A segment
that does not decrypt is assumed never to have been encrypted and is kept
as-is. Path failures are never reported.
"""

from __future__ import annotations

import logging

from urlcrypt.errors import InvalidCiphertext
from urlcrypt.outcomes import DecryptionOutcome, OutcomeKind
from urlcrypt.protector import Protector

logger = logging.getLogger("urlcrypt.path")


def split_path(path: str) -> list[str]:
    """Non-empty segments of path."""
    return [segment for segment in path.split("/") if segment]


def join_path(segments: list[str]) -> str:
    return "/" + "/".join(segments)


class PathDecryption:
    """Greedy path strategy: decrypt each segment independently."""

    def __init__(self, protector: Protector, show_full_exception: bool = False):
        self._protector = protector
        self._show_full_exception = show_full_exception

    def decrypt_segment(self, segment: str) -> DecryptionOutcome:
        try:
            plaintext = self._protector.decrypt(segment)
        except InvalidCiphertext:
            if self._show_full_exception:
                logger.debug("Path segment left as-is", exc_info=True)
            return DecryptionOutcome(OutcomeKind.PASSTHROUGH, segment)

        # The plaintext must stay exactly one non-empty segment
        if not plaintext or "/" in plaintext:
            logger.debug("Decrypted path segment is not a single segment; left as-is")
            return DecryptionOutcome(OutcomeKind.PASSTHROUGH, segment)
        return DecryptionOutcome(OutcomeKind.DECRYPTED, plaintext)

    def decrypt_segments(self, path: str) -> list[DecryptionOutcome]:
        return [self.decrypt_segment(s) for s in split_path(path)]

    def decrypt(self, path: str) -> str:
        """Rewrite path with every decryptable segment replaced.

        Empty segments are dropped: "//a/" becomes "/a".
        """
        return join_path([outcome.value for outcome in self.decrypt_segments(path)])

    def encrypt(self, path: str) -> str:
        """Inverse of decrypt: encrypt every non-empty segment."""
        return join_path([self._protector.encrypt(s) for s in split_path(path)])
