"""Per-value decryption results."""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple


class OutcomeKind(Enum):
    DECRYPTED = "decrypted"
    PASSTHROUGH = "passthrough"
    FAILED_IGNORABLE = "failed_ignorable"
    FAILED_REPORTABLE = "failed_reportable"


class DecryptionOutcome(NamedTuple):
    """What happened to one value; value is what goes into the output."""

    kind: OutcomeKind
    value: str

    @property
    def failed(self) -> bool:
        return self.kind in (OutcomeKind.FAILED_IGNORABLE, OutcomeKind.FAILED_REPORTABLE)
