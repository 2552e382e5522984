"""Query string decryption strategies.

Greedy: try every value, keep the original on failure, report nothing.
Usable before routing, when no handler (and so no shape) is known.

Schema-driven: decrypt only the keys a TargetShape marks Encrypted and
report the ones that failed, in a single aggregated warning. Needs the
routed handler's shape, so it runs after routing.

Neither strategy mutates its input or drops keys.
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qsl, urlencode

from urlcrypt.errors import InvalidCiphertext
from urlcrypt.outcomes import DecryptionOutcome, OutcomeKind
from urlcrypt.protector import Protector
from urlcrypt.schema import FieldPolicy, TargetShape, walk_policies

logger = logging.getLogger("urlcrypt.query")

QueryMap = dict[str, list[str]]


def parse_query(query_string: bytes) -> QueryMap:
    """Group a raw query string by key. Blank values are kept."""
    query: QueryMap = {}
    for key, value in parse_qsl(query_string.decode("latin-1"), keep_blank_values=True):
        query.setdefault(key, []).append(value)
    return query


def encode_query(query: QueryMap) -> bytes:
    return urlencode(query, doseq=True).encode("latin-1")


def _copy(query: QueryMap) -> QueryMap:
    return {key: list(values) for key, values in query.items()}


class GreedyQueryDecryption:
    """Attempts to decrypt every query value."""

    def __init__(self, protector: Protector, show_full_exception: bool = False):
        self._protector = protector
        self._show_full_exception = show_full_exception

    def decrypt_value(self, value: str) -> DecryptionOutcome:
        if not value:
            return DecryptionOutcome(OutcomeKind.PASSTHROUGH, value)
        try:
            return DecryptionOutcome(OutcomeKind.DECRYPTED, self._protector.decrypt(value))
        except InvalidCiphertext:
            if self._show_full_exception:
                logger.debug("Query value left as-is", exc_info=True)
            return DecryptionOutcome(OutcomeKind.PASSTHROUGH, value)

    def decrypt(self, query: QueryMap) -> QueryMap:
        return {
            key: [self.decrypt_value(v).value for v in values]
            for key, values in query.items()
        }


class SchemaQueryDecryption:
    """Decrypts the query keys a TargetShape marks as Encrypted.

    Args:
        protector: Query-purpose protector.
        ignore_all_warnings: Suppress reporting for every field.
        show_full_exception: Log each failure with its exception at DEBUG.
    """

    def __init__(
        self,
        protector: Protector,
        ignore_all_warnings: bool = False,
        show_full_exception: bool = False,
    ):
        self._protector = protector
        self._ignore_all_warnings = ignore_all_warnings
        self._show_full_exception = show_full_exception

    def decrypt_value(self, policy: FieldPolicy, value: str) -> DecryptionOutcome:
        try:
            return DecryptionOutcome(OutcomeKind.DECRYPTED, self._protector.decrypt(value))
        except InvalidCiphertext:
            if self._show_full_exception:
                logger.debug("Query parameter %s did not decrypt", policy.name, exc_info=True)
        if self._ignore_all_warnings or policy.ignore_failure_warning:
            return DecryptionOutcome(OutcomeKind.FAILED_IGNORABLE, value)
        return DecryptionOutcome(OutcomeKind.FAILED_REPORTABLE, value)

    def decrypt(self, query: QueryMap, shape: TargetShape | None) -> QueryMap:
        decrypted, _ = self.decrypt_with_report(query, shape)
        return decrypted

    def decrypt_with_report(
        self, query: QueryMap, shape: TargetShape | None
    ) -> tuple[QueryMap, list[str]]:
        """Decrypt query against shape.

        Returns the new query map and the keys whose failure was reported,
        in the order they failed. A repeated key bound as a scalar takes its
        last value, so only that value is decrypted; a multi-valued key has
        every value decrypted.
        """
        result = _copy(query)
        if shape is None:
            logger.debug("No target shape for this request; query left unchanged")
            return result, []

        keys_with_errors: list[str] = []
        decrypted_keys: set[str] = set()
        for policy in walk_policies(shape):
            values = result.get(policy.name)
            if not values or policy.name in decrypted_keys:
                continue

            positions = range(len(values)) if policy.multi_valued else [len(values) - 1]
            for i in positions:
                if not values[i]:
                    continue
                outcome = self.decrypt_value(policy, values[i])
                if outcome.kind is OutcomeKind.DECRYPTED:
                    values[i] = outcome.value
                    decrypted_keys.add(policy.name)
                elif outcome.kind is OutcomeKind.FAILED_REPORTABLE:
                    if policy.name not in keys_with_errors:
                        keys_with_errors.append(policy.name)

        if keys_with_errors:
            logger.warning(
                "Errors occurred when attempting to decrypt one or more query "
                "parameters. This generally occurs because the parameter was not "
                "encrypted to begin with. Parameters: %s",
                ", ".join(keys_with_errors),
            )
        return result, keys_with_errors
