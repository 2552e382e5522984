"""Exceptions raised by urlcrypt."""

from __future__ import annotations


class UrlCryptographyError(Exception):
    """Base exception for urlcrypt errors."""


class InvalidCiphertext(UrlCryptographyError):
    """A token could not be decrypted under the protector's purpose.

    Covers malformed, truncated and tampered tokens, and tokens that were
    produced under a different purpose or secret.
    """


class ConfigurationError(UrlCryptographyError):
    """Invalid configuration. Raised at startup, never per request."""
