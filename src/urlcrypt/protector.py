"""Purpose-scoped authenticated encryption for URL values.

A ProtectorProvider holds the master secret. Each purpose string derives
its own Fernet key, so a token minted for path segments never decrypts as
a query value and two installations with different purposes never collide.
"""

from __future__ import annotations

import base64
import logging
import secrets

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from urlcrypt.errors import ConfigurationError, InvalidCiphertext

logger = logging.getLogger("urlcrypt.protector")

_KEY_LENGTH = 32


class Protector:
    """Encrypts and decrypts single strings under one purpose.

    Holds no mutable state after construction; safe to share between
    concurrent requests.
    """

    def __init__(self, fernet: Fernet, purpose: str):
        self._fernet = fernet
        self.purpose = purpose

    def encrypt(self, plaintext: str) -> str:
        """Return a URL-safe token for plaintext."""
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        """Return the plaintext for token.

        Raises:
            InvalidCiphertext: for any token this protector did not produce.
        """
        try:
            raw = token.encode("ascii")
        except UnicodeEncodeError as exc:
            raise InvalidCiphertext("token is not ASCII") from exc
        try:
            plaintext = self._fernet.decrypt(raw)
        except InvalidToken as exc:
            raise InvalidCiphertext("token failed authentication") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidCiphertext("payload is not UTF-8") from exc


class ProtectorProvider:
    """Creates purpose-scoped Protectors from one master secret.

    Empty secret = development mode: a random secret is generated and
    tokens stop decrypting after a restart.
    """

    def __init__(self, secret_key: str = ""):
        if secret_key:
            self._secret = secret_key.encode("utf-8")
        else:
            logger.warning(
                "No secret key configured; using an ephemeral key. "
                "Encrypted URLs will not survive a restart."
            )
            self._secret = secrets.token_bytes(_KEY_LENGTH)

    def create_protector(self, purpose: str) -> Protector:
        if not purpose:
            raise ConfigurationError("Protector purpose must not be empty")
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=_KEY_LENGTH,
            salt=None,
            info=purpose.encode("utf-8"),
        )
        key = base64.urlsafe_b64encode(hkdf.derive(self._secret))
        return Protector(Fernet(key), purpose)
