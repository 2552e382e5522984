"""Configuration for urlcrypt.

Reads from config/urlcrypt.ini if present, environment variables override.
The secret key never belongs in version control.
"""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from pathlib import Path

from urlcrypt.errors import ConfigurationError

_CONFIG_FILE = Path(__file__).resolve().parent.parent.parent / "config" / "urlcrypt.ini"

QUERY_STRATEGIES = ("greedy", "schema")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}

_BOOL_FIELDS = (
    "ignore_unencrypted_warnings",
    "show_full_cryptographic_exception",
    "encrypt_outbound_paths",
)


@dataclass(frozen=True)
class UrlCryptConfig:
    """URL cryptography configuration. Immutable once loaded."""

    secret_key: str = ""
    path_purpose: str = "urlcrypt.path"
    query_purpose: str = "urlcrypt.query"
    query_strategy: str = "greedy"
    ignore_unencrypted_warnings: bool = False
    show_full_cryptographic_exception: bool = False
    encrypt_outbound_paths: bool = False
    host: str = "127.0.0.1"
    port: int = 8000

    def __post_init__(self):
        if self.query_strategy not in QUERY_STRATEGIES:
            raise ConfigurationError(
                f"query_strategy must be one of {', '.join(QUERY_STRATEGIES)}, "
                f"got {self.query_strategy!r}"
            )
        if not self.path_purpose or not self.query_purpose:
            raise ConfigurationError("path_purpose and query_purpose must not be empty")
        if self.path_purpose == self.query_purpose:
            raise ConfigurationError("path_purpose and query_purpose must differ")


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _parse_port(value: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"port must be an integer, got {value!r}") from exc


def load_config(config_path: Path | None = None) -> UrlCryptConfig:
    """Load config from INI file, then override with environment variables."""
    path = config_path or _CONFIG_FILE
    raw: dict[str, str] = {}

    if path.exists():
        parser = configparser.ConfigParser()
        parser.read(path)
        if parser.has_section("crypto"):
            for key in (
                "secret_key",
                "path_purpose",
                "query_purpose",
                "query_strategy",
                *_BOOL_FIELDS,
            ):
                val = parser.get("crypto", key, fallback=None)
                if val is not None:
                    raw[key] = val
        if parser.has_section("server"):
            for key in ("host", "port"):
                val = parser.get("server", key, fallback=None)
                if val is not None:
                    raw[key] = val

    env_map = {
        "URLCRYPT_SECRET_KEY": "secret_key",
        "URLCRYPT_PATH_PURPOSE": "path_purpose",
        "URLCRYPT_QUERY_PURPOSE": "query_purpose",
        "URLCRYPT_QUERY_STRATEGY": "query_strategy",
        "URLCRYPT_IGNORE_UNENCRYPTED_WARNINGS": "ignore_unencrypted_warnings",
        "URLCRYPT_SHOW_FULL_CRYPTOGRAPHIC_EXCEPTION": "show_full_cryptographic_exception",
        "URLCRYPT_ENCRYPT_OUTBOUND_PATHS": "encrypt_outbound_paths",
        "URLCRYPT_HOST": "host",
        "URLCRYPT_PORT": "port",
    }
    for env_key, config_key in env_map.items():
        val = os.getenv(env_key)
        if val is not None:
            raw[config_key] = val

    kwargs: dict = {}
    for key, val in raw.items():
        if key in _BOOL_FIELDS:
            kwargs[key] = _parse_bool(key, val)
        elif key == "port":
            kwargs[key] = _parse_port(val)
        else:
            kwargs[key] = val
    return UrlCryptConfig(**kwargs)
