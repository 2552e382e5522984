"""FastAPI dependencies for urlcrypt routes."""

from __future__ import annotations

from fastapi import Request

from urlcrypt.middleware import UrlCryptography


def get_url_cryptography(request: Request) -> UrlCryptography:
    """Get the URL cryptography installation from app state."""
    return request.app.state.url_cryptography
