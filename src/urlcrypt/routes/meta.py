"""Meta endpoints — health, version."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from urlcrypt.deps import get_url_cryptography
from urlcrypt.middleware import UrlCryptography

router = APIRouter(prefix="/api/v1", tags=["meta"])


@router.get("/health")
def health():
    return {"status": "ok", "service": "urlcrypt"}


@router.get("/version")
def version(url_cryptography: UrlCryptography = Depends(get_url_cryptography)):
    return {
        "service": "0.1.0",
        "query_strategy": url_cryptography.query_strategy.value,
    }
