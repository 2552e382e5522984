"""urlcrypt — FastAPI demo service.

Exposes opaque, tamper-evident identifiers in URLs while handlers see
plain values. Path segments and query values are decrypted on the way in.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from urlcrypt.config import UrlCryptConfig, load_config
from urlcrypt.middleware import install_url_cryptography
from urlcrypt.routes import meta, orders, people

logger = logging.getLogger("urlcrypt")
audit_logger = logging.getLogger("urlcrypt.audit")


@asynccontextmanager
async def lifespan(app: FastAPI):
    config: UrlCryptConfig = app.state.config
    logger.info(
        "urlcrypt ready (path purpose: %s, query purpose: %s)",
        config.path_purpose,
        config.query_purpose,
    )
    yield
    logger.info("urlcrypt shut down")


def create_app(config: UrlCryptConfig | None = None) -> FastAPI:
    """Application factory."""
    if config is None:
        config = load_config()

    app = FastAPI(
        title="urlcrypt",
        description="Encrypted identifiers in URL paths and query strings",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config

    # ── URL cryptography (before routing) ─────────────────────

    install_url_cryptography(app, config)

    # ── Audit middleware ──────────────────────────────────────

    @app.middleware("http")
    async def audit_log(request: Request, call_next):
        # Logged as received, so decrypted values stay out of the audit trail
        path = request.url.path
        start = time.monotonic()
        response = await call_next(request)
        elapsed = time.monotonic() - start
        audit_logger.info(
            "%s %s %d %.3fs",
            request.method,
            path,
            response.status_code,
            elapsed,
        )
        return response

    # ── Routers ───────────────────────────────────────────────

    app.include_router(meta.router)
    app.include_router(orders.router)
    app.include_router(people.router)

    return app
