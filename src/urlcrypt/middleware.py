"""Request transform orchestration.

Path segments must be decrypted before routing, since the router matches
on them. Query parameters are bound after routing, and only then is the
handler's shape known. So:

- UrlCryptographyMiddleware runs before routing. It rewrites the path and,
  with the greedy strategy, every query value.
- EncryptedQueryRoute runs after routing and before parameter binding. It
  applies the schema-driven strategy with the endpoint's shape.

Add the middleware with install_url_cryptography(), and use
EncryptedQueryRoute as the route_class of routers whose handlers declare
Encrypted query fields.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Awaitable, Callable
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from fastapi import FastAPI, Request, Response
from fastapi.routing import APIRoute
from starlette.middleware.base import BaseHTTPMiddleware

from urlcrypt.config import UrlCryptConfig
from urlcrypt.errors import ConfigurationError
from urlcrypt.outcomes import OutcomeKind
from urlcrypt.path import PathDecryption, join_path, split_path
from urlcrypt.protector import ProtectorProvider
from urlcrypt.query import (
    GreedyQueryDecryption,
    SchemaQueryDecryption,
    encode_query,
    parse_query,
)
from urlcrypt.schema import TargetShape, shape_from_endpoint

logger = logging.getLogger("urlcrypt")


class Phase(Enum):
    PRE_ROUTING = "pre_routing"
    POST_ROUTING = "post_routing"


class QueryStrategy(Enum):
    GREEDY = "greedy"
    SCHEMA = "schema"


class UrlCryptography:
    """Owns the protectors and strategies for one installation.

    One protector per purpose, created once and shared by every request.
    """

    def __init__(self, config: UrlCryptConfig, provider: ProtectorProvider | None = None):
        if provider is None:
            provider = ProtectorProvider(config.secret_key)
        self.config = config
        self.query_strategy = QueryStrategy(config.query_strategy)
        self.path_protector = provider.create_protector(config.path_purpose)
        self.query_protector = provider.create_protector(config.query_purpose)

        verbose = config.show_full_cryptographic_exception
        self.path = PathDecryption(self.path_protector, show_full_exception=verbose)
        self.greedy_query = GreedyQueryDecryption(
            self.query_protector, show_full_exception=verbose
        )
        self.schema_query = SchemaQueryDecryption(
            self.query_protector,
            ignore_all_warnings=config.ignore_unencrypted_warnings,
            show_full_exception=verbose,
        )

    def query_strategy_for(
        self, phase: Phase
    ) -> GreedyQueryDecryption | SchemaQueryDecryption | None:
        """The query strategy that runs in phase, if any.

        Greedy needs no shape and runs before routing. Schema-driven needs
        the routed handler's shape and runs after routing.
        """
        if phase is Phase.PRE_ROUTING and self.query_strategy is QueryStrategy.GREEDY:
            return self.greedy_query
        if phase is Phase.POST_ROUTING and self.query_strategy is QueryStrategy.SCHEMA:
            return self.schema_query
        return None

    # ── Helpers for application code ─────────────────────────

    def encrypt_path(self, path: str) -> str:
        return self.path.encrypt(path)

    def encrypt_query_value(self, value: str) -> str:
        return self.query_protector.encrypt(value)

    def encrypt_location(self, location: str) -> str:
        """Encrypt the path of a same-origin redirect target.

        Absolute URLs and relative references that are not rooted paths
        are returned unchanged. Segments are percent-decoded before they are
        encrypted. A segment that decodes to text containing "/" is kept as
        it is, since it could not come back as a single segment. A trailing
        slash is kept.
        """
        parts = urlsplit(location)
        if parts.scheme or parts.netloc or not parts.path.startswith("/"):
            return location

        segments = []
        for segment in split_path(parts.path):
            plaintext = unquote(segment)
            if "/" in plaintext:
                segments.append(segment)
            else:
                segments.append(self.path_protector.encrypt(plaintext))
        path = join_path(segments)
        if segments and parts.path.endswith("/"):
            path += "/"
        return urlunsplit(parts._replace(path=path))

    # ── Request transforms ───────────────────────────────────

    def transform_inbound(self, scope: dict) -> None:
        """Pre-routing: rewrite the path and, if greedy, the query string.

        scope belongs to a single request. The path is only rewritten when
        at least one segment decrypted, so plain paths keep their exact form.
        A trailing slash survives the rewrite.
        """
        outcomes = self.path.decrypt_segments(scope["path"])
        if any(o.kind is OutcomeKind.DECRYPTED for o in outcomes):
            path = join_path([o.value for o in outcomes])
            if scope["path"].endswith("/"):
                path += "/"
            scope["path"] = path
            scope["raw_path"] = quote(path).encode("ascii")

        greedy = self.query_strategy_for(Phase.PRE_ROUTING)
        query_string = scope.get("query_string", b"")
        if greedy is not None and query_string:
            query = parse_query(query_string)
            decrypted = greedy.decrypt(query)
            if decrypted != query:
                scope["query_string"] = encode_query(decrypted)

    def transform_routed(self, request: Request, shape: TargetShape | None) -> Request:
        """Post-routing: apply the schema-driven strategy for shape.

        Returns request itself when nothing changed, otherwise a new
        Request over a copy of its scope.
        """
        strategy = self.query_strategy_for(Phase.POST_ROUTING)
        query_string = request.scope.get("query_string", b"")
        if strategy is None or not query_string:
            return request
        query = parse_query(query_string)
        decrypted = strategy.decrypt(query, shape)
        if decrypted == query:
            return request
        scope = dict(request.scope)
        scope["query_string"] = encode_query(decrypted)
        return Request(scope, request.receive)


class UrlCryptographyMiddleware(BaseHTTPMiddleware):
    """
    Decrypts URL path segments (and, with the greedy strategy, query values)
    before routing.

    - Must sit outside the router: add it with install_url_cryptography().
    - Never rejects a request; undecryptable values pass through.
    - With encrypt_outbound_paths, re-encrypts the path of a relative
      Location header on the way out.
    """

    def __init__(self, app, url_cryptography: UrlCryptography):
        super().__init__(app)
        self.url_cryptography = url_cryptography

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        self.url_cryptography.transform_inbound(request.scope)

        response = await call_next(request)

        if self.url_cryptography.config.encrypt_outbound_paths:
            location = response.headers.get("location")
            if location:
                response.headers["location"] = self.url_cryptography.encrypt_location(location)
        return response


class EncryptedQueryRoute(APIRoute):
    """APIRoute that decrypts the endpoint's Encrypted query fields.

    The endpoint's shape is computed once, when the route is created.
    """

    def get_route_handler(self) -> Callable[[Request], Awaitable[Response]]:
        original_route_handler = super().get_route_handler()
        shape = shape_from_endpoint(self.endpoint)

        async def decrypting_route_handler(request: Request) -> Response:
            url_cryptography = getattr(request.app.state, "url_cryptography", None)
            if url_cryptography is None:
                raise ConfigurationError(
                    "EncryptedQueryRoute used without install_url_cryptography()"
                )
            request = url_cryptography.transform_routed(request, shape)
            return await original_route_handler(request)

        return decrypting_route_handler


def install_url_cryptography(
    app: FastAPI,
    config: UrlCryptConfig,
    provider: ProtectorProvider | None = None,
) -> UrlCryptography:
    """Attach URL cryptography to app. Call before the app starts."""
    url_cryptography = UrlCryptography(config, provider)
    app.state.url_cryptography = url_cryptography
    app.add_middleware(UrlCryptographyMiddleware, url_cryptography=url_cryptography)
    logger.info(
        "URL cryptography installed (query strategy: %s)",
        url_cryptography.query_strategy.value,
    )
    return url_cryptography
