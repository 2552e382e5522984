"""Tests for the request transform orchestrator outside the demo app."""

from __future__ import annotations

from typing import Annotated

import pytest
from fastapi import APIRouter, Depends, FastAPI, Query
from fastapi.testclient import TestClient
from pydantic import BaseModel

from urlcrypt.config import UrlCryptConfig
from urlcrypt.middleware import (
    EncryptedQueryRoute,
    Phase,
    UrlCryptography,
    install_url_cryptography,
)
from urlcrypt.protector import ProtectorProvider
from urlcrypt.query import encode_query
from urlcrypt.schema import Encrypted


def _crypto(**overrides) -> UrlCryptography:
    return UrlCryptography(UrlCryptConfig(secret_key="test-secret-key", **overrides))


def _scope(path: str, query_string: bytes = b"") -> dict:
    return {"type": "http", "path": path, "raw_path": path.encode(), "query_string": query_string}


router = APIRouter(route_class=EncryptedQueryRoute)


@router.get("/search")
def search(
    account: Annotated[str | None, Query(), Encrypted()] = None,
    page: int = 1,
):
    return {"account": account, "page": page}


class OwnerFilter(BaseModel):
    owner: Annotated[str | None, Encrypted()] = None
    status: str | None = None


def pagination(cursor: Annotated[str | None, Query(), Encrypted()] = None) -> str | None:
    return cursor


@router.get("/filtered")
def filtered(f: Annotated[OwnerFilter, Depends()]):
    return {"owner": f.owner, "status": f.status}


@router.get("/paged")
def paged(cursor: Annotated[str | None, Depends(pagination)]):
    return {"cursor": cursor}


@router.get("/batch")
def batch(ids: Annotated[list[str], Query(), Encrypted()]):
    return {"ids": ids}


class TestStrategySelection:
    def test_greedy_runs_before_routing_only(self):
        crypto = _crypto(query_strategy="greedy")
        assert crypto.query_strategy_for(Phase.PRE_ROUTING) is crypto.greedy_query
        assert crypto.query_strategy_for(Phase.POST_ROUTING) is None

    def test_schema_runs_after_routing_only(self):
        crypto = _crypto(query_strategy="schema")
        assert crypto.query_strategy_for(Phase.PRE_ROUTING) is None
        assert crypto.query_strategy_for(Phase.POST_ROUTING) is crypto.schema_query

    def test_one_protector_per_purpose(self):
        crypto = _crypto()
        assert crypto.path_protector.purpose == "urlcrypt.path"
        assert crypto.query_protector.purpose == "urlcrypt.query"

    def test_explicit_provider_used(self):
        provider = ProtectorProvider("shared-secret")
        crypto = UrlCryptography(UrlCryptConfig(), provider)
        token = provider.create_protector("urlcrypt.path").encrypt("42")
        assert crypto.path.decrypt(f"/{token}") == "/42"


class TestTransformInbound:
    def test_path_rewritten(self):
        crypto = _crypto()
        token = crypto.path_protector.encrypt("42")
        scope = _scope(f"/orders/{token}")
        crypto.transform_inbound(scope)
        assert scope["path"] == "/orders/42"
        assert scope["raw_path"] == b"/orders/42"

    def test_raw_path_quoted(self):
        crypto = _crypto()
        scope = _scope(f"/files/{crypto.path_protector.encrypt('a b')}")
        crypto.transform_inbound(scope)
        assert scope["path"] == "/files/a b"
        assert scope["raw_path"] == b"/files/a%20b"

    def test_plain_path_left_exactly(self):
        crypto = _crypto()
        scope = _scope("/orders/")
        crypto.transform_inbound(scope)
        assert scope["path"] == "/orders/"

    def test_greedy_query_rewritten(self):
        crypto = _crypto()
        token = crypto.encrypt_query_value("Doe")
        scope = _scope("/", encode_query({"lastName": [token], "page": ["2"]}))
        crypto.transform_inbound(scope)
        assert scope["query_string"] == b"lastName=Doe&page=2"

    def test_plain_query_left_exactly(self):
        crypto = _crypto()
        scope = _scope("/", b"q=a%20b")
        crypto.transform_inbound(scope)
        assert scope["query_string"] == b"q=a%20b"

    def test_schema_strategy_leaves_query_before_routing(self):
        crypto = _crypto(query_strategy="schema")
        token = crypto.encrypt_query_value("Doe")
        query_string = encode_query({"lastName": [token]})
        scope = _scope("/", query_string)
        crypto.transform_inbound(scope)
        assert scope["query_string"] == query_string


class TestEncryptLocation:
    @pytest.mark.parametrize(
        "location",
        ["https://example.com/orders/42", "//cdn.example.com/a", "relative/path", ""],
    )
    def test_foreign_or_relative_unchanged(self, location):
        assert _crypto().encrypt_location(location) == location

    def test_query_and_fragment_kept(self):
        crypto = _crypto()
        location = crypto.encrypt_location("/orders/42?tab=items#top")
        assert location.endswith("?tab=items#top")
        path = location.split("?")[0]
        assert crypto.path.decrypt(path) == "/orders/42"

    def test_percent_encoded_segment_decoded_first(self):
        crypto = _crypto()
        location = crypto.encrypt_location("/files/a%20b")
        assert crypto.path.decrypt(location) == "/files/a b"

    def test_trailing_slash_kept(self):
        crypto = _crypto()
        location = crypto.encrypt_location("/files/a%20b/")
        assert location.endswith("/")
        scope = _scope(location)
        crypto.transform_inbound(scope)
        assert scope["path"] == "/files/a b/"
        assert scope["raw_path"] == b"/files/a%20b/"

    def test_encoded_slash_segment_left_as_is(self):
        crypto = _crypto()
        location = crypto.encrypt_location("/files/a%2Fb/c")
        segments = location.split("/")
        assert segments[2] == "a%2Fb"
        assert crypto.path.decrypt(location) == "/files/a%2Fb/c"


class TestEncryptedQueryRoute:
    def _app(self, **overrides) -> FastAPI:
        app = FastAPI()
        install_url_cryptography(app, UrlCryptConfig(secret_key="test-secret-key", **overrides))
        app.include_router(router)
        return app

    def test_decrypts_marked_parameter(self):
        app = self._app(query_strategy="schema")
        token = app.state.url_cryptography.encrypt_query_value("ACC-1")
        r = TestClient(app).get("/search", params={"account": token, "page": "3"})
        assert r.json() == {"account": "ACC-1", "page": 3}

    def test_inactive_with_greedy_strategy(self):
        app = self._app(query_strategy="greedy")
        r = TestClient(app).get("/search", params={"account": "plain"})
        assert r.json() == {"account": "plain", "page": 1}

    def test_requires_installation(self):
        app = FastAPI()
        app.include_router(router)
        client = TestClient(app, raise_server_exceptions=False)
        assert client.get("/search").status_code == 500

    def test_model_class_dependency_decrypted(self):
        app = self._app(query_strategy="schema")
        token = app.state.url_cryptography.encrypt_query_value("owner-7")
        r = TestClient(app).get("/filtered", params={"owner": token, "status": "open"})
        assert r.json() == {"owner": "owner-7", "status": "open"}

    def test_sub_dependency_decrypted(self):
        app = self._app(query_strategy="schema")
        token = app.state.url_cryptography.encrypt_query_value("page-2")
        r = TestClient(app).get("/paged", params={"cursor": token})
        assert r.json() == {"cursor": "page-2"}

    def test_every_list_value_decrypted(self):
        app = self._app(query_strategy="schema")
        crypto = app.state.url_cryptography
        r = TestClient(app).get(
            "/batch",
            params=[("ids", crypto.encrypt_query_value("a")), ("ids", crypto.encrypt_query_value("b"))],
        )
        assert r.json() == {"ids": ["a", "b"]}
