"""pytest configuration for cdbexport tests."""

from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

import pytest
import requests

from cdbexport.config.settings import ExportConfig, HttpConfig

VIZ_URL = "https://eric.cartodb.com/api/v2/viz/85c59718-082c-11e3-86d3-5404a6a69006/viz.json"
SQL_URL = "https://eric.cartodb.com:443/api/v1/sql"


class FakeResponse:
    """Minimal stand-in for a streamed ``requests.Response``."""

    def __init__(self, body: bytes = b"", status_code: int = 200, url: str = "",
                 fail_after_first_chunk: bool = False):
        self.body = body
        self.status_code = status_code
        self.url = url
        self.fail_after_first_chunk = fail_after_first_chunk

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    @property
    def content(self) -> bytes:
        return self.body

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error for url: {self.url}", response=self)

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start:start + chunk_size]
            if self.fail_after_first_chunk:
                raise requests.ConnectionError("Connection reset by peer")


@dataclass
class Call:
    method: str
    url: str
    params: Optional[dict[str, Any]]


Handler = Callable[[str, str, Optional[dict[str, Any]]], FakeResponse]


class FakeSession:
    """Records requests and answers them with ``handler(method, url, params)``."""

    def __init__(self, handler: Handler):
        self.handler = handler
        self.calls: list[Call] = []
        self.headers: dict[str, str] = {}
        self._lock = threading.Lock()

    def request(self, method, url, params=None, data=None, stream=False, timeout=None):
        payload = params if params is not None else data
        with self._lock:
            self.calls.append(Call(method, url, payload))
        return self.handler(method, url, payload)

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    @property
    def sql_calls(self) -> list[Call]:
        return [call for call in self.calls if call.url == SQL_URL]


def layergroup(*sqls: Optional[str], cartocss: str = "#layer { marker-fill: #FF6600; }") -> dict[str, Any]:
    """Build a layer-group layer with one sub-layer per SQL statement."""
    return {
        "type": "layergroup",
        "options": {
            "user_name": "eric",
            "sql_api_template": "https://{user}.cartodb.com:443",
            "sql_api_endpoint": "/api/v1/sql",
            "layer_definition": {
                "version": "1.0.1",
                "layers": [
                    {
                        "type": "cartodb",
                        "options": {"sql": sql, "cartocss": cartocss, "cartocss_version": "2.1.1"},
                    }
                    for sql in sqls
                ],
            },
        },
    }


def tiled() -> dict[str, Any]:
    return {"type": "tiled", "options": {"urlTemplate": "https://{s}.basemaps.cartocdn.com/light_all/{z}/{x}/{y}.png"}}


def geojson_for(query: str) -> bytes:
    return json.dumps({"type": "FeatureCollection", "features": [], "query": query}).encode("utf-8")


def default_handler(document: dict[str, Any], failing: tuple[str, ...] = ()) -> Handler:
    """Serve ``document`` at VIZ_URL and echo SQL-API queries back as GeoJSON.

    Queries mentioning any name in ``failing`` get an HTTP 500.
    """
    def handler(method, url, params):
        if url == VIZ_URL:
            return FakeResponse(json.dumps(document).encode("utf-8"), url=url)
        if url == SQL_URL:
            query = params["q"]
            if any(name in query for name in failing):
                return FakeResponse(b"error", status_code=500, url=url)
            return FakeResponse(geojson_for(query), url=url)
        return FakeResponse(b"not found", status_code=404, url=url)
    return handler


@pytest.fixture
def two_group_document():
    """Two layer-group layers: one sub-layer, then two sub-layers."""
    return {
        "title": "Hamsters",
        "layers": [
            layergroup("SELECT * FROM hamsters"),
            layergroup("SELECT * FROM gerbils WHERE id > 5", "SELECT * FROM mice GROUP BY colony"),
        ],
    }


@pytest.fixture
def http():
    """Transport settings without retries so failures surface immediately."""
    return HttpConfig(timeout_s=5, chunk_size=1024, max_retries=0)


@pytest.fixture
def export_config():
    return ExportConfig()


@pytest.fixture
def clean_env():
    """Remove CDBEXPORT_* variables before and after the test."""
    def _clear():
        for key in [k for k in os.environ if k.startswith("CDBEXPORT_")]:
            del os.environ[key]

    _clear()
    yield
    _clear()
