from __future__ import annotations

import json
import os
import ssl
from functools import lru_cache
from typing import Any
from urllib.parse import urlencode
from urllib.request import Request, urlopen

import certifi

USER_AGENT = "clawclub-agent/1.2"


def _resolve_ca_bundle() -> tuple[str | None, str | None]:
    env_cafile = os.getenv("SSL_CERT_FILE")
    if env_cafile:
        return env_cafile, None

    env_capath = os.getenv("SSL_CERT_DIR")
    if env_capath:
        return None, env_capath

    return certifi.where(), None


@lru_cache(maxsize=1)
def _ssl_context() -> ssl.SSLContext:
    cafile, capath = _resolve_ca_bundle()
    if cafile:
        return ssl.create_default_context(cafile=cafile)
    if capath:
        return ssl.create_default_context(capath=capath)
    return ssl.create_default_context()


def _with_query(url: str, params: dict[str, str] | None) -> str:
    if not params:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params)}"


def _read(request: Request, timeout: float) -> str:
    with urlopen(request, timeout=timeout, context=_ssl_context()) as response:
        return response.read().decode("utf-8")


def request_json(
    method: str,
    url: str,
    *,
    params: dict[str, str] | None = None,
    data: Any = None,
    headers: dict[str, str] | None = None,
    timeout: float = 10.0,
) -> Any:
    payload = None if data is None else json.dumps(data).encode("utf-8")
    request = Request(_with_query(url, params), data=payload, method=method.upper())
    request.add_header("User-Agent", USER_AGENT)
    for key, value in (headers or {}).items():
        request.add_header(key, value)
    if payload is not None:
        request.add_header("Content-Type", "application/json")
    body = _read(request, timeout)
    if not body.strip():
        return None
    return json.loads(body)


def get_json(
    url: str,
    params: dict[str, str] | None = None,
    timeout: float = 10.0,
    headers: dict[str, str] | None = None,
) -> Any:
    return request_json("GET", url, params=params, headers=headers, timeout=timeout)


def post_json(
    url: str,
    data: Any,
    timeout: float = 10.0,
    headers: dict[str, str] | None = None,
) -> Any:
    return request_json("POST", url, data=data, headers=headers, timeout=timeout)


def get_text(url: str, timeout: float = 10.0) -> str:
    request = Request(url, headers={"User-Agent": USER_AGENT})
    return _read(request, timeout)
