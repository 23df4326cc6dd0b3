"""Shared httpx plumbing for provider clients."""

from __future__ import annotations

import logging

import httpx

from peachhaus.errors import IntegrationError

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)


def check(provider: str, resp: httpx.Response) -> httpx.Response:
    """Raise IntegrationError for any non-2xx response."""
    if resp.is_success:
        return resp
    detail = resp.text[:300]
    log.error("%s request failed: %s %s -> %d %s", provider, resp.request.method,
              resp.request.url, resp.status_code, detail)
    raise IntegrationError(provider, detail or resp.reason_phrase, status=resp.status_code)


def send(provider: str, client: httpx.Client, method: str, url: str, **kwargs) -> httpx.Response:
    try:
        resp = client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        raise IntegrationError(provider, str(e)) from e
    return check(provider, resp)
