"""Unit-test conftest: network isolation safety net.

Provides ``autouse`` fixtures that prevent any unit test from accidentally
opening a real HTTP connection and from leaking cached settings between
tests.

The approach:
1. Replace ``httpx.AsyncHTTPTransport.handle_async_request`` with a guard
   that raises immediately. Tests serve HTTP through ``httpx.MockTransport``
   instead, which does not go through the real transport.
2. Clear the ``get_settings()`` cache before and after every test so
   environment tweaks made with ``monkeypatch.setenv`` take effect.
"""

from __future__ import annotations

import httpx
import pytest

from ndc_client.settings import get_settings


async def _guarded_handle_async_request(self, request):
    raise RuntimeError(
        f"Unit test attempted a real HTTP request to {request.url}. "
        "Serve it through httpx.MockTransport (see the make_client fixture)."
    )


@pytest.fixture(autouse=True)
def _isolate_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make real transports fail fast instead of reaching the network."""
    monkeypatch.setattr(httpx.AsyncHTTPTransport, "handle_async_request", _guarded_handle_async_request)


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Reset the cached settings around each test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
