"""Shared test fixtures for the NDC client.

Provides a protocol config, an HTTP layer backed by ``httpx.MockTransport``
and helpers for building streamed response bodies.
"""

import asyncio
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from ndc_client.client import ClientOptions, NDCClient
from ndc_client.config import ConfigLoader
from ndc_client.message import NDCMessage

# =============================================================================
# CONFIG
# =============================================================================

NDC_YAML = """\
server:
  url_prod: https://ndc.example.com/prod/{{request_name}}
  url_test: https://ndc.example.com/test/{{request_name}}
rest:
  headers:
    Content-Type: application/xml
    X-NDC-Method: "{{request_name}}"
    X-Api-Version: 17.2
"""

DELIM = b"<!-- AG-EOM -->"


@pytest.fixture
def ndc_yaml() -> str:
    return NDC_YAML


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write the protocol config to a temporary file."""
    path = tmp_path / "ndc.yaml"
    path.write_text(NDC_YAML, encoding="utf-8")
    return path


@pytest.fixture
def config_loader() -> ConfigLoader:
    return ConfigLoader(NDC_YAML)


@pytest.fixture
def shopping_message() -> NDCMessage:
    return NDCMessage("AirShoppingRQ", "<AirShoppingRQ><Query/></AirShoppingRQ>")


# =============================================================================
# HTTP
# =============================================================================


@pytest.fixture
def streaming_response() -> Callable[..., httpx.Response]:
    """Factory for responses whose body arrives chunk by chunk.

    Args (of the returned factory):
        *chunks: Body chunks, yielded in order.
        error: Exception raised after the last chunk.
        hang: Block forever after the last chunk (for cancellation tests).
        pulled: List that records each chunk as the transport hands it out.
    """

    def _make(
        *chunks: bytes,
        error: Exception | None = None,
        hang: bool = False,
        pulled: list[bytes] | None = None,
        status_code: int = 200,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        async def body():
            for chunk in chunks:
                if pulled is not None:
                    pulled.append(chunk)
                yield chunk
            if error is not None:
                raise error
            if hang:
                await asyncio.Event().wait()

        return httpx.Response(status_code, headers=headers, content=body())

    return _make


@pytest.fixture
def make_client(config_loader: ConfigLoader) -> Callable[..., NDCClient]:
    """Factory for NDCClient instances served by a MockTransport handler."""

    def _make(handler: Callable[[httpx.Request], httpx.Response], **options) -> NDCClient:
        options.setdefault("config_path", "ndc.yaml")
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return NDCClient(ClientOptions(**options), config=config_loader, http_client=http_client)

    return _make
