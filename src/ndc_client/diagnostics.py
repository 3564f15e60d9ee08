"""Plain-text rendering of requests and responses for debug logs."""

from __future__ import annotations

import contextlib

import httpx


def format_request(request: httpx.Request) -> str:
    """Render a request: request line, host, headers, then the body.

    The protocol version is only known once a response arrives, so the
    request line carries none.
    """
    lines = [f"{request.method} {request.url}", f"Host: {request.url.netloc.decode('ascii')}"]
    for name, value in request.headers.multi_items():
        if name.lower() == "host":
            continue
        lines.append(f"{name.lower()}: {value}")

    try:
        body = request.content.decode("utf-8", errors="replace")
    except httpx.RequestNotRead:
        body = "<streaming body>"
    lines.append(f"Body:\n{body}")
    lines.append("**** end of request")
    return "\n".join(lines)


def format_response(response: httpx.Response, body: bytes | None = None) -> str:
    """Render a response. The body is only shown when passed in or already read."""
    lines = [f"{response.http_version} {response.status_code} {response.reason_phrase}".rstrip()]
    for name, value in response.headers.multi_items():
        lines.append(f"{name.lower()}: {value}")

    if body is None:
        with contextlib.suppress(httpx.ResponseNotRead):
            body = response.content
    text = body.decode("utf-8", errors="replace") if body is not None else "<not read>"
    lines.append(f"Body:\n{text}")
    lines.append("**** end of response")
    return "\n".join(lines)
