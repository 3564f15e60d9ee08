"""Unit tests for request/response dumps."""

import httpx

from ndc_client.diagnostics import format_request, format_response


class TestFormatRequest:
    def test_layout(self):
        request = httpx.Request(
            "POST",
            "https://ndc.example.com/prod/AirShoppingRQ",
            headers={"Content-Type": "application/xml", "X-Api-Version": "17.2"},
            content=b"<AirShoppingRQ/>",
        )
        dump = format_request(request)
        lines = dump.splitlines()

        assert lines[0] == "POST https://ndc.example.com/prod/AirShoppingRQ"
        assert lines[1] == "Host: ndc.example.com"
        assert "content-type: application/xml" in lines
        assert "x-api-version: 17.2" in lines
        assert "Body:" in lines
        assert "<AirShoppingRQ/>" in lines
        assert lines[-1] == "**** end of request"

    def test_host_written_once(self):
        request = httpx.Request("POST", "https://ndc.example.com:8443/prod/AirShoppingRQ", content=b"<x/>")
        lines = format_request(request).splitlines()

        assert [line for line in lines if line.lower().startswith("host:")] == ["Host: ndc.example.com:8443"]

    def test_request_line_has_no_protocol_version(self):
        request = httpx.Request("POST", "https://ndc.example.com/prod/AirShoppingRQ", content=b"<x/>")
        assert "HTTP/" not in format_request(request).splitlines()[0]

    def test_streaming_body_not_read(self):
        async def body():
            yield b"<x/>"

        request = httpx.Request("POST", "https://ndc.example.com", content=body())
        assert "<streaming body>" in format_request(request)


class TestFormatResponse:
    def test_read_response(self):
        response = httpx.Response(200, headers={"X-Session": "s-1"}, content=b"<AirShoppingRS/>")
        dump = format_response(response)
        lines = dump.splitlines()

        assert lines[0] == "HTTP/1.1 200 OK"
        assert "x-session: s-1" in lines
        assert "<AirShoppingRS/>" in lines
        assert lines[-1] == "**** end of response"

    def test_explicit_body(self):
        response = httpx.Response(502, content=b"ignored")
        dump = format_response(response, b"<Errors/>")
        assert "<Errors/>" in dump
        assert "ignored" not in dump

    def test_unread_stream(self):
        async def body():
            yield b"<x/>"

        response = httpx.Response(200, content=body())
        assert "<not read>" in format_response(response)
