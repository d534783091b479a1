"""Tests for request dispatch and response classification."""

import httpx
import pytest

from ddb_registry.exceptions import (
    NotFoundError,
    ServerError,
    TransportError,
    UnauthorizedError,
)
from ddb_registry.registry import RequestDispatcher, build_multipart, classify_response


class TestClassifyResponse:
    def test_no_content_is_true(self):
        assert classify_response(httpx.Response(204)) is True

    def test_unauthorized_with_json_error(self):
        response = httpx.Response(401, json={"error": "bad token", "code": 7})
        with pytest.raises(UnauthorizedError) as exc_info:
            classify_response(response)

        assert str(exc_info.value) == "bad token"
        assert exc_info.value.status_code == 401
        assert exc_info.value.extra == {"code": 7}

    def test_unauthorized_json_without_error_uses_body(self):
        response = httpx.Response(401, json={"reason": "expired"})
        with pytest.raises(UnauthorizedError) as exc_info:
            classify_response(response)
        assert str(exc_info.value) == '{"reason": "expired"}'
        assert exc_info.value.extra == {"reason": "expired"}

    def test_unauthorized_without_json(self):
        with pytest.raises(UnauthorizedError, match="^Unauthorized$"):
            classify_response(httpx.Response(401, text="go away"))

    @pytest.mark.parametrize(
        "kwargs", [{"json": {"error": "missing"}}, {"text": "nope"}, {}]
    )
    def test_not_found(self, kwargs):
        with pytest.raises(NotFoundError) as exc_info:
            classify_response(httpx.Response(404, **kwargs))
        assert str(exc_info.value) == "Not found"
        assert exc_info.value.status_code == 404

    def test_head_ok_is_true(self):
        response = httpx.Response(200, text="ignored")
        assert classify_response(response, "HEAD") is True

    def test_json_success(self):
        assert classify_response(httpx.Response(200, json={"a": 1})) == {"a": 1}
        assert classify_response(httpx.Response(201, json=[1, 2])) == [1, 2]

    def test_json_error_field(self):
        with pytest.raises(ServerError) as exc_info:
            classify_response(httpx.Response(500, json={"error": "boom"}))
        assert str(exc_info.value) == "boom"
        assert exc_info.value.status_code == 500

    def test_json_error_field_on_ok_status(self):
        with pytest.raises(ServerError) as exc_info:
            classify_response(httpx.Response(200, json={"error": "half done"}))
        assert exc_info.value.status_code == 200

    def test_json_failure_without_error_embeds_body(self):
        with pytest.raises(ServerError) as exc_info:
            classify_response(httpx.Response(409, json={"state": "locked"}))
        assert str(exc_info.value) == 'Server responded with: {"state": "locked"}'
        assert exc_info.value.status_code == 409

    def test_invalid_json_body(self):
        response = httpx.Response(
            200, content=b"{oops", headers={"content-type": "application/json"}
        )
        with pytest.raises(TransportError):
            classify_response(response)

    def test_text_success(self):
        assert classify_response(httpx.Response(200, text="hello")) == "hello"

    def test_text_failure(self):
        with pytest.raises(ServerError) as exc_info:
            classify_response(httpx.Response(502, text="bad gateway"))
        assert str(exc_info.value) == "Server responded with: bad gateway"
        assert exc_info.value.status_code == 502

    def test_unknown_content_type_fails(self):
        response = httpx.Response(
            200, content=b"\x89PNG", headers={"content-type": "image/png"}
        )
        with pytest.raises(ServerError) as exc_info:
            classify_response(response)
        assert exc_info.value.status_code == 200
        assert str(exc_info.value).startswith("Server responded with: ")


class TestBuildMultipart:
    def test_scalars_and_lists(self):
        parts = build_multipart(
            {"path": ["a.jpg", "b.jpg"], "public": True, "size": 3, "skip": None}
        )
        assert parts == [
            ("path", (None, "a.jpg")),
            ("path", (None, "b.jpg")),
            ("public", (None, "true")),
            ("size", (None, "3")),
        ]

    def test_bytes_become_file_parts(self):
        assert build_multipart({"file": b"data"}) == [("file", ("blob", b"data"))]


class TestRequestDispatcher:
    def _dispatcher(self, credentials, handler):
        return RequestDispatcher(
            "https://hub.example.com",
            credentials,
            transport=httpx.MockTransport(handler),
        )

    @pytest.mark.asyncio
    async def test_attaches_bearer_only_while_valid(self, credentials, clock):
        seen = []

        def handler(request):
            seen.append(request.headers.get("authorization"))
            return httpx.Response(204)

        dispatcher = self._dispatcher(credentials, handler)
        await dispatcher.request("/orgs")

        credentials.set("https://hub.example.com", "alice", "tok", clock.now + 10)
        await dispatcher.request("/orgs")

        clock.now += 11
        await dispatcher.request("/orgs")
        await dispatcher.aclose()

        assert seen == [None, "Bearer tok", None]

    @pytest.mark.asyncio
    async def test_sends_multipart_body(self, credentials):
        captured = {}

        def handler(request):
            captured["content_type"] = request.headers["content-type"]
            captured["body"] = request.content
            return httpx.Response(200, json={"ok": True})

        dispatcher = self._dispatcher(credentials, handler)
        result = await dispatcher.request(
            "/orgs/acme/ds/survey/download", "POST", {"path": ["a.jpg", "b.jpg"]}
        )
        await dispatcher.aclose()

        assert result == {"ok": True}
        assert captured["content_type"].startswith("multipart/form-data")
        assert captured["body"].count(b'name="path"') == 2
        assert b"a.jpg" in captured["body"] and b"b.jpg" in captured["body"]

    @pytest.mark.asyncio
    async def test_wraps_transport_failures(self, credentials):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        dispatcher = self._dispatcher(credentials, handler)
        with pytest.raises(TransportError, match="GET /orgs failed"):
            await dispatcher.request("/orgs")
        await dispatcher.aclose()

    @pytest.mark.asyncio
    async def test_closed_dispatcher_refuses_requests(self, credentials):
        calls = []
        dispatcher = self._dispatcher(
            credentials, lambda r: calls.append(r) or httpx.Response(204)
        )
        await dispatcher.request("/orgs")
        await dispatcher.aclose()

        with pytest.raises(TransportError, match="closed"):
            await dispatcher.request("/orgs")
        assert dispatcher._async_client is None
        assert len(calls) == 1

    def test_retry_transport_when_configured(self, credentials):
        from httpx_retries import RetryTransport

        dispatcher = RequestDispatcher(
            "https://hub.example.com", credentials, retries=2
        )
        assert isinstance(dispatcher.client._transport, RetryTransport)
