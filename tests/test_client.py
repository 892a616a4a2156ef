from __future__ import annotations

import pytest

from xhttp.client import Client
from xhttp.config import ClientSettings
from xhttp.errors import ResponseError
from xhttp.lifecycle import RequestHandle
from xhttp.params import Params
from xhttp.response import load_response


class RecordingTransport:
    """Settles every request at once with a canned response."""

    name = "recording"

    def __init__(self, status: int = 200, body: object = "", headers=None) -> None:
        self.status = status
        self.body = body
        self.headers = headers or {}
        self.sent: list[Params] = []
        self.closed = False

    def open_request(self, params: Params) -> RequestHandle:
        self.sent.append(params)
        handle = RequestHandle(params)
        handle.mark_opened()
        handle.settle(load_response(handle, self.status, "", dict(self.headers), self.body, complete=True))
        return handle

    def close(self) -> None:
        self.closed = True


def test_prepare_applies_settings_defaults() -> None:
    settings = ClientSettings(base_url="http://api.test/v1/", timeout_ms=1500, user_agent="agent/1")
    client = Client(settings, transport=RecordingTransport())

    params = client.prepare({"url": "items", "query": {"page": 2}})
    assert params.url == "http://api.test/v1/items?page=2"
    assert params.timeout == 1500
    assert params.headers == {"user-agent": "agent/1"}


def test_prepare_keeps_explicit_values() -> None:
    settings = ClientSettings(base_url="http://api.test/", timeout_ms=1500, user_agent="agent/1")
    client = Client(settings, transport=RecordingTransport())

    params = client.prepare({"url": "http://other.test/x", "timeout": 10, "headers": {"User-Agent": "mine"}})
    assert params.url == "http://other.test/x"
    assert params.timeout == 10
    assert params.headers == {"User-Agent": "mine"}


def test_hooks_run_in_order() -> None:
    calls: list[str] = []

    def first(params: Params) -> Params:
        calls.append("first")
        return params.replace(headers={**params.headers, "x-order": "first"})

    def second(params: Params) -> Params:
        calls.append("second")
        return params.replace(headers={**params.headers, "x-order": "second"})

    def on_response(response):
        calls.append("response")
        return response.replace(status_text="seen")

    transport = RecordingTransport()
    client = Client(transport=transport, request_hooks=[first, second], response_hooks=[on_response])
    response = client.request({"url": "http://api.test/"})

    assert calls == ["first", "second", "response"]
    assert transport.sent[0].headers["x-order"] == "second"
    assert response.status_text == "seen"


def test_request_hooks_may_return_mappings() -> None:
    transport = RecordingTransport()
    client = Client(transport=transport, request_hooks=[lambda params: {"url": params.url, "method": "DELETE"}])
    client.request({"url": "http://api.test/item"})
    assert transport.sent[0].method == "DELETE"


def test_with_hooks_does_not_leak_into_parent() -> None:
    transport = RecordingTransport()
    parent = Client(transport=transport)
    child = parent.with_hooks(request_hooks=[lambda params: params.replace(method="PATCH")])

    child.request({"url": "http://api.test/"})
    parent.request({"url": "http://api.test/"})

    assert [params.method for params in transport.sent] == ["PATCH", "GET"]
    assert child.transport is parent.transport


def test_close_only_releases_owned_transport() -> None:
    transport = RecordingTransport()
    with Client(transport=transport):
        pass
    assert transport.closed is False


def test_fetch_json_decodes_ok_bodies() -> None:
    client = Client(transport=RecordingTransport(body=b'{"items": [1, 2]}'))
    assert client.fetch_json({"url": "http://api.test/"}) == {"items": [1, 2]}


def test_fetch_json_raises_for_error_status() -> None:
    client = Client(transport=RecordingTransport(status=500, body="boom"))
    with pytest.raises(ResponseError, match="HTTP error 500: boom"):
        client.fetch_json({"url": "http://api.test/"})


@pytest.mark.integration
def test_client_round_trip_against_local_server(local_server: str) -> None:
    settings = ClientSettings(base_url=local_server, transport="buffered", user_agent="xhttp-test")
    with Client(settings) as client:
        echo = client.fetch_json({"url": "/echo", "headers": {"X-Check": "1"}})
    assert echo["path"] == "/echo"
    assert echo["headers"]["x-check"] == "1"
