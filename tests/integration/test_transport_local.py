from __future__ import annotations

import base64
import json

import pytest

from xhttp.body import from_json, to_complete, to_string
from xhttp.errors import NetworkError, TransportConstructionError
from xhttp.lifecycle import State, wait
from xhttp.response import Reason
from xhttp.transport import (
    BufferedTransport,
    ResponseStream,
    StreamingTransport,
    connection_target,
    create_transport,
)

pytestmark = pytest.mark.integration

WAIT = 10


@pytest.fixture(params=["streaming", "buffered"])
def transport(request):
    with create_transport(request.param) as instance:
        yield instance


def _echo(response) -> dict:
    return json.loads(to_string(response).body)


def test_load_response_shape(transport, local_server: str) -> None:
    handle = transport.open_request({"url": f"{local_server}/hello"})
    response = wait(handle, WAIT)

    assert handle.state is State.LOAD
    assert response.reason is Reason.LOAD
    assert response.ok is True
    assert response.status == 200
    assert response.status_text == "OK"
    assert response.headers["content-type"] == "application/json"
    assert response.handle is handle
    if isinstance(transport, StreamingTransport):
        assert response.complete is False
        assert isinstance(response.body, ResponseStream)
    else:
        assert response.complete is True
        assert isinstance(response.body, str)
    assert _echo(response)["path"] == "/hello"


def test_query_headers_and_credentials_reach_the_server(transport, local_server: str) -> None:
    response = wait(
        transport.open_request(
            {
                "url": f"{local_server}/search?page=1",
                "query": {"q": "a b", "tag": ["x", "y"]},
                "headers": {"X-Trace": "abc", "X-Multi": ["one", "two"], "X-Skip": None},
                "username": "user",
                "password": "pass",
            }
        ),
        WAIT,
    )
    echo = _echo(response)
    expected_auth = "Basic " + base64.b64encode(b"user:pass").decode("ascii")

    assert echo["path"] == "/search?page=1&q=a+b&tag=x&tag=y"
    assert echo["headers"]["x-trace"] == "abc"
    assert echo["headers"]["x-multi"] == "one, two"
    assert "x-skip" not in echo["headers"]
    assert echo["headers"]["authorization"] == expected_auth


def test_method_casing_and_body_are_sent_verbatim(transport, local_server: str) -> None:
    response = wait(transport.open_request({"method": "post", "url": local_server + "/", "body": "hi"}), WAIT)
    echo = _echo(response)
    assert echo["method"] == "post"
    assert echo["body"] == "hi"


def test_iterator_body_is_streamed(transport, local_server: str) -> None:
    chunks = iter([b"chunk-", "two"])
    response = wait(transport.open_request({"method": "PUT", "url": local_server + "/", "body": chunks}), WAIT)
    assert _echo(response)["body"] == "chunk-two"


def test_repeated_response_headers_fold_into_lists(transport, local_server: str) -> None:
    response = wait(transport.open_request({"url": f"{local_server}/cookies"}), WAIT)
    assert response.headers["set-cookie"] == ["one=1", "two=2"]


def test_declared_charset_is_honoured(transport, local_server: str) -> None:
    response = wait(transport.open_request({"url": f"{local_server}/latin1"}), WAIT)
    assert to_string(response).body == "café"


def test_error_status_is_still_a_load(transport, local_server: str) -> None:
    response = wait(transport.open_request({"url": f"{local_server}/json-404"}), WAIT)
    assert response.reason is Reason.LOAD
    assert response.ok is False
    assert response.status == 404

    decoded = from_json(to_string(to_complete(response)))
    assert decoded.body == {"msg": "not found"}
    assert decoded.body_text == '{"msg":"not found"}'


def test_abort_settles_immediately(transport, local_server: str) -> None:
    handle = transport.open_request({"url": f"{local_server}/slow"})
    assert handle.abort() is True
    response = wait(handle, WAIT)

    assert handle.state is State.ABORT
    assert response.reason is Reason.ABORT
    assert response.status == 0
    assert response.ok is False
    assert handle.abort() is False


def test_timeout_reports_408(transport, local_server: str) -> None:
    response = wait(transport.open_request({"url": f"{local_server}/slow", "timeout": 200}), WAIT)
    assert response.reason is Reason.TIMEOUT
    assert response.status == 408
    assert response.status_text == "request timeout"
    assert response.complete is False


def test_dropped_connection_is_remote_abort(transport, local_server: str) -> None:
    response = wait(transport.open_request({"url": f"{local_server}/drop"}), WAIT)
    assert response.reason is Reason.REMOTE_ABORT
    assert response.status == 0
    assert response.status_text == "aborted by remote"


def test_refused_connection_on_streaming_transport_raises(closed_port_url: str) -> None:
    with StreamingTransport() as transport:
        handle = transport.open_request({"url": closed_port_url})
        with pytest.raises(NetworkError) as excinfo:
            wait(handle, WAIT)
    assert excinfo.value.__cause__ is not None
    assert handle.state is State.ERROR


def test_refused_connection_on_buffered_transport_is_error_response(closed_port_url: str) -> None:
    with BufferedTransport() as transport:
        response = wait(transport.open_request({"url": closed_port_url}), WAIT)
    assert response.reason is Reason.ERROR
    assert response.status == 0
    assert response.status_text
    assert response.body == ""


@pytest.mark.parametrize("url", ["ftp://example.test/file", "/relative/path", "http:///missing-host"])
def test_unusable_urls_fail_before_dispatch(transport, url: str) -> None:
    with pytest.raises(TransportConstructionError):
        transport.open_request({"url": url})


def test_structured_body_must_be_encoded_first(transport, local_server: str) -> None:
    with pytest.raises(TypeError):
        transport.open_request({"method": "POST", "url": local_server, "body": {"a": 1}})


def test_connection_target_defaults_and_path() -> None:
    target = connection_target("https://example.test/a/b?x=1#frag")
    assert target.protocol == "https"
    assert target.secure is True
    assert target.host == "example.test"
    assert target.port == 443
    assert target.path == "/a/b?x=1#frag"

    plain = connection_target("HTTP://example.test:8080")
    assert plain.protocol == "http"
    assert plain.secure is False
    assert plain.port == 8080
    assert plain.path == "/"


def test_connection_target_rejects_bad_port() -> None:
    with pytest.raises(TransportConstructionError):
        connection_target("http://example.test:99999/")


def test_create_transport_rejects_unknown_kind() -> None:
    with pytest.raises(ValueError):
        create_transport("carrier-pigeon")


def test_streaming_transport_sends_fragment_in_request_line(local_server: str) -> None:
    with StreamingTransport() as transport:
        response = wait(transport.open_request({"url": f"{local_server}/frag?x=1#part"}), WAIT)
    assert _echo(response)["path"] == "/frag?x=1#part"


def test_buffered_transport_keeps_fragment_local(local_server: str) -> None:
    with BufferedTransport() as transport:
        response = wait(transport.open_request({"url": f"{local_server}/frag?x=1#part"}), WAIT)
    assert _echo(response)["path"] == "/frag?x=1"


def _broken_source():
    yield b"a"
    raise RuntimeError("source broke")


def test_failing_body_source_on_buffered_transport_is_error_response(local_server: str) -> None:
    with BufferedTransport() as transport:
        handle = transport.open_request({"method": "PUT", "url": f"{local_server}/", "body": _broken_source()})
        response = wait(handle, WAIT)
    assert response.reason is Reason.ERROR
    assert response.status == 0
    assert "source broke" in response.status_text
    assert handle.state is State.ERROR


def test_failing_body_source_on_streaming_transport_raises(local_server: str) -> None:
    with StreamingTransport() as transport:
        handle = transport.open_request({"method": "PUT", "url": f"{local_server}/", "body": _broken_source()})
        with pytest.raises(NetworkError, match="source broke") as excinfo:
            wait(handle, WAIT)
    assert isinstance(excinfo.value.__cause__, RuntimeError)
