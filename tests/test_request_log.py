import socket

import pytest

import fileserver
from fileserver import ProcessingFault, format_request_line, get_header, read_request


def make_request(**overrides):
    request = {
        "method": "GET",
        "target": "/",
        "path": "/",
        "query": [],
        "version": "HTTP/1.1",
        "headers": {},
        "body": None,
    }
    request.update(overrides)
    return request


def parse(raw):
    server_side, client_side = socket.socketpair()
    with server_side, client_side:
        client_side.sendall(raw)
        client_side.shutdown(socket.SHUT_WR)
        return read_request(server_side)


def test_plain_line():
    assert format_request_line(make_request(), 200) == "200 GET /"


def test_query_parameters_in_parse_order():
    request = make_request(query=[("x", "1"), ("y", "2"), ("x", "3")])
    assert format_request_line(request, 200) == "200 GET / x=1&y=2&x=3"


def test_body_is_logged_as_text():
    request = make_request(method="POST", path="/form", body=b"name=caf\xc3\xa9")
    assert format_request_line(request, 404) == "404 POST /form name=café"


def test_undecodable_body_is_replaced():
    request = make_request(method="PUT", body=b"\xff\xfe")
    assert format_request_line(request, 200) == "200 PUT / ��"


def test_headers_only_when_verbose():
    request = make_request(headers={"Host": "localhost:8080", "Accept": "*/*"})
    assert format_request_line(request, 200) == "200 GET /"
    assert format_request_line(request, 200, verbose=True) == (
        "200 GET /\n  [Host]\n    localhost:8080\n  [Accept]\n    */*"
    )


def test_query_then_body_then_headers():
    request = make_request(method="POST", query=[("a", "")], body=b"hello",
                           headers={"Content-Length": "5"})
    assert format_request_line(request, 500, verbose=True) == (
        "500 POST / a= hello\n  [Content-Length]\n    5"
    )


def test_read_simple_get():
    request = parse(b"GET /docs/a%20b.html?x=1&y=two+words&flag HTTP/1.1\r\n"
                    b"Host: localhost\r\nAccept: */*\r\n\r\n")
    assert request["method"] == "GET"
    assert request["path"] == "/docs/a b.html"
    assert request["query"] == [("x", "1"), ("y", "two words"), ("flag", "")]
    assert request["headers"] == {"Host": "localhost", "Accept": "*/*"}
    assert request["body"] is None


def test_read_body_with_content_length():
    request = parse(b"POST /submit HTTP/1.1\r\nContent-Length: 7\r\n\r\na=1&b=2")
    assert request["body"] == b"a=1&b=2"


def test_read_chunked_body():
    request = parse(b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n"
                    b"4\r\nWiki\r\n5;ext=1\r\npedia\r\n0\r\nX-Trailer: 1\r\n\r\n")
    assert request["body"] == b"Wikipedia"


def test_repeated_headers_are_joined():
    request = parse(b"GET / HTTP/1.1\r\nAccept: a\r\naccept: b\r\nAccept: c\r\n\r\n")
    assert request["headers"]["Accept"] == "a, c"
    assert request["headers"]["accept"] == "b"
    assert get_header(request["headers"], "ACCEPT") == "a, c"


def test_absolute_form_target():
    request = parse(b"GET http://localhost:8080/style.css?v=3 HTTP/1.1\r\n\r\n")
    assert request["path"] == "/style.css"
    assert request["query"] == [("v", "3")]


def test_empty_connection_is_not_a_request():
    assert parse(b"") is None


@pytest.mark.parametrize("raw", [
    b"garbage\r\n\r\n",
    b"GET /\r\n\r\n",
    b"GET / NOTHTTP\r\n\r\n",
    b"GET / HTTP/1.1\r\nHost: x\r\n",
    b"POST / HTTP/1.1\r\nContent-Length: ten\r\n\r\n",
    b"POST / HTTP/1.1\r\nContent-Length: -1\r\n\r\n",
    b"POST / HTTP/1.1\r\nContent-Length: 10\r\n\r\nshort",
    b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\nzz\r\n",
    b"GET /" + b"a" * 9000 + b" HTTP/1.1\r\n\r\n",
])
def test_malformed_requests_raise(raw):
    with pytest.raises(ProcessingFault):
        parse(raw)


def test_oversized_content_length_is_rejected():
    header = f"POST / HTTP/1.1\r\nContent-Length: {fileserver.MAX_BODY_BYTES + 1}\r\n\r\n"
    with pytest.raises(ProcessingFault, match="exceeds"):
        parse(header.encode() + b"abc")


def test_oversized_chunked_body_is_rejected(monkeypatch):
    monkeypatch.setattr(fileserver, "MAX_BODY_BYTES", 8)
    with pytest.raises(ProcessingFault, match="exceeds"):
        parse(b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n"
              b"5\r\nabcde\r\n5\r\nfghij\r\n0\r\n\r\n")


def test_continue_is_only_sent_when_a_body_follows():
    server_side, client_side = socket.socketpair()
    with server_side, client_side:
        client_side.sendall(b"GET / HTTP/1.1\r\nExpect: 100-continue\r\nContent-Length: 0\r\n\r\n")
        client_side.shutdown(socket.SHUT_WR)
        request = read_request(server_side)
        server_side.close()
        assert request["body"] is None
        assert client_side.recv(1024) == b""


def test_continue_is_sent_before_the_body():
    server_side, client_side = socket.socketpair()
    with server_side, client_side:
        client_side.sendall(b"PUT / HTTP/1.1\r\nExpect: 100-continue\r\nContent-Length: 2\r\n\r\nok")
        client_side.shutdown(socket.SHUT_WR)
        request = read_request(server_side)
        server_side.close()
        assert request["body"] == b"ok"
        assert client_side.recv(1024) == b"HTTP/1.1 100 Continue\r\n\r\n"
