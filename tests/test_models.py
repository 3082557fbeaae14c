from edgecache.models import Headers, Request, Response


def test_headers_are_case_insensitive():
    headers = Headers()
    headers.set("content-type", "text/plain")
    assert headers.get("Content-Type") == "text/plain"
    assert "CONTENT-TYPE" in headers


def test_headers_add_keeps_all_values_in_order():
    headers = Headers()
    headers.add("X-Tag", "a")
    headers.add("x-tag", "b")
    assert headers.get_all("X-Tag") == ["a", "b"]
    assert headers.get("x-tag") == "a"


def test_headers_set_replaces_values():
    headers = Headers({"X-Tag": ["a", "b"]})
    headers.set("X-Tag", "c")
    assert headers.get_all("X-Tag") == ["c"]


def test_headers_delete_and_missing_default():
    headers = Headers({"Age": "5"})
    headers.delete("age")
    assert "Age" not in headers
    assert headers.get("Age") == ""
    assert headers.get_all("Age") == []


def test_headers_copy_is_independent():
    original = Headers({"Age": "5"})
    duplicate = original.copy()
    duplicate.add("Age", "6")
    assert original.get_all("Age") == ["5"]
    assert duplicate.get_all("Age") == ["5", "6"]


def test_request_host_taken_from_url():
    request = Request(url="http://example.com/test")
    assert request.host == "example.com"
    assert request.path == "/test"
    assert request.url_string() == "http://example.com/test"


def test_request_url_string_fills_missing_host():
    request = Request(url="/test", host="example.com")
    assert request.url_string() == "http://example.com/test"


def test_request_clone_headers_independent():
    request = Request(url="http://example.com/a", headers=Headers({"X-A": "1"}))
    clone = request.clone()
    clone.headers.set("X-A", "2")
    assert request.headers.get("X-A") == "1"
    assert clone.url == request.url


def test_response_read_and_content_length():
    response = Response(status_code=200, body=b"hello")
    assert response.read() == b"hello"
    assert response.content_length == len(b"hello")


def test_response_status_text_and_empty_body():
    response = Response(status_code=404)
    assert response.status == "404 Not Found"
    assert response.read() == b""