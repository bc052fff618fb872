"""
Header allow-list tests
"""

from compress_proxy.headers import (
    build_origin_headers,
    encode_location,
    pass_through_headers,
    redirect_headers,
)


class TestOriginHeaders:

    def test_forwards_allow_listed_headers(self):
        headers = build_origin_headers(
            {"Cookie": "a=1", "Referer": "https://site.test/", "DNT": "1"},
            user_agent="ua",
        )
        assert headers["cookie"] == "a=1"
        assert headers["referer"] == "https://site.test/"
        assert headers["dnt"] == "1"

    def test_never_forwards_hop_by_hop(self):
        headers = build_origin_headers(
            {"Host": "proxy.test", "Connection": "keep-alive", "Content-Length": "10",
             "Transfer-Encoding": "chunked", "Authorization": "secret"},
            user_agent="ua",
        )
        for name in ("host", "connection", "content-length", "transfer-encoding", "authorization"):
            assert name not in headers

    def test_synthetic_user_agent(self):
        assert build_origin_headers({}, user_agent="synthetic")["user-agent"] == "synthetic"

    def test_passes_client_user_agent(self):
        headers = build_origin_headers({"User-Agent": "client/1.0"}, user_agent="synthetic")
        assert headers["user-agent"] == "client/1.0"

    def test_requests_identity_encoding(self):
        headers = build_origin_headers({"Accept-Encoding": "gzip"}, user_agent="ua")
        assert headers["accept-encoding"] == "identity"
        assert headers["accept"].startswith("image/")

    def test_forwarded_for_appends_client(self):
        headers = build_origin_headers({"X-Forwarded-For": "1.1.1.1"}, "ua", client_ip="2.2.2.2")
        assert headers["x-forwarded-for"] == "1.1.1.1, 2.2.2.2"
        assert build_origin_headers({}, "ua", client_ip="2.2.2.2")["x-forwarded-for"] == "2.2.2.2"


class TestPassThroughHeaders:

    def test_copies_only_allow_list(self):
        headers = pass_through_headers({
            "Content-Type": "image/png",
            "Content-Length": "123",
            "Accept-Ranges": "bytes",
            "Content-Range": "bytes 0-122/500",
            "Set-Cookie": "tracker=1",
            "Server": "nginx",
            "Connection": "close",
        })
        assert headers == {
            "content-type": "image/png",
            "content-length": "123",
            "accept-ranges": "bytes",
            "content-range": "bytes 0-122/500",
        }

    def test_drops_length_of_encoded_body(self):
        headers = pass_through_headers({"content-length": "50", "content-encoding": "gzip"})
        assert "content-length" not in headers


class TestRedirectHeaders:

    def test_strips_cache_headers(self):
        headers = redirect_headers(
            "http://origin.test/a.jpg",
            {"Cache-Control": "max-age=60", "Expires": "x", "Date": "y", "ETag": "z",
             "Access-Control-Allow-Origin": "*"},
        )
        for name in ("cache-control", "expires", "date", "etag"):
            assert name not in headers
        assert headers["access-control-allow-origin"] == "*"
        assert headers["content-length"] == "0"
        assert headers["location"] == "http://origin.test/a.jpg"

    def test_location_escaping(self):
        assert encode_location("http://origin.test/a b.jpg") == "http://origin.test/a%20b.jpg"
        assert encode_location("http://origin.test/a%20b.jpg?x=1&y=2") == "http://origin.test/a%20b.jpg?x=1&y=2"
