"""
Tests for ImmichClient against the fake Immich server.

The fake server runs in a thread (see conftest.py); individual tests flip
its state to return error statuses, broken bodies or slow responses.
"""

import time

import httpx
import pytest

from immich_exporter.client import (
    DEFAULT_TIMEOUT_SECONDS,
    JOBS_PATH,
    STATISTICS_PATH,
    STORAGE_PATH,
    ImmichClient,
)
from immich_exporter.errors import DecodeError, HTTPStatusError, ImmichError, TransportError
from immich_exporter.mock.fake_immich_server import DEFAULT_API_KEY


@pytest.mark.parametrize("base_url", [
    "http://immich.local:2283",
    "http://immich.local:2283/",
    "http://immich.local:2283///",
])
def test_base_url_trailing_slashes_are_stripped(base_url):
    with ImmichClient(base_url, "key") as c:
        assert c.base_url == "http://immich.local:2283"
        assert c.url_for(JOBS_PATH) == "http://immich.local:2283/api/jobs"
        assert c.url_for(STORAGE_PATH) == "http://immich.local:2283/api/server/storage"


def test_base_url_with_prefix_path():
    with ImmichClient("https://photos.example.com/immich/", "key") as c:
        assert c.url_for(STATISTICS_PATH) == "https://photos.example.com/immich/api/server/statistics"


def test_default_timeout_is_ten_seconds():
    with ImmichClient("http://immich.local", "key") as c:
        assert c.timeout == DEFAULT_TIMEOUT_SECONDS == 10.0


def test_fetch_jobs(client, fake_immich):
    jobs = client.fetch_jobs()

    assert "thumbnailGeneration" in jobs
    thumbs = jobs["thumbnailGeneration"]
    assert thumbs.counts.active == 3
    assert thumbs.counts.waiting == 10
    assert thumbs.status.is_active is True
    assert fake_immich.state.paths_requested() == [JOBS_PATH]


def test_fetch_statistics(client):
    stats = client.fetch_statistics()
    assert stats.photos == 5000
    assert len(stats.usage_by_user) == 2


def test_fetch_storage(client):
    storage = client.fetch_storage()
    assert storage.disk_size == 1_000_000_000_000
    assert storage.disk_usage_percentage == 4.83


def test_requests_carry_api_key_and_accept_headers(client, fake_immich):
    client.fetch_storage()

    path, headers = fake_immich.state.requests[-1]
    assert path == STORAGE_PATH
    assert headers["x-api-key"] == DEFAULT_API_KEY
    assert headers["accept"] == "application/json"


def test_trailing_slash_base_url_hits_same_paths(fake_immich):
    with ImmichClient(fake_immich.url + "//", DEFAULT_API_KEY) as c:
        c.fetch_jobs()
        c.fetch_statistics()
    assert fake_immich.state.paths_requested() == [JOBS_PATH, STATISTICS_PATH]


def test_wrong_api_key_is_http_status_error(fake_immich):
    with ImmichClient(fake_immich.url, "not-the-key") as c:
        with pytest.raises(HTTPStatusError) as exc_info:
            c.fetch_jobs()
    assert exc_info.value.status_code == 401
    assert exc_info.value.url.endswith(JOBS_PATH)


def test_server_error_is_http_status_error(client, fake_immich):
    fake_immich.state.status_overrides[STATISTICS_PATH] = 500

    with pytest.raises(HTTPStatusError) as exc_info:
        client.fetch_statistics()
    assert exc_info.value.status_code == 500
    assert "500" in str(exc_info.value)


def test_invalid_json_is_decode_error(client, fake_immich):
    fake_immich.state.raw_bodies[STORAGE_PATH] = b"<html>502 Bad Gateway</html>"

    with pytest.raises(DecodeError):
        client.fetch_storage()


def test_wrong_shape_is_decode_error(client, fake_immich):
    fake_immich.state.payloads[JOBS_PATH] = ["thumbnailGeneration"]

    with pytest.raises(DecodeError):
        client.fetch_jobs()


def test_unreachable_server_is_transport_error(unused_url):
    with ImmichClient(unused_url, "key") as c:
        with pytest.raises(TransportError):
            c.fetch_storage()


def test_timeout_is_transport_error(fake_immich):
    fake_immich.state.delays[JOBS_PATH] = 1.0

    with ImmichClient(fake_immich.url, DEFAULT_API_KEY, timeout=0.2) as c:
        with pytest.raises(TransportError):
            c.fetch_jobs()


def test_slow_body_is_cut_off_at_the_timeout(fake_immich):
    # Each byte arrives well inside the read timeout; only the overall deadline stops it
    fake_immich.state.trickle[JOBS_PATH] = 0.2

    with ImmichClient(fake_immich.url, DEFAULT_API_KEY, timeout=0.5) as c:
        started = time.monotonic()
        with pytest.raises(TransportError):
            c.fetch_jobs()
        elapsed = time.monotonic() - started

    assert elapsed < 1.0


def test_trickled_body_within_the_timeout_still_decodes(fake_immich):
    fake_immich.state.payloads[STORAGE_PATH] = {"diskSizeRaw": 7}
    fake_immich.state.trickle[STORAGE_PATH] = 0.01

    with ImmichClient(fake_immich.url, DEFAULT_API_KEY, timeout=5.0) as c:
        assert c.fetch_storage().disk_size == 7


def test_corrupt_content_encoding_is_decode_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip at all")

    with ImmichClient("http://immich", "key", transport=httpx.MockTransport(handler)) as c:
        with pytest.raises(DecodeError):
            c.fetch_jobs()
        with pytest.raises(DecodeError):
            c.ping()


def test_errors_share_a_base_class():
    for cls in (TransportError, HTTPStatusError, DecodeError):
        assert issubclass(cls, ImmichError)


def test_ping_succeeds_when_jobs_fetch_succeeds(client, fake_immich):
    assert client.ping() is None
    assert fake_immich.state.paths_requested() == [JOBS_PATH]


def test_ping_fails_when_jobs_fetch_fails(client, fake_immich):
    fake_immich.state.status_overrides[JOBS_PATH] = 503
    with pytest.raises(HTTPStatusError):
        client.ping()


def test_ping_ignores_other_endpoints(client, fake_immich):
    fake_immich.state.status_overrides[STORAGE_PATH] = 500
    fake_immich.state.status_overrides[STATISTICS_PATH] = 500
    client.ping()


def test_ping_unreachable(unused_url):
    with ImmichClient(unused_url, "key") as c:
        with pytest.raises(TransportError):
            c.ping()


def test_no_caching_between_calls(client, fake_immich):
    assert client.fetch_statistics().photos == 5000
    fake_immich.state.payloads[STATISTICS_PATH]["photos"] = 5001
    assert client.fetch_statistics().photos == 5001


def test_non_200_success_status_is_rejected():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    with ImmichClient("http://immich", "key", transport=httpx.MockTransport(handler)) as c:
        with pytest.raises(HTTPStatusError) as exc_info:
            c.fetch_jobs()
    assert exc_info.value.status_code == 204


def test_mock_transport_sees_exact_request():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"photos": 5000, "videos": 0, "usage": 0, "usageByUser": []})

    with ImmichClient("http://immich:2283/", "secret", transport=httpx.MockTransport(handler)) as c:
        stats = c.fetch_statistics()

    assert stats.photos == 5000
    assert len(seen) == 1
    request = seen[0]
    assert request.method == "GET"
    assert str(request.url) == "http://immich:2283/api/server/statistics"
    assert request.headers["x-api-key"] == "secret"
    assert request.headers["accept"] == "application/json"
