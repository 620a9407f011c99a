"""Shared fixtures: a fake Immich API on a background thread."""

import socket

import pytest

from immich_exporter.client import ImmichClient
from immich_exporter.mock.fake_immich_server import DEFAULT_API_KEY, FakeImmichServer


@pytest.fixture
def fake_immich():
    with FakeImmichServer() as server:
        yield server


@pytest.fixture
def client(fake_immich):
    c = ImmichClient(fake_immich.url, DEFAULT_API_KEY)
    yield c
    c.close()


@pytest.fixture
def unused_url():
    """URL of a local port nothing is listening on."""
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return f"http://127.0.0.1:{port}"
