from __future__ import annotations

import json
import threading
from http.client import HTTPConnection

import pytest

from bucket_manager.config import Settings
from bucket_manager.server import create_server
from bucket_manager.testing import InMemoryStore

PASSWORD = "s3cret"


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)

    def close(self):
        pass


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        config_dir=str(tmp_path),
        bucket="test-bucket",
        auth_password=PASSWORD,
        max_upload_bytes=100 * 1024 * 1024,
        move_workers=4,
    )


class Client:
    def __init__(self, host, port):
        self.host = host
        self.port = port

    def request(self, method, path, body=None, headers=None, password=PASSWORD):
        all_headers = dict(headers or {})
        if password is not None:
            all_headers["x-auth-password"] = password
        conn = HTTPConnection(self.host, self.port, timeout=5)
        try:
            conn.request(method, path, body=body, headers=all_headers)
            resp = conn.getresponse()
            return resp.status, dict(resp.getheaders()), resp.read()
        finally:
            conn.close()

    def post_json(self, path, payload, password=PASSWORD):
        status, headers, body = self.request(
            "POST",
            path,
            body=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            password=password,
        )
        return status, json.loads(body.decode("utf-8")) if body else None


@pytest.fixture
def client(settings, store, notifier):
    server = create_server(settings, store=store, notifier=notifier, address=("127.0.0.1", 0))
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()
    host, port = server.server_address[:2]
    try:
        yield Client(host, port)
    finally:
        server.shutdown()
        server.server_close()
        t.join(timeout=2)
