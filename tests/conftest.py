import pytest
import sys
import os
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

# Add the application path to sys.path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import create_app
from icyproxy.cache import MetadataCache
from icyproxy.service import MetadataService

STREAM_URL = "http://radio.test/stream"


def metadata_block(text, encoding='latin-1'):
    """Length byte followed by ``text`` NUL-padded to a multiple of 16."""
    raw = text.encode(encoding)
    code = (len(raw) + 15) // 16
    return bytes([code]) + raw.ljust(code * 16, b'\x00')


def icy_body(text, metaint, trailing_audio=64):
    """One ICY cycle: ``metaint`` bytes of audio, a metadata block, more audio."""
    return b'\xff' * metaint + metadata_block(text) + b'\xfb' * trailing_audio


@pytest.fixture
def service():
    return MetadataService(cache=MetadataCache(), url_resolver=lambda: STREAM_URL)


@pytest.fixture
def app(service):
    yield create_app(service)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def icy_server():
    """
    Start a local upstream that answers every GET with ``body``, optionally
    one byte every ``interval`` seconds.
    Returns (url, seen) where ``seen`` collects the request headers received.
    """
    servers = []

    def start(body, headers=None, delay=0, interval=0):
        seen = []

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self):
                seen.append(dict(self.headers))
                if delay:
                    time.sleep(delay)
                self.send_response(200)
                self.send_header('Content-Type', 'audio/mpeg')
                for name, value in (headers or {}).items():
                    self.send_header(name, value)
                self.end_headers()
                try:
                    if not interval:
                        self.wfile.write(body)
                        return
                    for i in range(len(body)):
                        self.wfile.write(body[i:i + 1])
                        time.sleep(interval)
                except (BrokenPipeError, ConnectionResetError):
                    # Client hung up, as the fetcher does once it has its block
                    pass

            def log_message(self, format, *args):
                pass

        server = ThreadingHTTPServer(('127.0.0.1', 0), Handler)
        server.daemon_threads = True
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return f"http://127.0.0.1:{server.server_port}/stream", seen

    yield start

    for server in servers:
        server.shutdown()
        server.server_close()
