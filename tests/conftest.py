"""
Shared fixtures for Drawer Bridge tests.

Provides a temporary config store, scripted PIN prompts, a recording
notifier, a fake drawer client, and a loopback TCP listener standing in
for a receipt printer.
"""

import socket
import threading

import pytest

from drawer_bridge.config import ConfigStore


# ============================================================================
# Test Doubles
# ============================================================================

class ScriptedPrompt:
    """Answers prompts from a fixed script; None in the script means cancel."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.calls = []

    async def prompt_secret(self, title, label):
        self.calls.append((title, label))
        if not self.answers:
            raise AssertionError(f"Unexpected prompt: {title}")
        return self.answers.pop(0)


class RecordingNotifier:
    def __init__(self):
        self.errors = []
        self.messages = []

    def show_error(self, title, message):
        self.errors.append((title, message))

    def show_message(self, message):
        self.messages.append(message)


class FakeDrawerClient:
    """Records kicks instead of touching the network."""

    def __init__(self, result=True):
        self.result = result
        self.kicked = []

    async def kick(self, cfg):
        self.kicked.append(cfg)
        return self.result


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def store(tmp_path):
    """Config store backed by a file in a fresh temp directory."""
    return ConfigStore(tmp_path / 'drawer_config.json')


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def fake_client():
    return FakeDrawerClient()


@pytest.fixture
def printer_listener():
    """
    Loopback TCP server that accepts one connection and records every byte
    received until the peer closes.

    Yields:
        tuple: (port, received list, server thread)
    """
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    server.bind(('127.0.0.1', 0))
    server.listen(1)
    server.settimeout(5)
    port = server.getsockname()[1]
    received = []

    def serve():
        try:
            conn, _ = server.accept()
        except OSError:
            return
        with conn:
            conn.settimeout(5)
            chunks = []
            while True:
                try:
                    data = conn.recv(1024)
                except OSError:
                    break
                if not data:
                    break
                chunks.append(data)
            received.append(b''.join(chunks))

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()

    yield port, received, thread

    server.close()
    thread.join(timeout=5)


@pytest.fixture
def closed_port():
    """A loopback port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(('127.0.0.1', 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
