#!/usr/bin/env python3
"""
Pytest configuration for simulator tests.

Ensures proper path setup and provides a fake database client that writes
rule-evaluation transcripts to a console diagnostic sink.
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from infra import SimulatorSettings
from pdsim_core.diagnostic_sink import ConsoleDiagnosticSink
from pdsim_core.simulation_queue import SimulationQueue


DATABASE_URL = "https://demo-app.firebaseio.com"


class FakeDatabaseError(Exception):
    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


class FakeReference:
    def __init__(self, client: "FakeClient", path: str):
        self.client = client
        self.path = path

    async def _run(self, method: str, *args):
        self.client.calls.append((self.path, method, args))
        lines, error = self.client.scripts.get((self.path, method), ([], None))
        for line in lines:
            self.client.sink.emit(line)
            # Yield between lines so concurrent simulations could interleave
            await asyncio.sleep(self.client.line_delay)
        if error is not None:
            raise error
        return None

    async def once(self, event_type):
        return await self._run("once", event_type)

    async def set(self, value):
        return await self._run("set", value)

    async def update(self, value):
        return await self._run("update", value)

    async def remove(self):
        return await self._run("remove")

    async def push(self, value):
        return await self._run("push", value)


class FakeClient:
    def __init__(self, url: str, app_name: str, sink: ConsoleDiagnosticSink):
        self.url = url
        self.app_name = app_name
        self.sink = sink
        self.scripts: dict = {}
        self.calls: list = []
        self.events: list = []
        self.auth_error = None
        self.line_delay = 0

    def script(self, path: str, method: str, lines, error=None) -> None:
        self.scripts[(path, method)] = (list(lines), error)

    def unauthenticate(self) -> None:
        self.events.append("unauthenticate")

    async def authenticate_with_custom_token(self, token, on_complete=None, remember="none"):
        self.events.append(("authenticate", token, remember))
        await asyncio.sleep(0)
        if self.auth_error is not None:
            raise self.auth_error

    def child(self, path: str) -> FakeReference:
        return FakeReference(self, path)


class StaticTokenGenerator:
    def __init__(self):
        self.requests = []

    def create_token(self, claims, options=None):
        self.requests.append((dict(claims), dict(options or {})))
        return f"token-for-{claims['uid']}"


@pytest.fixture
def passthrough_lines():
    return []


@pytest.fixture
def sink(passthrough_lines):
    return ConsoleDiagnosticSink(passthrough=passthrough_lines.append)


@pytest.fixture
def settings():
    return SimulatorSettings()


@pytest.fixture
def queue():
    return SimulationQueue()


@pytest.fixture
def token_generator():
    return StaticTokenGenerator()


@pytest.fixture
def clients():
    return []


@pytest.fixture
def client_factory(sink, clients):
    def factory(url, app_name):
        client = FakeClient(url, app_name, sink)
        clients.append(client)
        return client
    return factory
