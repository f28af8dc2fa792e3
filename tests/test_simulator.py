#!/usr/bin/env python3
"""
Tests for the simulation orchestrator and its public proxy.

Tests cover:
    - Permission denied classification
    - Reference validation outside the queue
    - Authentication sequence and token options
    - Trace collection, unreproducible and different-error outcomes
    - Transactions as read + set
    - Serialization of concurrent simulations
"""

import asyncio
import logging

import pytest

from conftest import DATABASE_URL, FakeDatabaseError
from pdsim_core import Simulator, is_permission_denied
from pdsim_core.schema import CallSpec
from pdsim_core.simulation_queue import SimulationQueue


DENIED_WRITE_LINES = [
    "FIREBASE: Attempt to write {\"name\":\"x\"} to /users/abc with auth={\"uid\":\"abc\"}",
    "FIREBASE:     /users/abc:.write: \"auth.uid === 'admin'\"",
    "FIREBASE: 1:1: auth.uid === 'admin'",
    "FIREBASE:         => false",
    "FIREBASE: ",
    "FIREBASE: Write was denied.",
]

DENIED_WRITE_TRACE = "\n".join([
    "Attempt to write {\"name\":\"x\"} to /users/abc with auth={\"uid\":\"abc\"}",
    "✗ write /users/abc",
    "   1:1: auth.uid === 'admin'",
    "",
    "Write was denied.",
])


@pytest.fixture
def simulator(client_factory, token_generator, sink, queue, settings):
    return Simulator(
        DATABASE_URL,
        "legacy-secret",
        client_factory,
        token_generator=token_generator,
        sink=sink,
        queue=queue,
        settings=settings,
    )


@pytest.fixture
def client(simulator, clients):
    return clients[0]


@pytest.mark.parametrize("error,expected", [
    ({"code": "PERMISSION_DENIED"}, True),
    ({"message": "permission_denied"}, True),
    ({"code": "network_error"}, False),
    (FakeDatabaseError("permission_denied"), True),
    (RuntimeError("PERMISSION_DENIED"), True),
    (RuntimeError("permission denied"), False),
    ({}, False),
])
def test_is_permission_denied(error, expected):
    assert is_permission_denied(error) is expected


def test_simulator_uses_separate_app(simulator, client, settings):
    assert client.url == DATABASE_URL
    assert client.app_name == settings.app_name
    assert simulator.is_permission_denied({"code": "permission_denied"})


def test_auth_requests_simulate_and_debug_token(simulator, token_generator):
    simulator.auth({"uid": "abc", "admin": False})
    assert token_generator.requests == [
        ({"uid": "abc", "admin": False}, {"simulate": True, "debug": True}),
    ]


def test_ref_outside_database_fails_fast(simulator, client):
    proxy = simulator.auth({"uid": "abc"})
    with pytest.raises(ValueError, match="Ref not in database"):
        asyncio.run(proxy.once("https://other-app.firebaseio.com/users/abc"))
    with pytest.raises(ValueError):
        asyncio.run(proxy.once(DATABASE_URL + ".evil.com/users"))
    assert client.events == []


def test_update_requires_mapping(simulator):
    proxy = simulator.auth({"uid": "abc"})
    with pytest.raises(TypeError):
        asyncio.run(proxy.update(DATABASE_URL + "/users/abc", ["not", "a", "mapping"]))


def test_unknown_call_method_is_rejected():
    with pytest.raises(ValueError):
        CallSpec("transaction", ())
    assert CallSpec("on", ["value"]) == CallSpec("once", ("value",))


def test_permission_denied_trace_is_returned(simulator, client):
    client.script("/users/abc", "set", DENIED_WRITE_LINES, FakeDatabaseError("PERMISSION_DENIED"))
    proxy = simulator.auth({"uid": "abc"})

    result = asyncio.run(proxy.set(DATABASE_URL + "/users/abc", {"name": "x"}))

    assert result == DENIED_WRITE_TRACE
    assert client.events == [
        "unauthenticate",
        ("authenticate", "token-for-abc", "none"),
    ]
    assert client.calls == [("/users/abc", "set", ({"name": "x"},))]


def test_permission_denied_without_diagnostics_is_unreproducible(simulator, client):
    client.script("/users/abc", "set", [], FakeDatabaseError("permission_denied"))
    proxy = simulator.auth({"uid": "abc"})

    result = asyncio.run(proxy.set(DATABASE_URL + "/users/abc", 1))

    assert result == "Unable to reproduce error in simulation"


def test_successful_call_is_unreproducible(simulator, client):
    client.script("/users/abc", "once", ["FIREBASE: Read was allowed."])
    proxy = simulator.auth({"uid": "abc"})

    assert asyncio.run(proxy.once(DATABASE_URL + "/users/abc")) == (
        "Unable to reproduce error in simulation"
    )


def test_different_error_is_reported(simulator, client, caplog):
    client.script("/users/abc", "remove", [], FakeDatabaseError("network_error"))
    proxy = simulator.auth({"uid": "abc"})

    with caplog.at_level(logging.WARNING, logger="pdsim_core.simulator"):
        result = asyncio.run(proxy.remove(DATABASE_URL + "/users/abc"))

    assert result == "Got a different error in simulation: network_error"
    assert [record.getMessage() for record in caplog.records] == [
        "Simulated remove raised a different error: network_error",
    ]


def test_authentication_failure_becomes_result_string(simulator, client):
    client.auth_error = RuntimeError("invalid token")
    proxy = simulator.auth({"uid": "abc"})

    result = asyncio.run(proxy.push(DATABASE_URL + "/messages", {"text": "hi"}))

    assert result == "Error running simulation: invalid token"
    assert client.calls == []


def test_transaction_replays_read_then_set(simulator, client):
    client.script("/counter", "once", [
        "FIREBASE: Attempt to read /counter with auth={\"uid\":\"abc\"}",
        "FIREBASE:     /counter:.read: \"false\"",
        "FIREBASE:         => false",
        "FIREBASE: Read was denied.",
    ], FakeDatabaseError("permission_denied"))
    client.script("/counter", "set", DENIED_WRITE_LINES[3:], FakeDatabaseError("permission_denied"))
    proxy = simulator.auth({"uid": "abc"})

    result = asyncio.run(proxy.transaction(DATABASE_URL + "/counter", 5))

    assert client.calls == [("/counter", "once", ("value",)), ("/counter", "set", (5,))]
    assert result == "\n".join([
        "Attempt to read /counter with auth={\"uid\":\"abc\"}",
        "✗ read /counter",
        "Read was denied.",
        "",
        "",
        "Write was denied.",
    ])


def test_on_is_replayed_as_once(simulator, client):
    proxy = simulator.auth({"uid": "abc"})
    asyncio.run(proxy.on(DATABASE_URL + "/users"))
    assert client.calls == [("/users", "once", ("value",))]


def test_database_root_maps_to_root_path(simulator, client):
    proxy = simulator.auth({"uid": "abc"})
    asyncio.run(proxy.once(DATABASE_URL))
    assert client.calls == [("/", "once", ("value",))]


def test_concurrent_simulations_do_not_interleave(simulator, client):
    client.line_delay = 0.005
    for path in ("/a", "/b"):
        client.script(path, "set", [
            f"FIREBASE: Attempt to write 1 to {path}",
            f"FIREBASE:     {path}:.write: \"false\"",
            "FIREBASE:         => false",
            "FIREBASE: Write was denied.",
        ], FakeDatabaseError("permission_denied"))
    first = simulator.auth({"uid": "first"})
    second = simulator.auth({"uid": "second"})

    async def main():
        return await asyncio.gather(
            first.set(DATABASE_URL + "/a", 1),
            second.set(DATABASE_URL + "/b", 1),
        )

    result_a, result_b = asyncio.run(main())

    assert result_a == "Attempt to write 1 to /a\n✗ write /a\nWrite was denied."
    assert result_b == "Attempt to write 1 to /b\n✗ write /b\nWrite was denied."
    assert client.events == [
        "unauthenticate",
        ("authenticate", "token-for-first", "none"),
        "unauthenticate",
        ("authenticate", "token-for-second", "none"),
    ]


def test_failed_simulation_does_not_block_the_next(simulator, client):
    client.auth_error = RuntimeError("auth backend down")
    proxy = simulator.auth({"uid": "abc"})
    assert asyncio.run(proxy.once(DATABASE_URL + "/a")).startswith("Error running simulation")

    client.auth_error = None
    client.script("/a", "once", [], FakeDatabaseError("permission_denied"))
    assert asyncio.run(proxy.once(DATABASE_URL + "/a")) == "Unable to reproduce error in simulation"


def test_shared_sink_requires_shared_queue(simulator, client_factory, token_generator, sink, queue, settings):
    Simulator(
        DATABASE_URL, "legacy-secret", client_factory,
        token_generator=token_generator, sink=sink, queue=queue, settings=settings,
    )
    with pytest.raises(ValueError, match="different simulation queue"):
        Simulator(
            DATABASE_URL, "legacy-secret", client_factory,
            token_generator=token_generator, sink=sink, queue=SimulationQueue(), settings=settings,
        )
