#!/usr/bin/env python3
"""
Unit tests for the SaGe client adapter and its result stream.

Uses a manual transport so each page response is delivered explicitly.
"""

import pytest

from sage_console.connectors.http_transport import TransportRequest
from sage_console.core.errors import StreamProtocolError
from sage_console.core.query_client import SageQueryClient

ENDPOINT = "http://sage.test/sparql/dbpedia"
QUERY = "SELECT ?s WHERE { ?s ?p ?o }"


class _ManualTransport:
    def __init__(self):
        self.calls: list[tuple[TransportRequest, object]] = []

    def post(self, request, callback):
        self.calls.append((request, callback))

    def respond(self, body, *, index: int = -1, error=None, response="resp"):
        _, callback = self.calls[index]
        callback(error, response, body)


class _Recorder:
    def __init__(self):
        self.items: list[object] = []
        self.errors: list[BaseException] = []
        self.completed = 0

    def on_item(self, item):
        self.items.append(item)

    def on_error(self, error):
        self.errors.append(error)

    def on_complete(self):
        self.completed += 1


def _open_client(transport: _ManualTransport) -> SageQueryClient:
    client = SageQueryClient(ENDPOINT, transport.post)
    client.open()
    return client


def test_pages_are_fetched_with_next_token_until_exhausted():
    transport = _ManualTransport()
    client = _open_client(transport)
    sink = _Recorder()

    client.execute(QUERY).subscribe(sink.on_item, sink.on_error, sink.on_complete)

    assert len(transport.calls) == 1
    request = transport.calls[0][0]
    assert request.url == ENDPOINT
    assert request.json == {"query": QUERY, "defaultGraph": ENDPOINT, "next": None}

    transport.respond({"bindings": [{"?s": "a"}, {"?s": "b"}], "next": "token-1", "hasNext": True})
    assert sink.items == [{"?s": "a"}, {"?s": "b"}]
    assert len(transport.calls) == 2
    assert transport.calls[1][0].json["next"] == "token-1"

    transport.respond({"bindings": [{"?s": "c"}], "next": None, "hasNext": False})
    assert sink.items == [{"?s": "a"}, {"?s": "b"}, {"?s": "c"}]
    assert sink.completed == 1
    assert sink.errors == []
    assert len(transport.calls) == 2


def test_has_next_false_wins_over_stale_token():
    transport = _ManualTransport()
    client = _open_client(transport)
    sink = _Recorder()
    client.execute(QUERY).subscribe(sink.on_item, sink.on_error, sink.on_complete)

    transport.respond({"bindings": [], "next": "ignored", "hasNext": False})

    assert sink.completed == 1
    assert len(transport.calls) == 1


def test_json_text_body_is_decoded():
    transport = _ManualTransport()
    client = _open_client(transport)
    sink = _Recorder()
    client.execute(QUERY).subscribe(sink.on_item, sink.on_error, sink.on_complete)

    transport.respond('{"bindings": [{"?s": "x"}], "next": null}')

    assert sink.items == [{"?s": "x"}]
    assert sink.completed == 1


def test_unsubscribed_stream_holds_page_until_resubscribed():
    transport = _ManualTransport()
    client = _open_client(transport)
    stream = client.execute(QUERY)
    first = _Recorder()
    subscription = stream.subscribe(first.on_item, first.on_error, first.on_complete)

    subscription.unsubscribe()
    transport.respond({"bindings": [1, 2, 3], "next": "t", "hasNext": True})

    assert first.items == []
    assert stream.held_items == 3
    assert len(transport.calls) == 1

    second = _Recorder()
    stream.subscribe(second.on_item, second.on_error, second.on_complete)
    assert second.items == [1, 2, 3]
    assert len(transport.calls) == 2
    assert transport.calls[1][0].json["next"] == "t"


def test_unsubscribe_twice_is_noop():
    transport = _ManualTransport()
    client = _open_client(transport)
    sink = _Recorder()
    subscription = client.execute(QUERY).subscribe(sink.on_item, sink.on_error, sink.on_complete)

    subscription.unsubscribe()
    subscription.unsubscribe()


def test_close_turns_late_responses_into_noops():
    transport = _ManualTransport()
    client = _open_client(transport)
    sink = _Recorder()
    client.execute(QUERY).subscribe(sink.on_item, sink.on_error, sink.on_complete)

    client.close()
    client.close()
    transport.respond({"bindings": [1, 2], "next": None})

    assert sink.items == []
    assert sink.completed == 0
    assert len(transport.calls) == 1


def test_transport_error_is_terminal():
    transport = _ManualTransport()
    client = _open_client(transport)
    sink = _Recorder()
    client.execute(QUERY).subscribe(sink.on_item, sink.on_error, sink.on_complete)

    transport.respond({"bindings": [1], "next": "t"})
    boom = RuntimeError("server unavailable")
    transport.respond(None, error=boom)

    assert sink.items == [1]
    assert sink.errors == [boom]
    assert sink.completed == 0
    assert len(transport.calls) == 2


def test_malformed_page_is_a_protocol_error():
    transport = _ManualTransport()
    client = _open_client(transport)
    sink = _Recorder()
    client.execute(QUERY).subscribe(sink.on_item, sink.on_error, sink.on_complete)

    transport.respond("<html>Bad gateway</html>")

    assert len(sink.errors) == 1
    assert isinstance(sink.errors[0], StreamProtocolError)


def test_terminal_event_delivered_once_and_nothing_after():
    transport = _ManualTransport()
    client = _open_client(transport)
    sink = _Recorder()
    stream = client.execute(QUERY)
    stream.subscribe(sink.on_item, sink.on_error, sink.on_complete)

    transport.respond({"bindings": [1], "next": None})
    transport.respond({"bindings": [2], "next": None})

    assert sink.items == [1]
    assert sink.completed == 1
    assert stream.terminated
    with pytest.raises(RuntimeError):
        stream.subscribe(sink.on_item, sink.on_error, sink.on_complete)


def test_single_consumer_only():
    transport = _ManualTransport()
    client = _open_client(transport)
    stream = client.execute(QUERY)
    sink = _Recorder()
    stream.subscribe(sink.on_item, sink.on_error, sink.on_complete)

    with pytest.raises(RuntimeError):
        stream.subscribe(sink.on_item, sink.on_error, sink.on_complete)


def test_no_request_before_open():
    transport = _ManualTransport()
    client = SageQueryClient(ENDPOINT, transport.post)
    sink = _Recorder()

    client.execute(QUERY).subscribe(sink.on_item, sink.on_error, sink.on_complete)
    assert transport.calls == []


def test_default_graph_can_differ_from_endpoint():
    transport = _ManualTransport()
    client = SageQueryClient(ENDPOINT, transport.post, default_graph="http://sage.test/graph")
    client.open()
    sink = _Recorder()
    client.execute(QUERY).subscribe(sink.on_item, sink.on_error, sink.on_complete)

    assert transport.calls[0][0].json["defaultGraph"] == "http://sage.test/graph"
