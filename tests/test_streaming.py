"""Tests for SSE parsing and encoding."""

import pytest

from copilot_relay.streaming import ServerSentEvent, iter_sse_events, sse_done


async def _lines(*lines):
    for line in lines:
        yield line


async def _collect(*lines):
    return [event async for event in iter_sse_events(_lines(*lines))]


@pytest.mark.asyncio
async def test_blank_line_dispatches_event():
    events = await _collect('data: {"a": 1}', "", "data: [DONE]", "")
    assert [e.data for e in events] == ['{"a": 1}', "[DONE]"]
    assert events[1].is_done


@pytest.mark.asyncio
async def test_multiline_data_is_joined():
    events = await _collect("data: one", "data: two", "")
    assert events == [ServerSentEvent(data="one\ntwo")]


@pytest.mark.asyncio
async def test_event_id_and_retry_fields():
    events = await _collect("event: message", "id: 7", "retry: 1500", "data: x", "")
    assert events == [ServerSentEvent(data="x", event="message", id="7", retry=1500)]


@pytest.mark.asyncio
async def test_comments_and_unknown_fields_are_ignored():
    events = await _collect(": keep-alive", "", "foo: bar", "data: x", "")
    assert [e.data for e in events] == ["x"]


@pytest.mark.asyncio
async def test_trailing_event_without_blank_line_is_flushed():
    events = await _collect("data: a", "", "data: b")
    assert [e.data for e in events] == ["a", "b"]


@pytest.mark.asyncio
async def test_data_without_space_and_crlf():
    events = await _collect("data:x\r", "\r")
    assert [e.data for e in events] == ["x"]


def test_encode_round_trips_fields():
    event = ServerSentEvent(data="line1\nline2", event="message", id="3")
    assert event.encode() == b"event: message\nid: 3\ndata: line1\ndata: line2\n\n"


def test_done_frame():
    assert sse_done() == b"data: [DONE]\n\n"
    assert ServerSentEvent(data="[DONE]").is_done
    assert not ServerSentEvent(data='{"x": "[DONE]"}').is_done
