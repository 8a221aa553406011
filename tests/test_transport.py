"""Tests for transports writing replies at an insertion marker."""

from __future__ import annotations

from typing import Any

import httpx
import pytest
from openai import APIConnectionError

from orgchat.ai.client import AIClient, ClientSettings
from orgchat.ai.transport import RecordingTransport, StreamingTransport, Transport
from orgchat.conversation.messages import Message
from orgchat.documents.org_document import OrgDocument
from orgchat.errors import ErrorCode, TransportError

from tests.helpers import FakeEvent, FakeStreamContext, make_openai_client

MESSAGES = [Message(role="system", content="Be brief."), Message(role="user", content="Hi")]


def _client(*streams: Any) -> tuple[AIClient, Any]:
    fake = make_openai_client(*streams)
    settings = ClientSettings(
        base_url="https://example.invalid/v1",
        api_key="test-key",
        model="test-model",
        max_retries=1,
        retry_min_seconds=0,
        retry_max_seconds=0,
    )
    return AIClient(settings, client=fake), fake  # type: ignore[arg-type]


def _reply_document() -> tuple[OrgDocument, Any]:
    document = OrgDocument("* User\nHi\n** AI\n\n** User\n")
    marker = document.create_marker(len("* User\nHi\n** AI\n"))
    return document, marker


def test_transports_satisfy_protocol() -> None:
    client, _ = _client(FakeStreamContext([]))

    assert isinstance(StreamingTransport(client), Transport)
    assert isinstance(RecordingTransport(), Transport)


@pytest.mark.asyncio
async def test_streaming_transport_writes_fragments_in_order() -> None:
    events = [
        FakeEvent(type="content.delta", delta="Hello"),
        FakeEvent(type="content.delta", delta=" there"),
        FakeEvent(type="content.done", content="Hello there"),
    ]
    client, fake = _client(FakeStreamContext(events))
    document, marker = _reply_document()

    task = StreamingTransport(client, max_tokens=64).send(MESSAGES, marker)
    assert document.text == "* User\nHi\n** AI\n\n** User\n"
    written = await task

    assert written == len("Hello there")
    assert document.text == "* User\nHi\n** AI\nHello there\n** User\n"
    assert fake.chat.completions.calls[0]["messages"] == [message.to_payload() for message in MESSAGES]
    assert fake.chat.completions.calls[0]["max_tokens"] == 64


@pytest.mark.asyncio
async def test_streaming_follows_marker_across_user_edits() -> None:
    client, _ = _client(FakeStreamContext([FakeEvent(type="content.delta", delta="reply")]))
    document, marker = _reply_document()

    task = StreamingTransport(client).send(MESSAGES, marker)
    document.insert(0, "#+TITLE: edited\n")
    await task

    assert document.text == "#+TITLE: edited\n* User\nHi\n** AI\nreply\n** User\n"


@pytest.mark.asyncio
async def test_refusal_text_is_written_once() -> None:
    events = [
        FakeEvent(type="refusal.delta", delta="I can't"),
        FakeEvent(type="refusal.delta", delta=" help."),
        FakeEvent(type="refusal.done", refusal="I can't help."),
    ]
    client, _ = _client(FakeStreamContext(events))
    document, marker = _reply_document()

    written = await StreamingTransport(client).send(MESSAGES, marker)

    assert written == len("I can't help.")
    assert document.text == "* User\nHi\n** AI\nI can't help.\n** User\n"


@pytest.mark.asyncio
async def test_streaming_errors_are_wrapped_with_progress() -> None:
    error = APIConnectionError(request=httpx.Request("POST", "https://example.invalid"))
    client, _ = _client(FakeStreamContext([FakeEvent(type="content.delta", delta="par")], fail_after=error))
    document, marker = _reply_document()

    with pytest.raises(TransportError) as excinfo:
        await StreamingTransport(client).send(MESSAGES, marker)

    assert excinfo.value.error_code == ErrorCode.TRANSPORT_FAILED
    assert "** AI\npar\n** User" in document.text


@pytest.mark.asyncio
async def test_unexpected_errors_are_wrapped() -> None:
    client, _ = _client(RuntimeError("boom"))
    _, marker = _reply_document()

    with pytest.raises(TransportError) as excinfo:
        await StreamingTransport(client).send(MESSAGES, marker)

    assert excinfo.value.details == {"written": 0}
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_streaming_transport_requires_running_loop() -> None:
    client, _ = _client(FakeStreamContext([]))
    _, marker = _reply_document()

    with pytest.raises(TransportError) as excinfo:
        StreamingTransport(client).send(MESSAGES, marker)

    assert excinfo.value.error_code == ErrorCode.TRANSPORT_UNAVAILABLE


def test_recording_transport_captures_requests() -> None:
    document, marker = _reply_document()
    transport = RecordingTransport(chunks=["a", "b"])

    assert transport.send(MESSAGES, marker) is None

    assert transport.calls == [(MESSAGES, marker)]
    assert transport.snapshots == ["* User\nHi\n** AI\n\n** User\n"]
    assert document.text == "* User\nHi\n** AI\nab\n** User\n"


def test_recording_transport_raises_configured_error() -> None:
    _, marker = _reply_document()
    transport = RecordingTransport(chunks=["never"], error=TransportError(message="down"))

    with pytest.raises(TransportError):
        transport.send(MESSAGES, marker)

    assert len(transport.calls) == 1
