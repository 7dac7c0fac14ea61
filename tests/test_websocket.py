"""Tests for reshaping manager events into WebSocket frames."""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocketDisconnect

from api.websocket import ConnectionManager, EventFrame, frame_for


def _socket(fail_with: Exception | None = None):
    ws = AsyncMock()
    if fail_with is not None:
        ws.send_text.side_effect = fail_with
    return ws


def _sent(ws) -> list[dict]:
    return [json.loads(call.args[0]) for call in ws.send_text.await_args_list]


@pytest.mark.parametrize(
    "event_type, data, channel, event",
    [
        ("session_event", {"kind": "joined", "nick": "TestNick"}, "session", "joined"),
        ("dcc_incoming", {"filename": "results.zip"}, "transfer", "offered"),
        ("transfer_progress", {"state": "transferring"}, "transfer", "progress"),
        ("transfer_state", {"state": "failed"}, "transfer", "failed"),
        ("something_new", {}, "system", "something_new"),
    ],
)
def test_frame_for(event_type, data, channel, event):
    frame = frame_for(event_type, data)

    assert frame == EventFrame(channel=channel, event=event, data=data)


@pytest.mark.asyncio
async def test_new_client_gets_status_snapshot():
    manager = ConnectionManager(status_provider=lambda: {"connection_status": "joined"})
    ws = _socket()

    await manager.connect(ws)

    ws.accept.assert_awaited_once()
    assert _sent(ws) == [
        {"channel": "status", "event": "snapshot", "data": {"connection_status": "joined"}}
    ]


@pytest.mark.asyncio
async def test_handle_event_reaches_every_client():
    manager = ConnectionManager()
    first, second = _socket(), _socket()
    await manager.connect(first)
    await manager.connect(second)

    await manager.handle_event("transfer_state", {"state": "completed", "file_name": "book.epub"})

    expected = {
        "channel": "transfer",
        "event": "completed",
        "data": {"state": "completed", "file_name": "book.epub"},
    }
    assert _sent(first) == [expected]
    assert _sent(second) == [expected]


@pytest.mark.asyncio
async def test_failed_clients_are_dropped():
    manager = ConnectionManager()
    healthy = _socket()
    gone = _socket(fail_with=WebSocketDisconnect())
    await manager.connect(healthy)
    await manager.connect(gone)

    await manager.handle_event("session_event", {"kind": "disconnected"})
    await manager.handle_event("session_event", {"kind": "connecting"})

    assert gone.send_text.await_count == 1
    assert [f["event"] for f in _sent(healthy)] == ["disconnected", "connecting"]


@pytest.mark.asyncio
async def test_disconnect_removes_client():
    manager = ConnectionManager()
    ws = _socket()
    await manager.connect(ws)

    await manager.disconnect(ws)
    await manager.handle_event("dcc_incoming", {"filename": "x.epub"})

    ws.send_text.assert_not_awaited()
