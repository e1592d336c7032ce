"""Tests for the live connection registry."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.interface import live_channel
from src.interface.live_channel import ConnectionRegistry


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.mark.unit
async def test_push_reaches_every_socket_of_user(registry: ConnectionRegistry) -> None:
    phone, laptop = AsyncMock(), AsyncMock()
    registry.register("1", phone)
    registry.register("1", laptop)

    delivered = await registry.push_to_user("1", "task-assigned", {"task_id": "7"})

    assert delivered == 2
    phone.send_json.assert_awaited_once_with({"event": "task-assigned", "data": {"task_id": "7"}})


@pytest.mark.unit
async def test_push_to_disconnected_user(registry: ConnectionRegistry) -> None:
    assert await registry.push_to_user("1", "task-assigned", {}) == 0


@pytest.mark.unit
async def test_failing_socket_is_dropped(registry: ConnectionRegistry) -> None:
    broken, healthy = AsyncMock(), AsyncMock()
    broken.send_json.side_effect = RuntimeError("closed")
    registry.register("1", broken)
    registry.register("1", healthy)

    delivered = await registry.push_to_user("1", "task-cancelled", {})

    assert delivered == 1
    assert registry.is_connected("1") is True
    assert await registry.push_to_user("1", "task-cancelled", {}) == 1
    assert broken.send_json.await_count == 1


@pytest.mark.unit
async def test_slow_socket_times_out(registry: ConnectionRegistry, monkeypatch) -> None:
    monkeypatch.setattr(live_channel, "PUSH_TIMEOUT_SECONDS", 0.01)

    async def hang(*_args, **_kwargs):
        await asyncio.sleep(1)

    slow = AsyncMock()
    slow.send_json.side_effect = hang
    registry.register("1", slow)

    assert await registry.push_to_user("1", "task-assigned", {}) == 0
    assert registry.is_connected("1") is False


@pytest.mark.unit
async def test_broadcast(registry: ConnectionRegistry) -> None:
    first, second = AsyncMock(), AsyncMock()
    registry.register("1", first)
    registry.register("2", second)

    assert await registry.broadcast("stale-sweep-completed", {"cancelled": 3}) == 2


@pytest.mark.unit
def test_unregister_last_socket(registry: ConnectionRegistry) -> None:
    socket = AsyncMock()
    registry.register("1", socket)

    registry.unregister("1", socket)
    registry.unregister("1", socket)

    assert registry.connected_user_ids() == []
