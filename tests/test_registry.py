import asyncio

import pytest

from src.backend.app.core.registry import (
    ConnectionRegistry,
    StreamBackloggedError,
    StreamClosedError,
    StreamHandle,
)


@pytest.mark.asyncio
async def test_register_and_snapshot():
    registry = ConnectionRegistry()
    h1, h2 = StreamHandle("alice"), StreamHandle("alice")
    await registry.register("alice", h1)
    await registry.register("alice", h2)
    snap = await registry.snapshot("alice")
    assert len(snap) == 2
    assert snap[0] is h1 and snap[1] is h2
    assert await registry.identities() == ["alice"]
    assert await registry.count("alice") == 2


@pytest.mark.asyncio
async def test_register_same_handle_twice_is_not_duplicated():
    registry = ConnectionRegistry()
    h1 = StreamHandle("alice")
    await registry.register("alice", h1)
    await registry.register("alice", h1)
    assert await registry.snapshot("alice") == (h1,)


@pytest.mark.asyncio
async def test_snapshot_unknown_identity_is_empty():
    registry = ConnectionRegistry()
    assert await registry.snapshot("nobody") == ()
    assert await registry.count() == 0


@pytest.mark.asyncio
async def test_unregister_last_handle_drops_identity():
    registry = ConnectionRegistry()
    h1 = StreamHandle("alice")
    await registry.register("alice", h1)
    assert await registry.unregister("alice", h1) is True
    assert await registry.snapshot("alice") == ()
    assert "alice" not in await registry.identities()


@pytest.mark.asyncio
async def test_double_unregister_is_noop():
    registry = ConnectionRegistry()
    h1, h2 = StreamHandle("bob"), StreamHandle("bob")
    await registry.register("bob", h1)
    await registry.register("bob", h2)
    assert await registry.unregister("bob", h1) is True
    assert await registry.unregister("bob", h1) is False
    assert await registry.snapshot("bob") == (h2,)


@pytest.mark.asyncio
async def test_unregister_removes_exact_handle():
    registry = ConnectionRegistry()
    handles = [StreamHandle("bob") for _ in range(3)]
    for h in handles:
        await registry.register("bob", h)
    await registry.unregister("bob", handles[1])
    assert await registry.snapshot("bob") == (handles[0], handles[2])
    # an unknown handle never matches a registered one
    await registry.unregister("bob", StreamHandle("bob"))
    assert await registry.count("bob") == 2


@pytest.mark.asyncio
async def test_close_all_ends_streams_and_clears_entry():
    registry = ConnectionRegistry()
    h1 = StreamHandle("dave")
    other = StreamHandle("erin")
    await registry.register("dave", h1)
    await registry.register("erin", other)

    assert await registry.close_all("dave") == 1
    assert h1.alive is False
    assert await h1.read(timeout=1) is None
    assert "dave" not in await registry.identities()
    assert await registry.unregister("dave", h1) is False
    assert other.alive is True
    assert await registry.close_all("dave") == 0


@pytest.mark.asyncio
async def test_concurrent_register_and_unregister_keep_every_handle():
    registry = ConnectionRegistry()
    handles = [StreamHandle("carol") for _ in range(50)]
    await asyncio.gather(*(registry.register("carol", h) for h in handles))
    assert await registry.count("carol") == 50

    await asyncio.gather(*(registry.unregister("carol", h) for h in handles[::2]))
    snap = await registry.snapshot("carol")
    assert list(snap) == handles[1::2]
    assert len({id(h) for h in snap}) == len(snap)

    await asyncio.gather(*(registry.unregister("carol", h) for h in handles))
    assert await registry.identities() == []


@pytest.mark.asyncio
async def test_connect_unregisters_on_normal_exit():
    registry = ConnectionRegistry()
    async with registry.connect("alice") as handle:
        assert await registry.snapshot("alice") == (handle,)
    assert await registry.identities() == []
    assert handle.alive is False


@pytest.mark.asyncio
async def test_connect_unregisters_when_body_raises():
    registry = ConnectionRegistry()
    with pytest.raises(ValueError):
        async with registry.connect("alice"):
            raise ValueError("boom")
    assert await registry.count() == 0


@pytest.mark.asyncio
async def test_connect_unregisters_when_task_cancelled():
    registry = ConnectionRegistry()
    entered = asyncio.Event()

    async def reader():
        async with registry.connect("alice") as handle:
            entered.set()
            await handle.read()

    task = asyncio.create_task(reader())
    await entered.wait()
    assert await registry.count("alice") == 1
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert await registry.count() == 0


@pytest.mark.asyncio
async def test_connect_after_close_all_is_safe():
    registry = ConnectionRegistry()
    async with registry.connect("dave") as handle:
        await registry.close_all("dave")
        assert await handle.read(timeout=1) is None
    assert await registry.identities() == []


@pytest.mark.asyncio
async def test_close_ends_everything():
    registry = ConnectionRegistry()
    handles = [StreamHandle("a"), StreamHandle("a"), StreamHandle("b")]
    for h in handles:
        await registry.register(h.identity, h)
    await registry.close()
    assert await registry.count() == 0
    assert all(not h.alive for h in handles)


@pytest.mark.asyncio
async def test_handle_delivers_buffered_chunks_before_end():
    handle = StreamHandle("alice")
    handle.write(b"one")
    handle.write(b"two")
    handle.close()
    handle.close()
    assert await handle.read() == b"one"
    assert await handle.read() == b"two"
    assert await handle.read() is None
    assert await handle.read() is None


@pytest.mark.asyncio
async def test_handle_write_after_close_raises():
    handle = StreamHandle("alice")
    handle.close()
    with pytest.raises(StreamClosedError):
        handle.write(b"late")


@pytest.mark.asyncio
async def test_handle_backlog_limit():
    handle = StreamHandle("alice", max_buffered=2)
    handle.write(b"1")
    handle.write(b"2")
    with pytest.raises(StreamBackloggedError):
        handle.write(b"3")
    assert await handle.read() == b"1"
    handle.write(b"3")
    assert handle.pending == 2


@pytest.mark.asyncio
async def test_handle_read_times_out_when_idle():
    handle = StreamHandle("alice")
    with pytest.raises(asyncio.TimeoutError):
        await handle.read(timeout=0.01)
    handle.write(b"later")
    assert await handle.read(timeout=1) == b"later"
