from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Tuple

from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)

# In-memory, single-process bookkeeping of open SSE streams keyed by user id.
# Fan-out across several server processes needs a shared broker in front of this.

REGISTRY_KEY = "connection_registry"

_END = None


class StreamClosedError(RuntimeError):
    """Write attempted on a stream whose connection already ended."""


class StreamBackloggedError(RuntimeError):
    """The client is not draining its stream fast enough."""


class StreamHandle:
    """One open server-to-client stream.

    Writers append encoded chunks; the streaming endpoint drains them with
    ``read``. ``close`` lets already-buffered chunks through and then ends
    the stream.
    """

    def __init__(self, identity: str, max_buffered: int = 0):
        self.identity = identity
        self._max_buffered = max_buffered
        self._queue: asyncio.Queue[Optional[bytes]] = asyncio.Queue()
        self._alive = True

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def write(self, chunk: bytes) -> None:
        if not self._alive:
            raise StreamClosedError(f"stream for {self.identity!r} is closed")
        if self._max_buffered and self._queue.qsize() >= self._max_buffered:
            raise StreamBackloggedError(f"stream for {self.identity!r} has {self._queue.qsize()} unread events")
        self._queue.put_nowait(chunk)

    def close(self) -> None:
        if not self._alive:
            return
        self._alive = False
        self._queue.put_nowait(_END)

    async def read(self, timeout: Optional[float] = None) -> Optional[bytes]:
        """Next chunk, or None once the stream has ended.

        Raises asyncio.TimeoutError when nothing arrives within ``timeout``.
        """
        if timeout is None:
            chunk = await self._queue.get()
        else:
            chunk = await asyncio.wait_for(self._queue.get(), timeout)
        if chunk is _END:
            # Stay ended for any later reader
            self._queue.put_nowait(_END)
        return chunk

    def __repr__(self) -> str:
        state = "alive" if self._alive else "closed"
        return f"<StreamHandle {self.identity!r} {state} pending={self.pending}>"


class ConnectionRegistry:
    """Maps a user id to the streams currently open for it."""

    def __init__(self, max_buffered: int = 0):
        self._max_buffered = max_buffered
        self._streams: Dict[str, List[StreamHandle]] = {}
        self._lock = asyncio.Lock()

    async def register(self, identity: str, handle: StreamHandle) -> None:
        async with self._lock:
            handles = self._streams.setdefault(identity, [])
            if not any(h is handle for h in handles):
                handles.append(handle)

    async def unregister(self, identity: str, handle: StreamHandle) -> bool:
        """Drop ``handle``; returns False when it was already gone."""
        async with self._lock:
            handles = self._streams.get(identity)
            if not handles:
                return False
            for index, current in enumerate(handles):
                if current is handle:
                    del handles[index]
                    break
            else:
                return False
            if not handles:
                del self._streams[identity]
            return True

    async def snapshot(self, identity: str) -> Tuple[StreamHandle, ...]:
        async with self._lock:
            return tuple(self._streams.get(identity, ()))

    async def close_all(self, identity: str) -> int:
        async with self._lock:
            handles = self._streams.pop(identity, [])
        for handle in handles:
            handle.close()
        if handles:
            logger.info("Closed %d stream(s) for user %s", len(handles), identity)
        return len(handles)

    async def identities(self) -> List[str]:
        async with self._lock:
            return list(self._streams)

    async def count(self, identity: Optional[str] = None) -> int:
        async with self._lock:
            if identity is not None:
                return len(self._streams.get(identity, ()))
            return sum(len(handles) for handles in self._streams.values())

    async def close(self) -> None:
        async with self._lock:
            streams, self._streams = self._streams, {}
        for handles in streams.values():
            for handle in handles:
                handle.close()

    @asynccontextmanager
    async def connect(self, identity: str) -> AsyncIterator[StreamHandle]:
        """Open a stream for ``identity`` that is unregistered on every exit path."""
        handle = StreamHandle(identity, max_buffered=self._max_buffered)
        await self.register(identity, handle)
        logger.info("Stream opened for user %s", identity)
        try:
            yield handle
        finally:
            handle.close()
            await self.unregister(identity, handle)
            logger.info("Stream closed for user %s", identity)


async def init_registry(app: FastAPI, max_buffered: int = 0) -> ConnectionRegistry:
    registry = ConnectionRegistry(max_buffered=max_buffered)
    app.state.__setattr__(REGISTRY_KEY, registry)
    return registry


async def close_registry(app: FastAPI) -> None:
    registry: Optional[ConnectionRegistry] = getattr(app.state, REGISTRY_KEY, None)
    if registry is not None:
        try:
            await registry.close()
        finally:
            delattr(app.state, REGISTRY_KEY)


def get_registry(request: Request) -> ConnectionRegistry:
    registry: Optional[ConnectionRegistry] = getattr(request.app.state, REGISTRY_KEY, None)
    if registry is None:
        raise RuntimeError("Connection registry not initialized")
    return registry
