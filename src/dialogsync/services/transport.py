"""Message transport collaborators.

The transport delivers already-decoded messages in order and accepts outbound
control messages. Connecting, reconnecting and framing live behind it.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Generic, Literal, Optional, Protocol, TypeVar

import anyio

from dialogsync.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

ConnectionStatus = Literal["connecting", "connected", "disconnected", "error"]


@dataclass(frozen=True)
class ConnectionState:
    status: ConnectionStatus
    error: Optional[str] = None

    @property
    def unauthorized(self) -> bool:
        return self.status == "error" and (self.error or "").strip().lower() == "unauthorized"


class Subscription(Protocol[T]):
    def stream(self) -> AsyncIterator[T]: ...

    def cancel(self) -> None: ...


class Transport(Protocol):
    def subscribe(self) -> Subscription[Any]: ...

    def subscribe_connection_state(self) -> Subscription[ConnectionState]: ...

    def send_raw(self, message: dict[str, Any]) -> None: ...


_CLOSED = object()


class QueueSubscription(Generic[T]):
    """Subscription fed through an asyncio queue."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self.cancelled = False

    def put(self, item: T) -> None:
        if not self.cancelled:
            self._queue.put_nowait(item)

    def close(self) -> None:
        self._queue.put_nowait(_CLOSED)

    def cancel(self) -> None:
        if not self.cancelled:
            self.cancelled = True
            self._queue.put_nowait(_CLOSED)

    async def stream(self) -> AsyncIterator[T]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED or self.cancelled:
                return
            yield item


class InMemoryTransport:
    """Transport driven by the caller: push messages in, read sent messages out."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self._messages: list[QueueSubscription[Any]] = []
        self._states: list[QueueSubscription[ConnectionState]] = []

    def subscribe(self) -> QueueSubscription[Any]:
        sub: QueueSubscription[Any] = QueueSubscription()
        self._messages.append(sub)
        return sub

    def subscribe_connection_state(self) -> QueueSubscription[ConnectionState]:
        sub: QueueSubscription[ConnectionState] = QueueSubscription()
        self._states.append(sub)
        return sub

    def send_raw(self, message: dict[str, Any]) -> None:
        self.sent.append(message)

    def sent_types(self) -> list[str]:
        return [str(m.get("type")) for m in self.sent]

    def push(self, message: Any) -> None:
        for sub in self._messages:
            sub.put(message)

    def push_connection_state(self, state: ConnectionState) -> None:
        for sub in self._states:
            sub.put(state)

    def close(self) -> None:
        for sub in [*self._messages, *self._states]:
            sub.close()


class _ReplaySubscription:
    def __init__(self, path: Path) -> None:
        self._path = path
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    async def stream(self) -> AsyncIterator[Any]:
        async with await anyio.open_file(self._path, encoding="utf-8") as fh:
            line_no = 0
            async for line in fh:
                line_no += 1
                if self.cancelled:
                    return
                text = line.strip()
                if not text or text.startswith("#"):
                    continue
                try:
                    yield json.loads(text)
                except json.JSONDecodeError:
                    logger.warning("replay_line_undecodable", path=str(self._path), line=line_no)
                    yield text


class _StaticStateSubscription:
    def __init__(self, states: list[ConnectionState]) -> None:
        self._states = states
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    async def stream(self) -> AsyncIterator[ConnectionState]:
        for state in self._states:
            if self.cancelled:
                return
            yield state


class JsonlReplayTransport:
    """Replays a recorded message log, one JSON object per line.

    Blank lines and ``#`` comments are skipped. Lines that are not JSON are
    passed through as text and get rejected at the message boundary.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.sent: list[dict[str, Any]] = []

    def subscribe(self) -> _ReplaySubscription:
        return _ReplaySubscription(self.path)

    def subscribe_connection_state(self) -> _StaticStateSubscription:
        return _StaticStateSubscription([ConnectionState("connected")])

    def send_raw(self, message: dict[str, Any]) -> None:
        logger.debug("replay_outbound_message", message_type=message.get("type"))
        self.sent.append(message)
