"""
Fan-out of telemetry frames to connected observers.

Each observer owns a bounded outbound queue drained by its own sender
task, so publishing only ever enqueues. A slow or stalled observer fills
its own queue and is then handled by the overflow policy; it never holds
up the simulation cycle or any other observer.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set

from config.settings import OverflowPolicy
from realtime.protocol import TELEMETRY_EVENT, TelemetryFrame

logger = logging.getLogger(__name__)

# RFC 6455: endpoint is going away / policy violation
CLOSE_GOING_AWAY = 1001
CLOSE_TRY_AGAIN_LATER = 1013
CLOSE_TIMEOUT_SECONDS = 2.0


class Transport(Protocol):
    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class ObserverConnection:
    """
    One authenticated WebSocket client.

    Attributes:
        connection_id: Random id used in logs.
        identity: Whoever the credential verifier said this is.
        subscriptions: Robot ids the client asked for. Recorded only;
            every observer receives every frame.
        dropped: Messages discarded under the drop_oldest policy.
    """

    def __init__(
        self,
        transport: Transport,
        identity: Any = None,
        queue_size: int = 64,
        policy: OverflowPolicy = OverflowPolicy.DROP_OLDEST,
    ):
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self.connection_id = uuid.uuid4().hex
        self.transport = transport
        self.identity = identity
        self.policy = OverflowPolicy(policy)
        self.subscriptions: Set[str] = set()
        self.dropped = 0
        self.sent = 0
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._sender: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._sender is None:
            self._sender = asyncio.create_task(
                self._drain(), name=f"observer-sender-{self.connection_id}"
            )

    def enqueue(self, message: Dict[str, Any]) -> bool:
        """
        Queue a message without blocking.

        Returns:
            False if the observer is closed or was just disconnected for
            overflowing, True otherwise.
        """
        if self._closed:
            return False
        try:
            self._queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            pass

        if self.policy == OverflowPolicy.DISCONNECT:
            logger.warning(
                f"Observer {self.connection_id} outbound queue full, disconnecting",
                extra={"extra_data": {
                    "connection_id": self.connection_id,
                    "queue_size": self._queue.maxsize,
                }}
            )
            self._closed = True
            return False

        self._queue.get_nowait()
        self.dropped += 1
        self._queue.put_nowait(message)
        if self.dropped == 1 or self.dropped % 100 == 0:
            logger.warning(
                f"Observer {self.connection_id} is lagging, dropped {self.dropped} messages",
                extra={"extra_data": {
                    "connection_id": self.connection_id,
                    "dropped": self.dropped,
                }}
            )
        return True

    async def _drain(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self.transport.send_json(message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.info(
                    f"Send to observer {self.connection_id} failed: {e}",
                    extra={"extra_data": {"connection_id": self.connection_id, "error": str(e)}}
                )
                self._closed = True
                return
            self.sent += 1

    async def close(self, code: int = CLOSE_GOING_AWAY) -> None:
        self._closed = True
        if self._sender is not None and not self._sender.done():
            self._sender.cancel()
            try:
                await self._sender
            except asyncio.CancelledError:
                pass
        try:
            await asyncio.wait_for(self.transport.close(code=code), timeout=CLOSE_TIMEOUT_SECONDS)
        except Exception as e:
            # already closed by the peer, or the close handshake stalled
            logger.debug(
                f"Closing observer {self.connection_id} raised: {e}",
                extra={"extra_data": {"connection_id": self.connection_id}}
            )


class BroadcastHub:
    """
    Registry of observers and the single place frames are fanned out from.

    Publishing iterates a snapshot of the registry, so observers joining
    or leaving mid-publish never disturb delivery to the rest.
    """

    def __init__(self):
        self._connections: Dict[str, ObserverConnection] = {}
        self._lock = asyncio.Lock()
        self._reaping: Set[asyncio.Task] = set()
        self.dropped_total = 0

    async def register(self, connection: ObserverConnection) -> None:
        async with self._lock:
            self._connections[connection.connection_id] = connection
        connection.start()
        logger.info(
            f"Observer connected. Total observers: {len(self._connections)}",
            extra={"extra_data": {
                "connection_id": connection.connection_id,
                "total_observers": len(self._connections),
            }}
        )

    async def unregister(self, connection: ObserverConnection, code: int = CLOSE_GOING_AWAY) -> None:
        async with self._lock:
            removed = self._connections.pop(connection.connection_id, None)
        await connection.close(code=code)
        if removed is not None:
            logger.info(
                f"Observer disconnected. Total observers: {len(self._connections)}",
                extra={"extra_data": {
                    "connection_id": connection.connection_id,
                    "total_observers": len(self._connections),
                    "sent": connection.sent,
                    "dropped": connection.dropped,
                }}
            )

    async def snapshot(self) -> List[ObserverConnection]:
        async with self._lock:
            return list(self._connections.values())

    def get_connection_count(self) -> int:
        return len(self._connections)

    async def publish(self, event: str, frame: TelemetryFrame) -> int:
        return await self.publish_many([frame], event=event)

    async def publish_many(
        self, frames: Iterable[TelemetryFrame], event: str = TELEMETRY_EVENT
    ) -> int:
        """
        Enqueue one message per frame for every registered observer.

        Returns:
            Number of messages enqueued across all observers.
        """
        messages = [frame.to_message(event) for frame in frames]
        if not messages:
            return 0

        observers = await self.snapshot()
        enqueued = 0
        failed: List[ObserverConnection] = []
        for observer in observers:
            dropped_before = observer.dropped
            for message in messages:
                if not observer.enqueue(message):
                    failed.append(observer)
                    break
                enqueued += 1
            self.dropped_total += observer.dropped - dropped_before

        for observer in failed:
            self._reap(observer)

        return enqueued

    def _reap(self, observer: ObserverConnection) -> None:
        code = CLOSE_TRY_AGAIN_LATER if observer.policy == OverflowPolicy.DISCONNECT else CLOSE_GOING_AWAY
        task = asyncio.create_task(self.unregister(observer, code=code))
        self._reaping.add(task)
        task.add_done_callback(self._reaping.discard)

    async def close_all(self) -> None:
        async with self._lock:
            observers = list(self._connections.values())
            self._connections.clear()
        for observer in observers:
            await observer.close()
        if self._reaping:
            await asyncio.gather(*self._reaping, return_exceptions=True)
