"""Deployment progress channels streamed to clients as server-sent events."""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Optional

logger = logging.getLogger(__name__)

TERMINAL_EVENT_TYPES = frozenset({"complete", "error"})


@dataclass
class ProgressChannel:
    """Buffered events for one deployment id."""
    deployment_id: str
    queue: asyncio.Queue
    created_at: float
    last_activity: float
    finished: bool = False
    last_event: Optional[Dict[str, Any]] = None
    subscribers: int = 0


def format_sse(event: Dict[str, Any]) -> str:
    """Encode one event in server-sent event wire format."""
    return f"data: {json.dumps(event, default=str)}\n\n"


class ProgressRegistry:
    """
    Registry of live progress channels keyed by a caller-chosen deployment id.

    Workflows publish through :meth:`reporter`; HTTP clients consume through
    :meth:`stream`. Channels are removed when their client disconnects, or by
    :meth:`evict_expired` once idle for longer than ``ttl_seconds``. Nothing is
    persisted.
    """

    def __init__(
        self,
        ttl_seconds: float = 900.0,
        queue_size: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.queue_size = queue_size
        self._clock = clock
        self._channels: Dict[str, ProgressChannel] = {}

    def __contains__(self, deployment_id: str) -> bool:
        return deployment_id in self._channels

    def __len__(self) -> int:
        return len(self._channels)

    def open(self, deployment_id: str) -> ProgressChannel:
        """Return the channel for ``deployment_id``, creating it if needed."""
        channel = self._channels.get(deployment_id)
        if channel is None:
            now = self._clock()
            channel = ProgressChannel(
                deployment_id=deployment_id,
                queue=asyncio.Queue(maxsize=self.queue_size),
                created_at=now,
                last_activity=now,
            )
            self._channels[deployment_id] = channel
            logger.debug(f"Opened progress channel {deployment_id}")
        return channel

    def get(self, deployment_id: str) -> Optional[ProgressChannel]:
        return self._channels.get(deployment_id)

    def publish(self, deployment_id: str, event: Dict[str, Any]) -> bool:
        """
        Queue an event for the channel's client.

        When the buffer is full the oldest event is dropped. Events for unknown
        or already finished channels are discarded.

        Returns:
            bool: True if the event was queued
        """
        channel = self._channels.get(deployment_id)
        if channel is None or channel.finished:
            return False

        if channel.queue.full():
            channel.queue.get_nowait()
            logger.debug(f"Progress channel {deployment_id} full, dropped oldest event")
        channel.queue.put_nowait(event)
        channel.last_event = event
        channel.last_activity = self._clock()
        if event.get("type") in TERMINAL_EVENT_TYPES:
            channel.finished = True
        return True

    def reporter(self, deployment_id: Optional[str]) -> Optional[Callable[[Dict[str, Any]], None]]:
        """
        Build a workflow progress callback bound to ``deployment_id``.

        The callback accepts ``{"step", "message", "progress"}`` and publishes
        a ``progress`` event; ``"type"`` may be supplied to send a warning.
        """
        if not deployment_id:
            return None
        self.open(deployment_id)

        def report(update: Dict[str, Any]) -> None:
            self.publish(deployment_id, {
                "type": update.get("type", "progress"),
                "step": update.get("step"),
                "message": update.get("message"),
                "progress": update.get("progress"),
            })

        return report

    def warn(self, deployment_id: Optional[str], message: str, step: Optional[str] = None) -> None:
        if deployment_id:
            self.publish(deployment_id, {"type": "warning", "step": step, "message": message, "progress": None})

    def complete(self, deployment_id: Optional[str], message: str, **data: Any) -> None:
        if deployment_id:
            self.publish(deployment_id, {
                "type": "complete", "step": "done", "message": message, "progress": 100, **data,
            })

    def fail(self, deployment_id: Optional[str], message: str, step: Optional[str] = None) -> None:
        if deployment_id:
            self.publish(deployment_id, {"type": "error", "step": step, "message": message, "progress": None})

    def close(self, deployment_id: str) -> None:
        """Remove a channel, typically because its client disconnected."""
        if self._channels.pop(deployment_id, None) is not None:
            logger.debug(f"Closed progress channel {deployment_id}")

    def evict_expired(self) -> int:
        """Drop channels idle for longer than the TTL."""
        cutoff = self._clock() - self.ttl_seconds
        expired = [
            key for key, channel in self._channels.items()
            if channel.last_activity < cutoff
        ]
        for key in expired:
            del self._channels[key]
        if expired:
            logger.info(f"Evicted {len(expired)} idle progress channels")
        return len(expired)

    async def run_eviction_loop(self, interval_seconds: float) -> None:
        """Evict idle channels every ``interval_seconds`` until cancelled."""
        while True:
            await asyncio.sleep(interval_seconds)
            self.evict_expired()

    async def stream(
        self,
        deployment_id: str,
        keepalive_seconds: float = 15.0,
    ) -> AsyncIterator[str]:
        """
        Yield SSE frames for a deployment until a terminal event is sent.

        The first frame is a ``connected`` event. A comment frame is emitted
        every ``keepalive_seconds`` of silence so proxies keep the connection
        open and disconnects are noticed. The channel is closed when the last
        subscriber finishes or is cancelled.
        """
        channel = self.open(deployment_id)
        channel.subscribers += 1
        try:
            yield format_sse({
                "type": "connected",
                "step": None,
                "message": f"Listening for deployment {deployment_id}",
                "progress": 0,
            })
            while True:
                try:
                    event = await asyncio.wait_for(channel.queue.get(), timeout=keepalive_seconds)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                channel.last_activity = self._clock()
                yield format_sse(event)
                if event.get("type") in TERMINAL_EVENT_TYPES:
                    break
        finally:
            channel.subscribers -= 1
            if channel.subscribers == 0 and self._channels.get(deployment_id) is channel:
                self.close(deployment_id)
