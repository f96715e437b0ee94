"""Event bus for wizard notifications.

The controller publishes an event for every step change, pre-fill,
analysis outcome and submission; the API relays them to the browser
over SSE, where they become the operator's toast messages.

A process is finished once it emits ``submitted``. The controller then
releases its channel: subscribers still reading get every event up to
and including ``submitted``, and the history is dropped when the last
of them leaves.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import structlog

from contract_packet.models import ProcessEvent

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

EVENT_PROCESS_STARTED = "process_started"
EVENT_STEP_CHANGED = "step_changed"
EVENT_TRANSITION_REFUSED = "transition_refused"
EVENT_SOURCE_CHANGED = "source_changed"
EVENT_BUYER_TYPE_CHANGED = "buyer_type_changed"
EVENT_TEMPLATE_LOADED = "template_loaded"
EVENT_PHOTO_VERIFIED = "photo_verified"
EVENT_CONTRACT_EXTRACTED = "contract_extracted"
EVENT_DOCUMENT_ATTACHED = "document_attached"
EVENT_DOCUMENT_REMOVED = "document_removed"
EVENT_DOCUMENT_ANALYZED = "document_analyzed"
EVENT_ANALYSIS_DISCARDED = "analysis_discarded"
EVENT_FIELDS_PREFILLED = "fields_prefilled"
EVENT_SUBMITTED = "submitted"
EVENT_ERROR = "error"

# Events after which a process emits nothing more.
TERMINAL_EVENTS = frozenset({EVENT_SUBMITTED})


@dataclass
class _Channel:
    """Events and live readers of one process."""

    history: list[ProcessEvent] = field(default_factory=list)
    queues: list[asyncio.Queue[ProcessEvent | None]] = field(default_factory=list)
    released: bool = False


class ProcessEventStream:
    """In-memory pub/sub of :class:`ProcessEvent` per process.

    A reader that joins mid-process first gets the events it missed, so
    a browser reconnecting after a reload sees the toasts again.
    """

    def __init__(self, max_queue_size: int = 256) -> None:
        self._channels: dict[str, _Channel] = {}
        self._max_queue_size = max_queue_size

    def _channel(self, process_id: str) -> _Channel:
        return self._channels.setdefault(process_id, _Channel())

    def _drop_if_idle(self, process_id: str, channel: _Channel) -> None:
        if channel.released and not channel.queues and self._channels.get(process_id) is channel:
            del self._channels[process_id]
            logger.debug(
                "process_events_dropped",
                process_id=process_id,
                events=len(channel.history),
            )

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def emit(
        self,
        process_id: str,
        event_type: str,
        data: dict[str, Any] | None = None,
        message: str = "",
    ) -> ProcessEvent:
        """Record an event for *process_id* and hand it to every live reader."""
        event = ProcessEvent(
            event_type=event_type,
            process_id=process_id,
            data=data or {},
            message=message,
            timestamp=datetime.now(tz=timezone.utc),
        )
        channel = self._channel(process_id)
        channel.history.append(event)

        for queue in channel.queues:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(
                    "event_queue_full",
                    process_id=process_id,
                    event_type=event_type,
                )

        logger.debug(
            "event_emitted",
            process_id=process_id,
            event_type=event_type,
            subscribers=len(channel.queues),
        )
        return event

    # ------------------------------------------------------------------
    # Subscribing
    # ------------------------------------------------------------------

    async def subscribe(self, process_id: str) -> AsyncIterator[ProcessEvent]:
        """Yield past and then live events of *process_id*.

        Ends with the ``submitted`` event or when :meth:`close` is called.
        """
        channel = self._channel(process_id)
        queue: asyncio.Queue[ProcessEvent | None] = asyncio.Queue(maxsize=self._max_queue_size)
        channel.queues.append(queue)
        # Events emitted while the backlog is replayed arrive through the queue.
        backlog = list(channel.history)

        try:
            for event in backlog:
                yield event
                if event.event_type in TERMINAL_EVENTS:
                    return

            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
                if event.event_type in TERMINAL_EVENTS:
                    break
        finally:
            if queue in channel.queues:
                channel.queues.remove(queue)
            self._drop_if_idle(process_id, channel)

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def close(self, process_id: str) -> None:
        """Stop every reader of *process_id*; the history is kept."""
        channel = self._channels.get(process_id)
        if channel is None:
            return
        for queue in channel.queues:
            try:
                queue.put_nowait(None)
            except asyncio.QueueFull:
                logger.warning("event_queue_full", process_id=process_id, event_type="close")
        channel.queues.clear()
        self._drop_if_idle(process_id, channel)

    def release(self, process_id: str) -> None:
        """Forget *process_id* once its current readers have finished."""
        channel = self._channels.get(process_id)
        if channel is None:
            return
        channel.released = True
        self._drop_if_idle(process_id, channel)

    def get_history(self, process_id: str) -> list[ProcessEvent]:
        channel = self._channels.get(process_id)
        return list(channel.history) if channel else []

    def clear(self, process_id: str) -> None:
        self.close(process_id)
        self._channels.pop(process_id, None)

    def tracked_processes(self) -> list[str]:
        return list(self._channels)
