"""Rally event stream.

Events are advisory: the orchestrator hands them to an EventSink that never
blocks and never raises. A slow or absent observer loses events; it never
stalls or fails the rally.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Union

from prrally_core.models import ReviewerOutput, RevieweeOutput
from prrally_store.models import RallyState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateChanged:
    state: RallyState


@dataclass(frozen=True)
class IterationStarted:
    iteration: int


@dataclass(frozen=True)
class ReviewCompleted:
    review: ReviewerOutput


@dataclass(frozen=True)
class FixCompleted:
    fix: RevieweeOutput


@dataclass(frozen=True)
class ClarificationNeeded:
    question: str


@dataclass(frozen=True)
class PermissionNeeded:
    action: str
    reason: str


@dataclass(frozen=True)
class Approved:
    summary: str


@dataclass(frozen=True)
class Error:
    message: str


@dataclass(frozen=True)
class Log:
    message: str


# Agent progress, passed through from the agent backends.


@dataclass(frozen=True)
class AgentThinking:
    content: str


@dataclass(frozen=True)
class AgentToolUse:
    tool_name: str
    input_summary: str


@dataclass(frozen=True)
class AgentToolResult:
    tool_name: str
    result_summary: str


@dataclass(frozen=True)
class AgentText:
    text: str


RallyEvent = Union[
    StateChanged,
    IterationStarted,
    ReviewCompleted,
    FixCompleted,
    ClarificationNeeded,
    PermissionNeeded,
    Approved,
    Error,
    Log,
    AgentThinking,
    AgentToolUse,
    AgentToolResult,
    AgentText,
]


class EventSink:
    """Bounded, drop-on-full channel from the rally to one observer.

    send() is safe to call from synchronous code on the event loop thread.
    Consumers iterate with ``async for event in sink``; iteration ends once
    the sink is closed and everything queued has been delivered.
    """

    POLL_INTERVAL = 0.1

    def __init__(self, maxsize: int = 256):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: RallyEvent) -> bool:
        """Queue event if possible. Returns False when it was dropped."""
        if self._closed:
            self.dropped += 1
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.debug("Event sink full; dropped %s", type(event).__name__)
            return False
        return True

    def close(self) -> None:
        self._closed = True

    def drain(self) -> list[RallyEvent]:
        """Return everything currently queued without waiting."""
        events = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def __aiter__(self):
        return self

    async def __anext__(self) -> RallyEvent:
        while True:
            if self._closed and self._queue.empty():
                raise StopAsyncIteration
            try:
                return await asyncio.wait_for(self._queue.get(), timeout=self.POLL_INTERVAL)
            except asyncio.TimeoutError:
                continue
