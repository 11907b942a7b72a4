"""Relay for the model's newline delimited JSON stream

AWAITING_FIRST_CONTENT -> STREAMING -> DONE, or ABORTED when the transport dies
or the client goes away. Events reach the sink in the order their lines arrived
"""

from __future__ import annotations
import json
from enum import Enum
from typing import AsyncIterator, List, Optional, Protocol

from .errors import LLM_UNAVAILABLE, TransportError
from .logger import get_logger
from .models import StreamEvent

logger = get_logger(__name__)


class SinkClosed(Exception):
    """The client connection is gone, nothing more can be delivered"""


class EventSink(Protocol):
    async def send(self, event: StreamEvent) -> None: ...


class RelayState(str, Enum):
    AWAITING_FIRST_CONTENT = "awaiting_first_content"
    STREAMING = "streaming"
    DONE = "done"
    ABORTED = "aborted"


def _content_of(record: dict) -> Optional[str]:
    message = record.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str):
            return content
    return None


class StreamRelay:
    def __init__(self, sink: EventSink):
        self.sink = sink
        self.state = RelayState.AWAITING_FIRST_CONTENT
        self.parts: List[str] = []
        self.skipped_lines = 0

    @property
    def full_text(self) -> str:
        return "".join(self.parts)

    @property
    def finished(self) -> bool:
        return self.state in (RelayState.DONE, RelayState.ABORTED)

    async def _emit(self, event: StreamEvent) -> None:
        await self.sink.send(event)

    async def _finish(self) -> None:
        await self._emit(StreamEvent.done())
        self.state = RelayState.DONE
        logger.info("Streaming completed. Full response length: %d", len(self.full_text))

    async def _abort(self, message: str) -> None:
        self.state = RelayState.ABORTED
        try:
            await self._emit(StreamEvent.error(message))
        except SinkClosed:
            pass

    async def handle_line(self, line: str) -> None:
        """Process one raw line. Safe to call only while not finished"""
        if not line or not line.strip():
            return
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            self.skipped_lines += 1
            logger.warning("Failed to parse streaming line %r: %s", line[:200], e)
            return
        if not isinstance(record, dict):
            self.skipped_lines += 1
            logger.warning("Ignoring non object streaming line: %r", line[:200])
            return

        if record.get("done") is True:
            await self._finish()
            return

        if record.get("error"):
            # The model server gave up half way, nothing after this is usable
            logger.error("Model server reported an error mid-stream: %s", record["error"])
            await self._abort(LLM_UNAVAILABLE)
            return

        content = _content_of(record)
        if not content:
            return
        if self.state == RelayState.AWAITING_FIRST_CONTENT:
            await self._emit(StreamEvent.start())
            self.state = RelayState.STREAMING
        self.parts.append(content)
        await self._emit(StreamEvent.chunk(content))

    async def relay(self, lines: AsyncIterator[str]) -> RelayState:
        try:
            async for line in lines:
                await self.handle_line(line)
                if self.finished:
                    break
            else:
                # Ran out of lines without a done record, close the message anyway
                await self._finish()
        except SinkClosed:
            logger.info("Client went away mid-stream after %d characters", len(self.full_text))
            self.state = RelayState.ABORTED
        except TransportError:
            logger.exception("Stream from the model server broke off")
            await self._abort(LLM_UNAVAILABLE)
        return self.state
