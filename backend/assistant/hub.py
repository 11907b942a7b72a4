"""Chat over a WebSocket

One ChatSession per connection. The browser sends {"type": "send_message", "text": ...}
and gets back receive_message, typing, start_message, receive_chunk, finalize_message
and receive_error events, in that kind of order, for every message
"""

from __future__ import annotations
import uuid

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from .completion import Orchestrator
from .errors import GENERIC_ERROR
from .logger import get_logger
from .models import ClientEvent, SendMessage, StreamEvent
from .stream import SinkClosed

logger = get_logger(__name__)

BAD_COMMAND = 'Send messages as {"type": "send_message", "text": "..."}.'


class WebSocketSink:
    """Delivers events to one browser. Raises SinkClosed once it is gone"""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def send_client(self, event: ClientEvent) -> None:
        if self.websocket.client_state != WebSocketState.CONNECTED:
            raise SinkClosed()
        try:
            await self.websocket.send_json(event.to_wire())
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            raise SinkClosed() from e

    async def send(self, event: StreamEvent) -> None:
        await self.send_client(ClientEvent.from_stream(event))


class ChatSession:
    def __init__(self, websocket: WebSocket, orchestrator: Orchestrator):
        self.websocket = websocket
        self.orchestrator = orchestrator
        self.sink = WebSocketSink(websocket)
        self.connection_id = uuid.uuid4().hex[:12]

    async def send_message(self, text: str) -> None:
        # Echo first so the user's bubble shows up before anything else
        await self.sink.send_client(ClientEvent.receive_message(text, "user"))
        await self.sink.send_client(ClientEvent.typing(True))
        try:
            await self.orchestrator.answer(text, self.sink)
        except SinkClosed:
            raise
        except Exception:
            logger.exception("Error in send_message for %s", self.connection_id)
            await self.sink.send_client(ClientEvent.receive_error(GENERIC_ERROR))
        finally:
            await self.sink.send_client(ClientEvent.typing(False))

    async def run(self) -> None:
        await self.websocket.accept()
        logger.info("Client connected: %s", self.connection_id)
        try:
            welcome = await self.orchestrator.welcome_message()
            await self.sink.send_client(ClientEvent.receive_message(welcome, "assistant"))
            while True:
                message = await self.websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                raw = message.get("text")
                try:
                    if raw is None:
                        # Binary frame
                        raise ValueError("no text payload")
                    command = SendMessage.model_validate_json(raw)
                except (ValidationError, ValueError):
                    logger.warning("Bad command from %s: %r", self.connection_id, (raw or message.get("bytes") or b"")[:200])
                    await self.sink.send_client(ClientEvent.receive_error(BAD_COMMAND))
                    continue
                await self.send_message(command.text)
        except (WebSocketDisconnect, SinkClosed):
            pass
        finally:
            logger.info("Client disconnected: %s", self.connection_id)
