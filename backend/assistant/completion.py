"""Prompt building and the streaming call to the model server

The system prompt carries the grounding rules and the user prompt carries the
catalog block, so the model only ever answers from what retrieval found
"""

from __future__ import annotations
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from .config import Settings, check_base_url
from .errors import LLM_UNAVAILABLE, TransportError
from .logger import get_logger
from .models import RagContext, StreamEvent
from .rag import RagService
from .stream import EventSink, RelayState, StreamRelay

logger = get_logger(__name__)

SYSTEM_PROMPT = """You are a professional ecommerce store assistant. Follow these rules STRICTLY:

CRITICAL RULES:
1. Use ONLY the information provided in the STORE CATALOG INFORMATION section
2. If information is not in the provided context, say "I don't have that information in our current catalog"
3. NEVER make up product names, prices, or categories that aren't listed
4. NEVER add products from your general knowledge
5. For categories, list ONLY the categories shown in the context
6. For product counts, use ONLY the numbers provided in the context

RESPONSE STYLE:
- Be helpful and conversational
- Use the exact product names and prices from the context
- If asked about categories, list only the categories from the context
- If asked about products, use only products listed under MATCHING PRODUCTS or FEATURED PRODUCTS
- When you don't have specific information, be honest about it
"""

END_MARKER = "=== END OF STORE INFORMATION ==="
NO_CATALOG_BLOCK = "=== STORE CATALOG INFORMATION ===\nNo catalog information is currently available."
ANSWER_RULE = (
    "Respond based ONLY on the store information provided above. If the information needed to answer "
    "the question is not available above, clearly state that you don't have that information."
)

WELCOME_READY = """Hello! I'm your store assistant. I can help you with:

- Product information: our products, categories, and pricing
- Product search: find specific items you're looking for
- Catalog questions: our inventory and categories

I use only information from our actual product catalog, so you'll get accurate, up-to-date answers!

What can I help you find today?"""

WELCOME_DEGRADED = """Hello! I'm your store assistant, but I currently cannot access our product catalog.

Please initialize the product database first, then I'll be able to help you with:
- Product searches and recommendations
- Category information
- Pricing and availability

How else can I assist you today?"""


def build_user_prompt(message: str, rag_context: RagContext) -> str:
    block = rag_context.context_text.rstrip("\n") if rag_context.has_results else NO_CATALOG_BLOCK
    return "\n".join([
        block,
        END_MARKER,
        "",
        f"CUSTOMER QUESTION: {message}",
        "",
        ANSWER_RULE,
    ])


def build_messages(message: str, rag_context: RagContext) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_user_prompt(message, rag_context)},
    ]


class CompletionClient:
    """Streaming chat against an Ollama compatible /api/chat"""

    def __init__(
        self,
        base_url: str,
        model: str,
        options: Optional[Dict[str, Any]] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = check_base_url(base_url, "LLM base URL")
        self.model = model
        self.options = dict(options or {})
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompletionClient":
        return cls(settings.LLM_BASE_URL, settings.LLM_MODEL, settings.sampling_options, settings.LLM_TIMEOUT)

    def payload(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        return {"model": self.model, "messages": messages, "stream": True, "options": self.options}

    @staticmethod
    async def _lines(resp: httpx.Response) -> AsyncIterator[str]:
        try:
            async for line in resp.aiter_lines():
                yield line
        except httpx.HTTPError as e:
            raise TransportError(f"Stream interrupted: {e}") from e

    @asynccontextmanager
    async def stream_chat(self, messages: List[Dict[str, str]]) -> AsyncIterator[AsyncIterator[str]]:
        """Open the streaming request and hand back its lines

        The response is closed when the block exits, however it exits
        """
        try:
            async with self._client.stream("POST", "/api/chat", json=self.payload(messages)) as resp:
                if resp.status_code >= 400:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                    logger.error("LLM API error: %s - %s", resp.status_code, body[:500])
                    raise TransportError(f"LLM returned {resp.status_code}", status_code=resp.status_code)
                lines = self._lines(resp)
                try:
                    yield lines
                finally:
                    await lines.aclose()
        except httpx.HTTPError as e:
            raise TransportError(f"LLM request failed: {e}") from e

    async def check(self) -> Dict[str, Any]:
        """Server version and whether the configured model is pulled"""
        try:
            version = await self._client.get("/api/version")
            if version.status_code >= 400:
                return {"success": False, "error": f"Failed to connect to the LLM service: {version.status_code}", "base_url": self.base_url}
            show = await self._client.post("/api/show", json={"name": self.model})
        except httpx.HTTPError:
            logger.exception("Error testing LLM connection")
            return {"success": False, "error": "Failed to connect to the LLM service", "base_url": self.base_url}
        return {
            "success": True,
            "version": version.json().get("version"),
            "model": self.model,
            "model_status": "Available" if show.status_code < 400 else "Not Found",
            "base_url": self.base_url,
        }

    async def aclose(self) -> None:
        await self._client.aclose()


class Orchestrator:
    """Runs one chat message end to end: retrieve, prompt, stream back"""

    def __init__(self, rag: RagService, client: CompletionClient):
        self.rag = rag
        self.client = client

    async def welcome_message(self) -> str:
        return WELCOME_READY if await self.rag.is_ready() else WELCOME_DEGRADED

    async def answer(self, message: str, sink: EventSink) -> RelayState:
        # Always ground first, there is no path to the model that skips retrieval
        rag_context = await self.rag.get_relevant_context(message)
        messages = build_messages(message, rag_context)
        relay = StreamRelay(sink)
        logger.info("Sending RAG-enhanced request to %s (context has_results=%s)", self.client.model, rag_context.has_results)
        try:
            async with self.client.stream_chat(messages) as lines:
                return await relay.relay(lines)
        except TransportError:
            # One error event and stop. No retry here
            logger.exception("Completion request failed")
            await sink.send(StreamEvent.error(LLM_UNAVAILABLE))
            return RelayState.ABORTED
