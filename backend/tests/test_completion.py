import json
import httpx
import pytest

from assistant.completion import (
    END_MARKER, NO_CATALOG_BLOCK, SYSTEM_PROMPT, WELCOME_DEGRADED, WELCOME_READY,
    CompletionClient, Orchestrator, build_messages, build_user_prompt,
)
from assistant.config import Settings
from assistant.errors import ConfigurationError, LLM_UNAVAILABLE
from assistant.models import RagContext
from assistant.rag import RagService
from assistant.stream import RelayState, SinkClosed
from assistant.tools import CatalogRetriever
from assistant.vector_store import VectorStore
from conftest import ListSink, make_store

NDJSON = (
    b'{"message":{"role":"assistant","content":"We have"},"done":false}\n'
    b'{"message":{"role":"assistant","content":" AirPods Pro."},"done":false}\n'
    b'{"message":{"role":"assistant","content":""},"done":true}\n'
)

def make_client(handler, options=None):
    http = httpx.AsyncClient(base_url="http://llm.test", transport=httpx.MockTransport(handler))
    return CompletionClient("http://llm.test", "llama3.2:latest", options or {"temperature": 0.1}, client=http)

def test_user_prompt_with_context():
    ctx = RagContext(query="q", context_text="=== STORE CATALOG INFORMATION ===\nTotal Products in Store: 1\n", has_results=True)
    prompt = build_user_prompt("do you sell socks?", ctx)
    assert prompt.startswith("=== STORE CATALOG INFORMATION ===\nTotal Products in Store: 1\n" + END_MARKER)
    assert "CUSTOMER QUESTION: do you sell socks?" in prompt
    assert prompt.rstrip().endswith("clearly state that you don't have that information.")

# Without catalog data the prompt says so instead of passing an empty block
def test_user_prompt_without_results():
    ctx = RagContext(query="q", context_text="No products are currently available in our catalog.", has_results=False)
    prompt = build_user_prompt("hi", ctx)
    assert prompt.startswith(NO_CATALOG_BLOCK)

def test_messages_carry_grounding_rules():
    messages = build_messages("hi", RagContext(query="hi", context_text=""))
    assert [m["role"] for m in messages] == ["system", "user"]
    assert messages[0]["content"] == SYSTEM_PROMPT
    assert "NEVER make up product names" in SYSTEM_PROMPT
    assert "I don't have that information in our current catalog" in SYSTEM_PROMPT

def test_sampling_options_come_from_settings():
    settings = Settings(LLM_TEMPERATURE=0.2, LLM_REPEAT_PENALTY=1.3)
    client = CompletionClient.from_settings(settings)
    payload = client.payload([{"role": "user", "content": "x"}])
    assert payload["stream"] is True
    assert payload["model"] == settings.LLM_MODEL
    assert payload["options"] == {"temperature": 0.2, "top_p": 0.9, "repeat_penalty": 1.3, "num_ctx": 1000}

def test_bad_llm_url_fails_at_construction():
    with pytest.raises(ConfigurationError):
        CompletionClient("ftp://llm", "m")

# Full pipeline: retrieval result lands in the request, stream comes back in order
@pytest.mark.asyncio
async def test_answer_streams_grounded_reply(catalog):
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=NDJSON)

    rag = RagService(CatalogRetriever(await make_store(catalog)))
    sink = ListSink()
    state = await Orchestrator(rag, make_client(handler)).answer("electronics under $300", sink)

    assert state == RelayState.DONE
    assert sink.kinds == ["start", "chunk", "chunk", "done"]
    assert seen["path"] == "/api/chat"
    assert seen["body"]["stream"] is True
    user = seen["body"]["messages"][1]["content"]
    assert "• AirPods Pro - $249.00 (Electronics)" in user
    assert "CUSTOMER QUESTION: electronics under $300" in user

# Transport failures: one error event, no retry
@pytest.mark.asyncio
async def test_error_status_emits_single_error(catalog):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, text="out of memory")

    sink = ListSink()
    rag = RagService(CatalogRetriever(await make_store(catalog)))
    state = await Orchestrator(rag, make_client(handler)).answer("hello", sink)
    assert state == RelayState.ABORTED
    assert sink.kinds == ["error"]
    assert sink.events[0].text == LLM_UNAVAILABLE
    assert len(calls) == 1

@pytest.mark.asyncio
async def test_connection_refused_emits_single_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    sink = ListSink()
    rag = RagService(CatalogRetriever(VectorStore.in_memory()))
    await Orchestrator(rag, make_client(handler)).answer("hello", sink)
    assert sink.kinds == ["error"]

@pytest.mark.asyncio
async def test_stream_breaking_mid_way():
    class Broken(httpx.AsyncByteStream):
        async def __aiter__(self):
            yield b'{"message":{"content":"Hi"}}\n'
            raise httpx.ReadError("connection reset")

    sink = ListSink()
    rag = RagService(CatalogRetriever(VectorStore.in_memory()))
    client = make_client(lambda request: httpx.Response(200, stream=Broken()))
    state = await Orchestrator(rag, client).answer("hello", sink)
    assert state == RelayState.ABORTED
    assert sink.kinds == ["start", "chunk", "error"]

# Browser gone after the first chunk: stop reading and release the response
@pytest.mark.asyncio
async def test_closed_sink_releases_upstream_stream():
    pulled = []
    closed = []

    class Recording(httpx.AsyncByteStream):
        async def __aiter__(self):
            for word in ["Hi", " there", " friend"]:
                pulled.append(word)
                yield json.dumps({"message": {"content": word}}).encode() + b"\n"

        async def aclose(self):
            closed.append(True)

    class GoneAfterStart(ListSink):
        async def send(self, event):
            if event.kind.value == "chunk":
                raise SinkClosed()
            await super().send(event)

    sink = GoneAfterStart()
    rag = RagService(CatalogRetriever(VectorStore.in_memory()))
    client = make_client(lambda request: httpx.Response(200, stream=Recording()))
    state = await Orchestrator(rag, client).answer("hello", sink)
    assert state == RelayState.ABORTED
    assert sink.kinds == ["start"]
    assert pulled == ["Hi"]
    assert closed

@pytest.mark.asyncio
async def test_welcome_depends_on_readiness(catalog):
    client = make_client(lambda request: httpx.Response(200, content=NDJSON))
    empty = Orchestrator(RagService(CatalogRetriever(VectorStore.in_memory())), client)
    assert await empty.welcome_message() == WELCOME_DEGRADED
    ready = Orchestrator(RagService(CatalogRetriever(await make_store(catalog))), client)
    assert await ready.welcome_message() == WELCOME_READY

@pytest.mark.asyncio
async def test_check_reports_model_status():
    def handler(request):
        if request.url.path == "/api/version":
            return httpx.Response(200, json={"version": "0.5.1"})
        return httpx.Response(404, json={"error": "model not found"})

    status = await make_client(handler).check()
    assert status["success"] is True
    assert status["version"] == "0.5.1"
    assert status["model_status"] == "Not Found"
