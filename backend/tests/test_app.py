import httpx
import pytest
from fastapi.testclient import TestClient

import app as server
from assistant.completion import WELCOME_DEGRADED, WELCOME_READY
from assistant.completion import CompletionClient
from assistant.config import Settings
from assistant.errors import LLM_UNAVAILABLE
from assistant.hub import BAD_COMMAND
from assistant.seeding import synthetic_vector
from assistant.vector_store import VectorStore
from conftest import DIM

NDJSON = (
    b'{"message":{"content":"Try the"},"done":false}\n'
    b'not json at all\n'
    b'{"message":{"content":" AirPods Pro."},"done":false}\n'
    b'{"done":true}\n'
)

class AirPodsEmbedder:
    # Every query lands right on the AirPods vector
    async def embed(self, text):
        return synthetic_vector(3, DIM)

    async def aclose(self):
        return None

def wire(llm_handler):
    http = httpx.AsyncClient(base_url="http://llm.test", transport=httpx.MockTransport(llm_handler))
    llm = CompletionClient("http://llm.test", "llama3.2:latest", {"temperature": 0.1}, client=http)
    server.configure(VectorStore.in_memory(), llm, AirPodsEmbedder(), Settings(VECTOR_SIZE=DIM))

@pytest.fixture
def client():
    wire(lambda request: httpx.Response(200, content=NDJSON))
    with TestClient(server.app) as c:
        yield c

def seed(c):
    r = c.post("/collections/init", params={"mode": "synthetic"})
    assert r.status_code == 200
    return r.json()

def test_version_and_health(client):
    assert client.get("/version").json() == {"version": server.APP_VERSION}
    assert client.get("/health").json()["catalog_size"] == 0

def test_init_then_ready(client):
    assert client.get("/ready").json() == {"ready": False}
    report = seed(client)
    assert report["inserted"] == 10
    assert report["mode"] == "synthetic"
    assert client.get("/ready").json() == {"ready": True}
    assert sorted(client.get("/collections").json()["collections"]) == ["documents", "products"]
    # Seeding twice leaves the data alone
    assert seed(client)["skipped"] is True

def test_meta_and_products(client):
    seed(client)
    meta = client.get("/meta").json()
    assert meta["categories"] == ["Clothing", "Electronics", "Footwear"]
    assert meta["price_min"] == 89.99
    assert meta["price_max"] == 1199.0
    assert client.get("/products/3").json()["name"] == "AirPods Pro"
    assert client.get("/products/99").status_code == 404

def test_semantic_search(client):
    seed(client)
    body = client.get("/search", params={"q": "earbuds", "top_k": 2}).json()
    assert body["matches"][0]["product"]["name"] == "AirPods Pro"
    assert len(body["matches"]) == 2

def test_drop_collections(client):
    seed(client)
    assert sorted(client.delete("/collections").json()["deleted"]) == ["documents", "products"]
    assert client.get("/ready").json() == {"ready": False}
    status = client.get("/collections/status").json()
    assert status["is_connected"] is True

def test_debug_config_and_llm_status(client):
    cfg = client.get("/debug/config").json()
    assert cfg["scroll_limit"] == 100
    assert cfg["sampling"]["temperature"] == 0.1

# Chat socket: welcome, echo, typing, streamed answer, typing off
def test_chat_streams_answer(client):
    seed(client)
    with client.websocket_connect("/chat") as ws:
        welcome = ws.receive_json()
        assert welcome["type"] == "receive_message"
        assert welcome["sender"] == "assistant"
        assert welcome["text"] == WELCOME_READY

        ws.send_json({"type": "send_message", "text": "electronics under $300"})
        events = [ws.receive_json() for _ in range(7)]
    assert [e["type"] for e in events] == [
        "receive_message", "typing", "start_message", "receive_chunk", "receive_chunk", "finalize_message", "typing",
    ]
    assert events[0]["text"] == "electronics under $300"
    assert events[0]["sender"] == "user"
    assert events[1]["value"] is True
    assert "timestamp" in events[2]
    assert [events[3]["text"], events[4]["text"]] == ["Try the", " AirPods Pro."]
    assert events[6]["value"] is False

def test_chat_degraded_welcome_and_bad_command(client):
    with client.websocket_connect("/chat") as ws:
        assert ws.receive_json()["text"] == WELCOME_DEGRADED
        ws.send_text("not a command")
        assert ws.receive_json() == {"type": "receive_error", "message": BAD_COMMAND}
        ws.send_bytes(b"\x00\x01")
        assert ws.receive_json() == {"type": "receive_error", "message": BAD_COMMAND}
        ws.send_json({"type": "send_message", "text": "hi"})
        assert ws.receive_json()["type"] == "receive_message"

def test_chat_llm_down_gives_one_friendly_error():
    wire(lambda request: httpx.Response(503, text="loading model"))
    with TestClient(server.app) as c:
        with c.websocket_connect("/chat") as ws:
            ws.receive_json()
            ws.send_json({"type": "send_message", "text": "hello"})
            events = [ws.receive_json() for _ in range(4)]
    assert [e["type"] for e in events] == ["receive_message", "typing", "receive_error", "typing"]
    assert events[2]["message"] == LLM_UNAVAILABLE
    assert events[3]["value"] is False
