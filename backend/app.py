# FastAPI backend for the store assistant
# Serves the chat socket plus a few endpoints to inspect and seed the vector store
from datetime import datetime
from typing import Optional, Dict, Any
from fastapi import FastAPI, HTTPException, Query, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from assistant.config import Settings, get_settings
from assistant.completion import CompletionClient, Orchestrator
from assistant.embeddings import Embedder, build_embedder
from assistant.errors import TransportError
from assistant.hub import ChatSession
from assistant.logger import get_logger
from assistant.models import Product, SearchResponse
from assistant.rag import RagService
from assistant.seeding import SeedMode, initialize_collections
from assistant.tools import CatalogRetriever, load_catalog
from assistant.vector_store import VectorStore

logger = get_logger("app")

# app

APP_VERSION = "1.0.0"
app = FastAPI(title="Store Assistant API", version=APP_VERSION)

SETTINGS: Settings = get_settings()

# CORS setup for local development with a browser frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=SETTINGS.allowed_origins + ["http://localhost:8000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global state, wired once at startup (or by configure() in tests)
STORE: VectorStore | None = None
LLM: CompletionClient | None = None
RETRIEVER: CatalogRetriever | None = None
RAG: RagService | None = None
ORCHESTRATOR: Orchestrator | None = None
_EMBEDDER: Embedder | None = None  # built on first use, the local model is heavy

UNAVAILABLE = "Vector store unavailable"


def configure(
    store: VectorStore,
    llm: CompletionClient,
    embedder: Optional[Embedder] = None,
    settings: Optional[Settings] = None,
) -> None:
    """Wire the services. Called by startup, or directly with fakes"""
    global SETTINGS, STORE, LLM, RETRIEVER, RAG, ORCHESTRATOR, _EMBEDDER
    if settings is not None:
        SETTINGS = settings
    STORE = store
    LLM = llm
    _EMBEDDER = embedder
    RETRIEVER = CatalogRetriever(store, SETTINGS.PRODUCTS_COLLECTION, SETTINGS.SCROLL_LIMIT)
    RAG = RagService(RETRIEVER)
    ORCHESTRATOR = Orchestrator(RAG, llm)


def _get_embedder() -> Embedder:
    global _EMBEDDER
    if _EMBEDDER is None:
        _EMBEDDER = build_embedder(SETTINGS)
    return _EMBEDDER


def _require_ready_services() -> None:
    if STORE is None or RAG is None or RETRIEVER is None:
        raise HTTPException(status_code=500, detail="Services not ready")


@app.on_event("startup")
def startup():
    # Bad URLs fail here so the server never comes up half configured
    if STORE is not None:
        return
    configure(
        VectorStore.from_url(SETTINGS.QDRANT_URL, timeout=SETTINGS.QDRANT_TIMEOUT),
        CompletionClient.from_settings(SETTINGS),
    )
    logger.info("Store assistant %s started (model=%s, qdrant=%s)", APP_VERSION, SETTINGS.LLM_MODEL, SETTINGS.QDRANT_URL)


@app.on_event("shutdown")
async def shutdown():
    if LLM is not None:
        await LLM.aclose()
    if _EMBEDDER is not None:
        await _EMBEDDER.aclose()
    if STORE is not None:
        await STORE.close()


@app.get("/health")
async def health():
    _require_ready_services()
    products = await RETRIEVER.fetch_all()
    return {"status": "ok", "catalog_size": len(products), "version": APP_VERSION}


@app.get("/version")
def version():
    return {"version": APP_VERSION}


@app.get("/ready")
async def ready():
    _require_ready_services()
    return {"ready": await RAG.is_ready()}


@app.get("/meta")
async def meta():
    _require_ready_services()
    products = await RETRIEVER.fetch_all()
    categories = sorted({p.category for p in products})
    prices = [p.price for p in products]
    return {
        "categories": categories,
        "price_min": min(prices) if prices else 0.0,
        "price_max": max(prices) if prices else 0.0,
        "count": len(products),
    }


@app.get("/products/{pid}", response_model=Product)
async def get_product(pid: int):
    _require_ready_services()
    for p in await RETRIEVER.fetch_all():
        if p.id == pid:
            return p
    raise HTTPException(status_code=404, detail="Not found")


@app.get("/search", response_model=SearchResponse)
async def search(q: str = Query(..., min_length=1), top_k: int = 5, score_threshold: Optional[float] = None):
    # Plain vector similarity over the products collection
    _require_ready_services()
    top_k = max(1, min(int(top_k), 24))
    try:
        vector = await _get_embedder().embed(q)
        matches = await RETRIEVER.semantic_search(vector, limit=top_k, score_threshold=score_threshold)
    except TransportError:
        logger.exception("Semantic search failed for %r", q)
        raise HTTPException(status_code=503, detail="Search is unavailable right now")
    return SearchResponse(query=q, matches=matches)


@app.get("/collections")
async def collections():
    _require_ready_services()
    try:
        return {"collections": await STORE.list_collections()}
    except TransportError:
        logger.exception("Failed to get collections list")
        raise HTTPException(status_code=503, detail=UNAVAILABLE)


@app.get("/collections/status")
async def collections_status():
    _require_ready_services()
    return {
        "is_connected": await STORE.test_connection(),
        "info": await STORE.describe(),
        "timestamp": datetime.now().strftime("%H:%M:%S"),
    }


@app.post("/collections/init")
async def init_collections(mode: SeedMode = SeedMode.EMBEDDINGS):
    _require_ready_services()
    products = load_catalog(SETTINGS.CATALOG_PATH)
    embedder = _get_embedder() if mode == SeedMode.EMBEDDINGS else None
    try:
        report = await initialize_collections(
            STORE,
            products,
            embedder,
            mode,
            SETTINGS.PRODUCTS_COLLECTION,
            SETTINGS.DOCUMENTS_COLLECTION,
            SETTINGS.VECTOR_SIZE,
        )
    except TransportError:
        logger.exception("Error initializing collections")
        raise HTTPException(status_code=503, detail=UNAVAILABLE)
    if report is None:
        raise HTTPException(status_code=503, detail="Failed to initialize collections")
    return report


@app.delete("/collections")
async def drop_collections():
    _require_ready_services()
    try:
        deleted = await STORE.delete_all()
    except TransportError:
        logger.exception("Error dropping collections")
        raise HTTPException(status_code=503, detail=UNAVAILABLE)
    return {"deleted": deleted}


@app.get("/llm/status")
async def llm_status():
    if LLM is None:
        raise HTTPException(status_code=500, detail="Services not ready")
    return await LLM.check()


@app.get("/debug/config")
def debug_config() -> Dict[str, Any]:
    # Nothing in Settings is secret, but keep this to connection details only
    return {
        "qdrant_url": SETTINGS.QDRANT_URL,
        "products_collection": SETTINGS.PRODUCTS_COLLECTION,
        "llm_base_url": SETTINGS.LLM_BASE_URL,
        "llm_model": SETTINGS.LLM_MODEL,
        "embedding_backend": SETTINGS.EMBEDDING_BACKEND,
        "embedding_model": SETTINGS.EMBEDDING_MODEL,
        "sampling": SETTINGS.sampling_options,
        "scroll_limit": SETTINGS.SCROLL_LIMIT,
    }


@app.websocket("/chat")
async def chat(websocket: WebSocket):
    if ORCHESTRATOR is None:
        await websocket.close(code=1011)
        return
    await ChatSession(websocket, ORCHESTRATOR).run()
