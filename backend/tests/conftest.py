from pathlib import Path
from typing import List
import pytest

from assistant.models import Product, StreamEvent
from assistant.tools import load_catalog
from assistant.vector_store import PointInput, VectorStore
from assistant.seeding import synthetic_vector

CATALOG_CSV = Path(__file__).resolve().parent.parent / "data" / "catalog.csv"
DIM = 8


class ListSink:
    # Collects whatever the relay or orchestrator emits
    def __init__(self):
        self.events: List[StreamEvent] = []

    async def send(self, event: StreamEvent) -> None:
        self.events.append(event)

    @property
    def kinds(self) -> List[str]:
        return [e.kind.value for e in self.events]


async def aiter_lines(lines, consumed: List[str] = None):
    # Feeds lines one by one and remembers how far the reader got
    for line in lines:
        if consumed is not None:
            consumed.append(line)
        yield line


async def make_store(products: List[Product], collection: str = "products") -> VectorStore:
    store = VectorStore.in_memory()
    await store.create_collection(collection, DIM)
    await store.upsert(collection, [
        PointInput(id=p.id, vector=synthetic_vector(p.id, DIM), payload=p.payload()) for p in products
    ])
    return store


@pytest.fixture
def catalog() -> List[Product]:
    return load_catalog(CATALOG_CSV)
