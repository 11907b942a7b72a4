from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Dict, Tuple, Any
from pydantic import BaseModel, ConfigDict, Field

# These are the data structures that hold everything together
class Product(BaseModel):
    # One catalog entry. Stored once, replaced by id, never patched in place
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    price: float = Field(ge=0)
    category: str
    description: str = ""

    def searchable_text(self) -> str:
        # Text that gets embedded for the vector store
        return f"{self.name} {self.category} {self.description}"

    def payload(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "price": float(self.price),
            "category": self.category,
            "description": self.description,
        }

class QueryFilter(BaseModel):
    # What the user is looking for, pulled out of free text
    model_config = ConfigDict(frozen=True)

    min_price: Optional[float] = Field(default=None, ge=0)
    max_price: Optional[float] = Field(default=None, ge=0)
    category: Optional[str] = None
    keywords: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return (
            self.min_price is None
            and self.max_price is None
            and not self.category
            and not self.keywords
        )

class ProductMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    product: Product
    score: float = 1.0

class ProductStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_count: int = 0
    categories: Dict[str, int] = Field(default_factory=dict)
    min_price: float = 0.0
    max_price: float = 0.0
    avg_price: float = 0.0

class RagContext(BaseModel):
    """Everything one query produced on its way to the prompt

    Built once by RagContextBuilder and never changed afterwards
    """
    model_config = ConfigDict(frozen=True)

    query: str
    context_text: str
    matches: List[ProductMatch] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    stats: ProductStats = Field(default_factory=ProductStats)
    filtered_stats: ProductStats = Field(default_factory=ProductStats)
    query_filter: QueryFilter = Field(default_factory=QueryFilter)
    has_results: bool = False
    error: Optional[str] = None

class RagContextBuilder:
    """Collects each pipeline stage's output and freezes it at the end"""

    def __init__(self, query: str):
        self._fields: Dict[str, Any] = {"query": query}

    def with_filter(self, query_filter: QueryFilter) -> "RagContextBuilder":
        self._fields["query_filter"] = query_filter
        return self

    def with_products(self, ranked: List[Product]) -> "RagContextBuilder":
        self._fields["matches"] = [ProductMatch(product=p, score=1.0) for p in ranked]
        return self

    def with_stats(self, stats: ProductStats, filtered_stats: ProductStats) -> "RagContextBuilder":
        self._fields["stats"] = stats
        self._fields["filtered_stats"] = filtered_stats
        self._fields["categories"] = list(stats.categories.keys())
        self._fields["has_results"] = stats.total_count > 0
        return self

    def with_text(self, context_text: str) -> "RagContextBuilder":
        self._fields["context_text"] = context_text
        return self

    def with_error(self, error: str) -> "RagContextBuilder":
        self._fields["error"] = error
        self._fields["has_results"] = False
        return self

    def build(self) -> RagContext:
        return RagContext(**self._fields)

class StreamEventKind(str, Enum):
    START = "start"
    CHUNK = "chunk"
    DONE = "done"
    ERROR = "error"

class StreamEvent(BaseModel):
    # Control signal or content coming out of the relay
    model_config = ConfigDict(frozen=True)

    kind: StreamEventKind
    text: Optional[str] = None
    timestamp: Optional[datetime] = None

    @classmethod
    def start(cls) -> "StreamEvent":
        return cls(kind=StreamEventKind.START, timestamp=datetime.now())

    @classmethod
    def chunk(cls, text: str) -> "StreamEvent":
        return cls(kind=StreamEventKind.CHUNK, text=text)

    @classmethod
    def done(cls) -> "StreamEvent":
        return cls(kind=StreamEventKind.DONE)

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls(kind=StreamEventKind.ERROR, text=message)

class ClientEvent(BaseModel):
    # What goes out to the browser over the chat socket
    type: str
    text: Optional[str] = None
    sender: Optional[str] = None
    timestamp: Optional[datetime] = None
    value: Optional[bool] = None
    message: Optional[str] = None

    @classmethod
    def receive_message(cls, text: str, sender: str, timestamp: Optional[datetime] = None) -> "ClientEvent":
        return cls(type="receive_message", text=text, sender=sender, timestamp=timestamp or datetime.now())

    @classmethod
    def typing(cls, value: bool) -> "ClientEvent":
        return cls(type="typing", value=value)

    @classmethod
    def receive_error(cls, message: str) -> "ClientEvent":
        return cls(type="receive_error", message=message)

    @classmethod
    def from_stream(cls, event: StreamEvent) -> "ClientEvent":
        if event.kind == StreamEventKind.START:
            return cls(type="start_message", timestamp=event.timestamp)
        if event.kind == StreamEventKind.CHUNK:
            return cls(type="receive_chunk", text=event.text)
        if event.kind == StreamEventKind.DONE:
            return cls(type="finalize_message")
        return cls(type="receive_error", message=event.text)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

class SendMessage(BaseModel):
    # The only thing the browser can ask us to do
    type: Literal["send_message"] = "send_message"
    text: str = Field(min_length=1)

class SearchResponse(BaseModel):
    query: str
    matches: List[ProductMatch]
