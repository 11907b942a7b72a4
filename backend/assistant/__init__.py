from .models import Product, QueryFilter, ProductMatch, ProductStats, RagContext, StreamEvent, ClientEvent
from .parsing import parse_query_filter
from .tools import CatalogRetriever, apply_filters, compute_stats, load_catalog
from .context import build_context_text
from .rag import RagService
from .stream import StreamRelay, RelayState
from .completion import CompletionClient, Orchestrator, build_messages

__all__ = [
    'Product','QueryFilter','ProductMatch','ProductStats','RagContext','StreamEvent','ClientEvent',
    'parse_query_filter',
    'CatalogRetriever','apply_filters','compute_stats','load_catalog',
    'build_context_text','RagService','StreamRelay','RelayState',
    'CompletionClient','Orchestrator','build_messages'
]
