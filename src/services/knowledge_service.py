"""Knowledge base clients supplying prompt context."""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import FieldCondition, Filter, MatchValue

from ..models.prompt_models import ContextItem

logger = logging.getLogger(__name__)


class KnowledgeBase(ABC):
    """Read-only source of context for prompts."""

    @abstractmethod
    async def query(
        self,
        text: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 5,
    ) -> List[ContextItem]:
        """
        Retrieve context relevant to a text.

        Args:
            text: Query text
            filters: Exact-match metadata filters
            limit: Maximum items

        Returns:
            Context items, most relevant first
        """
        pass

    async def close(self) -> None:
        pass


class InMemoryKnowledgeBase(KnowledgeBase):
    """
    Keyword-overlap knowledge base over a fixed list of items.

    GOTCHA: Relevance is term overlap, good for tests and small static corpora
    """

    def __init__(self, items: Optional[Iterable[ContextItem]] = None):
        self.items: List[ContextItem] = list(items or [])

    def add(self, item: ContextItem) -> None:
        self.items.append(item)

    async def query(self, text, filters=None, limit=5):
        terms = set(re.findall(r"\w+", text.lower()))
        if not terms:
            return []

        scored = []
        for item in self.items:
            if filters and any(item.metadata.get(k) != v for k, v in filters.items()):
                continue
            item_terms = set(re.findall(r"\w+", item.content.lower()))
            overlap = len(terms & item_terms)
            if overlap:
                scored.append(item.model_copy(update={"relevance": overlap / len(terms)}))

        scored.sort(key=lambda i: i.relevance, reverse=True)
        return scored[:limit]


class QdrantKnowledgeBase(KnowledgeBase):
    """
    Knowledge base backed by a Qdrant collection.

    PATTERN: Embed the query, query_points with payload filters
    CRITICAL: Never raises on retrieval; an unavailable store yields no context
    """

    def __init__(
        self,
        collection_name: str,
        embedding_function: Callable,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        client: Optional[AsyncQdrantClient] = None,
        content_key: str = "content",
        source_key: str = "source",
        score_threshold: Optional[float] = None,
    ):
        """
        Initialize Qdrant knowledge base.

        Args:
            collection_name: Collection holding the documents
            embedding_function: Sync or async text -> vector function
            url: Qdrant URL (ignored when client is given)
            api_key: Qdrant API key
            client: Pre-built client, injectable for tests
            content_key: Payload key holding the text
            source_key: Payload key holding the source
            score_threshold: Minimum similarity score
        """
        self.collection_name = collection_name
        self.embedding_function = embedding_function
        self.url = url
        self.api_key = api_key
        self.content_key = content_key
        self.source_key = source_key
        self.score_threshold = score_threshold
        self._client = client
        self.logger = logging.getLogger(__name__)

    def _get_client(self) -> AsyncQdrantClient:
        if self._client is None:
            self._client = AsyncQdrantClient(url=self.url, api_key=self.api_key)
        return self._client

    async def _generate_embedding(self, text: str) -> List[float]:
        if asyncio.iscoroutinefunction(self.embedding_function):
            return await self.embedding_function(text)
        return self.embedding_function(text)

    async def query(self, text, filters=None, limit=5):
        filter_conditions = [
            FieldCondition(key=key, match=MatchValue(value=value))
            for key, value in (filters or {}).items()
        ]
        query_filter = Filter(must=filter_conditions) if filter_conditions else None

        try:
            vector = await self._generate_embedding(text)
            results = await self._get_client().query_points(
                collection_name=self.collection_name,
                query=vector,
                query_filter=query_filter,
                limit=limit,
                score_threshold=self.score_threshold,
                with_payload=True,
            )
        except Exception as e:
            self.logger.warning(f"Knowledge base query failed, continuing without context: {e}")
            return []

        items = []
        for point in results.points:
            payload = dict(point.payload or {})
            content = payload.pop(self.content_key, None)
            if not content:
                continue
            items.append(
                ContextItem(
                    content=content,
                    source=payload.pop(self.source_key, None),
                    relevance=point.score,
                    metadata=payload,
                )
            )

        self.logger.debug(f"Retrieved {len(items)} context items from {self.collection_name}")
        return items

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
