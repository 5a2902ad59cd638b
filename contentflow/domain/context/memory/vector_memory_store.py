from typing import Dict, List, Any, Optional, Sequence
import asyncio
import uuid

from contentflow.domain.interfaces import SemanticSearchService
from contentflow.domain.models.context import ContextScope, SearchHit
from contentflow.domain.models.security import SecurityLevel
from ..context_ranker import ContextRanker

GLOBAL_SCOPE = "admin_global"


class VectorMemoryStore(SemanticSearchService):
    """In-memory stand-in for the semantic search service.

    Scores by keyword overlap rather than embeddings. Global documents are
    visible to every organization; conversations only to the user who had them.
    """

    def __init__(self, ranker: Optional[ContextRanker] = None, min_score: float = 0.0):
        self.ranker = ranker or ContextRanker()
        self.min_score = min_score
        self.documents: List[Dict[str, Any]] = []
        self._lock = asyncio.Lock()

    async def add(
        self,
        content: str,
        org_id: Optional[str] = None,
        user_id: Optional[str] = None,
        content_type: str = "rag_document",
        scope: ContextScope = ContextScope.ORGANIZATION,
        security_level: SecurityLevel = SecurityLevel.INTERNAL,
        source: str = "",
        source_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        document_id = str(uuid.uuid4())
        async with self._lock:
            self.documents.append({
                "id": document_id,
                "content": content,
                "org_id": org_id,
                "user_id": user_id,
                "content_type": content_type,
                "scope": scope,
                "security_level": security_level,
                "source": source or content_type,
                "source_type": source_type,
                "metadata": metadata or {},
            })
        return document_id

    async def search(
        self,
        user_id: str,
        org_id: str,
        query: str,
        content_types: Sequence[str],
        max_security_level: SecurityLevel,
        limit: int = 10,
        scope: Optional[str] = None,
    ) -> List[SearchHit]:
        async with self._lock:
            candidates = [doc for doc in self.documents if self._visible(doc, user_id, org_id, scope)]

        hits = []
        for doc in candidates:
            if doc["content_type"] not in content_types:
                continue
            if doc["security_level"] > max_security_level:
                continue

            score = await self.ranker.calculate_relevance(query, doc["content"])
            if score <= self.min_score:
                continue

            hits.append(SearchHit(
                id=doc["id"],
                content=doc["content"],
                score=score,
                content_type=doc["content_type"],
                scope=doc["scope"],
                source=doc["source"],
                source_type=doc["source_type"],
                metadata=doc["metadata"],
            ))

        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]

    @staticmethod
    def _visible(doc: Dict[str, Any], user_id: str, org_id: str, scope: Optional[str]) -> bool:
        if scope == GLOBAL_SCOPE:
            return doc["scope"] == ContextScope.GLOBAL
        if doc["scope"] == ContextScope.GLOBAL or doc["org_id"] != org_id:
            return False
        if doc["content_type"] == "conversation":
            return doc["user_id"] == user_id
        return True
