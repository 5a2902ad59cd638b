from typing import Any, Awaitable, Dict, List, Optional, Tuple
import asyncio
import structlog

from contentflow.domain.interfaces import ProfileStore, SemanticSearchService
from contentflow.domain.models.context import (
    ContextBundle, ContextItem, ProfileSummary, SearchHit
)
from contentflow.domain.models.profile import UserKnowledgeProfile
from contentflow.domain.models.security import SecurityClassification, SecurityTag
from contentflow.domain.security.classifier import SecurityClassifier
from contentflow.domain.security.sanitizer import ContentSanitizer
from contentflow.infrastructure.config.settings import Settings, get_settings
from contentflow.infrastructure.observability.logging import MetricsCollector, metrics as default_metrics
from .context_ranker import ContextRanker
from .memory.vector_memory_store import GLOBAL_SCOPE

logger = structlog.get_logger(__name__)

GLOBAL_CONTENT_TYPES = ("rag_document",)
ORGANIZATION_CONTENT_TYPES = ("conversation", "rag_document", "asset")


class ContextRetrievalCoordinator:
    """Assembles a sanitized ContextBundle from search, profile and query classification.

    The three sources are independent failure domains: each is awaited with
    its own timeout and a failure in one leaves the others intact.
    """

    def __init__(
        self,
        search: SemanticSearchService,
        profiles: ProfileStore,
        classifier: Optional[SecurityClassifier] = None,
        sanitizer: Optional[ContentSanitizer] = None,
        ranker: Optional[ContextRanker] = None,
        settings: Optional[Settings] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.search = search
        self.profiles = profiles
        self.classifier = classifier or SecurityClassifier()
        self.sanitizer = sanitizer or ContentSanitizer()
        self.ranker = ranker or ContextRanker()
        self.settings = settings or get_settings()
        self.metrics = metrics or default_metrics

    async def get_context(
        self,
        user_id: str,
        org_id: str,
        workflow_type: str,
        step_name: str,
        query_text: str,
    ) -> ContextBundle:
        """Build the context bundle for one step-response request"""

        logger.info("Building context", user_id=user_id, org_id=org_id, workflow_type=workflow_type, step=step_name)

        with self.metrics.timer("context_retrieval", tags={"workflow_type": workflow_type}):
            global_hits, org_hits, profile, query_classification = await asyncio.gather(
                self._guard(
                    self._search_global(user_id, org_id, workflow_type, step_name),
                    self.settings.search_timeout_seconds, "global_search", [],
                ),
                self._guard(
                    self._search_organization(user_id, org_id, query_text),
                    self.settings.search_timeout_seconds, "organization_search", [],
                ),
                self._guard(
                    self.profiles.get_profile(user_id, org_id),
                    self.settings.profile_timeout_seconds, "profile_store", None,
                ),
                self._guard(
                    self.classifier.classify(query_text),
                    self.settings.classification_timeout_seconds, "query_classification",
                    SecurityClassification.fail_safe("query classification timed out"),
                ),
            )

            conversations, documents = await self._filter_hits(list(global_hits) + list(org_hits))
            summary = await self._summarize_profile(profile)

        bundle = ContextBundle(
            user_profile=summary,
            related_conversations=conversations,
            related_documents=documents,
            query_classification=query_classification,
            sanitized_query=self.sanitizer.sanitize(query_text, query_classification),
        )
        bundle.suggestions = self.build_suggestions(bundle, workflow_type)

        logger.info(
            "Context built",
            conversations=len(conversations),
            documents=len(documents),
            has_profile=not summary.is_empty(),
            query_level=query_classification.level.value,
        )
        return bundle

    async def _guard(self, awaitable: Awaitable[Any], timeout: float, collaborator: str, default: Any) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Context source timed out", collaborator=collaborator, timeout=timeout)
            self.metrics.increment_counter("context.source_timeout", tags={"collaborator": collaborator})
            return default
        except Exception as e:
            logger.warning("Context source failed", collaborator=collaborator, error=str(e))
            self.metrics.increment_counter("context.source_failure", tags={"collaborator": collaborator})
            return default

    async def _search_global(self, user_id: str, org_id: str, workflow_type: str, step_name: str) -> List[SearchHit]:
        query = f"{workflow_type} {step_name} workflow template best practices process guide"
        return await self.search.search(
            user_id,
            org_id,
            query,
            content_types=GLOBAL_CONTENT_TYPES,
            max_security_level=self.settings.max_context_security_level,
            limit=self.settings.context_item_limit,
            scope=GLOBAL_SCOPE,
        )

    async def _search_organization(self, user_id: str, org_id: str, query_text: str) -> List[SearchHit]:
        if not query_text.strip():
            return []
        return await self.search.search(
            user_id,
            org_id,
            query_text,
            content_types=ORGANIZATION_CONTENT_TYPES,
            max_security_level=self.settings.max_context_security_level,
            limit=self.settings.context_item_limit,
        )

    async def _filter_hits(self, hits: List[SearchHit]) -> Tuple[List[ContextItem], List[ContextItem]]:
        """Classify and sanitize every hit; restricted assets are dropped outright"""

        classifications = await asyncio.gather(
            *(self.classifier.classify(hit.content, source_type=hit.source_type) for hit in hits)
        )

        conversations: List[ContextItem] = []
        documents: List[ContextItem] = []
        seen = set()
        dropped = 0

        for hit, classification in zip(hits, classifications):
            if classification.has_tag(SecurityTag.RESTRICTED_ASSET):
                dropped += 1
                continue

            content = self.sanitizer.sanitize(hit.content, classification)
            content = content[: self.settings.context_snippet_length].strip()
            if not content or content in seen:
                continue
            seen.add(content)

            item = ContextItem(
                content=content,
                relevance_score=hit.score,
                scope=hit.scope,
                source=hit.source,
                security_level=classification.level,
            )
            if hit.content_type == "conversation":
                conversations.append(item)
            else:
                documents.append(item)

        if dropped:
            logger.info("Dropped restricted context items", count=dropped)
            self.metrics.increment_counter("context.restricted_dropped", value=dropped)

        limit = self.settings.context_item_limit
        return self.ranker.rank(conversations)[:limit], self.ranker.rank(documents)[:limit]

    async def _summarize_profile(self, profile: Optional[UserKnowledgeProfile]) -> ProfileSummary:
        if profile is None:
            return ProfileSummary()

        fields: Dict[str, Optional[str]] = profile.summary().model_dump()
        present = {key: value for key, value in fields.items() if value}
        classifications = await asyncio.gather(*(self.classifier.classify(value) for value in present.values()))

        sanitized = {
            key: self.sanitizer.sanitize(value, classification)
            for (key, value), classification in zip(present.items(), classifications)
        }
        return ProfileSummary(**sanitized)

    def build_suggestions(self, bundle: ContextBundle, workflow_type: str) -> List[str]:
        profile = bundle.user_profile
        suggestions = []

        if profile.company_name:
            suggestions.append(f'Use "{profile.company_name}" as the company name')
        if profile.industry:
            suggestions.append(f"Target the {profile.industry} industry")
        if profile.tone:
            suggestions.append(f"Keep a {profile.tone} tone")
        if bundle.related_conversations:
            suggestions.append(f"Reference previous similar {workflow_type} work")
        if bundle.related_documents:
            suggestions.append("Adapt from successful previous assets")

        return suggestions
