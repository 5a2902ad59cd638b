from typing import List
import re

from contentflow.domain.models.context import ContextItem, ContextScope

_WORD = re.compile(r"\w+")

# Lower sorts first on equal relevance
_SCOPE_PRIORITY = {
    ContextScope.GLOBAL: 0,
    ContextScope.ORGANIZATION: 1,
}


class ContextRanker:
    """Orders context items and scores text relevance"""

    def rank(self, items: List[ContextItem]) -> List[ContextItem]:
        """Relevance descending; ties prefer global knowledge over organization history"""
        return sorted(
            items,
            key=lambda item: (-item.relevance_score, _SCOPE_PRIORITY.get(item.scope, len(_SCOPE_PRIORITY))),
        )

    async def calculate_relevance(self, query: str, content: str) -> float:
        """Keyword overlap score between query and content, in [0, 1]"""

        query_lower = query.lower()
        content_lower = content.lower()

        query_words = set(_WORD.findall(query_lower))
        content_words = set(_WORD.findall(content_lower))

        if not query_words:
            return 0.0

        score = len(query_words & content_words) / len(query_words)

        # Whole query appearing verbatim
        if query_lower.strip() and query_lower.strip() in content_lower:
            score += 0.3

        return min(score, 1.0)
