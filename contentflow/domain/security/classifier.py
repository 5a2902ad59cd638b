from typing import Awaitable, Callable, Optional, Set
import structlog

from contentflow.domain.errors import ClassificationError
from contentflow.domain.models.security import (
    HIGH_RISK_PII_TAGS, SecurityClassification, SecurityLevel, SecurityTag
)
from .patterns import (
    CONTACT_TAGS, KEYWORD_PATTERNS, PII_PATTERNS, RESTRICTED_ASSET_TYPES
)

logger = structlog.get_logger(__name__)

UpstreamClassifier = Callable[[str, Optional[str]], Awaitable[SecurityClassification]]


class SecurityClassifier:
    """Classifies text sensitivity. Fails safe to ``restricted`` on any error."""

    def __init__(self, upstream: Optional[UpstreamClassifier] = None):
        self.upstream = upstream

    async def classify(self, text: str, source_type: Optional[str] = None) -> SecurityClassification:
        """Classify a piece of text, optionally tagged with the asset type it came from"""

        try:
            classification = self.classify_deterministic(text, source_type)

            if self.upstream is not None:
                upstream_result = await self._call_upstream(text, source_type)
                classification = classification.escalate(
                    upstream_result.level,
                    tags=upstream_result.tags,
                    pii_detected=upstream_result.pii_detected,
                    rationale=upstream_result.rationale,
                )

            return classification

        except Exception as e:
            logger.warning("Classification failed, failing safe", error=str(e), source_type=source_type)
            return SecurityClassification.fail_safe(str(e))

    async def _call_upstream(self, text: str, source_type: Optional[str]) -> SecurityClassification:
        try:
            return await self.upstream(text, source_type)
        except Exception as e:
            raise ClassificationError(f"upstream classifier error: {e}") from e

    def classify_deterministic(self, text: str, source_type: Optional[str] = None) -> SecurityClassification:
        """Pattern and lexicon based classification"""

        if not isinstance(text, str):
            raise ClassificationError(f"cannot classify {type(text).__name__}")

        tags: Set[SecurityTag] = set()
        reasons = []

        for tag, pattern, _ in PII_PATTERNS:
            if pattern.search(text):
                tags.add(tag)

        pii_detected = bool(tags)
        if pii_detected:
            tags.add(SecurityTag.PII)
            reasons.append("PII detected")
        if tags & CONTACT_TAGS:
            tags.add(SecurityTag.CONTACT_INFO)

        keyword_tags = {tag for tag, pattern in KEYWORD_PATTERNS.items() if pattern.search(text)}
        if keyword_tags:
            tags |= keyword_tags
            reasons.append("sensitive keywords: " + ", ".join(sorted(t.value for t in keyword_tags)))

        level = SecurityLevel.INTERNAL
        if pii_detected or keyword_tags:
            level = SecurityLevel.CONFIDENTIAL
        if tags & HIGH_RISK_PII_TAGS:
            level = SecurityLevel.RESTRICTED
            reasons.append("high-risk identifiers")

        if source_type and source_type in RESTRICTED_ASSET_TYPES:
            tags.add(SecurityTag.RESTRICTED_ASSET)
            level = SecurityLevel.RESTRICTED
            reasons.append(f"restricted asset type {source_type}")

        return SecurityClassification(
            level=level,
            tags=frozenset(tags),
            pii_detected=pii_detected,
            ai_safe=not pii_detected and level <= SecurityLevel.INTERNAL,
            rationale="; ".join(reasons) or "no sensitive signals",
        )
