from typing import Optional
import structlog

from contentflow.domain.models.security import SecurityClassification
from .patterns import (
    AMOUNT_PATTERN, ANY_KEYWORD_PATTERN, EMAIL_PATTERN, PII_PATTERNS, SENTENCE_BOUNDARY
)

logger = structlog.get_logger(__name__)

REDACTION_MARKER = "[CONTENT_REDACTED]"
AMOUNT_PLACEHOLDER = "[AMOUNT_REDACTED]"
MAX_PASSES = 4


class ContentSanitizer:
    """Redacts PII and sensitive figures. Idempotent and never raises."""

    def sanitize(self, text: Optional[str], classification: SecurityClassification) -> str:
        try:
            if text is None:
                return ""
            if classification.ai_safe:
                return text

            # A replacement can open a word boundary for another pattern, so run to a fixed point
            sanitized = text
            for _ in range(MAX_PASSES):
                redacted = self.redact_sensitive_amounts(self.redact_pii(sanitized))
                if redacted == sanitized:
                    break
                sanitized = redacted
            return sanitized

        except Exception as e:
            logger.error("Sanitization failed, redacting whole text", error=str(e))
            return REDACTION_MARKER

    def redact_pii(self, text: str) -> str:
        for _, pattern, placeholder in PII_PATTERNS:
            text = pattern.sub(placeholder, text)
        return text

    def redact_sensitive_amounts(self, text: str) -> str:
        """Replace numeric tokens inside sentences that mention a sensitive keyword"""

        parts = SENTENCE_BOUNDARY.split(text)
        # split keeps separators at odd indexes
        for idx in range(0, len(parts), 2):
            sentence = parts[idx]
            if sentence and ANY_KEYWORD_PATTERN.search(sentence):
                parts[idx] = AMOUNT_PATTERN.sub(AMOUNT_PLACEHOLDER, sentence)
        return "".join(parts)

    def redact_emails(self, text: str, placeholder: str = "[EMAIL_REDACTED]") -> str:
        return EMAIL_PATTERN.sub(placeholder, text)

    def contains_pii(self, text: str) -> bool:
        return any(pattern.search(text) for _, pattern, _ in PII_PATTERNS)
