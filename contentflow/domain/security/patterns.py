import re

from contentflow.domain.models.security import SecurityTag


EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
NATIONAL_ID_PATTERN = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
PAYMENT_CARD_PATTERN = re.compile(r"\b(?:\d[ -]?){12,15}\d\b")
PHONE_PATTERN = re.compile(r"\b\+?1?[-.\s]?\(?(\d{3})\)?[-.\s]?(\d{3})[-.\s]?(\d{4})\b")

# Order matters: longer digit runs are replaced before phone numbers can claim part of them
PII_PATTERNS = (
    (SecurityTag.PAYMENT_CARD, PAYMENT_CARD_PATTERN, "[CARD_REDACTED]"),
    (SecurityTag.NATIONAL_ID, NATIONAL_ID_PATTERN, "[ID_REDACTED]"),
    (SecurityTag.EMAIL, EMAIL_PATTERN, "[EMAIL_REDACTED]"),
    (SecurityTag.PHONE, PHONE_PATTERN, "[PHONE_REDACTED]"),
)

CONTACT_TAGS = frozenset({SecurityTag.EMAIL, SecurityTag.PHONE})

SENSITIVE_KEYWORDS = {
    SecurityTag.FINANCIAL: (
        "financial report",
        "financial data",
        "revenue breakdown",
        "profit margin",
        "budget forecast",
        "burn rate",
    ),
    SecurityTag.LEGAL: (
        "legal advice",
        "attorney",
        "litigation",
        "lawsuit",
        "settlement terms",
    ),
    SecurityTag.HR: (
        "salary",
        "salaries",
        "compensation",
        "hr review",
        "performance review",
    ),
    SecurityTag.INTERNAL_SYSTEM: (
        "metabase",
        "internal dashboard",
        "confidential",
        "restricted",
        "customer database",
        "user data",
        "analytics data",
    ),
}


def _keyword_pattern(phrases) -> "re.Pattern":
    alternatives = "|".join(re.escape(phrase) for phrase in sorted(phrases, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


KEYWORD_PATTERNS = {tag: _keyword_pattern(phrases) for tag, phrases in SENSITIVE_KEYWORDS.items()}

ANY_KEYWORD_PATTERN = _keyword_pattern(
    [phrase for phrases in SENSITIVE_KEYWORDS.values() for phrase in phrases]
)

# Amounts and bare numbers: "$1,200,000", "12.5%", "3 million", "450k"
AMOUNT_PATTERN = re.compile(
    r"[$€£]?\d[\d,]*(?:\.\d+)?(?:\s?(?:%|percent\b|k\b|m\b|bn\b|million\b|billion\b|thousand\b))?"
)

# Sentence boundary: terminal punctuation followed by whitespace, or a line break
SENTENCE_BOUNDARY = re.compile(r"((?<=[.!?])\s+|\n+)")

RESTRICTED_ASSET_TYPES = frozenset({
    "metabase_dashboard",
    "internal_report",
    "financial_data",
    "hr_document",
    "legal_document",
    "customer_data",
})
