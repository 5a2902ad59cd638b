from typing import FrozenSet, Iterable, Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


class SecurityLevel(str, Enum):
    """Sensitivity levels, totally ordered from least to most sensitive"""
    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    def __ge__(self, other):
        if isinstance(other, SecurityLevel):
            return self.rank >= other.rank
        return NotImplemented

    def __gt__(self, other):
        if isinstance(other, SecurityLevel):
            return self.rank > other.rank
        return NotImplemented

    def __le__(self, other):
        if isinstance(other, SecurityLevel):
            return self.rank <= other.rank
        return NotImplemented

    def __lt__(self, other):
        if isinstance(other, SecurityLevel):
            return self.rank < other.rank
        return NotImplemented

    @classmethod
    def highest(cls, *levels: "SecurityLevel") -> "SecurityLevel":
        return max(levels, key=lambda level: level.rank)

    def accessible_levels(self) -> list:
        """Levels readable by a caller whose ceiling is this level"""
        return [level for level in _LEVEL_ORDER if level.rank <= self.rank]


_LEVEL_ORDER = [
    SecurityLevel.PUBLIC,
    SecurityLevel.INTERNAL,
    SecurityLevel.CONFIDENTIAL,
    SecurityLevel.RESTRICTED,
]


class SecurityTag(str, Enum):
    """Closed vocabulary of classification tags"""
    PII = "pii"
    EMAIL = "email"
    PHONE = "phone"
    NATIONAL_ID = "national_id"
    PAYMENT_CARD = "payment_card"
    CONTACT_INFO = "contact_info"
    FINANCIAL = "financial"
    LEGAL = "legal"
    HR = "hr"
    INTERNAL_SYSTEM = "internal_system"
    RESTRICTED_ASSET = "restricted_asset"
    UNCLASSIFIED = "unclassified"


# PII classes that force the most restrictive level
HIGH_RISK_PII_TAGS = frozenset({SecurityTag.NATIONAL_ID, SecurityTag.PAYMENT_CARD})


class SecurityClassification(BaseModel):
    """Sensitivity classification of a single piece of text"""
    model_config = ConfigDict(frozen=True)

    level: SecurityLevel = Field(description="Sensitivity level")
    tags: FrozenSet[SecurityTag] = Field(default_factory=frozenset)
    pii_detected: bool = Field(default=False)
    ai_safe: bool = Field(default=False, description="Whether the text may reach a model prompt unchanged")
    rationale: str = Field(default="")

    @classmethod
    def fail_safe(cls, reason: str) -> "SecurityClassification":
        """Most restrictive classification, used whenever classification itself fails"""
        return cls(
            level=SecurityLevel.RESTRICTED,
            tags=frozenset({SecurityTag.UNCLASSIFIED}),
            pii_detected=False,
            ai_safe=False,
            rationale=f"Classification failed - defaulting to restricted: {reason}",
        )

    def escalate(
        self,
        level: SecurityLevel,
        tags: Optional[Iterable[SecurityTag]] = None,
        pii_detected: bool = False,
        rationale: Optional[str] = None,
    ) -> "SecurityClassification":
        """Return a classification at least as strict as this one"""
        new_level = SecurityLevel.highest(self.level, level)
        merged_tags = frozenset(self.tags) | frozenset(tags or ())
        pii = self.pii_detected or pii_detected
        reasons = [r for r in (self.rationale, rationale) if r]
        return SecurityClassification(
            level=new_level,
            tags=merged_tags,
            pii_detected=pii,
            ai_safe=self.ai_safe and not pii and new_level <= SecurityLevel.INTERNAL,
            rationale="; ".join(reasons),
        )

    def has_tag(self, tag: SecurityTag) -> bool:
        return tag in self.tags
