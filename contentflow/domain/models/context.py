from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field
from enum import Enum

from .security import SecurityClassification, SecurityLevel


class ContextScope(str, Enum):
    """Where a retrieved item came from"""
    GLOBAL = "global"
    ORGANIZATION = "organization"


class SearchHit(BaseModel):
    """Raw semantic search result, before classification"""
    id: str
    content: str
    score: float = Field(ge=0.0, le=1.0)
    content_type: str = Field(default="rag_document", description="conversation, rag_document, asset ...")
    scope: ContextScope = Field(default=ContextScope.ORGANIZATION)
    source: str = Field(default="")
    source_type: Optional[str] = Field(None, description="Asset type of the origin, e.g. metabase_dashboard")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ContextItem(BaseModel):
    """Sanitized snippet that may reach a model prompt"""
    content: str
    relevance_score: float
    scope: ContextScope
    source: str = ""
    security_level: SecurityLevel = SecurityLevel.INTERNAL


class ProfileSummary(BaseModel):
    """Profile fields surfaced to prompts"""
    company_name: Optional[str] = None
    industry: Optional[str] = None
    role: Optional[str] = None
    tone: Optional[str] = None

    def is_empty(self) -> bool:
        return not any((self.company_name, self.industry, self.role, self.tone))


class ContextBundle(BaseModel):
    """Per-request retrieved context, never cached"""
    user_profile: ProfileSummary = Field(default_factory=ProfileSummary)
    related_conversations: List[ContextItem] = Field(default_factory=list)
    related_documents: List[ContextItem] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    query_classification: Optional[SecurityClassification] = None
    sanitized_query: str = ""

    @property
    def has_context(self) -> bool:
        return bool(
            self.related_conversations
            or self.related_documents
            or not self.user_profile.is_empty()
        )

    @property
    def security_level(self) -> SecurityLevel:
        """Highest level among the query and retrieved items"""
        levels = [item.security_level for item in self.related_conversations + self.related_documents]
        if self.query_classification:
            levels.append(self.query_classification.level)
        if not levels:
            return SecurityLevel.PUBLIC
        return SecurityLevel.highest(*levels)
