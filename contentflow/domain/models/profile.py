from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum

from .context import ProfileSummary


class InputStyle(str, Enum):
    """How verbose a user's turns are"""
    BRIEF = "brief"
    CONVERSATIONAL = "conversational"
    DETAILED = "detailed"

    @classmethod
    def categorize(cls, text: str) -> "InputStyle":
        length = len(text.strip())
        if length < 10:
            return cls.BRIEF
        if length < 100:
            return cls.CONVERSATIONAL
        return cls.DETAILED


class UsageStatistics(BaseModel):
    """Aggregated usage counters, always recorded"""
    interaction_count: int = Field(default=0, description="Completed workflows observed")
    successful_workflows: int = Field(default=0)
    average_completion_seconds: Optional[float] = None
    workflow_counts: Dict[str, int] = Field(default_factory=dict, description="Completions per workflow type")
    average_complexity: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    context_available_count: int = Field(default=0, description="Workflows where retrieved context existed")
    context_used_count: int = Field(default=0, description="Workflows whose prompts carried that context")
    input_style_counts: Dict[str, int] = Field(default_factory=dict, description="User turns per input style")

    @property
    def success_rate(self) -> float:
        if self.interaction_count == 0:
            return 0.0
        return self.successful_workflows / self.interaction_count


class UserKnowledgeProfile(BaseModel):
    """Learned knowledge about a user within an organization"""
    user_id: str
    org_id: str
    company_name: Optional[str] = None
    company_description: Optional[str] = None
    industry: Optional[str] = None
    job_title: Optional[str] = None
    preferred_tone: Optional[str] = None
    preferred_workflows: List[str] = Field(default_factory=list)
    input_style: Optional[InputStyle] = None
    usage: UsageStatistics = Field(default_factory=UsageStatistics)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def summary(self) -> ProfileSummary:
        return ProfileSummary(
            company_name=self.company_name,
            industry=self.industry,
            role=self.job_title,
            tone=self.preferred_tone,
        )

    def smart_defaults(self) -> Dict[str, Any]:
        """Known fields a new workflow can start from"""
        defaults = {
            "companyName": self.company_name,
            "companyDescription": self.company_description,
            "industry": self.industry,
            "jobTitle": self.job_title,
            "preferredTone": self.preferred_tone,
        }
        return {key: value for key, value in defaults.items() if value}


class LearningSignals(BaseModel):
    """Signals harvested from one completed workflow"""
    workflow_id: str
    workflow_type: str
    input_styles: List[InputStyle] = Field(default_factory=list)
    dominant_style: Optional[InputStyle] = None
    context_available: bool = False
    context_used: bool = False
    complexity_score: float = Field(default=0.0, ge=0.0, le=1.0)
    completion_seconds: Optional[float] = None
    successful: bool = True
    collected_information: Dict[str, Any] = Field(default_factory=dict)
