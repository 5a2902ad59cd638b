from typing import Dict, Any, List, Optional, FrozenSet, Tuple
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from enum import Enum

from .security import SecurityLevel

# Input used when a step runs without a user turn
AUTO_EXECUTE_INPUT = "auto-execute"


class WorkflowType(str, Enum):
    """Content types a workflow can produce"""
    BASE = "Base Workflow"
    PRESS_RELEASE = "Press Release"
    SOCIAL_POST = "Social Post"
    BLOG_ARTICLE = "Blog Article"
    FAQ = "FAQ"
    MEDIA_PITCH = "Media Pitch"
    MEDIA_LIST = "Media List Generator"

    @classmethod
    def from_label(cls, label: Optional[str]) -> Optional["WorkflowType"]:
        """Resolve a free-form asset/workflow label ("blog", "social post", "Press Release")"""
        if not label:
            return None
        normalized = label.strip().lower()
        for workflow_type in cls:
            if workflow_type.value.lower() == normalized:
                return workflow_type
        return _ASSET_ALIASES.get(normalized)

    @property
    def is_content_creation(self) -> bool:
        return self in CONTENT_CREATION_TYPES


_ASSET_ALIASES = {
    "social post": WorkflowType.SOCIAL_POST,
    "social": WorkflowType.SOCIAL_POST,
    "blog": WorkflowType.BLOG_ARTICLE,
    "blog post": WorkflowType.BLOG_ARTICLE,
    "blog article": WorkflowType.BLOG_ARTICLE,
    "press release": WorkflowType.PRESS_RELEASE,
    "media pitch": WorkflowType.MEDIA_PITCH,
    "pitch": WorkflowType.MEDIA_PITCH,
    "faq": WorkflowType.FAQ,
    "media list": WorkflowType.MEDIA_LIST,
}

CONTENT_CREATION_TYPES = frozenset({
    WorkflowType.PRESS_RELEASE,
    WorkflowType.SOCIAL_POST,
    WorkflowType.BLOG_ARTICLE,
    WorkflowType.FAQ,
    WorkflowType.MEDIA_PITCH,
})


class StepKind(str, Enum):
    """Step variants, each processed by its own handler"""
    DIALOG = "dialog"
    GENERATION = "generation"


class StepStatus(str, Enum):
    """Step lifecycle, monotonic"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"

    def can_transition_to(self, target: "StepStatus") -> bool:
        return _STEP_STATUS_ORDER.index(target) > _STEP_STATUS_ORDER.index(self)


_STEP_STATUS_ORDER = [StepStatus.PENDING, StepStatus.IN_PROGRESS, StepStatus.COMPLETE]


class WorkflowStatus(str, Enum):
    """Workflow lifecycle"""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class StepSpec(BaseModel):
    """Immutable step definition inside a template"""
    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Step name, unique within the template")
    kind: StepKind
    order: int = Field(description="Default sequencing")
    dependencies: FrozenSet[str] = Field(default_factory=frozenset, description="Names of steps that must complete first")
    description: str = Field(default="")
    prompt: Optional[str] = Field(None, description="Initial prompt shown when the step starts")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class WorkflowTemplate(BaseModel):
    """Immutable workflow definition"""
    model_config = ConfigDict(frozen=True)

    id: str
    workflow_type: WorkflowType
    description: str = Field(default="")
    steps: Tuple[StepSpec, ...] = Field(default_factory=tuple)

    @property
    def name(self) -> str:
        return self.workflow_type.value


class WorkflowStep(BaseModel):
    """Running step owned by a workflow"""
    id: str
    workflow_id: str
    name: str
    kind: StepKind
    order: int
    dependencies: FrozenSet[str] = Field(default_factory=frozenset)
    status: StepStatus = Field(default=StepStatus.PENDING)
    prompt: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    version: int = Field(default=0, description="Incremented on every write")
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def auto_execute(self) -> bool:
        flag = self.metadata.get("autoExecute")
        return flag is True or flag == "true"

    @property
    def base_instructions(self) -> str:
        return self.metadata.get("baseInstructions", "")

    @property
    def is_review(self) -> bool:
        return bool(self.metadata.get("review"))


class Workflow(BaseModel):
    """Template instance bound to a conversation thread"""
    id: str
    template_id: str
    thread_id: str
    workflow_type: WorkflowType
    status: WorkflowStatus = Field(default=WorkflowStatus.IN_PROGRESS)
    current_step_id: Optional[str] = None
    steps: List[WorkflowStep] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def ordered_steps(self) -> List[WorkflowStep]:
        return sorted(self.steps, key=lambda s: s.order)

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def get_step_by_name(self, name: str) -> Optional[WorkflowStep]:
        for step in self.steps:
            if step.name == name:
                return step
        return None

    def in_progress_steps(self) -> List[WorkflowStep]:
        return [s for s in self.steps if s.status == StepStatus.IN_PROGRESS]

    def first_dialog_step(self) -> Optional[WorkflowStep]:
        for step in self.ordered_steps():
            if step.kind == StepKind.DIALOG:
                return step
        return None

    def next_eligible_step(self) -> Optional[WorkflowStep]:
        """First pending step, by order, whose dependencies are all complete"""
        completed = {s.name for s in self.steps if s.status == StepStatus.COMPLETE}
        for step in self.ordered_steps():
            if step.status != StepStatus.PENDING:
                continue
            if all(dep in completed for dep in step.dependencies):
                return step
        return None


class StepSummary(BaseModel):
    """Public view of a step returned to the caller"""
    id: str
    name: str
    kind: StepKind
    prompt: Optional[str] = None

    @classmethod
    def from_step(cls, step: WorkflowStep) -> "StepSummary":
        return cls(id=step.id, name=step.name, kind=step.kind, prompt=step.prompt)


class StepOutcome(BaseModel):
    """Result of running a step handler"""
    is_complete: bool = Field(default=False)
    payload: Dict[str, Any] = Field(default_factory=dict, description="Merged into step metadata")
    response: str = Field(default="", description="Text returned to the user")
    model_output: str = Field(default="")
    requested_workflow: Optional[str] = Field(None, description="Asset type explicitly requested by a review step")
    conversational: bool = Field(default=False)


class StepResponse(BaseModel):
    """Engine result for one step-response request"""
    response: str
    workflow_id: str
    step_id: str
    step_completed: bool = False
    workflow_completed: bool = False
    next_step: Optional[StepSummary] = None
    new_workflow_id: Optional[str] = None
    cross_workflow_target: Optional[WorkflowType] = None
    enhanced: bool = False
    context_used: bool = False
    security_level: Optional[SecurityLevel] = None
    suggestions: List[str] = Field(default_factory=list)
    retry_requested: bool = False
    conversational: bool = False
