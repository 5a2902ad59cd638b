from typing import Dict, Iterable, List, Optional, Union
import structlog

from contentflow.domain.errors import NotFoundError
from contentflow.domain.models.workflow import StepKind, StepSpec, WorkflowTemplate, WorkflowType

logger = structlog.get_logger(__name__)

INFORMATION_COLLECTION = "Information Collection"
ASSET_GENERATION = "Asset Generation"
ASSET_REVIEW = "Asset Review"
WORKFLOW_SELECTION = "Workflow Selection"

DIALOG_RESPONSE_FORMAT = (
    "Respond only with a JSON object containing: "
    '"isComplete" (boolean), "collectedInformation" (object), "missingInformation" (list), '
    '"completionPercentage" (0-100), "nextQuestion" (string or null), '
    '"suggestedNextStep" (string or null), "conversationalResponse" (string or null).'
)

REVIEW_RESPONSE_FORMAT = (
    "Respond only with a JSON object containing: "
    '"reviewDecision" (one of "approved", "revision_requested", "unclear", "cross_workflow_request"), '
    '"revisedAsset" (full revised text when revisions were requested), '
    '"requestedAssetType" (content type when the user asks for a different one), '
    '"conversationalResponse" (string).'
)

# Fields the collection step asks for, per content type
REQUIRED_FIELDS: Dict[WorkflowType, List[str]] = {
    WorkflowType.PRESS_RELEASE: ["companyName", "announcement", "keyDetails", "quote", "contactPerson"],
    WorkflowType.SOCIAL_POST: ["companyName", "announcement", "platform", "tone"],
    WorkflowType.BLOG_ARTICLE: ["companyName", "topic", "audience", "keyPoints", "tone"],
    WorkflowType.FAQ: ["companyName", "productOrTopic", "audience", "questions"],
    WorkflowType.MEDIA_PITCH: ["companyName", "storyAngle", "targetOutlets", "newsHook"],
    WorkflowType.MEDIA_LIST: ["topic", "beats", "regions", "outletTypes"],
}

INITIAL_PROMPTS: Dict[WorkflowType, str] = {
    WorkflowType.PRESS_RELEASE: "Let's write your press release. What is the announcement, and which company is it for?",
    WorkflowType.SOCIAL_POST: "Let's create a social post. What would you like to announce, and on which platform?",
    WorkflowType.BLOG_ARTICLE: "Let's draft a blog article. What topic should it cover, and who is the audience?",
    WorkflowType.FAQ: "Let's build an FAQ. Which product or topic should it cover?",
    WorkflowType.MEDIA_PITCH: "Let's prepare a media pitch. What is the story, and which outlets are you targeting?",
    WorkflowType.MEDIA_LIST: "Let's build a media list. What topic and which beats should it cover?",
}


class TemplateRegistry:
    """Immutable workflow templates keyed by workflow type"""

    def __init__(self, templates: Optional[Iterable[WorkflowTemplate]] = None):
        self._by_type: Dict[WorkflowType, WorkflowTemplate] = {}
        self._by_id: Dict[str, WorkflowTemplate] = {}
        for template in templates or ():
            self.register(template)

    def register(self, template: WorkflowTemplate) -> None:
        validate_template(template)
        if template.workflow_type in self._by_type:
            logger.info("Replacing template", workflow_type=template.workflow_type.value)
        self._by_type[template.workflow_type] = template
        self._by_id[template.id] = template

    def get(self, workflow_type: Union[WorkflowType, str]) -> WorkflowTemplate:
        resolved = workflow_type if isinstance(workflow_type, WorkflowType) else WorkflowType.from_label(workflow_type)
        template = self._by_type.get(resolved) if resolved else None
        if template is None:
            raise NotFoundError("template", str(workflow_type))
        return template

    def get_by_id(self, template_id: str) -> WorkflowTemplate:
        template = self._by_id.get(template_id)
        if template is None:
            raise NotFoundError("template", template_id)
        return template

    def __contains__(self, workflow_type: WorkflowType) -> bool:
        return workflow_type in self._by_type

    def workflow_types(self) -> List[WorkflowType]:
        return list(self._by_type)


def validate_template(template: WorkflowTemplate) -> None:
    names = [step.name for step in template.steps]
    if len(names) != len(set(names)):
        raise ValueError(f"Template {template.id} has duplicate step names")

    order_by_name = {step.name: step.order for step in template.steps}
    for step in template.steps:
        for dependency in step.dependencies:
            if dependency not in order_by_name:
                raise ValueError(f"Step {step.name} depends on unknown step {dependency}")
            if order_by_name[dependency] >= step.order:
                raise ValueError(f"Step {step.name} depends on later step {dependency}")


def _collection_instructions(workflow_type: WorkflowType) -> str:
    fields = ", ".join(REQUIRED_FIELDS[workflow_type])
    return (
        f"You are collecting the information needed to write a {workflow_type.value}. "
        f"Required fields: {fields}. Ask for one missing field at a time and keep "
        f"everything the user already provided. Mark isComplete true once every required "
        f"field has a value. {DIALOG_RESPONSE_FORMAT}"
    )


def _generation_instructions(workflow_type: WorkflowType) -> str:
    return (
        f"Write the complete {workflow_type.value} using the collected information. "
        f"Return only the finished content, without commentary."
    )


def _review_instructions(workflow_type: WorkflowType) -> str:
    return (
        f"The user is reviewing the generated {workflow_type.value}. Decide whether they approved it, "
        f"asked for revisions, asked for a different content type, or were unclear. "
        f"{REVIEW_RESPONSE_FORMAT}"
    )


def content_template(workflow_type: WorkflowType, review: bool = True) -> WorkflowTemplate:
    steps = [
        StepSpec(
            name=INFORMATION_COLLECTION,
            kind=StepKind.DIALOG,
            order=0,
            prompt=INITIAL_PROMPTS[workflow_type],
            metadata={"baseInstructions": _collection_instructions(workflow_type)},
        ),
        StepSpec(
            name=ASSET_GENERATION,
            kind=StepKind.GENERATION,
            order=1,
            dependencies=frozenset({INFORMATION_COLLECTION}),
            metadata={"baseInstructions": _generation_instructions(workflow_type), "autoExecute": True},
        ),
    ]
    if review:
        steps.append(StepSpec(
            name=ASSET_REVIEW,
            kind=StepKind.DIALOG,
            order=2,
            dependencies=frozenset({ASSET_GENERATION}),
            prompt="Here is your draft. Would you like any changes?",
            metadata={"baseInstructions": _review_instructions(workflow_type), "review": True},
        ))

    return WorkflowTemplate(
        id=workflow_type.name.lower().replace("_", "-"),
        workflow_type=workflow_type,
        description=f"Collect details, generate and review a {workflow_type.value}",
        steps=tuple(steps),
    )


def base_template() -> WorkflowTemplate:
    options = ", ".join(t.value for t in REQUIRED_FIELDS)
    return WorkflowTemplate(
        id="base",
        workflow_type=WorkflowType.BASE,
        description="Minimal workflow that keeps a thread usable between content workflows",
        steps=(
            StepSpec(
                name=WORKFLOW_SELECTION,
                kind=StepKind.DIALOG,
                order=0,
                metadata={
                    "baseInstructions": (
                        f"Help the user choose what to create next. Options: {options}. "
                        f'When the choice is clear, set "selectedWorkflow" to the option name and '
                        f'"isComplete" to true. {DIALOG_RESPONSE_FORMAT}'
                    ),
                },
            ),
        ),
    )


def default_registry() -> TemplateRegistry:
    templates = [base_template()]
    templates.extend(
        content_template(workflow_type, review=workflow_type != WorkflowType.MEDIA_LIST)
        for workflow_type in REQUIRED_FIELDS
    )
    return TemplateRegistry(templates)
