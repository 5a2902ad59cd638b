from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional
import structlog

from contentflow.domain.errors import CollaboratorUnavailableError
from contentflow.domain.interfaces import ModelClient
from contentflow.domain.models.workflow import StepKind, StepOutcome, WorkflowStep, WorkflowType
from contentflow.infrastructure.llm.parsing import try_parse_json_object

logger = structlog.get_logger(__name__)


class ReviewDecision:
    APPROVED = "approved"
    REVISION_REQUESTED = "revision_requested"
    UNCLEAR = "unclear"
    CROSS_WORKFLOW_REQUEST = "cross_workflow_request"


class StepHandler(ABC):
    """Runs one kind of step against the model and reports completion"""

    kind: StepKind

    def __init__(self, model: ModelClient):
        self.model = model

    @abstractmethod
    async def process(
        self,
        step: WorkflowStep,
        workflow_type: WorkflowType,
        user_input: str,
        instructions: str,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> StepOutcome:
        pass


class DialogStepHandler(StepHandler):
    """Collects structured information over several turns"""

    kind = StepKind.DIALOG

    async def process(self, step, workflow_type, user_input, instructions, history=None) -> StepOutcome:
        output = await self.model.complete(instructions, user_input, history or [])
        data = try_parse_json_object(output)

        if data is None:
            logger.info("Dialog output was not JSON, treating as conversational", step=step.name)
            return StepOutcome(is_complete=False, response=output.strip(), model_output=output, conversational=True)

        if step.is_review:
            return self._review_outcome(step, data, output)

        collected = merge_collected(step.metadata.get("collectedInformation", {}), data.get("collectedInformation"))
        payload: Dict[str, Any] = {"collectedInformation": collected}
        for source_key in ("missingInformation", "completionPercentage", "suggestedNextStep"):
            if data.get(source_key) is not None:
                payload[source_key] = data[source_key]

        selected = data.get("selectedWorkflow")
        is_complete = bool(data.get("isComplete")) or bool(selected)
        conversational_text = data.get("conversationalResponse")

        response = conversational_text or data.get("nextQuestion") or ""
        if selected and not response:
            response = f"Great, let's create your {selected}."
        elif is_complete and not response:
            response = f"Thanks, I have everything I need for your {workflow_type.value}."

        return StepOutcome(
            is_complete=is_complete,
            payload=payload,
            response=response,
            model_output=output,
            requested_workflow=selected,
            conversational=bool(conversational_text) and not is_complete,
        )

    def _review_outcome(self, step: WorkflowStep, data: Dict[str, Any], output: str) -> StepOutcome:
        decision = data.get("reviewDecision", ReviewDecision.UNCLEAR)
        message = data.get("conversationalResponse") or ""
        payload: Dict[str, Any] = {"reviewDecision": decision}

        if decision == ReviewDecision.APPROVED:
            return StepOutcome(
                is_complete=True,
                payload=payload,
                response=message or "Great, your content is final.",
                model_output=output,
            )

        if decision == ReviewDecision.CROSS_WORKFLOW_REQUEST and data.get("requestedAssetType"):
            payload["requestedAssetType"] = data["requestedAssetType"]
            return StepOutcome(
                is_complete=True,
                payload=payload,
                response=message,
                model_output=output,
                requested_workflow=data["requestedAssetType"],
            )

        if decision == ReviewDecision.REVISION_REQUESTED and data.get("revisedAsset"):
            revised = data["revisedAsset"]
            revisions = list(step.metadata.get("revisions", []))
            revisions.append(revised)
            payload.update({"generatedAsset": revised, "revisions": revisions})
            response = f"{message}\n\n{revised}".strip() if message else revised
            return StepOutcome(is_complete=False, payload=payload, response=response, model_output=output)

        return StepOutcome(
            is_complete=False,
            payload=payload,
            response=message or "Could you tell me whether you'd like changes or if the draft is good to go?",
            model_output=output,
            conversational=bool(message),
        )


class GenerationStepHandler(StepHandler):
    """Produces the content artifact in one model call"""

    kind = StepKind.GENERATION

    async def process(self, step, workflow_type, user_input, instructions, history=None) -> StepOutcome:
        output = await self.model.complete(instructions, user_input, history or [])
        asset = output.strip()
        if not asset:
            raise CollaboratorUnavailableError("model", f"empty output for step {step.name}")

        return StepOutcome(
            is_complete=True,
            payload={"generatedAsset": asset, "assetType": workflow_type.value},
            response=asset,
            model_output=output,
        )


class StepHandlerRegistry:
    """Dispatches steps to the handler registered for their kind"""

    def __init__(self, handlers: List[StepHandler]):
        self._handlers = {handler.kind: handler for handler in handlers}

    @classmethod
    def for_model(cls, model: ModelClient) -> "StepHandlerRegistry":
        return cls([DialogStepHandler(model), GenerationStepHandler(model)])

    def get(self, kind: StepKind) -> StepHandler:
        handler = self._handlers.get(kind)
        if handler is None:
            raise KeyError(f"No handler registered for step kind {kind.value}")
        return handler


def merge_collected(existing: Optional[Dict[str, Any]], update: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Newer non-empty values win; empty values never erase collected ones"""

    merged = dict(existing or {})
    if not isinstance(update, dict):
        return merged
    for key, value in update.items():
        if value in (None, "", [], {}):
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_collected(merged[key], value)
        else:
            merged[key] = value
    return merged
