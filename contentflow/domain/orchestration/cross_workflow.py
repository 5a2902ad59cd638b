from typing import Dict, Any, List, Optional, Pattern
import re
import structlog

from contentflow.domain.models.workflow import Workflow, WorkflowType, StepKind

logger = structlog.get_logger(__name__)

_CONTENT_LABELS = r"social post|blog(?: post| article)?|press release|media pitch|faq"

MODEL_OUTPUT_PATTERNS: List[Pattern] = [
    re.compile(r"I can help with that! Let me start an? (.+?) workflow", re.IGNORECASE),
    re.compile(r"let me start an? (.+?) workflow for you", re.IGNORECASE),
    re.compile(r"I'll create an? (.+?) workflow", re.IGNORECASE),
    re.compile(r"switch to.*?(Social Post|Blog Article|Press Release|Media Pitch|FAQ) workflow", re.IGNORECASE),
]

USER_INPUT_PATTERNS: List[Pattern] = [
    re.compile(rf"\b(?:now do|ok do|also do|do|create|generate|make|write) (?:me )?an? ({_CONTENT_LABELS})\b", re.IGNORECASE),
    re.compile(rf"\b({_CONTENT_LABELS}) with the same (?:info|information|details)\b", re.IGNORECASE),
    re.compile(rf"\b({_CONTENT_LABELS}) using the same\b", re.IGNORECASE),
]


class CrossWorkflowIntentDetector:
    """Detects a request to switch content type in the middle of a workflow"""

    def detect(
        self,
        model_output: Optional[str],
        user_input: Optional[str],
        current_workflow_type: WorkflowType,
    ) -> Optional[WorkflowType]:
        target = self._match(MODEL_OUTPUT_PATTERNS, model_output)
        if target is not None and target != current_workflow_type:
            logger.info("Cross-workflow intent in model output", current=current_workflow_type.value, target=target.value)
            return target

        target = self._match(USER_INPUT_PATTERNS, user_input)
        if target is not None and target != current_workflow_type:
            logger.info("Cross-workflow intent in user input", current=current_workflow_type.value, target=target.value)
            return target

        return None

    def from_requested_asset(self, requested: Optional[str], current_workflow_type: WorkflowType) -> Optional[WorkflowType]:
        """Resolve an explicit asset request (review decision or workflow selection)"""

        target = WorkflowType.from_label(requested)
        if target is None or target == current_workflow_type:
            return None
        return target

    @staticmethod
    def _match(patterns: List[Pattern], text: Optional[str]) -> Optional[WorkflowType]:
        if not text:
            return None
        for pattern in patterns:
            match = pattern.search(text)
            if match:
                target = WorkflowType.from_label(match.group(1))
                if target is not None:
                    return target
        return None


def extract_carryover(workflow: Workflow) -> Optional[Dict[str, Any]]:
    """Company info, latest artifact, announcement and tone; None without a company name"""

    collected = _collected_information(workflow)
    company = collected.get("companyInfo") if isinstance(collected.get("companyInfo"), dict) else {}

    company_name = company.get("name") or collected.get("companyName") or collected.get("company")
    if not company_name:
        return None

    company_info = {
        "name": company_name,
        "description": company.get("description") or collected.get("companyDescription"),
        "industry": company.get("industry") or collected.get("industry"),
    }

    carryover = {
        "companyInfo": {key: value for key, value in company_info.items() if value},
        "previousContent": _latest_artifact(workflow),
        "announcement": collected.get("announcement") or collected.get("topic") or collected.get("storyAngle"),
        "tone": collected.get("tone") or collected.get("preferredTone"),
    }
    return {key: value for key, value in carryover.items() if value}


def _collected_information(workflow: Workflow) -> Dict[str, Any]:
    for step in workflow.ordered_steps():
        if step.kind == StepKind.DIALOG and step.metadata.get("collectedInformation"):
            return dict(step.metadata["collectedInformation"])
    return {}


def _latest_artifact(workflow: Workflow) -> Optional[str]:
    for step in reversed(workflow.ordered_steps()):
        if step.metadata.get("generatedAsset"):
            return step.metadata["generatedAsset"]
    return None
