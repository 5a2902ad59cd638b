from collections import Counter
from typing import Dict, Any, List, Optional
import asyncio
from datetime import datetime
import structlog

from contentflow.domain.interfaces import ProfileStore
from contentflow.domain.models.profile import InputStyle, LearningSignals, UserKnowledgeProfile
from contentflow.domain.models.workflow import (
    AUTO_EXECUTE_INPUT, StepKind, StepStatus, Workflow, WorkflowStatus, WorkflowType
)
from contentflow.infrastructure.config.settings import Settings, get_settings

logger = structlog.get_logger(__name__)


class LearningRecorder:
    """Harvests signals from finished workflows into the user's knowledge profile.

    Usage statistics are always recorded. Preference fields are only written
    when the confidence for this interaction exceeds the configured threshold.
    """

    def __init__(self, profiles: ProfileStore, settings: Optional[Settings] = None):
        self.profiles = profiles
        self.settings = settings or get_settings()

    async def record_safely(self, workflow: Workflow, user_id: str, org_id: str) -> None:
        """Bounded, never raises; called after the user-facing response is built"""

        try:
            await asyncio.wait_for(
                self.record(workflow, user_id, org_id),
                timeout=self.settings.learning_timeout_seconds,
            )
        except Exception as e:
            logger.warning("Learning recording failed", workflow_id=workflow.id, error=str(e))

    async def record(self, workflow: Workflow, user_id: str, org_id: str) -> Optional[UserKnowledgeProfile]:
        if workflow.workflow_type == WorkflowType.BASE:
            return None

        signals = self.extract_signals(workflow)
        profile = await self.profiles.get_profile(user_id, org_id) or UserKnowledgeProfile(
            user_id=user_id, org_id=org_id
        )

        confidence = self.confidence(profile, signals)
        committed = confidence > self.settings.learning_confidence_threshold

        self._update_usage(profile, signals)
        if committed:
            self._update_preferences(profile, signals)

        stored = await self.profiles.upsert_profile(profile)
        logger.info(
            "Learning recorded",
            workflow_id=workflow.id,
            workflow_type=signals.workflow_type,
            confidence=round(confidence, 3),
            preferences_committed=committed,
            input_style=signals.dominant_style.value if signals.dominant_style else None,
            user_turns=len(signals.input_styles),
            complexity=round(signals.complexity_score, 3),
            context_available=signals.context_available,
            context_used=signals.context_used,
        )
        return stored

    def extract_signals(self, workflow: Workflow) -> LearningSignals:
        inputs = [
            text
            for step in workflow.ordered_steps()
            for text in step.metadata.get("userInputs", [])
            if text and text != AUTO_EXECUTE_INPUT
        ]
        styles = [InputStyle.categorize(text) for text in inputs]
        dominant = Counter(styles).most_common(1)[0][0] if styles else None

        steps = workflow.steps
        collected: Dict[str, Any] = {}
        for step in workflow.ordered_steps():
            if step.kind == StepKind.DIALOG and step.metadata.get("collectedInformation"):
                collected = dict(step.metadata["collectedInformation"])
                break

        generated = any(step.metadata.get("generatedAsset") for step in steps)
        all_complete = bool(steps) and all(step.status == StepStatus.COMPLETE for step in steps)

        return LearningSignals(
            workflow_id=workflow.id,
            workflow_type=workflow.workflow_type.value,
            input_styles=styles,
            dominant_style=dominant,
            context_available=any(step.metadata.get("contextAvailable") for step in steps),
            context_used=any(step.metadata.get("contextUsed") for step in steps),
            complexity_score=self.complexity(len(steps), len(inputs), len(collected)),
            completion_seconds=max((datetime.utcnow() - workflow.created_at).total_seconds(), 0.0),
            successful=workflow.status == WorkflowStatus.COMPLETED and (generated or all_complete),
            collected_information=collected,
        )

    @staticmethod
    def complexity(step_count: int, turn_count: int, field_count: int) -> float:
        """Coarse 0..1 score from steps, user turns and collected fields"""
        return min(1.0, 0.1 * step_count + 0.05 * turn_count + 0.02 * field_count)

    @staticmethod
    def confidence(profile: UserKnowledgeProfile, signals: LearningSignals) -> float:
        """Weighted by prior interaction frequency and this completion's outcome"""

        usage = profile.usage
        score = 0.5 + usage.success_rate * 0.3 + min(usage.interaction_count / 10, 0.2)
        score += 0.1 if signals.successful else -0.1
        return max(0.0, min(1.0, score))

    def _update_usage(self, profile: UserKnowledgeProfile, signals: LearningSignals) -> None:
        usage = profile.usage
        usage.interaction_count += 1
        if signals.successful:
            usage.successful_workflows += 1
        usage.workflow_counts[signals.workflow_type] = usage.workflow_counts.get(signals.workflow_type, 0) + 1

        if usage.average_complexity is None:
            usage.average_complexity = signals.complexity_score
        else:
            usage.average_complexity += (signals.complexity_score - usage.average_complexity) / usage.interaction_count

        usage.context_available_count += int(signals.context_available)
        usage.context_used_count += int(signals.context_used)
        for style in signals.input_styles:
            usage.input_style_counts[style.value] = usage.input_style_counts.get(style.value, 0) + 1

        if signals.completion_seconds is not None:
            if usage.average_completion_seconds is None:
                usage.average_completion_seconds = signals.completion_seconds
            else:
                usage.average_completion_seconds = (usage.average_completion_seconds + signals.completion_seconds) / 2

    def _update_preferences(self, profile: UserKnowledgeProfile, signals: LearningSignals) -> None:
        collected = signals.collected_information
        company = collected.get("companyInfo") if isinstance(collected.get("companyInfo"), dict) else {}

        updates = {
            "company_name": company.get("name") or collected.get("companyName"),
            "company_description": company.get("description") or collected.get("companyDescription"),
            "industry": company.get("industry") or collected.get("industry"),
            "job_title": collected.get("jobTitle") or collected.get("role"),
            "preferred_tone": collected.get("tone") or collected.get("preferredTone"),
        }
        for field, value in updates.items():
            if isinstance(value, str) and value.strip():
                setattr(profile, field, value.strip())

        if signals.dominant_style is not None:
            profile.input_style = signals.dominant_style

        preferred: List[str] = [signals.workflow_type]
        preferred.extend(name for name in profile.preferred_workflows if name != signals.workflow_type)
        profile.preferred_workflows = preferred[: self.settings.preferred_workflow_limit]
