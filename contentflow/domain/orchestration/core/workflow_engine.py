from typing import Dict, Any, List, Optional, Set, Tuple
import asyncio
import json
from pydantic import BaseModel
import structlog

from contentflow.domain.context.context_injector import PromptContextInjector
from contentflow.domain.context.context_manager import ContextRetrievalCoordinator
from contentflow.domain.errors import (
    InvariantViolationError, NotFoundError, REJECTION_ERRORS, StepConflictError
)
from contentflow.domain.interfaces import (
    ConversationHistory, MessageDelivery, ProfileStore, WorkflowRepository
)
from contentflow.domain.models.context import ContextBundle
from contentflow.domain.models.workflow import (
    AUTO_EXECUTE_INPUT, StepKind, StepOutcome, StepResponse, StepStatus, StepSummary,
    Workflow, WorkflowStatus, WorkflowStep, WorkflowType
)
from contentflow.domain.orchestration.core.step_pipeline import EnhancedStepPipeline
from contentflow.domain.orchestration.cross_workflow import CrossWorkflowIntentDetector, extract_carryover
from contentflow.domain.orchestration.fallback import degrade_to_baseline
from contentflow.domain.orchestration.learning import LearningRecorder
from contentflow.domain.security.policy import WorkflowSecurityPolicy
from contentflow.domain.workflow.step_handlers import StepHandlerRegistry
from contentflow.domain.workflow.templates import TemplateRegistry
from contentflow.infrastructure.config.settings import Settings, get_settings
from contentflow.infrastructure.observability.logging import (
    MetricsCollector, WorkflowLogger, bound_workflow_context, metrics as default_metrics
)

logger = structlog.get_logger(__name__)
workflow_events = WorkflowLogger(__name__)

RETRY_MESSAGE = "Sorry, something went wrong while processing that. Please try again."


class StepRun(BaseModel):
    """Result of processing one step turn, enhanced or baseline"""
    outcome: StepOutcome
    enhanced: bool = False
    bundle: Optional[ContextBundle] = None
    cross_workflow_target: Optional[WorkflowType] = None

    @property
    def context_available(self) -> bool:
        return self.bundle is not None and self.bundle.has_context

    @property
    def context_used(self) -> bool:
        return self.enhanced and self.context_available


class WorkflowEngine:
    """Step state machine: validates, processes and transitions workflow steps"""

    def __init__(
        self,
        repository: WorkflowRepository,
        templates: TemplateRegistry,
        handlers: StepHandlerRegistry,
        coordinator: ContextRetrievalCoordinator,
        injector: Optional[PromptContextInjector] = None,
        detector: Optional[CrossWorkflowIntentDetector] = None,
        policy: Optional[WorkflowSecurityPolicy] = None,
        learning: Optional[LearningRecorder] = None,
        profiles: Optional[ProfileStore] = None,
        delivery: Optional[MessageDelivery] = None,
        history: Optional[ConversationHistory] = None,
        settings: Optional[Settings] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.settings = settings or get_settings()
        self.repository = repository
        self.templates = templates
        self.handlers = handlers
        self.coordinator = coordinator
        self.policy = policy or WorkflowSecurityPolicy(sanitizer=coordinator.sanitizer)
        self.injector = injector or PromptContextInjector(
            header_ratio=self.settings.header_ratio, policy=self.policy
        )
        self.detector = detector or CrossWorkflowIntentDetector()
        self.learning = learning
        self.profiles = profiles
        self.delivery = delivery
        self.history = history
        self.metrics = metrics or default_metrics
        self.pipeline = EnhancedStepPipeline(
            coordinator=coordinator,
            injector=self.injector,
            handlers=handlers,
            detector=self.detector,
            policy=self.policy,
            step_timeout_seconds=self.settings.step_timeout_seconds,
        )
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Workflow creation
    # ------------------------------------------------------------------

    async def create_workflow(
        self,
        thread_id: str,
        workflow_type: WorkflowType,
        user_id: Optional[str] = None,
        org_id: Optional[str] = None,
        silent: bool = False,
        initial_metadata: Optional[Dict[str, Any]] = None,
    ) -> Workflow:
        """Instantiate a template, start its first step and optionally post the first prompt"""

        template = self.templates.get(workflow_type)
        workflow = await self.repository.create_workflow(thread_id, template)

        dialog_step = workflow.first_dialog_step()
        seed: Dict[str, Any] = {}
        if user_id and org_id and dialog_step is not None:
            defaults = await self._smart_defaults(user_id, org_id)
            if defaults:
                seed["smartDefaults"] = defaults
        if initial_metadata:
            seed.update(initial_metadata)
        if seed and dialog_step is not None:
            await self.repository.update_step(dialog_step.id, dialog_step.version, metadata=seed)

        workflow = await self.repository.get_workflow(workflow.id)
        first_step = workflow.next_eligible_step()
        if first_step is not None:
            await self.repository.update_step(first_step.id, first_step.version, status=StepStatus.IN_PROGRESS)
            await self.repository.update_workflow_current_step(workflow.id, first_step.id)

            if not silent and first_step.prompt and self.delivery is not None:
                await self.delivery.post_message(thread_id, first_step.prompt)

        workflow_events.log_workflow_transition(
            workflow_id=workflow.id,
            from_step=None,
            to_step=first_step.name if first_step else None,
            condition="created",
            state_summary={"workflow_type": template.workflow_type.value, "silent": silent, "seeded": bool(seed)},
        )
        return await self.repository.get_workflow(workflow.id)

    async def _smart_defaults(self, user_id: str, org_id: str) -> Dict[str, Any]:
        if self.profiles is None:
            return {}
        try:
            profile = await asyncio.wait_for(
                self.profiles.get_profile(user_id, org_id),
                timeout=self.settings.profile_timeout_seconds,
            )
        except Exception as e:
            logger.warning("Profile lookup for smart defaults failed", user_id=user_id, error=str(e))
            return {}
        return profile.smart_defaults() if profile else {}

    # ------------------------------------------------------------------
    # Step responses
    # ------------------------------------------------------------------

    async def handle_step_response(self, step_id: str, user_input: str, user_id: str, org_id: str) -> StepResponse:
        """Process a user turn for a step and apply the resulting transition"""

        step = await self.repository.get_step(step_id)
        if step is None:
            raise NotFoundError("step", step_id)
        workflow = await self.repository.get_workflow(step.workflow_id)
        if workflow is None:
            raise NotFoundError("workflow", step.workflow_id)

        with bound_workflow_context(workflow_id=workflow.id, step_id=step_id, thread_id=workflow.thread_id):
            self.check_invariants(workflow)
            workflow = await self._resume_interrupted_transition(workflow)

            if workflow.status == WorkflowStatus.COMPLETED:
                raise StepConflictError(step_id, workflow.current_step_id, reason="workflow is completed")
            if workflow.current_step_id != step_id:
                raise StepConflictError(step_id, workflow.current_step_id)

            step = workflow.get_step(step_id)
            if step.status != StepStatus.IN_PROGRESS:
                raise StepConflictError(step_id, workflow.current_step_id, reason=f"step is {step.status.value}")

            response = await self._process_turn(workflow, step, user_input, user_id, org_id, depth=0)
            if not response.retry_requested:
                await self._record_exchange(workflow.thread_id, user_input, response)

        self.metrics.increment_counter("workflow.step_response", tags={"workflow_type": workflow.workflow_type.value})
        return response

    async def _record_exchange(self, thread_id: str, user_input: str, response: StepResponse) -> None:
        """Append the user turn and the reply so later model calls see the conversation"""

        delivered = False
        if self.history is not None:
            classification = await self.coordinator.classifier.classify(user_input)
            await self._record_turn(thread_id, "user", self.coordinator.sanitizer.sanitize(user_input, classification))
        if response.conversational and self.delivery is not None:
            await self.delivery.post_message(thread_id, response.response)
            delivered = self.delivery is self.history
        if self.history is not None and response.response and not delivered:
            await self._record_turn(thread_id, "assistant", response.response)

    async def _record_turn(self, thread_id: str, role: str, text: str) -> None:
        try:
            await self.history.record_turn(thread_id, role, text)
        except Exception as e:
            logger.warning("Conversation turn not recorded", thread_id=thread_id, role=role, error=str(e))

    def check_invariants(self, workflow: Workflow) -> None:
        """At most one in-progress step, and the current pointer must reference it"""

        in_progress = workflow.in_progress_steps()
        if len(in_progress) > 1:
            names = [s.name for s in in_progress]
            logger.error("Multiple steps in progress", workflow_id=workflow.id, steps=names)
            raise InvariantViolationError(workflow.id, f"multiple steps in progress: {names}")

        if workflow.current_step_id is None:
            return

        current = workflow.get_step(workflow.current_step_id)
        if current is None:
            logger.error("Current step missing", workflow_id=workflow.id, step_id=workflow.current_step_id)
            raise InvariantViolationError(workflow.id, "current step does not belong to the workflow")

        if current.status == StepStatus.PENDING:
            logger.error("Current step never started", workflow_id=workflow.id, step=current.name)
            raise InvariantViolationError(workflow.id, f"current step {current.name} is pending")

        if in_progress and in_progress[0].id != current.id and current.status != StepStatus.COMPLETE:
            raise InvariantViolationError(workflow.id, "current step is not the in-progress step")

    async def _resume_interrupted_transition(self, workflow: Workflow) -> Workflow:
        """Finish a transition whose writes stopped after the step was marked complete"""

        if workflow.status != WorkflowStatus.IN_PROGRESS or workflow.current_step_id is None:
            return workflow
        current = workflow.get_step(workflow.current_step_id)
        if current is None or current.status != StepStatus.COMPLETE:
            return workflow

        logger.warning("Resuming interrupted transition", workflow_id=workflow.id, step=current.name)
        in_progress = workflow.in_progress_steps()
        if in_progress:
            await self.repository.update_workflow_current_step(workflow.id, in_progress[0].id)
        else:
            next_step = workflow.next_eligible_step()
            if next_step is not None:
                await self.repository.update_step(next_step.id, next_step.version, status=StepStatus.IN_PROGRESS)
                await self.repository.update_workflow_current_step(workflow.id, next_step.id)
            elif await self._has_other_active_workflow(workflow):
                await self._complete_workflow(workflow)
            else:
                await self._renew_thread(workflow)

        return await self.repository.get_workflow(workflow.id)

    async def _has_other_active_workflow(self, workflow: Workflow) -> bool:
        return any(
            other.id != workflow.id and other.status == WorkflowStatus.IN_PROGRESS
            for other in await self.repository.list_workflows(workflow.thread_id)
        )

    async def _process_turn(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        user_input: str,
        user_id: str,
        org_id: str,
        depth: int,
    ) -> StepResponse:
        run = await self._run_step(workflow, step, user_input, user_id, org_id)
        if run is None:
            return StepResponse(
                response=RETRY_MESSAGE,
                workflow_id=workflow.id,
                step_id=step.id,
                retry_requested=True,
            )

        outcome = run.outcome
        payload = dict(outcome.payload)
        payload["userInputs"] = list(step.metadata.get("userInputs", [])) + [user_input]
        payload["contextUsed"] = bool(step.metadata.get("contextUsed")) or run.context_used
        payload["contextAvailable"] = bool(step.metadata.get("contextAvailable")) or run.context_available

        base = StepResponse(
            response=outcome.response,
            workflow_id=workflow.id,
            step_id=step.id,
            enhanced=run.enhanced,
            context_used=run.context_used,
            security_level=run.bundle.security_level if run.bundle else None,
            suggestions=run.bundle.suggestions if run.bundle else [],
        )

        target, blocked_reason = self._resolve_switch(workflow, run)
        if target is not None:
            await self.repository.update_step(
                step.id,
                step.version,
                status=StepStatus.COMPLETE if outcome.is_complete else None,
                metadata=payload,
            )
            new_workflow = await self._switch_workflow(workflow.id, target, user_id, org_id)
            first = new_workflow.get_step(new_workflow.current_step_id) if new_workflow.current_step_id else None
            return base.model_copy(update={
                "response": outcome.response or f"Let's start your {target.value}.",
                "step_completed": outcome.is_complete,
                "workflow_completed": True,
                "new_workflow_id": new_workflow.id,
                "cross_workflow_target": target,
                "next_step": StepSummary.from_step(first) if first else None,
            })

        if blocked_reason and outcome.requested_workflow:
            # An explicit request that cannot be honored leaves the step open
            await self.repository.update_step(step.id, step.version, metadata=payload)
            workflow_events.log_step_event("switch_blocked", workflow.id, step.id, step.name)
            return base.model_copy(update={"response": blocked_reason, "next_step": StepSummary.from_step(step)})
        if blocked_reason:
            base = base.model_copy(update={"response": f"{base.response}\n\n{blocked_reason}".strip()})

        if not outcome.is_complete:
            await self.repository.update_step(step.id, step.version, metadata=payload)
            workflow_events.log_step_event("step_updated", workflow.id, step.id, step.name, data={"complete": False})
            return base.model_copy(update={
                "next_step": StepSummary.from_step(step),
                "conversational": outcome.conversational and bool(outcome.response),
            })

        completed = await self.repository.update_step(step.id, step.version, status=StepStatus.COMPLETE, metadata=payload)
        workflow_events.log_step_event("step_completed", workflow.id, step.id, step.name, data={"enhanced": run.enhanced})
        return await self._advance(workflow.id, completed, base, user_id, org_id, depth)

    async def _advance(
        self,
        workflow_id: str,
        completed: WorkflowStep,
        base: StepResponse,
        user_id: str,
        org_id: str,
        depth: int,
    ) -> StepResponse:
        """Move to the next eligible step, or complete the workflow"""

        workflow = await self.repository.get_workflow(workflow_id)
        next_step = workflow.next_eligible_step()

        if next_step is None:
            base_workflow = await self._renew_thread(workflow)
            self._schedule_learning(workflow.id, user_id, org_id)
            workflow_events.log_workflow_transition(
                workflow_id=workflow.id,
                from_step=completed.name,
                to_step=None,
                condition="workflow_completed",
                state_summary={"base_workflow_id": base_workflow.id},
            )
            return base.model_copy(update={
                "step_completed": True,
                "workflow_completed": True,
                "new_workflow_id": base_workflow.id,
            })

        next_step = await self.repository.update_step(next_step.id, next_step.version, status=StepStatus.IN_PROGRESS)
        await self.repository.update_workflow_current_step(workflow.id, next_step.id)
        workflow_events.log_workflow_transition(
            workflow_id=workflow.id,
            from_step=completed.name,
            to_step=next_step.name,
            condition="auto_execute" if next_step.auto_execute else "step_completed",
        )

        if next_step.auto_execute and depth < len(workflow.steps):
            workflow = await self.repository.get_workflow(workflow.id)
            auto = await self._process_turn(workflow, next_step, AUTO_EXECUTE_INPUT, user_id, org_id, depth + 1)
            return base.model_copy(update={
                "response": _join(base.response, auto.response),
                "step_completed": True,
                "workflow_completed": auto.workflow_completed,
                "next_step": auto.next_step,
                "new_workflow_id": auto.new_workflow_id,
                "cross_workflow_target": auto.cross_workflow_target,
                "retry_requested": auto.retry_requested,
            })

        return base.model_copy(update={
            "response": _join(base.response, next_step.prompt),
            "step_completed": True,
            "next_step": StepSummary.from_step(next_step),
        })

    async def _renew_thread(self, workflow: Workflow) -> Workflow:
        """Start the silent base workflow for the thread, then close ``workflow``"""

        base_workflow = await self.create_workflow(workflow.thread_id, WorkflowType.BASE, silent=True)
        await self._complete_workflow(workflow)
        return base_workflow

    async def _complete_workflow(self, workflow: Workflow) -> None:
        await self.repository.update_workflow_status(workflow.id, WorkflowStatus.COMPLETED)
        await self.repository.update_workflow_current_step(workflow.id, None)
        self.metrics.increment_counter("workflow.completed", tags={"workflow_type": workflow.workflow_type.value})

    # ------------------------------------------------------------------
    # Step processing: enhanced path with baseline fallback
    # ------------------------------------------------------------------

    async def _run_step(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        user_input: str,
        user_id: str,
        org_id: str,
    ) -> Optional[StepRun]:
        """Returns None when both the enhanced and the baseline path failed"""

        try:
            if not self.policy.is_enhancement_allowed(workflow.workflow_type):
                return await self._process_step_baseline(workflow, step, user_input, user_id, org_id)
            return await self._process_step(workflow, step, user_input, user_id, org_id)
        except REJECTION_ERRORS:
            raise
        except Exception as e:
            logger.error(
                "Step processing failed on every path",
                workflow_id=workflow.id,
                step_id=step.id,
                step=step.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            self.metrics.increment_counter("workflow.retry_requested")
            return None

    @degrade_to_baseline("_process_step_baseline")
    async def _process_step(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        user_input: str,
        user_id: str,
        org_id: str,
    ) -> StepRun:
        history = await self._load_history(workflow.thread_id)
        state = await self.pipeline.run(
            workflow,
            step,
            user_input,
            user_id,
            org_id,
            base_instructions=self.base_instructions(workflow, step),
            history=history,
        )
        return StepRun(
            outcome=state["outcome"],
            enhanced=True,
            bundle=state.get("bundle"),
            cross_workflow_target=state.get("cross_workflow_target"),
        )

    async def _process_step_baseline(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        user_input: str,
        user_id: str,
        org_id: str,
    ) -> StepRun:
        """No context retrieval, no header injection, no intent detection"""

        history = await self._load_history(workflow.thread_id)
        handler = self.handlers.get(step.kind)
        outcome = await asyncio.wait_for(
            handler.process(step, workflow.workflow_type, user_input, self.base_instructions(workflow, step), history),
            timeout=self.settings.step_timeout_seconds,
        )
        return StepRun(outcome=outcome, enhanced=False)

    async def _load_history(self, thread_id: str) -> List[Dict[str, str]]:
        if self.history is None:
            return []
        try:
            return await self.history.get_history(thread_id, limit=self.settings.history_limit)
        except Exception as e:
            logger.warning("Conversation history unavailable", thread_id=thread_id, error=str(e))
            return []

    def base_instructions(self, workflow: Workflow, step: WorkflowStep) -> str:
        """Step instructions plus the data collected so far; identical on both paths"""

        parts = [step.base_instructions or f"Continue the {step.name} step of the {workflow.workflow_type.value}."]

        if step.metadata.get("carryoverNote"):
            parts.append(step.metadata["carryoverNote"])

        defaults = step.metadata.get("smartDefaults")
        if defaults:
            parts.append("Known defaults: " + json.dumps(defaults, ensure_ascii=False, sort_keys=True))

        collected: Dict[str, Any] = {}
        for other in workflow.ordered_steps():
            if other.order > step.order:
                break
            if other.kind == StepKind.DIALOG and other.metadata.get("collectedInformation"):
                collected.update(other.metadata["collectedInformation"])
        if collected:
            parts.append("Collected information: " + json.dumps(collected, ensure_ascii=False, sort_keys=True))

        if step.is_review:
            draft = _latest_asset(workflow)
            if draft:
                parts.append(f"Current draft:\n{draft}")

        return "\n\n".join(parts)

    # ------------------------------------------------------------------
    # Cross-workflow transitions
    # ------------------------------------------------------------------

    def _resolve_switch(self, workflow: Workflow, run: StepRun) -> Tuple[Optional[WorkflowType], Optional[str]]:
        requested = self.detector.from_requested_asset(run.outcome.requested_workflow, workflow.workflow_type)

        # Choosing from the base workflow starts a workflow; it is not an automatic switch
        if workflow.workflow_type == WorkflowType.BASE and requested is not None:
            logger.info("Workflow selected", workflow_id=workflow.id, target=requested.value)
            return requested, None

        target = run.cross_workflow_target or requested
        if target is None:
            return None, None

        decision = self.policy.validate_switch(workflow.workflow_type, target)
        if not decision.allowed:
            logger.info(
                "Cross-workflow switch blocked",
                workflow_id=workflow.id,
                source=workflow.workflow_type.value,
                target=target.value,
            )
            self.metrics.increment_counter("workflow.switch_blocked")
            return None, decision.reason
        return target, None

    async def _switch_workflow(self, workflow_id: str, target: WorkflowType, user_id: str, org_id: str) -> Workflow:
        source = await self.repository.get_workflow(workflow_id)

        seed = None
        carryover = extract_carryover(source)
        if carryover:
            carryover = await self._sanitize_carryover(
                self.policy.filter_for_transfer(carryover, source.workflow_type)
            )
            if carryover.get("companyInfo", {}).get("name"):
                seed = {
                    "collectedInformation": {"assetType": target.value, **carryover},
                    "carryoverFromWorkflow": {"workflowId": source.id, "workflowType": source.workflow_type.value},
                    "carryoverNote": f"Using information from previous {source.workflow_type.value} workflow",
                    "contextCarriedOver": True,
                }

        new_workflow = await self.create_workflow(
            source.thread_id, target, user_id=user_id, org_id=org_id, silent=True, initial_metadata=seed
        )
        await self._complete_workflow(source)

        self.metrics.increment_counter("workflow.cross_workflow_switch", tags={"target": target.value})
        workflow_events.log_workflow_transition(
            workflow_id=source.id,
            from_step=None,
            to_step=None,
            condition="cross_workflow",
            state_summary={
                "source_type": source.workflow_type.value,
                "target_type": target.value,
                "new_workflow_id": new_workflow.id,
                "carryover": seed is not None,
            },
        )
        self._schedule_learning(source.id, user_id, org_id)
        return new_workflow

    async def _sanitize_carryover(self, data: Dict[str, Any]) -> Dict[str, Any]:
        sanitized: Dict[str, Any] = {}
        for key, value in data.items():
            if isinstance(value, dict):
                sanitized[key] = await self._sanitize_carryover(value)
            elif isinstance(value, str):
                classification = await self.coordinator.classifier.classify(value)
                sanitized[key] = self.coordinator.sanitizer.sanitize(value, classification)
            else:
                sanitized[key] = value
        return sanitized

    # ------------------------------------------------------------------
    # Learning, after the response is built
    # ------------------------------------------------------------------

    def _schedule_learning(self, workflow_id: str, user_id: str, org_id: str) -> None:
        if self.learning is None:
            return
        task = asyncio.create_task(self._record_learning(workflow_id, user_id, org_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _record_learning(self, workflow_id: str, user_id: str, org_id: str) -> None:
        # Yield once so the caller's response is returned first
        await asyncio.sleep(0)
        try:
            workflow = await self.repository.get_workflow(workflow_id)
        except Exception as e:
            logger.warning("Learning skipped, workflow unavailable", workflow_id=workflow_id, error=str(e))
            return
        if workflow is not None:
            await self.learning.record_safely(workflow, user_id, org_id)

    async def wait_for_background(self) -> None:
        """Await pending learning tasks (shutdown and tests)"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)


def _join(*parts: Optional[str]) -> str:
    return "\n\n".join(part for part in parts if part)


def _latest_asset(workflow: Workflow) -> Optional[str]:
    for step in reversed(workflow.ordered_steps()):
        if step.metadata.get("generatedAsset"):
            return step.metadata["generatedAsset"]
    return None
