from typing import TypedDict, Dict, Any, List, Optional
import asyncio
from langgraph.graph import StateGraph, END
import structlog

from contentflow.domain.context.context_injector import PromptContextInjector
from contentflow.domain.context.context_manager import ContextRetrievalCoordinator
from contentflow.domain.models.context import ContextBundle
from contentflow.domain.models.workflow import (
    AUTO_EXECUTE_INPUT, StepOutcome, Workflow, WorkflowStep, WorkflowType
)
from contentflow.domain.orchestration.cross_workflow import CrossWorkflowIntentDetector
from contentflow.domain.security.policy import WorkflowSecurityPolicy
from contentflow.domain.workflow.step_handlers import StepHandlerRegistry

logger = structlog.get_logger(__name__)


class StepPipelineState(TypedDict, total=False):
    """State for the enhanced step graph"""
    workflow: Workflow
    step: WorkflowStep
    user_input: str
    user_id: str
    org_id: str
    base_instructions: str
    history: List[Dict[str, str]]
    bundle: ContextBundle
    instructions: str
    model_input: str
    outcome: StepOutcome
    cross_workflow_target: Optional[WorkflowType]
    trace: List[str]


class EnhancedStepPipeline:
    """retrieve context -> inject header -> run step handler -> detect cross-workflow intent"""

    def __init__(
        self,
        coordinator: ContextRetrievalCoordinator,
        injector: PromptContextInjector,
        handlers: StepHandlerRegistry,
        detector: CrossWorkflowIntentDetector,
        policy: WorkflowSecurityPolicy,
        step_timeout_seconds: float = 90.0,
    ):
        self.coordinator = coordinator
        self.injector = injector
        self.handlers = handlers
        self.detector = detector
        self.policy = policy
        self.step_timeout_seconds = step_timeout_seconds
        self.graph = self._create_graph()

    def _create_graph(self):
        graph = StateGraph(StepPipelineState)

        graph.add_node("retrieve_context", self.retrieve_context_node)
        graph.add_node("inject_context", self.inject_context_node)
        graph.add_node("invoke_step", self.invoke_step_node)
        graph.add_node("detect_intent", self.detect_intent_node)

        graph.set_entry_point("retrieve_context")

        graph.add_conditional_edges(
            "retrieve_context",
            self.route_after_retrieval,
            {
                "inject": "inject_context",
                "skip_injection": "invoke_step",
            }
        )
        graph.add_edge("inject_context", "invoke_step")

        graph.add_conditional_edges(
            "invoke_step",
            self.route_after_invocation,
            {
                "detect": "detect_intent",
                "done": END,
            }
        )
        graph.add_edge("detect_intent", END)

        return graph.compile()

    async def run(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        user_input: str,
        user_id: str,
        org_id: str,
        base_instructions: str,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> StepPipelineState:
        initial: StepPipelineState = {
            "workflow": workflow,
            "step": step,
            "user_input": user_input,
            "user_id": user_id,
            "org_id": org_id,
            "base_instructions": base_instructions,
            "instructions": base_instructions,
            "model_input": user_input,
            "history": history or [],
            "cross_workflow_target": None,
            "trace": [],
        }
        return await self.graph.ainvoke(initial)

    async def retrieve_context_node(self, state: StepPipelineState) -> Dict[str, Any]:
        workflow, step = state["workflow"], state["step"]
        user_input = state["user_input"]
        query_text = "" if user_input == AUTO_EXECUTE_INPUT else user_input

        bundle = await self.coordinator.get_context(
            state["user_id"],
            state["org_id"],
            workflow.workflow_type.value,
            step.name,
            query_text,
        )

        return {
            "bundle": bundle,
            "model_input": bundle.sanitized_query if query_text else user_input,
            "trace": state["trace"] + ["retrieve_context"],
        }

    def route_after_retrieval(self, state: StepPipelineState) -> str:
        if self.policy.context_headers_enabled(state["workflow"].workflow_type):
            return "inject"
        return "skip_injection"

    async def inject_context_node(self, state: StepPipelineState) -> Dict[str, Any]:
        workflow, step = state["workflow"], state["step"]
        instructions = self.injector.inject(
            state["base_instructions"],
            state["bundle"],
            workflow.workflow_type,
            step.name,
            is_review_step=step.is_review,
        )
        return {"instructions": instructions, "trace": state["trace"] + ["inject_context"]}

    async def invoke_step_node(self, state: StepPipelineState) -> Dict[str, Any]:
        workflow, step = state["workflow"], state["step"]
        handler = self.handlers.get(step.kind)

        outcome = await asyncio.wait_for(
            handler.process(
                step,
                workflow.workflow_type,
                state["model_input"],
                state["instructions"],
                state["history"],
            ),
            timeout=self.step_timeout_seconds,
        )
        return {"outcome": outcome, "trace": state["trace"] + ["invoke_step"]}

    def route_after_invocation(self, state: StepPipelineState) -> str:
        if self.policy.get_config(state["workflow"].workflow_type).switching_enabled:
            return "detect"
        return "done"

    async def detect_intent_node(self, state: StepPipelineState) -> Dict[str, Any]:
        user_input = state["user_input"]
        target = self.detector.detect(
            state["outcome"].model_output,
            None if user_input == AUTO_EXECUTE_INPUT else user_input,
            state["workflow"].workflow_type,
        )
        return {"cross_workflow_target": target, "trace": state["trace"] + ["detect_intent"]}
