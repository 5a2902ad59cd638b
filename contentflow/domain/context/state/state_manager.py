from typing import Dict, Any, List, Optional
import asyncio
from datetime import datetime
import uuid

from contentflow.domain.errors import InvariantViolationError, NotFoundError, StaleStepError
from contentflow.domain.interfaces import WorkflowRepository
from contentflow.domain.models.workflow import (
    StepStatus, Workflow, WorkflowStatus, WorkflowStep, WorkflowTemplate
)


class StateManager(WorkflowRepository):
    """In-memory workflow persistence with per-step optimistic versioning"""

    def __init__(self):
        self.workflows: Dict[str, Workflow] = {}
        self._step_owner: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        async with self._lock:
            workflow = self.workflows.get(workflow_id)
            return workflow.model_copy(deep=True) if workflow else None

    async def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        async with self._lock:
            step = self._find_step(step_id)
            return step.model_copy(deep=True) if step else None

    async def update_step(
        self,
        step_id: str,
        expected_version: int,
        status: Optional[StepStatus] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> WorkflowStep:
        async with self._lock:
            step = self._find_step(step_id)
            if step is None:
                raise NotFoundError("step", step_id)
            if step.version != expected_version:
                raise StaleStepError(step_id, expected_version, step.version)

            if status is not None and status != step.status:
                if not step.status.can_transition_to(status):
                    raise InvariantViolationError(
                        step.workflow_id, f"step {step.name} cannot move {step.status.value} -> {status.value}"
                    )
                if status == StepStatus.IN_PROGRESS:
                    self._check_dependencies(step)
                step.status = status

            if metadata:
                step.metadata.update(metadata)

            step.version += 1
            step.updated_at = datetime.utcnow()
            return step.model_copy(deep=True)

    async def update_workflow_status(self, workflow_id: str, status: WorkflowStatus) -> None:
        async with self._lock:
            self._require_workflow(workflow_id).status = status

    async def update_workflow_current_step(self, workflow_id: str, step_id: Optional[str]) -> None:
        async with self._lock:
            workflow = self._require_workflow(workflow_id)
            if step_id is not None and workflow.get_step(step_id) is None:
                raise NotFoundError("step", step_id)
            workflow.current_step_id = step_id

    async def create_workflow(self, thread_id: str, template: WorkflowTemplate) -> Workflow:
        workflow_id = str(uuid.uuid4())
        steps = [
            WorkflowStep(
                id=str(uuid.uuid4()),
                workflow_id=workflow_id,
                name=spec.name,
                kind=spec.kind,
                order=spec.order,
                dependencies=spec.dependencies,
                prompt=spec.prompt,
                metadata=dict(spec.metadata),
            )
            for spec in template.steps
        ]
        workflow = Workflow(
            id=workflow_id,
            template_id=template.id,
            thread_id=thread_id,
            workflow_type=template.workflow_type,
            steps=steps,
        )

        async with self._lock:
            self.workflows[workflow_id] = workflow
            for step in steps:
                self._step_owner[step.id] = workflow_id
            return workflow.model_copy(deep=True)

    async def list_workflows(self, thread_id: str) -> List[Workflow]:
        """Workflows on a thread, oldest first"""

        async with self._lock:
            found = [w for w in self.workflows.values() if w.thread_id == thread_id]
            return [w.model_copy(deep=True) for w in sorted(found, key=lambda w: w.created_at)]

    def _find_step(self, step_id: str) -> Optional[WorkflowStep]:
        workflow_id = self._step_owner.get(step_id)
        if workflow_id is None:
            return None
        return self.workflows[workflow_id].get_step(step_id)

    def _require_workflow(self, workflow_id: str) -> Workflow:
        workflow = self.workflows.get(workflow_id)
        if workflow is None:
            raise NotFoundError("workflow", workflow_id)
        return workflow

    def _check_dependencies(self, step: WorkflowStep) -> None:
        workflow = self.workflows[step.workflow_id]
        completed = {s.name for s in workflow.steps if s.status == StepStatus.COMPLETE}
        missing = set(step.dependencies) - completed
        if missing:
            raise InvariantViolationError(
                workflow.id, f"step {step.name} started before dependencies {sorted(missing)} completed"
            )
