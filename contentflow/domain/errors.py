"""Exception types raised by the workflow engine and its collaborators."""

from typing import Optional


class WorkflowEngineError(Exception):
    """Base engine exception."""


class NotFoundError(WorkflowEngineError):
    """Referenced workflow or step does not exist."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class StepConflictError(WorkflowEngineError):
    """Step response submitted for a step that is not the workflow's current step."""

    def __init__(self, step_id: str, current_step_id: Optional[str], reason: str = "step is not current"):
        super().__init__(f"Step {step_id} rejected: {reason} (current step: {current_step_id})")
        self.step_id = step_id
        self.current_step_id = current_step_id
        self.reason = reason


class StaleStepError(StepConflictError):
    """Optimistic version check failed on a step write."""

    def __init__(self, step_id: str, expected_version: int, actual_version: int):
        super().__init__(
            step_id,
            None,
            reason=f"stale write (expected version {expected_version}, found {actual_version})",
        )
        self.expected_version = expected_version
        self.actual_version = actual_version


class CollaboratorUnavailableError(WorkflowEngineError):
    """Search, profile or model call failed or timed out."""

    def __init__(self, collaborator: str, message: str):
        super().__init__(f"{collaborator} unavailable: {message}")
        self.collaborator = collaborator


class ClassificationError(WorkflowEngineError):
    """Upstream security classification failed."""


class InvariantViolationError(WorkflowEngineError):
    """Workflow state breaks an invariant; the request is rejected and state left untouched."""

    def __init__(self, workflow_id: str, message: str):
        super().__init__(f"Workflow {workflow_id} invariant violated: {message}")
        self.workflow_id = workflow_id


# Errors that reject the request instead of degrading to the baseline path
REJECTION_ERRORS = (NotFoundError, StepConflictError, InvariantViolationError)
