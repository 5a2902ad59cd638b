import pytest

from contentflow.domain.errors import InvariantViolationError, NotFoundError, StaleStepError, StepConflictError
from contentflow.domain.context.state.state_manager import StateManager
from contentflow.domain.models.workflow import StepStatus, WorkflowStatus, WorkflowType
from contentflow.domain.workflow.templates import ASSET_GENERATION, INFORMATION_COLLECTION, default_registry


@pytest.fixture
def template():
    return default_registry().get(WorkflowType.PRESS_RELEASE)


@pytest.mark.asyncio
async def test_create_workflow_instantiates_pending_steps(template):
    manager = StateManager()
    workflow = await manager.create_workflow("thread-1", template)

    assert workflow.status == WorkflowStatus.IN_PROGRESS
    assert workflow.current_step_id is None
    assert [step.status for step in workflow.steps] == [StepStatus.PENDING] * 3
    assert all(step.workflow_id == workflow.id for step in workflow.steps)
    assert workflow.next_eligible_step().name == INFORMATION_COLLECTION


@pytest.mark.asyncio
async def test_update_step_bumps_version_and_merges_metadata(template):
    manager = StateManager()
    workflow = await manager.create_workflow("thread-1", template)
    step = workflow.first_dialog_step()

    updated = await manager.update_step(step.id, step.version, status=StepStatus.IN_PROGRESS, metadata={"a": 1})
    assert updated.version == step.version + 1
    assert updated.status == StepStatus.IN_PROGRESS
    assert updated.metadata["a"] == 1
    assert "baseInstructions" in updated.metadata

    with pytest.raises(StaleStepError) as excinfo:
        await manager.update_step(step.id, step.version, metadata={"a": 2})
    assert isinstance(excinfo.value, StepConflictError)
    assert (await manager.get_step(step.id)).metadata["a"] == 1


@pytest.mark.asyncio
async def test_status_never_moves_backwards(template):
    manager = StateManager()
    workflow = await manager.create_workflow("thread-1", template)
    step = workflow.first_dialog_step()

    step = await manager.update_step(step.id, step.version, status=StepStatus.COMPLETE)
    with pytest.raises(InvariantViolationError):
        await manager.update_step(step.id, step.version, status=StepStatus.IN_PROGRESS)


@pytest.mark.asyncio
async def test_dependencies_must_complete_before_start(template):
    manager = StateManager()
    workflow = await manager.create_workflow("thread-1", template)
    generation = workflow.get_step_by_name(ASSET_GENERATION)

    with pytest.raises(InvariantViolationError):
        await manager.update_step(generation.id, generation.version, status=StepStatus.IN_PROGRESS)


@pytest.mark.asyncio
async def test_reads_return_copies(template):
    manager = StateManager()
    workflow = await manager.create_workflow("thread-1", template)

    workflow.steps[0].metadata["tampered"] = True
    fresh = await manager.get_workflow(workflow.id)
    assert "tampered" not in fresh.steps[0].metadata


@pytest.mark.asyncio
async def test_pointer_and_status_updates(template):
    manager = StateManager()
    workflow = await manager.create_workflow("thread-1", template)
    first = workflow.first_dialog_step()

    await manager.update_workflow_current_step(workflow.id, first.id)
    await manager.update_workflow_status(workflow.id, WorkflowStatus.COMPLETED)
    stored = await manager.get_workflow(workflow.id)
    assert stored.current_step_id == first.id
    assert stored.status == WorkflowStatus.COMPLETED

    with pytest.raises(NotFoundError):
        await manager.update_workflow_current_step(workflow.id, "missing-step")
    with pytest.raises(NotFoundError):
        await manager.update_step("missing-step", 0)
    assert await manager.get_workflow("missing") is None


@pytest.mark.asyncio
async def test_list_workflows_by_thread(template):
    manager = StateManager()
    first = await manager.create_workflow("thread-1", template)
    second = await manager.create_workflow("thread-1", default_registry().get(WorkflowType.BASE))
    await manager.create_workflow("thread-2", template)

    listed = await manager.list_workflows("thread-1")
    assert [w.id for w in listed] == [first.id, second.id]
