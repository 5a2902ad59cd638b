import pytest

from contentflow.domain.context.memory.profile_store import InMemoryProfileStore
from contentflow.domain.models.profile import InputStyle, LearningSignals, UsageStatistics, UserKnowledgeProfile
from contentflow.domain.models.workflow import (
    StepKind, StepStatus, Workflow, WorkflowStatus, WorkflowStep, WorkflowType
)
from contentflow.domain.orchestration.learning import LearningRecorder

from tests.fakes import FailingProfileStore


def _completed_workflow(workflow_type=WorkflowType.BLOG_ARTICLE, status=WorkflowStatus.COMPLETED, asset="Draft"):
    steps = [
        WorkflowStep(
            id="s1", workflow_id="w1", name="Information Collection", kind=StepKind.DIALOG, order=0,
            status=StepStatus.COMPLETE,
            metadata={
                "collectedInformation": {
                    "companyInfo": {"name": "Acme", "industry": "Robotics"},
                    "tone": "upbeat",
                    "jobTitle": "Head of Comms",
                },
                "userInputs": ["We are Acme and we are launching a new line of warehouse robots next month"],
                "contextAvailable": True,
            },
        ),
        WorkflowStep(
            id="s2", workflow_id="w1", name="Asset Generation", kind=StepKind.GENERATION, order=1,
            status=StepStatus.COMPLETE,
            metadata={"generatedAsset": asset, "userInputs": ["auto-execute"], "contextUsed": True},
        ),
    ]
    return Workflow(id="w1", template_id="t", thread_id="t1", workflow_type=workflow_type, status=status, steps=steps)


@pytest.mark.asyncio
async def test_first_completion_records_usage_only(settings):
    store = InMemoryProfileStore()
    recorder = LearningRecorder(store, settings=settings)

    await recorder.record(_completed_workflow(), "u1", "o1")
    profile = await store.get_profile("u1", "o1")

    assert profile.usage.interaction_count == 1
    assert profile.usage.successful_workflows == 1
    assert profile.usage.workflow_counts == {"Blog Article": 1}
    assert profile.usage.average_completion_seconds is not None
    assert profile.usage.average_complexity == pytest.approx(LearningRecorder.complexity(2, 1, 3))
    assert profile.usage.context_available_count == 1
    assert profile.usage.context_used_count == 1
    assert profile.usage.input_style_counts == {"conversational": 1}
    assert profile.company_name is None
    assert profile.preferred_workflows == []


@pytest.mark.asyncio
async def test_repeat_success_commits_preferences(settings):
    store = InMemoryProfileStore()
    recorder = LearningRecorder(store, settings=settings)

    await recorder.record(_completed_workflow(), "u1", "o1")
    await recorder.record(_completed_workflow(), "u1", "o1")
    profile = await store.get_profile("u1", "o1")

    assert profile.usage.interaction_count == 2
    assert profile.usage.context_used_count == 2
    assert profile.usage.input_style_counts == {"conversational": 2}
    assert profile.usage.average_complexity == pytest.approx(LearningRecorder.complexity(2, 1, 3))
    assert profile.company_name == "Acme"
    assert profile.industry == "Robotics"
    assert profile.preferred_tone == "upbeat"
    assert profile.job_title == "Head of Comms"
    assert profile.input_style == InputStyle.CONVERSATIONAL
    assert profile.preferred_workflows == ["Blog Article"]


@pytest.mark.asyncio
async def test_preferred_workflows_capped(settings):
    store = InMemoryProfileStore()
    await store.upsert_profile(UserKnowledgeProfile(
        user_id="u1", org_id="o1",
        preferred_workflows=["FAQ", "Press Release", "Social Post", "Media Pitch", "Blog Article"],
        usage=UsageStatistics(interaction_count=10, successful_workflows=10),
    ))
    recorder = LearningRecorder(store, settings=settings)

    await recorder.record(_completed_workflow(WorkflowType.MEDIA_LIST), "u1", "o1")
    profile = await store.get_profile("u1", "o1")

    assert profile.preferred_workflows == ["Media List Generator", "FAQ", "Press Release", "Social Post", "Media Pitch"]


@pytest.mark.asyncio
async def test_base_workflow_is_not_learned(settings):
    store = InMemoryProfileStore()
    result = await LearningRecorder(store, settings=settings).record(
        _completed_workflow(WorkflowType.BASE), "u1", "o1"
    )
    assert result is None
    assert await store.get_profile("u1", "o1") is None


@pytest.mark.asyncio
async def test_record_safely_swallows_store_errors(settings):
    await LearningRecorder(FailingProfileStore(), settings=settings).record_safely(_completed_workflow(), "u1", "o1")


def test_extract_signals(settings):
    recorder = LearningRecorder(InMemoryProfileStore(), settings=settings)
    signals = recorder.extract_signals(_completed_workflow())

    assert signals.input_styles == [InputStyle.CONVERSATIONAL]
    assert signals.context_available
    assert signals.context_used
    assert signals.successful
    assert 0 < signals.complexity_score <= 1

    abandoned = recorder.extract_signals(_completed_workflow(status=WorkflowStatus.IN_PROGRESS))
    assert not abandoned.successful


def test_confidence_weights_history():
    fresh = UserKnowledgeProfile(user_id="u1", org_id="o1")
    success = LearningSignals(workflow_id="w", workflow_type="FAQ", successful=True)
    failure = LearningSignals(workflow_id="w", workflow_type="FAQ", successful=False)

    assert LearningRecorder.confidence(fresh, success) == pytest.approx(0.6)
    assert LearningRecorder.confidence(fresh, failure) == pytest.approx(0.4)

    seasoned = UserKnowledgeProfile(
        user_id="u1", org_id="o1", usage=UsageStatistics(interaction_count=10, successful_workflows=10)
    )
    assert LearningRecorder.confidence(seasoned, success) == 1.0


def test_input_style_categories():
    assert InputStyle.categorize("ok") == InputStyle.BRIEF
    assert InputStyle.categorize("a short answer here") == InputStyle.CONVERSATIONAL
    assert InputStyle.categorize("x" * 120) == InputStyle.DETAILED
