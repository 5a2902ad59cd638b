import pytest

from contentflow.domain.errors import CollaboratorUnavailableError
from contentflow.domain.models.workflow import StepKind, WorkflowStep, WorkflowType
from contentflow.domain.workflow.step_handlers import (
    DialogStepHandler, GenerationStepHandler, StepHandlerRegistry, merge_collected
)

from tests.fakes import ScriptedModelClient, dialog_reply


def _step(kind=StepKind.DIALOG, **metadata):
    return WorkflowStep(id="s1", workflow_id="w1", name="Information Collection", kind=kind, order=0, metadata=metadata)


@pytest.mark.asyncio
async def test_dialog_merges_collected_information():
    model = ScriptedModelClient([dialog_reply(
        isComplete=False,
        collectedInformation={"topic": "robots", "companyName": ""},
        nextQuestion="Who is the audience?",
        completionPercentage=40,
    )])
    step = _step(collectedInformation={"companyName": "Acme"})

    outcome = await DialogStepHandler(model).process(step, WorkflowType.BLOG_ARTICLE, "robots", "collect")

    assert not outcome.is_complete
    assert outcome.response == "Who is the audience?"
    assert outcome.payload["collectedInformation"] == {"companyName": "Acme", "topic": "robots"}
    assert outcome.payload["completionPercentage"] == 40


@pytest.mark.asyncio
async def test_dialog_completion_and_fenced_json():
    model = ScriptedModelClient(['```json\n{"isComplete": true, "collectedInformation": {"topic": "x"}}\n```'])
    outcome = await DialogStepHandler(model).process(_step(), WorkflowType.FAQ, "x", "collect")

    assert outcome.is_complete
    assert outcome.response == "Thanks, I have everything I need for your FAQ."


@pytest.mark.asyncio
async def test_dialog_plain_text_is_conversational():
    model = ScriptedModelClient(["Sure! What should the post announce?"])
    outcome = await DialogStepHandler(model).process(_step(), WorkflowType.SOCIAL_POST, "hi", "collect")

    assert not outcome.is_complete
    assert outcome.conversational
    assert outcome.response == "Sure! What should the post announce?"


@pytest.mark.asyncio
async def test_selected_workflow_completes_selection():
    model = ScriptedModelClient([dialog_reply(selectedWorkflow="Press Release")])
    outcome = await DialogStepHandler(model).process(_step(), WorkflowType.BASE, "press release please", "select")

    assert outcome.is_complete
    assert outcome.requested_workflow == "Press Release"


@pytest.mark.asyncio
async def test_review_decisions():
    review = _step(review=True)

    approved = await DialogStepHandler(ScriptedModelClient([
        dialog_reply(reviewDecision="approved")
    ])).process(review, WorkflowType.BLOG_ARTICLE, "looks good", "review")
    assert approved.is_complete

    revised = await DialogStepHandler(ScriptedModelClient([
        dialog_reply(reviewDecision="revision_requested", revisedAsset="Shorter draft")
    ])).process(review, WorkflowType.BLOG_ARTICLE, "make it shorter", "review")
    assert not revised.is_complete
    assert revised.payload["generatedAsset"] == "Shorter draft"
    assert revised.payload["revisions"] == ["Shorter draft"]
    assert revised.response == "Shorter draft"

    switch = await DialogStepHandler(ScriptedModelClient([
        dialog_reply(reviewDecision="cross_workflow_request", requestedAssetType="Social Post")
    ])).process(review, WorkflowType.BLOG_ARTICLE, "now a social post", "review")
    assert switch.is_complete
    assert switch.requested_workflow == "Social Post"

    unclear = await DialogStepHandler(ScriptedModelClient([
        dialog_reply(reviewDecision="unclear")
    ])).process(review, WorkflowType.BLOG_ARTICLE, "hmm", "review")
    assert not unclear.is_complete


@pytest.mark.asyncio
async def test_generation_returns_asset():
    model = ScriptedModelClient(["  Final press release text  "])
    outcome = await GenerationStepHandler(model).process(
        _step(StepKind.GENERATION), WorkflowType.PRESS_RELEASE, "auto-execute", "write"
    )

    assert outcome.is_complete
    assert outcome.payload == {"generatedAsset": "Final press release text", "assetType": "Press Release"}


@pytest.mark.asyncio
async def test_generation_rejects_empty_output():
    with pytest.raises(CollaboratorUnavailableError):
        await GenerationStepHandler(ScriptedModelClient(["   "])).process(
            _step(StepKind.GENERATION), WorkflowType.FAQ, "auto-execute", "write"
        )


def test_registry_dispatch():
    registry = StepHandlerRegistry.for_model(ScriptedModelClient())
    assert isinstance(registry.get(StepKind.DIALOG), DialogStepHandler)
    assert isinstance(registry.get(StepKind.GENERATION), GenerationStepHandler)

    with pytest.raises(KeyError):
        StepHandlerRegistry([]).get(StepKind.DIALOG)


def test_merge_collected_keeps_existing_values():
    merged = merge_collected(
        {"companyInfo": {"name": "Acme"}, "tone": "formal"},
        {"companyInfo": {"industry": "Robotics", "name": None}, "tone": "", "topic": "launch"},
    )
    assert merged == {"companyInfo": {"name": "Acme", "industry": "Robotics"}, "tone": "formal", "topic": "launch"}
