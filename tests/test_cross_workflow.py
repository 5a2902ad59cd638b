from contentflow.domain.models.workflow import StepKind, StepStatus, Workflow, WorkflowStep, WorkflowType
from contentflow.domain.orchestration.cross_workflow import CrossWorkflowIntentDetector, extract_carryover


def _workflow(collected=None, asset=None):
    steps = [
        WorkflowStep(id="s1", workflow_id="w1", name="Information Collection", kind=StepKind.DIALOG, order=0,
                     status=StepStatus.COMPLETE, metadata={"collectedInformation": collected or {}}),
        WorkflowStep(id="s2", workflow_id="w1", name="Asset Generation", kind=StepKind.GENERATION, order=1,
                     status=StepStatus.COMPLETE, metadata={"generatedAsset": asset} if asset else {}),
    ]
    return Workflow(id="w1", template_id="blog-article", thread_id="t1",
                    workflow_type=WorkflowType.BLOG_ARTICLE, steps=steps)


def test_detects_model_announcement():
    detector = CrossWorkflowIntentDetector()
    target = detector.detect(
        "I can help with that! Let me start a Social Post workflow for you.", None, WorkflowType.BLOG_ARTICLE
    )
    assert target == WorkflowType.SOCIAL_POST


def test_detects_user_request():
    detector = CrossWorkflowIntentDetector()
    assert detector.detect("", "great, now do a social post", WorkflowType.BLOG_ARTICLE) == WorkflowType.SOCIAL_POST
    assert detector.detect("", "create a blog post too", WorkflowType.PRESS_RELEASE) == WorkflowType.BLOG_ARTICLE
    assert detector.detect("", "a press release with the same info", WorkflowType.FAQ) == WorkflowType.PRESS_RELEASE


def test_ignores_same_type_and_plain_text():
    detector = CrossWorkflowIntentDetector()
    assert detector.detect("", "now do a social post", WorkflowType.SOCIAL_POST) is None
    assert detector.detect("Here is your draft.", "looks good", WorkflowType.BLOG_ARTICLE) is None
    assert detector.detect(None, None, WorkflowType.FAQ) is None


def test_requested_asset_resolution():
    detector = CrossWorkflowIntentDetector()
    assert detector.from_requested_asset("social post", WorkflowType.BLOG_ARTICLE) == WorkflowType.SOCIAL_POST
    assert detector.from_requested_asset("Blog Article", WorkflowType.BLOG_ARTICLE) is None
    assert detector.from_requested_asset("podcast", WorkflowType.BLOG_ARTICLE) is None
    assert detector.from_requested_asset(None, WorkflowType.BLOG_ARTICLE) is None


def test_carryover_requires_company_name():
    assert extract_carryover(_workflow({"topic": "robots"}, asset="Draft")) is None


def test_carryover_contents():
    carryover = extract_carryover(_workflow(
        {"companyInfo": {"name": "Acme", "industry": "Robotics"}, "topic": "new robot", "tone": "upbeat"},
        asset="Acme unveils robots.",
    ))
    assert carryover == {
        "companyInfo": {"name": "Acme", "industry": "Robotics"},
        "previousContent": "Acme unveils robots.",
        "announcement": "new robot",
        "tone": "upbeat",
    }


def test_carryover_from_flat_fields():
    carryover = extract_carryover(_workflow({"companyName": "Acme", "announcement": "Series A"}))
    assert carryover == {"companyInfo": {"name": "Acme"}, "announcement": "Series A"}
