from contentflow.domain.models.workflow import WorkflowType
from contentflow.domain.security.policy import PolicyTier, WorkflowSecurityPolicy


def test_content_workflows_are_open():
    policy = WorkflowSecurityPolicy()
    for workflow_type in (WorkflowType.BASE, WorkflowType.BLOG_ARTICLE, WorkflowType.SOCIAL_POST):
        assert policy.is_enhancement_allowed(workflow_type)
        assert policy.context_headers_enabled(workflow_type)

    assert "Blog Article" in policy.open_workflows()
    assert "Media List Generator" not in policy.open_workflows()


def test_unknown_workflow_is_locked():
    policy = WorkflowSecurityPolicy()
    config = policy.get_config("Payroll Export")

    assert config.tier == PolicyTier.LOCKED
    assert not policy.is_enhancement_allowed("Payroll Export")
    assert policy.filter_for_transfer({"companyInfo": {"name": "Acme"}}, "Payroll Export") == {}


def test_switch_between_open_workflows():
    decision = WorkflowSecurityPolicy().validate_switch(WorkflowType.BLOG_ARTICLE, WorkflowType.SOCIAL_POST)
    assert decision.allowed
    assert decision.reason is None


def test_switch_out_of_restricted_workflow_is_blocked():
    decision = WorkflowSecurityPolicy().validate_switch(WorkflowType.MEDIA_LIST, WorkflowType.SOCIAL_POST)
    assert not decision.allowed
    assert "does not allow automatic switching" in decision.reason


def test_switch_into_restricted_workflow_is_blocked():
    decision = WorkflowSecurityPolicy().validate_switch(WorkflowType.BLOG_ARTICLE, WorkflowType.MEDIA_LIST)
    assert not decision.allowed
    assert "security restrictions" in decision.reason


def test_filter_for_transfer_strips_contacts_and_emails():
    data = {
        "mediaContacts": [{"name": "Sam", "outlet": "Daily"}],
        "emails": ["sam@daily.com"],
        "notes": "Pitch to sam@daily.com first",
        "topic": "robotics",
    }
    filtered = WorkflowSecurityPolicy().filter_for_transfer(data, WorkflowType.MEDIA_LIST)

    assert "mediaContacts" not in filtered
    assert "emails" not in filtered
    assert filtered["notes"] == "Pitch to [EMAIL_REDACTED] first"
    assert filtered["topic"] == "robotics"


def test_open_workflow_transfers_everything():
    data = {"announcement": "new robot"}
    assert WorkflowSecurityPolicy().filter_for_transfer(data, WorkflowType.BLOG_ARTICLE) == data
