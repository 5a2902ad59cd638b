from contentflow.domain.context.context_injector import (
    HEADER_CLOSE, HEADER_OPEN, PromptContextInjector, format_profile_line
)
from contentflow.domain.models.context import ContextBundle, ContextItem, ContextScope, ProfileSummary
from contentflow.domain.models.workflow import WorkflowType
from contentflow.domain.security.policy import WorkflowSecurityPolicy

LONG_BASE = "Collect the details for the content. " * 300


def _bundle(**profile):
    return ContextBundle(
        user_profile=ProfileSummary(**profile),
        related_documents=[
            ContextItem(content="Launch posts do best with one clear call to action.", relevance_score=0.9,
                        scope=ContextScope.GLOBAL),
        ],
        suggestions=['Use "Acme" as the company name'],
    )


def _header(result: str, base: str) -> str:
    assert result.endswith(base)
    return result[: len(result) - len(base)]


def test_header_wraps_mandatory_lines():
    injector = PromptContextInjector()
    result = injector.inject(LONG_BASE, _bundle(role="Head of Comms", company_name="Acme", industry="Robotics"),
                             WorkflowType.BLOG_ARTICLE, "Information Collection")
    header = _header(result, LONG_BASE)

    assert header.startswith(HEADER_OPEN)
    assert header.endswith(HEADER_CLOSE + "\n\n")
    assert "USER: Head of Comms at Acme (Robotics)" in header
    assert "Currently in Blog Article workflow at Information Collection step" in header
    assert 'CURRENT LOCATION: Blog Article workflow, step "Information Collection".' in header
    assert "AUTO-USE: Use Acme / Robotics as given" in header
    assert "CARRYOVER" not in header
    assert "REVISIONS" not in header


def test_optional_lines_fill_available_budget():
    injector = PromptContextInjector(header_ratio=0.2)
    result = injector.inject(LONG_BASE, _bundle(company_name="Acme", tone="upbeat"),
                             WorkflowType.SOCIAL_POST, "Information Collection")
    header = _header(result, LONG_BASE)

    assert "TONE: upbeat" in header
    assert "RELATED (global): Launch posts do best" in header
    assert "SUGGESTIONS:" in header
    assert "CARRYOVER:" in header
    assert len(header) <= 0.2 * len(result)


def test_optional_lines_dropped_when_base_is_short():
    base = "Write it."
    result = PromptContextInjector().inject(base, _bundle(company_name="Acme", tone="upbeat"),
                                            WorkflowType.FAQ, "Asset Review", is_review_step=True)
    header = _header(result, base)

    assert "TONE:" not in header
    assert "RELATED" not in header
    assert "SUGGESTIONS:" not in header
    assert "REVISIONS:" in header
    assert "USER: Acme" in header


def test_missing_profile_fields_are_omitted():
    result = PromptContextInjector().inject(LONG_BASE, ContextBundle(), WorkflowType.PRESS_RELEASE, "Information Collection")
    header = _header(result, LONG_BASE)

    assert "USER:" not in header
    assert "None" not in header
    assert "AUTO-USE: Reuse company and industry details" in header


def test_policy_can_disable_header():
    injector = PromptContextInjector(policy=WorkflowSecurityPolicy())
    base = "Collect media list criteria."

    assert injector.inject(base, _bundle(company_name="Acme"), WorkflowType.MEDIA_LIST, "Information Collection") == base
    assert injector.inject(base, _bundle(company_name="Acme"), "Unknown Flow", "Step") == base


def test_format_profile_line():
    assert format_profile_line(ProfileSummary(role="CEO", company_name="Acme", industry="Robotics")) == "CEO at Acme (Robotics)"
    assert format_profile_line(ProfileSummary(company_name="Acme")) == "Acme"
    assert format_profile_line(ProfileSummary(role="CEO")) == "CEO"
    assert format_profile_line(ProfileSummary(industry="Robotics")) == "Robotics industry"
    assert format_profile_line(ProfileSummary()) is None
