from typing import List, Optional, Union
import structlog

from contentflow.domain.models.context import ContextBundle, ProfileSummary
from contentflow.domain.models.workflow import WorkflowType
from contentflow.domain.security.policy import WorkflowSecurityPolicy

logger = structlog.get_logger(__name__)

HEADER_OPEN = "=== CONTEXT ==="
HEADER_CLOSE = "=== END CONTEXT ==="

ACTION_RULES = (
    "ACTIONS: If the user says exit, quit or cancel, confirm and stop working on this workflow.",
    'STATUS: If the user asks where they are, answer "Currently in {workflow} workflow at {step} step".',
    "CROSS-WORKFLOW: If the user asks for a different content type, say which workflow you will start "
    "instead of writing that content inside this step.",
)


class PromptContextInjector:
    """Prepends a short, bounded context header to step instructions"""

    def __init__(self, header_ratio: float = 0.2, policy: Optional[WorkflowSecurityPolicy] = None,
                 max_snippets: int = 3, snippet_length: int = 160):
        self.header_ratio = header_ratio
        self.policy = policy
        self.max_snippets = max_snippets
        self.snippet_length = snippet_length

    def inject(
        self,
        base_instructions: str,
        bundle: ContextBundle,
        workflow_type: Union[WorkflowType, str],
        step_name: str,
        is_review_step: bool = False,
    ) -> str:
        """Return ``header + base_instructions``; base instructions are never modified"""

        workflow_name = workflow_type.value if isinstance(workflow_type, WorkflowType) else str(workflow_type)

        if self.policy is not None and not self.policy.context_headers_enabled(workflow_name):
            logger.info("Context header disabled by policy", workflow_type=workflow_name)
            return base_instructions

        lines = self._mandatory_lines(bundle, workflow_name, step_name, is_review_step)
        for line in self._optional_lines(bundle):
            if self._fits(lines + [line], base_instructions):
                lines.append(line)

        return self._render(lines) + base_instructions

    def _mandatory_lines(self, bundle: ContextBundle, workflow_name: str, step_name: str,
                         is_review_step: bool) -> List[str]:
        lines = []

        profile_line = format_profile_line(bundle.user_profile)
        if profile_line:
            lines.append(f"USER: {profile_line}")

        lines.extend(rule.format(workflow=workflow_name, step=step_name) for rule in ACTION_RULES)
        lines.append(f'CURRENT LOCATION: {workflow_name} workflow, step "{step_name}".')

        workflow_type = WorkflowType.from_label(workflow_name)
        if workflow_type is not None and workflow_type.is_content_creation:
            lines.append(self._auto_use_rule(bundle.user_profile))
            if workflow_type == WorkflowType.SOCIAL_POST:
                lines.append("CARRYOVER: Check information carried over from a previous workflow before asking for anything.")

        if is_review_step:
            lines.append("REVISIONS: Apply requested changes directly and return the complete revised content.")

        return lines

    @staticmethod
    def _auto_use_rule(profile: ProfileSummary) -> str:
        known = [value for value in (profile.company_name, profile.industry) if value]
        if known:
            return f"AUTO-USE: Use {' / '.join(known)} as given; do not ask for company or industry again."
        return "AUTO-USE: Reuse company and industry details already given in this conversation; do not ask again."

    def _optional_lines(self, bundle: ContextBundle) -> List[str]:
        lines = []
        if bundle.user_profile.tone:
            lines.append(f"TONE: {bundle.user_profile.tone}")

        snippets = bundle.related_documents + bundle.related_conversations
        for item in snippets[: self.max_snippets]:
            snippet = " ".join(item.content.split())[: self.snippet_length]
            lines.append(f"RELATED ({item.scope.value}): {snippet}")

        if bundle.suggestions:
            lines.append("SUGGESTIONS: " + "; ".join(bundle.suggestions))
        return lines

    def _fits(self, lines: List[str], base_instructions: str) -> bool:
        header_length = len(self._render(lines))
        return header_length <= self.header_ratio * (header_length + len(base_instructions))

    @staticmethod
    def _render(lines: List[str]) -> str:
        return "\n".join([HEADER_OPEN, *lines, HEADER_CLOSE]) + "\n\n"


def format_profile_line(profile: ProfileSummary) -> Optional[str]:
    """``role at company (industry)`` with missing parts left out"""

    if profile.role and profile.company_name:
        line = f"{profile.role} at {profile.company_name}"
    else:
        line = profile.role or profile.company_name or ""

    if profile.industry:
        line = f"{line} ({profile.industry})" if line else f"{profile.industry} industry"

    return line or None
