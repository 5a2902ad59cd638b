from typing import Dict, Any, FrozenSet, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum
import structlog

from contentflow.domain.models.workflow import WorkflowType
from .sanitizer import ContentSanitizer

logger = structlog.get_logger(__name__)


class PolicyTier(str, Enum):
    """How much model-side enhancement a workflow type may receive"""
    OPEN = "open"
    RESTRICTED = "restricted"
    LOCKED = "locked"


class WorkflowSecurityConfig(BaseModel):
    """Per workflow type security settings"""
    model_config = ConfigDict(frozen=True)

    tier: PolicyTier
    switching_enabled: bool = False
    context_headers_enabled: bool = False
    transfer_restrictions: FrozenSet[str] = Field(default_factory=frozenset)
    reason: Optional[str] = None


class SwitchDecision(BaseModel):
    allowed: bool
    reason: Optional[str] = None


_OPEN = WorkflowSecurityConfig(
    tier=PolicyTier.OPEN,
    switching_enabled=True,
    context_headers_enabled=True,
)

_CONTACT_RESTRICTED = WorkflowSecurityConfig(
    tier=PolicyTier.RESTRICTED,
    transfer_restrictions=frozenset({"contact_info", "email_addresses"}),
    reason="Contains sensitive media contact information",
)

_LOCKED = WorkflowSecurityConfig(
    tier=PolicyTier.LOCKED,
    transfer_restrictions=frozenset({"all"}),
    reason="Unknown workflow - default security restrictions applied",
)

DEFAULT_SECURITY_CONFIG: Dict[str, WorkflowSecurityConfig] = {
    WorkflowType.BASE.value: _OPEN,
    WorkflowType.PRESS_RELEASE.value: _OPEN,
    WorkflowType.SOCIAL_POST.value: _OPEN,
    WorkflowType.BLOG_ARTICLE.value: _OPEN,
    WorkflowType.FAQ.value: _OPEN,
    WorkflowType.MEDIA_PITCH.value: _OPEN,
    WorkflowType.MEDIA_LIST.value: _CONTACT_RESTRICTED,
    "Media Matching": _CONTACT_RESTRICTED,
}

# Field names removed from carried-over data per restriction
_RESTRICTED_FIELDS = {
    "contact_info": ("contacts", "mediaContacts", "contactList"),
    "email_addresses": ("emails", "emailAddresses"),
}

WorkflowName = Union[WorkflowType, str]


class WorkflowSecurityPolicy:
    """Decides per workflow type whether enhancement, switching and carryover are allowed"""

    def __init__(
        self,
        configs: Optional[Dict[str, WorkflowSecurityConfig]] = None,
        sanitizer: Optional[ContentSanitizer] = None,
    ):
        self.configs = dict(configs if configs is not None else DEFAULT_SECURITY_CONFIG)
        self.sanitizer = sanitizer or ContentSanitizer()

    def get_config(self, workflow: WorkflowName) -> WorkflowSecurityConfig:
        name = _name(workflow)
        config = self.configs.get(name)
        if config is None:
            logger.warning("Unknown workflow, defaulting to locked", workflow=name)
            return _LOCKED
        return config

    def is_enhancement_allowed(self, workflow: WorkflowName) -> bool:
        return self.get_config(workflow).tier == PolicyTier.OPEN

    def context_headers_enabled(self, workflow: WorkflowName) -> bool:
        return self.get_config(workflow).context_headers_enabled

    def open_workflows(self) -> List[str]:
        return [name for name, config in self.configs.items() if config.tier == PolicyTier.OPEN]

    def validate_switch(self, source: WorkflowName, target: WorkflowName) -> SwitchDecision:
        source_name, target_name = _name(source), _name(target)
        source_config = self.get_config(source_name)
        target_config = self.get_config(target_name)

        if not source_config.switching_enabled:
            logger.info("Workflow switch blocked at source", source=source_name, tier=source_config.tier.value)
            return SwitchDecision(
                allowed=False,
                reason=f"{source_name} workflow does not allow automatic switching. "
                       f"Please start a new conversation for {target_name}.",
            )

        if target_config.tier != PolicyTier.OPEN:
            logger.info("Workflow switch blocked at target", target=target_name, tier=target_config.tier.value)
            return SwitchDecision(
                allowed=False,
                reason=f"{target_name} workflow has security restrictions. "
                       f"Please start a new conversation for that workflow.",
            )

        return SwitchDecision(allowed=True)

    def filter_for_transfer(self, data: Dict[str, Any], source: WorkflowName) -> Dict[str, Any]:
        """Strip fields the source workflow may not hand to another workflow"""

        restrictions = self.get_config(source).transfer_restrictions
        if "all" in restrictions:
            logger.info("All data transfer blocked", workflow=_name(source))
            return {}
        if not restrictions:
            return dict(data)

        filtered = dict(data)
        for restriction in restrictions:
            for field in _RESTRICTED_FIELDS.get(restriction, ()):
                filtered.pop(field, None)

        if "email_addresses" in restrictions:
            filtered = {
                key: self.sanitizer.redact_emails(value) if isinstance(value, str) else value
                for key, value in filtered.items()
            }

        logger.info("Filtered carryover data", workflow=_name(source), restrictions=sorted(restrictions))
        return filtered


def _name(workflow: WorkflowName) -> str:
    return workflow.value if isinstance(workflow, WorkflowType) else str(workflow)
