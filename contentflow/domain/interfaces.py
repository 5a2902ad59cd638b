"""Contracts for the external collaborators the workflow engine consumes.

Reference in-memory implementations live under ``domain/context/memory`` and
``domain/context/state``; the model adapter lives under ``infrastructure/llm``.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Sequence

from contentflow.domain.models.context import SearchHit
from contentflow.domain.models.profile import UserKnowledgeProfile
from contentflow.domain.models.security import SecurityLevel
from contentflow.domain.models.workflow import (
    StepStatus, Workflow, WorkflowStatus, WorkflowStep, WorkflowTemplate
)


class WorkflowRepository(ABC):
    """Persistence for workflows and their steps. Every call is atomic on its own."""

    @abstractmethod
    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        pass

    @abstractmethod
    async def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        pass

    @abstractmethod
    async def update_step(
        self,
        step_id: str,
        expected_version: int,
        status: Optional[StepStatus] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> WorkflowStep:
        """Merge ``metadata`` and apply ``status``; raises StaleStepError on version mismatch"""
        pass

    @abstractmethod
    async def update_workflow_status(self, workflow_id: str, status: WorkflowStatus) -> None:
        pass

    @abstractmethod
    async def update_workflow_current_step(self, workflow_id: str, step_id: Optional[str]) -> None:
        pass

    @abstractmethod
    async def create_workflow(self, thread_id: str, template: WorkflowTemplate) -> Workflow:
        """Instantiate a template with every step pending"""
        pass

    @abstractmethod
    async def list_workflows(self, thread_id: str) -> List[Workflow]:
        """Workflows on a thread, oldest first"""
        pass


class SemanticSearchService(ABC):
    """Best-effort semantic search over prior conversations, documents and assets"""

    @abstractmethod
    async def search(
        self,
        user_id: str,
        org_id: str,
        query: str,
        content_types: Sequence[str],
        max_security_level: SecurityLevel,
        limit: int = 10,
        scope: Optional[str] = None,
    ) -> List[SearchHit]:
        pass


class ProfileStore(ABC):

    @abstractmethod
    async def get_profile(self, user_id: str, org_id: str) -> Optional[UserKnowledgeProfile]:
        pass

    @abstractmethod
    async def upsert_profile(self, profile: UserKnowledgeProfile) -> UserKnowledgeProfile:
        pass


class ModelClient(ABC):
    """Single blocking model call; timeout and retry belong to the implementation"""

    @abstractmethod
    async def complete(
        self,
        system_instructions: str,
        user_input: str,
        conversation_history: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        pass


class MessageDelivery(ABC):
    """Pushes messages to a thread outside the normal response turn"""

    @abstractmethod
    async def post_message(self, thread_id: str, text: str, role: str = "assistant") -> None:
        pass


class ConversationHistory(ABC):

    @abstractmethod
    async def get_history(self, thread_id: str, limit: int = 20) -> List[Dict[str, str]]:
        """Recent turns as ``{"role": ..., "content": ...}`` dicts, oldest first"""
        pass

    @abstractmethod
    async def record_turn(self, thread_id: str, role: str, text: str) -> None:
        pass
