from dataclasses import dataclass
from typing import Optional

from contentflow.domain.context.context_injector import PromptContextInjector
from contentflow.domain.context.context_manager import ContextRetrievalCoordinator
from contentflow.domain.context.memory.profile_store import CachedProfileStore, InMemoryProfileStore
from contentflow.domain.context.memory.runtime_memory import RuntimeMemory
from contentflow.domain.context.memory.vector_memory_store import VectorMemoryStore
from contentflow.domain.context.state.state_manager import StateManager
from contentflow.domain.interfaces import ModelClient, ProfileStore, SemanticSearchService, WorkflowRepository
from contentflow.domain.orchestration.core.workflow_engine import WorkflowEngine
from contentflow.domain.orchestration.cross_workflow import CrossWorkflowIntentDetector
from contentflow.domain.orchestration.learning import LearningRecorder
from contentflow.domain.security.classifier import SecurityClassifier
from contentflow.domain.security.policy import WorkflowSecurityPolicy
from contentflow.domain.security.sanitizer import ContentSanitizer
from contentflow.domain.workflow.step_handlers import StepHandlerRegistry
from contentflow.domain.workflow.templates import TemplateRegistry, default_registry
from contentflow.infrastructure.config.settings import Settings, get_settings
from contentflow.infrastructure.observability.logging import MetricsCollector, setup_logging


@dataclass
class EngineComponents:
    """Engine plus the collaborators it was wired with"""
    engine: WorkflowEngine
    repository: WorkflowRepository
    search: SemanticSearchService
    profiles: ProfileStore
    memory: RuntimeMemory
    metrics: MetricsCollector


def build_engine(
    model: ModelClient,
    settings: Optional[Settings] = None,
    repository: Optional[WorkflowRepository] = None,
    search: Optional[SemanticSearchService] = None,
    profiles: Optional[ProfileStore] = None,
    templates: Optional[TemplateRegistry] = None,
    classifier: Optional[SecurityClassifier] = None,
    metrics: Optional[MetricsCollector] = None,
    configure_logging: bool = False,
) -> EngineComponents:
    """Wire a WorkflowEngine; collaborators not supplied get in-memory implementations"""

    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings.log_level, settings.log_format, settings.service_name)

    metrics = metrics or MetricsCollector()
    repository = repository or StateManager()
    search = search or VectorMemoryStore()
    profiles = profiles or CachedProfileStore(InMemoryProfileStore(), ttl=settings.profile_cache_ttl_seconds)
    memory = RuntimeMemory()

    sanitizer = ContentSanitizer()
    classifier = classifier or SecurityClassifier()
    policy = WorkflowSecurityPolicy(sanitizer=sanitizer)

    coordinator = ContextRetrievalCoordinator(
        search=search,
        profiles=profiles,
        classifier=classifier,
        sanitizer=sanitizer,
        settings=settings,
        metrics=metrics,
    )

    engine = WorkflowEngine(
        repository=repository,
        templates=templates or default_registry(),
        handlers=StepHandlerRegistry.for_model(model),
        coordinator=coordinator,
        injector=PromptContextInjector(header_ratio=settings.header_ratio, policy=policy),
        detector=CrossWorkflowIntentDetector(),
        policy=policy,
        learning=LearningRecorder(profiles, settings=settings),
        profiles=profiles,
        delivery=memory,
        history=memory,
        settings=settings,
        metrics=metrics,
    )

    return EngineComponents(
        engine=engine,
        repository=repository,
        search=search,
        profiles=profiles,
        memory=memory,
        metrics=metrics,
    )
