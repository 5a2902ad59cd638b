import pytest

from contentflow.application.engine_factory import build_engine
from contentflow.domain.interfaces import ModelClient
from contentflow.infrastructure.config.settings import Settings
from contentflow.infrastructure.observability.logging import MetricsCollector


@pytest.fixture
def settings():
    return Settings(_env_file=None, model_retry_backoff_seconds=0)


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def make_engine(settings):
    def _make(model: ModelClient, **kwargs):
        kwargs.setdefault("metrics", MetricsCollector())
        return build_engine(model, settings=settings, **kwargs)

    return _make
