import json

import pytest
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_core.outputs import ChatGeneration, ChatResult

from contentflow.domain.errors import CollaboratorUnavailableError
from contentflow.infrastructure.llm.langchain_client import LangChainModelClient
from contentflow.infrastructure.llm.parsing import parse_llm_json_response, try_parse_json_object
from contentflow.infrastructure.observability.logging import MetricsCollector


class FlakyChatModel(BaseChatModel):
    failures: int = 1
    calls: int = 0

    def _generate(self, messages, stop=None, run_manager=None, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError("upstream 503")
        return ChatResult(generations=[ChatGeneration(message=AIMessage(content="recovered"))])

    @property
    def _llm_type(self) -> str:
        return "flaky"


def test_parse_fenced_json():
    assert parse_llm_json_response('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_llm_json_response('{"a": 2}') == {"a": 2}

    with pytest.raises(json.JSONDecodeError):
        parse_llm_json_response("not json")


def test_try_parse_json_object():
    assert try_parse_json_object('Here you go: {"isComplete": true} hope it helps') == {"isComplete": True}
    assert try_parse_json_object("[1, 2]") is None
    assert try_parse_json_object("plain words") is None
    assert try_parse_json_object("") is None


@pytest.mark.asyncio
async def test_complete_returns_model_text(settings):
    client = LangChainModelClient(FakeListChatModel(responses=["Hello from the model"]), settings=settings)
    assert await client.complete("be nice", "hi") == "Hello from the model"


@pytest.mark.asyncio
async def test_complete_retries_then_succeeds(settings):
    model = FlakyChatModel(failures=1)
    metrics = MetricsCollector()
    client = LangChainModelClient(model, settings=settings, metrics=metrics)

    assert await client.complete("sys", "hi") == "recovered"
    assert model.calls == 2
    assert metrics.get_counter("model_call.failure") == 1


@pytest.mark.asyncio
async def test_complete_gives_up_after_retries(settings):
    model = FlakyChatModel(failures=100)
    client = LangChainModelClient(model, settings=settings, metrics=MetricsCollector())

    with pytest.raises(CollaboratorUnavailableError):
        await client.complete("sys", "hi")
    assert model.calls == settings.model_max_retries + 1


def test_build_messages_maps_roles():
    messages = LangChainModelClient.build_messages(
        "instructions",
        "latest",
        [
            {"role": "assistant", "content": "What is the announcement?"},
            {"role": "user", "content": "A new robot"},
            {"role": "assistant", "content": ""},
        ],
    )

    assert [type(m) for m in messages] == [SystemMessage, AIMessage, HumanMessage, HumanMessage]
    assert messages[-1].content == "latest"
