from typing import Dict, List, Optional
import asyncio
import random
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
import structlog

from contentflow.domain.errors import CollaboratorUnavailableError
from contentflow.domain.interfaces import ModelClient
from contentflow.infrastructure.config.settings import Settings, get_settings
from contentflow.infrastructure.observability.logging import MetricsCollector, metrics as default_metrics

logger = structlog.get_logger(__name__)


class LangChainModelClient(ModelClient):
    """ModelClient over any langchain-core chat model, with timeout and bounded retry"""

    def __init__(
        self,
        chat_model: BaseChatModel,
        settings: Optional[Settings] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.chat_model = chat_model
        self.settings = settings or get_settings()
        self.metrics = metrics or default_metrics

    async def complete(
        self,
        system_instructions: str,
        user_input: str,
        conversation_history: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        messages = self.build_messages(system_instructions, user_input, conversation_history)
        attempts = self.settings.model_max_retries + 1
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            try:
                with self.metrics.timer("model_call"):
                    result = await asyncio.wait_for(
                        self.chat_model.ainvoke(messages),
                        timeout=self.settings.model_timeout_seconds,
                    )
                return _content_text(result)

            except asyncio.TimeoutError as e:
                last_error = e
                logger.warning("Model call timed out", attempt=attempt + 1, timeout=self.settings.model_timeout_seconds)
            except Exception as e:
                last_error = e
                logger.warning("Model call failed", attempt=attempt + 1, error=str(e), error_type=type(e).__name__)

            self.metrics.increment_counter("model_call.failure")
            if attempt + 1 < attempts:
                await asyncio.sleep(self._retry_delay(attempt))

        raise CollaboratorUnavailableError("model", f"{attempts} attempts failed: {last_error}")

    def _retry_delay(self, attempt: int) -> float:
        """Exponential backoff with +/-20% jitter"""
        delay = self.settings.model_retry_backoff_seconds * (2 ** attempt)
        return max(0.0, delay + delay * 0.2 * (random.random() - 0.5) * 2)

    @staticmethod
    def build_messages(
        system_instructions: str,
        user_input: str,
        conversation_history: Optional[List[Dict[str, str]]] = None,
    ) -> List[BaseMessage]:
        messages: List[BaseMessage] = [SystemMessage(content=system_instructions)]

        for turn in conversation_history or []:
            content = turn.get("content", "")
            if not content:
                continue
            if turn.get("role") == "user":
                messages.append(HumanMessage(content=content))
            else:
                messages.append(AIMessage(content=content))

        messages.append(HumanMessage(content=user_input))
        return messages


def _content_text(message) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content
    # Content blocks: keep the text parts
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)
